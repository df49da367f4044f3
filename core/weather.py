"""
core/weather.py -- Current conditions from OpenWeatherMap.

One outbound call per lookup; callers cache the result (cache/store.py).
Any failure -- missing key, network error, non-2xx, malformed body -- is
logged at WARNING and returned as None so the kiosk dashboard degrades
instead of failing. Only GET /api/v1/weather turns None into a 502.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Optional

import requests

logger = logging.getLogger("homebase.weather")

OPENWEATHERMAP_API = "https://api.openweathermap.org/data/2.5/weather"

_US_ZIP = re.compile(r"^\d{5}$")

# Module-level session shared across lookups for connection pooling.
# A known public API: 3 redirect hops is generous.
_session = requests.Session()
_session.max_redirects = 3


@dataclass
class WeatherReport:
    temp: int
    description: str
    icon: str
    high: int
    low: int
    location: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _query_params(location: str, api_key: str) -> dict[str, str]:
    """Build the query string. Five-digit locations are treated as US ZIP codes."""
    location = location.strip()
    params = {"appid": api_key, "units": "imperial"}
    if _US_ZIP.match(location):
        params["zip"] = f"{location},US"
    else:
        params["q"] = location
    return params


def fetch_weather(location: str, api_key: str) -> Optional[WeatherReport]:
    """Fetch current conditions for a free-text location or US ZIP code."""
    if not api_key:
        logger.warning("OPENWEATHERMAP_API_KEY is not set; weather lookup skipped")
        return None
    try:
        resp = _session.get(OPENWEATHERMAP_API, params=_query_params(location, api_key), timeout=10)
        resp.raise_for_status()
        data = resp.json()
        return WeatherReport(
            temp=round(data["main"]["temp"]),
            description=data["weather"][0]["description"],
            icon=data["weather"][0]["main"],
            high=round(data["main"]["temp_max"]),
            low=round(data["main"]["temp_min"]),
            location=data.get("name") or location,
        )
    except requests.RequestException as e:
        logger.warning("Weather fetch failed for %r: %s", location, e)
        return None
    except (KeyError, IndexError, TypeError, ValueError) as e:
        logger.warning("Unexpected weather payload for %r: %s", location, e)
        return None
