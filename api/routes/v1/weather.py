"""
api/routes/v1/weather.py -- Current weather for the caller's household.

Routes:
  GET /weather  -- 404 when the household has no location, 502 when the
                   upstream lookup fails

lookup_weather() is shared with the kiosk dashboard: cache first, then one
upstream call, caching only successful reports so a transient failure is
retried on the next request.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request

from auth.dependencies import get_current_identity
from auth.session import SessionIdentity
from core.config import get_settings
from core.errors import NotFound, UpstreamFailure
from core.weather import fetch_weather
from household.store import HouseholdStore

router = APIRouter()


def lookup_weather(request: Request, location: str) -> Optional[dict]:
    """Return the weather report for location as a dict, or None on failure."""
    cache = request.app.state.weather_cache
    cached = cache.get(location)
    if cached is not None:
        return cached
    report = fetch_weather(location, get_settings().openweathermap_api_key)
    if report is None:
        return None
    data = report.to_dict()
    cache.set(location, data)
    return data


@router.get("/weather")
def get_weather(request: Request, identity: SessionIdentity = Depends(get_current_identity)) -> dict:
    store: HouseholdStore = request.app.state.store
    household = store.get_household(identity.household_id)
    if household is None or not household.location:
        raise NotFound("No location set for household.")
    data = lookup_weather(request, household.location)
    if data is None:
        raise UpstreamFailure("Failed to fetch weather data.")
    return data
