"""
cache/store.py -- SQLite-backed cache for weather lookups.

OpenWeatherMap's free tier is rate limited and conditions change slowly, so
each location's report is kept for a short TTL (default 10 minutes). Shared
by GET /api/v1/weather and the kiosk dashboard, which polls.

Usage:
    cache = WeatherCache()
    data = cache.get("90210")      # returns dict or None
    cache.set("90210", data)
    cache.purge_expired()          # call periodically to trim old entries
"""

import json
import sqlite3
import time
from pathlib import Path
from typing import Optional, Union

_DEFAULT_DB = Path(__file__).parent / "weather_cache.db"
_DEFAULT_TTL = 60 * 10  # 10 minutes in seconds

_DDL = """
CREATE TABLE IF NOT EXISTS weather_cache (
    location    TEXT PRIMARY KEY,
    data        TEXT NOT NULL,
    cached_at   REAL NOT NULL
);
"""


def _key(location: str) -> str:
    return location.strip().lower()


class WeatherCache:
    def __init__(self, db_path: Union[Path, str] = _DEFAULT_DB, ttl: int = _DEFAULT_TTL) -> None:
        self.ttl = ttl
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    def get(self, location: str) -> Optional[dict]:
        """Return the cached report for location if present and fresh."""
        row = self._conn.execute(
            "SELECT data, cached_at FROM weather_cache WHERE location = ?",
            (_key(location),),
        ).fetchone()
        if row is None:
            return None
        data, cached_at = row
        if time.time() - cached_at > self.ttl:
            self._delete(location)
            return None
        return json.loads(data)

    def set(self, location: str, data: dict) -> None:
        """Store data for location, replacing any existing entry."""
        self._conn.execute(
            "INSERT OR REPLACE INTO weather_cache (location, data, cached_at) VALUES (?, ?, ?)",
            (_key(location), json.dumps(data), time.time()),
        )
        self._conn.commit()

    def purge_expired(self) -> int:
        """Delete all entries older than TTL. Returns number of rows removed."""
        cutoff = time.time() - self.ttl
        cursor = self._conn.execute("DELETE FROM weather_cache WHERE cached_at < ?", (cutoff,))
        self._conn.commit()
        return cursor.rowcount

    def _delete(self, location: str) -> None:
        self._conn.execute("DELETE FROM weather_cache WHERE location = ?", (_key(location),))
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()
