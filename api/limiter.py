"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route modules
that apply per-route ceilings with @limiter.limit().

Using a single shared instance ensures all routes share the same counter
store. If each module built its own, each would keep an isolated counter and
limits would never trigger.

Per-route ceilings:
  KIOSK_LIMIT   -- the ?token= endpoints; brute-force ceiling on kiosk tokens
  CREATE_LIMIT  -- household creation and invitation creation
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

KIOSK_LIMIT = "60/minute"
CREATE_LIMIT = "10/minute"

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
