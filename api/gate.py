"""
api/gate.py -- Edge gate: global per-client throttle, public-path policy, security headers.

Runs as HTTP middleware in front of every route (see api/main.py). Decisions
in order:
  1. Throttle: /api/ paths except the health check count against a fixed
     window per client key. Over the limit -> 429 with Retry-After.
  2. Public paths pass through untouched.
  3. No session credential at all -> web pages redirect to
     /sign-in?next=<path>, API paths get a structured 401. Whether the
     credential is VALID is decided later by the session authenticator.
  4. Baseline security headers are added to every response.

Counters live in a `limits` storage chosen by URI, so the gate is injectable:
"memory://" for a single process, "redis://host:6379" when several workers
must share counters. Tests build their own gate and put it on app.state.

slowapi (api/limiter.py) is a separate, finer layer: per-route ceilings on
the token-accepting and account-creating endpoints.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass

from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter
from starlette.requests import Request

SECURITY_HEADERS: dict[str, str] = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}

PUBLIC_PATHS: tuple[str, ...] = (
    "/sign-in",
    "/api/v1/auth/providers",
    "/api/v1/kiosk/dashboard",
    "/api/v1/kiosk/action",
    "/api/v1/health",
)

PUBLIC_PREFIXES: tuple[str, ...] = (
    "/sign-in/",
    "/static/",
)

HEALTH_PATH = "/api/v1/health"

_NAMESPACE = "edge"


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    retry_after: int = 0  # seconds; meaningful only when allowed is False


class RateLimitGate:
    """Fixed-window request counter per client key."""

    def __init__(
        self,
        limit: str = "100/minute",
        storage_uri: str = "memory://",
        trust_forwarded_for: bool = False,
    ) -> None:
        self.item = parse(limit)
        self.storage = storage_from_string(storage_uri)
        self.limiter = FixedWindowRateLimiter(self.storage)
        self.trust_forwarded_for = trust_forwarded_for

    def check(self, key: str) -> GateDecision:
        """Count one request for key and say whether it may proceed."""
        if self.limiter.hit(self.item, _NAMESPACE, key):
            return GateDecision(allowed=True)
        stats = self.limiter.get_window_stats(self.item, _NAMESPACE, key)
        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        return GateDecision(allowed=False, retry_after=retry_after)

    def key_for(self, request: Request) -> str:
        """Client network identifier: socket peer, or first X-Forwarded-For hop when trusted."""
        if self.trust_forwarded_for:
            forwarded = request.headers.get("X-Forwarded-For", "")
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        return request.client.host if request.client else "unknown"

    def reset(self) -> None:
        self.storage.reset()


def is_throttled_path(path: str) -> bool:
    return path.startswith("/api/") and path != HEALTH_PATH


def is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS or path == "/favicon.ico" or path.startswith(PUBLIC_PREFIXES)


def apply_security_headers(response) -> None:
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
