"""
api/main.py -- FastAPI application entry point for HomeBase.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests          -- method, path, status, latency, client
  2. edge_gate             -- global throttle, public paths, sign-in redirect, headers
  3. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  4. CORSMiddleware        -- adds CORS headers for allowed browser origins
  5. SlowAPIMiddleware     -- enforces per-route limits from api.limiter
  6. SessionMiddleware     -- holds the OAuth state between redirect and callback

Lifespan opens the household store and the weather cache and builds the
edge gate from settings; shutdown closes them in reverse.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from api.gate import RateLimitGate, apply_security_headers, is_public_path, is_throttled_path
from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.budget import router as budget_router
from api.routes.v1.calendar import router as calendar_router
from api.routes.v1.chores import router as chores_router
from api.routes.v1.grocery import router as grocery_router
from api.routes.v1.household import router as household_router
from api.routes.v1.kiosk import router as kiosk_router
from api.routes.v1.meals import router as meals_router
from api.routes.v1.messages import router as messages_router
from api.routes.v1.pets import router as pets_router
from api.routes.v1.vault import router as vault_router
from api.routes.v1.weather import router as weather_router
from auth.dependencies import get_signed_in_user, sign_in_location
from auth.oauth import oauth as oauth_client
from auth.tokens import extract_session_credential
from cache.store import WeatherCache
from core.config import get_settings
from core.errors import AppError, OnboardingRequired
from household.store import HouseholdStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("homebase.api")

settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open shared resources on startup and close them on shutdown.

    The edge gate is only built here when nothing installed one first;
    tests put their own gate on app.state before the app starts.
    """
    logger.info("HomeBase API starting up")
    app.state.store = HouseholdStore()
    logger.info("Household store initialized")
    app.state.weather_cache = WeatherCache(ttl=settings.weather_cache_ttl)
    purged = app.state.weather_cache.purge_expired()
    logger.info("Weather cache initialized (%d stale entries purged)", purged)
    app.state.oauth = oauth_client
    if getattr(app.state, "edge_gate", None) is None:
        app.state.edge_gate = RateLimitGate(
            limit=settings.rate_limit,
            storage_uri=settings.rate_limit_storage_uri,
            trust_forwarded_for=settings.trust_forwarded_for,
        )
    logger.info("Edge gate: %s per client (storage=%s)", settings.rate_limit, settings.rate_limit_storage_uri.split(":")[0])

    yield

    app.state.weather_cache.close()
    app.state.store.close()
    logger.info("HomeBase API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="HomeBase API",
    description="Household calendar, chores, budget, meals, pets, vault and kiosk display.",
    version=VERSION,
    lifespan=lifespan,
    # Replaced below by routes that require a signed-in user.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the app, so the LAST one added is the outermost.
# The @app.middleware functions below are registered later and so sit
# outside all of these.
# ---------------------------------------------------------------------------

app.add_middleware(SessionMiddleware, secret_key=settings.secret_key, https_only=settings.secure_cookies)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


def _error_json(status_code: int, code: str, message: str, detail: str | None = None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
        headers=headers,
    )


# ---------------------------------------------------------------------------
# Edge gate
#
# Order: throttle, then public paths, then the unauthenticated redirect.
# Only the presence of a credential is checked here; its validity is the
# session authenticator's job further in.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def edge_gate(request: Request, call_next):
    path = request.url.path
    gate: RateLimitGate = request.app.state.edge_gate

    if is_throttled_path(path):
        key = gate.key_for(request)
        decision = gate.check(key)
        if not decision.allowed:
            logger.warning("Throttled %s %s from %s (retry in %ds)", request.method, path, key, decision.retry_after)
            response = _error_json(
                429,
                "rate_limited",
                "Too many requests.",
                headers={"Retry-After": str(decision.retry_after)},
            )
            apply_security_headers(response)
            return response

    if (
        request.method != "OPTIONS"
        and not is_public_path(path)
        and extract_session_credential(request.cookies, request.headers) is None
    ):
        if path.startswith("/api/"):
            response = _error_json(401, "unauthorized", "Authentication required.")
        else:
            response = RedirectResponse(sign_in_location(request), status_code=302)
        apply_security_headers(response)
        return response

    response = await call_next(request)
    apply_security_headers(response)
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(household_router, prefix="/api/v1", tags=["Household"])
app.include_router(kiosk_router, prefix="/api/v1", tags=["Kiosk"])
app.include_router(calendar_router, prefix="/api/v1", tags=["Calendar"])
app.include_router(chores_router, prefix="/api/v1", tags=["Chores"])
app.include_router(grocery_router, prefix="/api/v1", tags=["Grocery"])
app.include_router(messages_router, prefix="/api/v1", tags=["Messages"])
app.include_router(budget_router, prefix="/api/v1", tags=["Budget"])
app.include_router(meals_router, prefix="/api/v1", tags=["Meals"])
app.include_router(pets_router, prefix="/api/v1", tags=["Pets"])
app.include_router(vault_router, prefix="/api/v1", tags=["Vault"])
app.include_router(weather_router, prefix="/api/v1", tags=["Weather"])
# Web UI router is mounted by asgi.py, not here.


@app.get("/docs", include_in_schema=False)
async def docs(user=Depends(get_signed_in_user)):
    return get_swagger_ui_html(openapi_url="/openapi.json", title="HomeBase API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user=Depends(get_signed_in_user)):
    return get_redoc_html(openapi_url="/openapi.json", title="HomeBase API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope.
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if isinstance(exc, OnboardingRequired):
        headers = {"Location": exc.location}
    return _error_json(exc.status_code, exc.code, exc.message, exc.detail, headers=headers)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 from a per-route slowapi limit."""
    retry_after = int(getattr(exc, "retry_after", 60))
    logger.warning("Route limit hit on %s %s", request.method, request.url.path)
    return _error_json(
        429,
        "rate_limited",
        "Too many requests.",
        detail=str(exc.detail),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query, path or body: 400 with the first error message."""
    errors = exc.errors()
    message = "Request validation failed."
    if errors:
        first = errors[0]
        loc = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
    return _error_json(400, "validation_error", message)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error_json(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log the traceback, return a generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_json(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Public and exempt from the edge throttle so monitors are never locked out.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability."""
    try:
        request.app.state.store.ping()
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database = "unavailable"
    return HealthResponse(
        status="ok" if database == "ok" else "degraded",
        version=VERSION,
        components={"database": database},
    )
