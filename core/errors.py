"""
core/errors.py -- Error taxonomy shared by the auth layer, stores, and routes.

Each subclass carries the HTTP status and machine-readable code it maps to.
api/main.py registers a single exception handler for AppError that renders
the standard {"error": {"code", "message", "detail"}} envelope, so raising
one of these anywhere below a route handler produces the right response.

The three access failures must stay distinguishable -- client UIs branch
on them:
  Unauthenticated  (401) -- no resolvable identity
  Forbidden        (403) -- identity resolved, role not eligible
  NotFound         (404) -- record absent OR owned by another household

NotFound is deliberately used for foreign-tenant records so a caller can
never learn that an id exists in someone else's household.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/,
household/, or cache/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that are surfaced to API callers."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationFailed(AppError):
    status_code = 400
    code = "validation_error"
    default_message = "Request validation failed."


class Unauthenticated(AppError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"
    default_message = "You do not have access to this resource."


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Not found."


class OnboardingRequired(AppError):
    """Signed in, but no household yet -- not a failure, a routing state.

    The API answers 409 with a Location header pointing at the onboarding
    step; web routes turn the same condition into a redirect.
    """

    status_code = 409
    code = "onboarding_required"
    default_message = "Create or join a household first."
    location = "/onboarding"


class UpstreamFailure(AppError):
    status_code = 502
    code = "upstream_failure"
    default_message = "An upstream service failed."
