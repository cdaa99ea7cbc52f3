# marketplace/core/errors.py
import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """Base of every error the services raise on purpose.

    ``code`` is the stable machine-readable identifier returned to clients,
    ``message`` is safe to show to an end user.
    """

    status_code = 500
    code = "INTERNAL_ERROR"
    message = "Something went wrong. Please try again."

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None):
        if code:
            self.code = code
        if message:
            self.message = message
        super().__init__(f"{self.code}: {self.message}")


class ValidationError(MarketplaceError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Some fields are missing or invalid."


class Unauthenticated(MarketplaceError):
    status_code = 401
    code = "UNAUTHENTICATED"
    message = "You must be logged in."


class Forbidden(MarketplaceError):
    status_code = 403
    code = "FORBIDDEN"
    message = "You don't have permission to do that."


class NotFound(MarketplaceError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found."


class Conflict(MarketplaceError):
    status_code = 409
    code = "CONFLICT"
    message = "Already exists."


class RateLimited(MarketplaceError):
    status_code = 429
    code = "RATE_LIMITED"
    message = "Too many requests. Please try again later."


class UpstreamUnavailable(MarketplaceError):
    status_code = 502
    code = "UPSTREAM_UNAVAILABLE"
    message = "A service we depend on is unavailable. Please try again."


class EmailAuthError(UpstreamUnavailable):
    code = "EMAIL_AUTH_FAILED"
    message = "Email delivery is not authorized right now."


class EmailNotConfigured(UpstreamUnavailable):
    code = "EMAIL_NOT_CONFIGURED"
    message = "Email delivery is not configured."


class PartialFailure(MarketplaceError):
    """Some items of a batch succeeded and some failed; both are kept."""

    status_code = 400
    code = "PARTIAL_FAILURE"
    message = "Some items could not be processed."

    def __init__(self, succeeded: List[str], errors: List[str], message: Optional[str] = None):
        self.succeeded = list(succeeded)
        self.errors = list(errors)
        super().__init__(message=message)


async def _marketplace_error_handler(request: Request, exc: MarketplaceError):
    body = {"detail": exc.code, "message": exc.message}
    if isinstance(exc, PartialFailure):
        body["succeeded"] = exc.succeeded
        body["errors"] = exc.errors
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=body)


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        errors.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(
        status_code=400,
        content={"detail": ValidationError.code, "message": ValidationError.message, "errors": errors},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, _marketplace_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
