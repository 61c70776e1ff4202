"""
Error taxonomy and the FastAPI handlers that render it.

Every user-facing denial is a ``GatekeeperError`` subclass with a stable
``code`` and an HTTP status.  Handlers turn them into the envelope::

    {"success": false, "error": {"code": "...", "message": "...", ...details}}
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class GatekeeperError(Exception):
    """Base class for all recoverable, user-facing errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BAD_REQUEST"
    default_message: str = "Request could not be processed"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class ValidationError(GatekeeperError):
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class RateLimited(GatekeeperError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMITED"
    default_message = "Too many requests, please try again later"

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message, retryAfter=retry_after)


# ── OTP restrictions ──────────────────────────────────────────────────────


class RestrictedError(GatekeeperError):
    """An active cooldown or lock blocks the OTP operation."""

    def __init__(self, message: str | None = None, retry_after: int | None = None) -> None:
        self.retry_after = retry_after
        details = {} if retry_after is None else {"retryAfter": retry_after}
        super().__init__(message, **details)


class Cooldown(RestrictedError):
    code = "OTP_COOLDOWN"
    default_message = "Please wait 1 minute before requesting a new OTP!"


class SpamLocked(RestrictedError):
    code = "OTP_SPAM_LOCKED"
    default_message = "Too many OTP requests! Please wait 1 hour before requesting again."


class AccountLocked(RestrictedError):
    code = "ACCOUNT_LOCKED"
    default_message = (
        "Account locked due to multiple failed attempts! Try again after 30 minutes."
    )


# ── OTP verification ──────────────────────────────────────────────────────


class IncorrectCode(GatekeeperError):
    code = "OTP_INCORRECT"

    def __init__(self, attempts_left: int) -> None:
        self.attempts_left = attempts_left
        noun = "attempt" if attempts_left == 1 else "attempts"
        super().__init__(
            f"Incorrect OTP. {attempts_left} {noun} left.",
            attemptsLeft=attempts_left,
        )


class ExpiredOrInvalidCode(GatekeeperError):
    code = "OTP_INVALID"
    default_message = "Invalid or expired OTP! Please request a new one."


# ── Infrastructure ────────────────────────────────────────────────────────


class DeliveryError(GatekeeperError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "DELIVERY_FAILED"
    default_message = "Could not send the OTP email. Please try again."


class StoreUnavailable(GatekeeperError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "SERVICE_UNAVAILABLE"
    default_message = "Service temporarily unavailable. Please try again later."


# ── FastAPI wiring ────────────────────────────────────────────────────────


def error_response(exc: GatekeeperError) -> JSONResponse:
    headers = None
    retry_after = exc.details.get("retryAfter")
    if retry_after is not None:
        headers = {"Retry-After": str(retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
        headers=headers,
    )


async def _handle_gatekeeper_error(request: Request, exc: GatekeeperError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    return error_response(exc)


async def _handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = [".".join(str(p) for p in err["loc"] if p != "body") for err in exc.errors()]
    return error_response(
        ValidationError("Missing or invalid fields!", fields=[f for f in fields if f])
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatekeeperError, _handle_gatekeeper_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
