"""
Per-route rate limiting backed by the fixed-window RequestThrottle.

Tiers (limit / window):
  • generate   – 10 / 60s
  • search     – 30 / 60s
  • concepts   – 20 / 60s
  • default    – 100 / 60s
  • otp_issue  – 5 / 60s   (OTP request endpoints – prevents email spam)
  • otp_verify – 10 / 60s  (OTP verify endpoints – prevents brute-force)

Usage::

    @router.post("/search", dependencies=[Depends(rate_limit(SEARCH))])

The limiter keys on the authenticated user id when the upstream identity
layer has set ``request.state.user_id``, else on the client IP.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import Depends, Request, Response

from gatekeeper.config import (
    RATE_LIMIT_CONCEPTS,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_GENERATE,
    RATE_LIMIT_OTP_ISSUE,
    RATE_LIMIT_OTP_VERIFY,
    RATE_LIMIT_SEARCH,
)
from gatekeeper.dependencies import get_throttle
from gatekeeper.errors import RateLimited
from gatekeeper.services.throttle import RequestThrottle

ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class RateLimitConfig:
    limit: int
    window_ms: int


GENERATE = RateLimitConfig(*RATE_LIMIT_GENERATE)
SEARCH = RateLimitConfig(*RATE_LIMIT_SEARCH)
CONCEPTS = RateLimitConfig(*RATE_LIMIT_CONCEPTS)
DEFAULT = RateLimitConfig(*RATE_LIMIT_DEFAULT)
OTP_ISSUE = RateLimitConfig(*RATE_LIMIT_OTP_ISSUE)
OTP_VERIFY = RateLimitConfig(*RATE_LIMIT_OTP_VERIFY)


class _LimiterState:
    """Process-wide switch; tests flip ``enabled`` off for convenience."""

    enabled: bool = True


limiter_state = _LimiterState()


def resolve_identifier(request: Request) -> str:
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return str(user_id)
    if request.client and request.client.host:
        return request.client.host
    return ANONYMOUS


def rate_limit(config: RateLimitConfig = DEFAULT) -> Callable[..., Awaitable[None]]:
    """Build a route dependency enforcing *config* per (identifier, path)."""

    async def _dependency(
        request: Request,
        response: Response,
        throttle: RequestThrottle = Depends(get_throttle),
    ) -> None:
        if not limiter_state.enabled:
            return

        result = await throttle.check(
            resolve_identifier(request),
            request.url.path,
            config.limit,
            config.window_ms,
        )
        if not result.allowed:
            raise RateLimited(retry_after=result.retry_after)

        reset = datetime.fromtimestamp(result.reset_at_seconds, tz=timezone.utc)
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = reset.isoformat()

    return _dependency
