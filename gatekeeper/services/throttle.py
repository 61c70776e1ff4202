"""
Fixed-window request throttle keyed by (identifier, endpoint).

Each pair owns one window record ``<identifier>:<endpoint>`` with the
fields ``count`` and ``windowStart`` (epoch ms).  A window that started
``window_ms`` or more ago is stale and is replaced by a fresh one.

The read and the conditional write are not atomic: two concurrent requests
may both see ``count < limit`` and both pass.  The overshoot is bounded by
the number of in-flight requests and is accepted.

When the store is unreachable the throttle fails open – the protected
service stays available and the fault is logged.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from gatekeeper.errors import StoreUnavailable
from gatekeeper.store import CounterStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThrottleResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # epoch ms
    retry_after: int  # seconds

    @property
    def reset_at_seconds(self) -> float:
        return self.reset_at / 1000


def window_key(identifier: str, endpoint: str) -> str:
    return f"{identifier}:{endpoint}"


class RequestThrottle:
    """Generic per-identifier, per-endpoint fixed-window limiter."""

    def __init__(self, store: CounterStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def check(
        self,
        identifier: str,
        endpoint: str,
        limit: int,
        window_ms: int,
    ) -> ThrottleResult:
        """Count one request against the window and decide whether it may pass."""
        now = self._now_ms()
        retry_after = math.ceil(window_ms / 1000)
        key = window_key(identifier, endpoint)

        try:
            record = await self._store.get_fields(key)
            window_start = int(record["windowStart"]) if "windowStart" in record else None
            count = int(record.get("count", 0))

            if window_start is None or now - window_start >= window_ms:
                await self._store.set_fields(
                    key, {"count": 1, "windowStart": now}, ttl_ms=window_ms
                )
                return ThrottleResult(
                    allowed=True,
                    limit=limit,
                    remaining=max(0, limit - 1),
                    reset_at=now + window_ms,
                    retry_after=retry_after,
                )

            reset_at = window_start + window_ms
            if count >= limit:
                logger.info(
                    "Rate limit hit for %s on %s (%d/%d)", identifier, endpoint, count, limit
                )
                return ThrottleResult(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=retry_after,
                )

            count = await self._store.incr_field(key, "count")
        except StoreUnavailable:
            logger.warning(
                "Rate limit check failed for %s on %s – allowing request",
                identifier,
                endpoint,
                exc_info=True,
            )
            return ThrottleResult(
                allowed=True,
                limit=limit,
                remaining=limit,
                reset_at=now + window_ms,
                retry_after=retry_after,
            )

        return ThrottleResult(
            allowed=True,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=reset_at,
            retry_after=retry_after,
        )
