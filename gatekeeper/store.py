"""
Keyed counter/flag store with per-key expiry.

The store is the only shared state between service instances.  Components
receive a ``CounterStore`` by injection, never via a module global, so tests
can hand them an ``InMemoryCounterStore`` driven by a fake clock.

Backends:
  • RedisCounterStore     – production, shared by every instance
  • InMemoryCounterStore  – single process (local dev, tests)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import time
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from gatekeeper.config import REDIS_URL, STORE_BACKEND, STORE_TIMEOUT_SECONDS
from gatekeeper.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class CounterStore(Protocol):
    """Protocol that every store backend must satisfy."""

    # ── Scalars ───────────────────────────────────────────────────────
    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str | int, ttl_seconds: int) -> None:
        ...

    async def incr(self, key: str, ttl_seconds: int) -> int:
        """Atomically add 1 and return the new value.

        The TTL is applied only when the increment creates the key; an
        existing key keeps its original expiry.
        """
        ...

    async def delete(self, *keys: str) -> int:
        ...

    async def ttl(self, key: str) -> int | None:
        """Remaining lifetime in whole seconds, or None if absent/persistent."""
        ...

    # ── Field records ─────────────────────────────────────────────────
    async def get_fields(self, key: str) -> dict[str, str]:
        ...

    async def set_fields(self, key: str, mapping: Mapping[str, str | int], ttl_ms: int) -> None:
        """Replace the whole record and give it a fresh expiry."""
        ...

    async def incr_field(self, key: str, field: str) -> int:
        ...

    # ── Lifecycle ─────────────────────────────────────────────────────
    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...


# ══════════════════════════════════════════════════════════════════════════
#                              REDIS
# ══════════════════════════════════════════════════════════════════════════


@contextlib.asynccontextmanager
async def _store_call(operation: str, key: str) -> AsyncIterator[None]:
    """Translate any backend failure into StoreUnavailable."""
    try:
        yield
    except (RedisError, OSError, asyncio.TimeoutError) as exc:
        logger.exception("Counter store %s failed for key %s", operation, key)
        raise StoreUnavailable() from exc


class RedisCounterStore:
    """CounterStore backed by a shared Redis instance."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, timeout: float = STORE_TIMEOUT_SECONDS) -> RedisCounterStore:
        client = Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client)

    async def get(self, key: str) -> str | None:
        async with _store_call("get", key):
            return await self._client.get(key)

    async def set(self, key: str, value: str | int, ttl_seconds: int) -> None:
        async with _store_call("set", key):
            await self._client.set(key, value, ex=ttl_seconds)

    async def incr(self, key: str, ttl_seconds: int) -> int:
        async with _store_call("incr", key):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.set(key, 0, ex=ttl_seconds, nx=True)
                pipe.incr(key)
                _, value = await pipe.execute()
            return int(value)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        async with _store_call("delete", ",".join(keys)):
            return await self._client.delete(*keys)

    async def ttl(self, key: str) -> int | None:
        async with _store_call("ttl", key):
            remaining = await self._client.ttl(key)
        # -2: key missing, -1: key has no expiry
        return remaining if remaining >= 0 else None

    async def get_fields(self, key: str) -> dict[str, str]:
        async with _store_call("hgetall", key):
            return await self._client.hgetall(key)

    async def set_fields(self, key: str, mapping: Mapping[str, str | int], ttl_ms: int) -> None:
        async with _store_call("hset", key):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=dict(mapping))
                pipe.pexpire(key, ttl_ms)
                await pipe.execute()

    async def incr_field(self, key: str, field: str) -> int:
        async with _store_call("hincrby", key):
            return int(await self._client.hincrby(key, field, 1))

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError, asyncio.TimeoutError):
            logger.warning("Counter store ping failed", exc_info=True)
            return False

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis connection closed")


# ══════════════════════════════════════════════════════════════════════════
#                              IN-MEMORY
# ══════════════════════════════════════════════════════════════════════════


class InMemoryCounterStore:
    """
    Dict-backed CounterStore for a single process.

    Expiry is lazy: a key whose deadline has passed is dropped the next
    time it is touched.  Time comes from *clock* (seconds since the epoch)
    so tests can move it forward without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._values: dict[str, str] = {}
        self._records: dict[str, dict[str, str]] = {}
        self._deadlines: dict[str, float] = {}

    # ── Expiry bookkeeping ────────────────────────────────────────────

    def _expire(self, key: str) -> None:
        deadline = self._deadlines.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._values.pop(key, None)
            self._records.pop(key, None)
            del self._deadlines[key]

    def _exists(self, key: str) -> bool:
        self._expire(key)
        return key in self._values or key in self._records

    # ── Scalars ───────────────────────────────────────────────────────

    async def get(self, key: str) -> str | None:
        self._expire(key)
        return self._values.get(key)

    async def set(self, key: str, value: str | int, ttl_seconds: int) -> None:
        self._records.pop(key, None)
        self._values[key] = str(value)
        self._deadlines[key] = self._clock() + ttl_seconds

    async def incr(self, key: str, ttl_seconds: int) -> int:
        if not self._exists(key):
            self._values[key] = "0"
            self._deadlines[key] = self._clock() + ttl_seconds
        value = int(self._values[key]) + 1
        self._values[key] = str(value)
        return value

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._exists(key):
                deleted += 1
            self._values.pop(key, None)
            self._records.pop(key, None)
            self._deadlines.pop(key, None)
        return deleted

    async def ttl(self, key: str) -> int | None:
        if not self._exists(key):
            return None
        deadline = self._deadlines.get(key)
        if deadline is None:
            return None
        return math.ceil(deadline - self._clock())

    # ── Field records ─────────────────────────────────────────────────

    async def get_fields(self, key: str) -> dict[str, str]:
        self._expire(key)
        return dict(self._records.get(key, {}))

    async def set_fields(self, key: str, mapping: Mapping[str, str | int], ttl_ms: int) -> None:
        self._values.pop(key, None)
        self._records[key] = {field: str(value) for field, value in mapping.items()}
        self._deadlines[key] = self._clock() + ttl_ms / 1000

    async def incr_field(self, key: str, field: str) -> int:
        self._expire(key)
        record = self._records.setdefault(key, {})
        value = int(record.get(field, "0")) + 1
        record[field] = str(value)
        return value

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._values.clear()
        self._records.clear()
        self._deadlines.clear()

    # ── Introspection ─────────────────────────────────────────────────

    def keys(self) -> list[str]:
        """Live keys, for diagnostics and test assertions."""
        for key in list(self._deadlines):
            self._expire(key)
        return sorted([*self._values, *self._records])


def create_store() -> CounterStore:
    """Build the backend selected by STORE_BACKEND."""
    if STORE_BACKEND == "memory":
        logger.warning("Using in-memory counter store – limits are per process")
        return InMemoryCounterStore()
    if STORE_BACKEND != "redis":
        raise ValueError(f"Unknown STORE_BACKEND: {STORE_BACKEND!r}")
    logger.info("Using Redis counter store at %s", REDIS_URL)
    return RedisCounterStore.from_url(REDIS_URL)
