"""
Restriction guard for the OTP flows.

The per-email state is never stored as an enum.  It is derived on every
read from whichever flags are still alive in the store, so TTL expiry is
the only way a restriction ends::

    AccountLock  >  SpamLock  >  Cooldown  >  none

The first live flag (in that order) wins.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import ClassVar

from gatekeeper.errors import AccountLocked, Cooldown, RestrictedError, SpamLocked
from gatekeeper.services import keys
from gatekeeper.store import CounterStore

logger = logging.getLogger(__name__)


# ── Restriction states ────────────────────────────────────────────────────


@dataclass(frozen=True)
class NoRestriction:
    active = False


@dataclass(frozen=True)
class _ActiveRestriction:
    expires_at: datetime | None
    retry_after: int | None

    active = True
    error_cls: ClassVar[type[RestrictedError]] = RestrictedError

    def to_error(self) -> RestrictedError:
        return self.error_cls(retry_after=self.retry_after)


@dataclass(frozen=True)
class CooldownActive(_ActiveRestriction):
    error_cls = Cooldown


@dataclass(frozen=True)
class SpamLockActive(_ActiveRestriction):
    error_cls = SpamLocked


@dataclass(frozen=True)
class AccountLockActive(_ActiveRestriction):
    error_cls = AccountLocked


Restriction = NoRestriction | CooldownActive | SpamLockActive | AccountLockActive

# Evaluated top to bottom, first live flag wins.
_PRIORITY: tuple[tuple[Callable[[str], str], type[_ActiveRestriction]], ...] = (
    (keys.account_lock_key, AccountLockActive),
    (keys.spam_lock_key, SpamLockActive),
    (keys.cooldown_key, CooldownActive),
)


class RestrictionGuard:
    """Turns live lock/cooldown flags into user-facing denials."""

    def __init__(self, store: CounterStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def _flag(self, key: str, kind: type[_ActiveRestriction]) -> _ActiveRestriction | None:
        if await self._store.get(key) is None:
            return None
        remaining = await self._store.ttl(key)
        expires_at = None
        if remaining is not None:
            expires_at = datetime.fromtimestamp(self._clock() + remaining, tz=timezone.utc)
        return kind(expires_at=expires_at, retry_after=remaining)

    async def inspect(self, email: str) -> Restriction:
        """Return the highest-priority restriction currently active for *email*."""
        for key_fn, kind in _PRIORITY:
            restriction = await self._flag(key_fn(email), kind)
            if restriction is not None:
                return restriction
        return NoRestriction()

    async def check_issue(self, email: str) -> None:
        """Raise if any restriction blocks issuing a new code."""
        restriction = await self.inspect(email)
        if restriction.active:
            logger.info("OTP request for %s denied: %s", email, type(restriction).__name__)
            raise restriction.to_error()

    async def check_verify(self, email: str) -> None:
        """Raise if the account is locked.  Cooldown and spam lock never block verification."""
        restriction = await self._flag(keys.account_lock_key(email), AccountLockActive)
        if restriction is not None:
            logger.info("OTP verification for %s denied: account locked", email)
            raise restriction.to_error()
