"""
One-time code issuance and verification.

Per-email state lives entirely in the counter store as short-lived keys
(see ``gatekeeper.services.keys``)::

    NONE ──issue──▶ ISSUED ──verify ok──▶ NONE
                      │
                      └──3 wrong codes──▶ LOCKED ──1800s──▶ NONE

Issuance is throttled independently: every issued code starts a 60s
cooldown, and the third request inside an hour sets a one-hour spam lock.

Every failed check raises before any further state is written.  A store
outage propagates as ``StoreUnavailable`` (fail closed).
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable

from gatekeeper.config import (
    OTP_ATTEMPT_WINDOW_SECONDS,
    OTP_COOLDOWN_SECONDS,
    OTP_LOCK_SECONDS,
    OTP_MAX_ATTEMPTS,
    OTP_MAX_REQUESTS,
    OTP_REQUEST_WINDOW_SECONDS,
    OTP_SPAM_LOCK_SECONDS,
    OTP_TTL_SECONDS,
)
from gatekeeper.errors import AccountLocked, ExpiredOrInvalidCode, IncorrectCode, SpamLocked
from gatekeeper.services import keys
from gatekeeper.services.mailer import OtpMailer, get_template
from gatekeeper.services.restrictions import RestrictionGuard
from gatekeeper.store import CounterStore

logger = logging.getLogger(__name__)


def generate_code() -> str:
    """Uniformly random 4-digit code in [1000, 9999)."""
    return str(1000 + secrets.randbelow(8999))


class OtpService:
    """Issues codes by email and verifies what the user types back."""

    def __init__(
        self,
        store: CounterStore,
        mailer: OtpMailer,
        guard: RestrictionGuard | None = None,
        code_factory: Callable[[], str] = generate_code,
    ) -> None:
        self._store = store
        self._mailer = mailer
        self._guard = guard or RestrictionGuard(store)
        self._code_factory = code_factory

    # ── Issuance ──────────────────────────────────────────────────────

    async def issue(self, email: str, display_name: str, template_id: str) -> None:
        """Generate a code, deliver it, and remember it for OTP_TTL_SECONDS."""
        get_template(template_id)
        await self._guard.check_issue(email)
        await self._track_request(email)

        code = self._code_factory()
        await self._mailer.send(email, display_name, code, template_id)

        await self._store.set(keys.otp_key(email), code, OTP_TTL_SECONDS)
        await self._store.set(keys.cooldown_key(email), "true", OTP_COOLDOWN_SECONDS)
        logger.info("OTP issued for %s (%s)", email, template_id)

    async def _track_request(self, email: str) -> None:
        count_key = keys.request_count_key(email)
        requests = int(await self._store.get(count_key) or 0)

        if requests >= OTP_MAX_REQUESTS - 1:
            await self._store.set(keys.spam_lock_key(email), "locked", OTP_SPAM_LOCK_SECONDS)
            logger.warning("OTP spam lock set for %s after %d requests", email, requests + 1)
            raise SpamLocked(retry_after=OTP_SPAM_LOCK_SECONDS)

        await self._store.incr(count_key, OTP_REQUEST_WINDOW_SECONDS)

    # ── Verification ──────────────────────────────────────────────────

    async def verify(self, email: str, submitted_code: str) -> None:
        """Accept the code once, or count the failure towards a lock."""
        await self._guard.check_verify(email)

        stored_code = await self._store.get(keys.otp_key(email))
        if stored_code is None:
            raise ExpiredOrInvalidCode()

        attempts_key = keys.attempts_key(email)
        failed_attempts = int(await self._store.get(attempts_key) or 0)

        if secrets.compare_digest(submitted_code.encode(), stored_code.encode()):
            await self._store.delete(keys.otp_key(email), attempts_key)
            logger.info("OTP verified for %s", email)
            return

        if failed_attempts >= OTP_MAX_ATTEMPTS - 1:
            await self._lock_and_deny(email)

        failed_attempts = await self._store.incr(attempts_key, OTP_ATTEMPT_WINDOW_SECONDS)
        # A concurrent wrong guess may have pushed the counter over the edge.
        if failed_attempts >= OTP_MAX_ATTEMPTS:
            await self._lock_and_deny(email)

        raise IncorrectCode(attempts_left=OTP_MAX_ATTEMPTS - failed_attempts)

    async def _lock_and_deny(self, email: str) -> None:
        await self._store.set(keys.account_lock_key(email), "locked", OTP_LOCK_SECONDS)
        await self._store.delete(keys.attempts_key(email))
        logger.warning("Account %s locked after %d failed OTP attempts", email, OTP_MAX_ATTEMPTS)
        raise AccountLocked(
            "Too many failed attempts! Your account is locked for 30 minutes.",
            retry_after=OTP_LOCK_SECONDS,
        )
