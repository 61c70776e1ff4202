"""
End-to-end OTP flows through the HTTP API, with time driven by the fake
clock and codes read back from the recording mailer.
"""

from __future__ import annotations

from gatekeeper.dependencies import get_otp_service
from gatekeeper.main import app
from gatekeeper.services import keys
from gatekeeper.services.otp import OtpService
from tests.mocks.services import RecordingMailer, UnavailableStore

EMAIL = "a@x.com"


def _request(client, email: str = EMAIL):
    return client.post("/api/otp/request", json={"email": email, "name": "Ada"})


def _verify(client, otp: str, email: str = EMAIL):
    return client.post("/api/otp/verify", json={"email": email, "otp": otp})


def _error_code(resp) -> str:
    return resp.json()["error"]["code"]


def test_registration_happy_path(client, mailer, store):
    assert _request(client).status_code == 200

    resp = _verify(client, mailer.last_code(EMAIL))

    assert resp.status_code == 200
    assert not any(k.startswith(("otp:", "otp_attempts:")) for k in store.keys())


def test_issuance_escalates_from_cooldown_to_spam_lock(client, clock):
    assert _request(client).status_code == 200
    assert _error_code(_request(client)) == "OTP_COOLDOWN"

    clock.advance(60)
    assert _request(client).status_code == 200

    clock.advance(60)
    third = _request(client)
    assert third.status_code == 400
    assert _error_code(third) == "OTP_SPAM_LOCKED"
    assert third.json()["error"]["retryAfter"] == 3600

    fourth = _request(client)
    assert _error_code(fourth) == "OTP_SPAM_LOCKED"


def test_brute_force_locks_then_unlocks(client, mailer, clock):
    _request(client)
    code = mailer.last_code(EMAIL)

    first, second, third = (_verify(client, "0000") for _ in range(3))
    assert first.json()["error"]["attemptsLeft"] == 2
    assert second.json()["error"]["attemptsLeft"] == 1
    assert _error_code(third) == "ACCOUNT_LOCKED"

    assert _error_code(_verify(client, code)) == "ACCOUNT_LOCKED"
    # Issuance is blocked by the lock too
    clock.advance(120)
    assert _error_code(_request(client)) == "ACCOUNT_LOCKED"

    clock.advance(1800)
    assert _request(client).status_code == 200
    assert _verify(client, mailer.last_code(EMAIL)).status_code == 200


def test_expired_code_matches_unknown_email(client, mailer, clock):
    _request(client)
    code = mailer.last_code(EMAIL)
    clock.advance(300)

    expired = _verify(client, code)
    unknown = _verify(client, code, email="nobody@x.com")

    assert expired.status_code == unknown.status_code == 400
    assert expired.json() == unknown.json()


async def test_lock_flag_uses_canonical_key(client, mailer, store):
    _request(client)
    for _ in range(3):
        _verify(client, "0000")

    assert await store.get(keys.account_lock_key(EMAIL)) == "locked"
    assert await store.ttl(keys.account_lock_key(EMAIL)) == 1800


def test_store_outage_fails_closed(client):
    app.dependency_overrides[get_otp_service] = lambda: OtpService(
        UnavailableStore(), RecordingMailer()
    )

    for resp in (_request(client), _verify(client, "1234")):
        assert resp.status_code == 503
        assert resp.json()["error"] == {
            "code": "SERVICE_UNAVAILABLE",
            "message": "Service temporarily unavailable. Please try again later.",
        }
