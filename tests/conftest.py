"""
Shared test fixtures.

Provides:
  • a fake clock and an in-memory counter store driven by it
  • the throttle / guard / OTP service wired to that store
  • a FastAPI TestClient whose lifespan uses the in-memory store and
    whose OTP mails land in a RecordingMailer

The `client` fixture disables rate limiting; `limited_client` turns it on.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from gatekeeper.dependencies import get_otp_service, get_store, get_throttle
from gatekeeper.main import app
from gatekeeper.rate_limit import limiter_state
from gatekeeper.services.otp import OtpService
from gatekeeper.services.restrictions import RestrictionGuard
from gatekeeper.services.throttle import RequestThrottle
from gatekeeper.store import InMemoryCounterStore
from tests.mocks.services import FakeClock, RecordingMailer

# ── Building blocks ────────────────────────────────────────────────────────


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock: FakeClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def guard(store: InMemoryCounterStore, clock: FakeClock) -> RestrictionGuard:
    return RestrictionGuard(store, clock=clock)


@pytest.fixture()
def otp_service(
    store: InMemoryCounterStore,
    mailer: RecordingMailer,
    guard: RestrictionGuard,
) -> OtpService:
    return OtpService(store, mailer, guard=guard)


@pytest.fixture()
def throttle(store: InMemoryCounterStore, clock: FakeClock) -> RequestThrottle:
    return RequestThrottle(store, clock=clock)


# ── App wiring ─────────────────────────────────────────────────────────────


@pytest.fixture()
def _test_env(
    monkeypatch,
    store: InMemoryCounterStore,
    throttle: RequestThrottle,
    otp_service: OtpService,
):
    """
    Point the app lifespan at the in-memory store and route every
    dependency to the fixtures above.
    """
    monkeypatch.setattr("gatekeeper.main.create_store", lambda: store)
    monkeypatch.setattr(limiter_state, "enabled", False)

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_throttle] = lambda: throttle
    app.dependency_overrides[get_otp_service] = lambda: otp_service
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(_test_env) -> TestClient:
    """TestClient with rate limiting disabled."""
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture()
def limited_client(_test_env) -> TestClient:
    """TestClient with rate limiting **enabled**."""
    limiter_state.enabled = True
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc
