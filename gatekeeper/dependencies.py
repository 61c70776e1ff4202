"""
Route dependencies.

The lifespan in ``gatekeeper.main`` builds one store, throttle and OTP
service per process and parks them on ``app.state``.  Tests replace them
with ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, Request

from gatekeeper.services.otp import OtpService
from gatekeeper.services.throttle import RequestThrottle
from gatekeeper.store import CounterStore


def get_store(request: Request) -> CounterStore:
    return request.app.state.store


def get_throttle(request: Request) -> RequestThrottle:
    return request.app.state.throttle


def get_otp_service(request: Request) -> OtpService:
    return request.app.state.otp_service


Store = Annotated[CounterStore, Depends(get_store)]
Otp = Annotated[OtpService, Depends(get_otp_service)]
