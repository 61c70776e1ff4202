"""
OTP endpoints – issue a code by email, then verify it.

Consumed by the identity service's registration and password-reset flows.
"""

from fastapi import APIRouter, Depends

from gatekeeper.dependencies import Otp
from gatekeeper.models import ErrorResponse, MessageResponse, OtpIssueRequest, OtpVerifyRequest
from gatekeeper.rate_limit import OTP_ISSUE, OTP_VERIFY, rate_limit
from gatekeeper.services.mailer import ACTIVATION_TEMPLATE, PASSWORD_RESET_TEMPLATE

router = APIRouter(prefix="/api/otp", tags=["otp"])

_TEMPLATE_BY_PURPOSE = {
    "registration": ACTIVATION_TEMPLATE,
    "password-reset": PASSWORD_RESET_TEMPLATE,
}

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Restricted, invalid or incorrect code"},
    429: {"model": ErrorResponse, "description": "Rate limited"},
    503: {"model": ErrorResponse, "description": "Counter store unavailable"},
}


@router.post(
    "/request",
    response_model=MessageResponse,
    operation_id="requestOtp",
    summary="Email a one-time code to the given address",
    dependencies=[Depends(rate_limit(OTP_ISSUE))],
    responses={**_ERROR_RESPONSES, 502: {"model": ErrorResponse, "description": "Delivery failed"}},
)
async def request_otp(body: OtpIssueRequest, otp: Otp) -> MessageResponse:
    await otp.issue(body.email, body.name, _TEMPLATE_BY_PURPOSE[body.purpose])
    return MessageResponse(message="OTP sent to email. Please verify your account.")


@router.post(
    "/verify",
    response_model=MessageResponse,
    operation_id="verifyOtp",
    summary="Verify a one-time code",
    dependencies=[Depends(rate_limit(OTP_VERIFY))],
    responses=_ERROR_RESPONSES,
)
async def verify_otp(body: OtpVerifyRequest, otp: Otp) -> MessageResponse:
    await otp.verify(body.email, body.otp)
    return MessageResponse(message="OTP verified successfully.")
