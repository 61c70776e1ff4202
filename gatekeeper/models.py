"""Pydantic models for the Gatekeeper API."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field


class OtpIssueRequest(BaseModel):
    """Ask for a one-time code to be emailed."""
    email: EmailStr = Field(..., description="Address that receives the code")
    name: str = Field(..., min_length=1, max_length=100, description="Display name used in the email")
    purpose: Literal["registration", "password-reset"] = Field(
        "registration", description="Selects the email template"
    )


class OtpVerifyRequest(BaseModel):
    """Submit a code received by email."""
    email: EmailStr = Field(..., description="Address the code was sent to")
    otp: str = Field(..., pattern=r"^\d{4}$", description="4-digit code")


class MessageResponse(BaseModel):
    message: str


class ErrorDetail(BaseModel):
    code: str
    message: str
    retryAfter: int | None = None
    attemptsLeft: int | None = None


class ErrorResponse(BaseModel):
    """Envelope for every denial."""
    success: bool = False
    error: ErrorDetail


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    version: str
    timestamp: datetime
    store: Literal["ok", "unavailable"]
