"""
OTP delivery: sends one-time codes via SMTP.

In development (no SMTP configured), emails are logged to the console
so you can see what *would* be sent without configuring a mail server.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

import aiosmtplib

from gatekeeper.config import (
    OTP_TTL_SECONDS,
    SMTP_FROM_EMAIL,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USE_TLS,
    SMTP_USERNAME,
    smtp_enabled,
)
from gatekeeper.errors import DeliveryError, ValidationError

logger = logging.getLogger(__name__)

ACTIVATION_TEMPLATE = "user-activation-mail"
PASSWORD_RESET_TEMPLATE = "forgot-password-user-mail"


class OtpMailer(Protocol):
    """Anything that can hand a code to the user."""

    async def send(self, email: str, display_name: str, code: str, template_id: str) -> None:
        ...


@dataclass(frozen=True)
class _Template:
    subject: str
    intro: str


_TEMPLATES: dict[str, _Template] = {
    ACTIVATION_TEMPLATE: _Template(
        subject="Verify Your Email",
        intro="Use the code below to activate your account.",
    ),
    PASSWORD_RESET_TEMPLATE: _Template(
        subject="Reset Your Password",
        intro="Use the code below to reset your password.",
    ),
}


def get_template(template_id: str) -> _Template:
    """Look up a known email template, rejecting anything else."""
    template = _TEMPLATES.get(template_id)
    if template is None:
        raise ValidationError(f"Unknown email template: {template_id}")
    return template


def _build_plain_body(template: _Template, display_name: str, code: str) -> str:
    minutes = OTP_TTL_SECONDS // 60
    return (
        f"Hi {display_name},\n\n"
        f"{template.intro}\n\n"
        f"    {code}\n\n"
        f"The code expires in {minutes} minutes. "
        "If you did not ask for it, you can ignore this email.\n"
    )


def _build_html_body(template: _Template, display_name: str, code: str) -> str:
    minutes = OTP_TTL_SECONDS // 60
    return f"""
    <html>
    <body style="font-family:sans-serif;color:#333">
      <p>Hi {html.escape(display_name)},</p>
      <p>{html.escape(template.intro)}</p>
      <p style="font-size:2em;font-weight:bold;letter-spacing:0.3em">{code}</p>
      <p style="font-size:0.9em;color:#888">
        The code expires in {minutes} minutes.
        If you did not ask for it, you can ignore this email.
      </p>
    </body>
    </html>
    """


class SmtpOtpMailer:
    """Sends OTP emails over SMTP, or logs them when SMTP is disabled."""

    async def send(self, email: str, display_name: str, code: str, template_id: str) -> None:
        template = get_template(template_id)

        # ── Console fallback (dev mode) ───────────────────────────────
        if not smtp_enabled():
            logger.info(
                "📧 [DEV] Would send email to %s:\n  Subject: %s\n  Code: %s",
                email,
                template.subject,
                code,
            )
            return

        # ── Real SMTP send ────────────────────────────────────────────
        msg = MIMEMultipart("alternative")
        msg["Subject"] = template.subject
        msg["From"] = SMTP_FROM_EMAIL
        msg["To"] = email
        msg.attach(MIMEText(_build_plain_body(template, display_name, code), "plain"))
        msg.attach(MIMEText(_build_html_body(template, display_name, code), "html"))

        try:
            await aiosmtplib.send(
                msg,
                hostname=SMTP_HOST,
                port=SMTP_PORT,
                username=SMTP_USERNAME,
                password=SMTP_PASSWORD,
                start_tls=SMTP_USE_TLS,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.exception("Failed to send OTP email to %s", email)
            raise DeliveryError() from exc
        logger.info("OTP email sent to %s (%s)", email, template_id)
