"""
Application configuration from environment variables.

All settings have sensible defaults for local development.
A .env file in the project root is loaded automatically (if present).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file before reading any env vars
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ── Environment ───────────────────────────────────────────────────────────

ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# ── Counter store ─────────────────────────────────────────────────────────

# "redis" for shared deployments, "memory" for a single local process.
STORE_BACKEND: str = os.getenv("STORE_BACKEND", "redis").lower()
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Connect + socket timeout for every store call. A call that exceeds it is
# treated as the store being unavailable.
STORE_TIMEOUT_SECONDS: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "2.0"))

# ── OTP policy ────────────────────────────────────────────────────────────
# Not env-overridable: the user-facing messages quote these durations.

OTP_TTL_SECONDS = 300
OTP_COOLDOWN_SECONDS = 60

OTP_REQUEST_WINDOW_SECONDS = 3600
OTP_MAX_REQUESTS = 3
OTP_SPAM_LOCK_SECONDS = 3600

OTP_ATTEMPT_WINDOW_SECONDS = 300
OTP_MAX_ATTEMPTS = 3
OTP_LOCK_SECONDS = 1800

# ── Rate limit tiers ──────────────────────────────────────────────────────
# (limit, window in milliseconds) per route class.


def _tier(name: str, limit: int, window_ms: int) -> tuple[int, int]:
    return (
        int(os.getenv(f"RATE_LIMIT_{name}_LIMIT", str(limit))),
        int(os.getenv(f"RATE_LIMIT_{name}_WINDOW_MS", str(window_ms))),
    )


RATE_LIMIT_GENERATE = _tier("GENERATE", 10, 60_000)
RATE_LIMIT_SEARCH = _tier("SEARCH", 30, 60_000)
RATE_LIMIT_CONCEPTS = _tier("CONCEPTS", 20, 60_000)
RATE_LIMIT_DEFAULT = _tier("DEFAULT", 100, 60_000)
RATE_LIMIT_OTP_ISSUE = _tier("OTP_ISSUE", 5, 60_000)
RATE_LIMIT_OTP_VERIFY = _tier("OTP_VERIFY", 10, 60_000)

# ── SMTP ──────────────────────────────────────────────────────────────────

SMTP_HOST: str = os.getenv("SMTP_HOST", "")
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL: str = os.getenv("SMTP_FROM_EMAIL", "noreply@gatekeeper.local")
SMTP_USE_TLS: bool = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

# auto | true | false; "auto" delivers only when credentials are configured.
_SMTP_MODE: str = os.getenv("SMTP_ENABLED", "auto").lower()


def smtp_enabled() -> bool:
    """Whether OTP mail goes out over SMTP rather than to the log."""
    if _SMTP_MODE in ("true", "false"):
        return _SMTP_MODE == "true"
    return bool(SMTP_HOST and SMTP_USERNAME and SMTP_PASSWORD)
