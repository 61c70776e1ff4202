"""Counter store key namespace for the OTP subsystem (one spelling per flag).

Addresses are case-folded so every spelling of a mailbox shares one set of
counters and flags.
"""


def _scoped(prefix: str, email: str) -> str:
    return f"{prefix}:{email.strip().lower()}"


def otp_key(email: str) -> str:
    return _scoped("otp", email)


def cooldown_key(email: str) -> str:
    return _scoped("otp_cooldown", email)


def request_count_key(email: str) -> str:
    return _scoped("otp_request_count", email)


def spam_lock_key(email: str) -> str:
    return _scoped("otp_spam_lock", email)


def attempts_key(email: str) -> str:
    return _scoped("otp_attempts", email)


def account_lock_key(email: str) -> str:
    return _scoped("otp_lock", email)
