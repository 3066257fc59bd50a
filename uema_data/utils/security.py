from __future__ import annotations

import os

import bcrypt

DEFAULT_ROUNDS = 12
MIN_ROUNDS = 4
MIN_PASSWORD_LENGTH = 6
# bcrypt only looks at the first 72 bytes of the secret.
MAX_PASSWORD_BYTES = 72
_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def _rounds() -> int:
    raw = os.getenv("UEMA_PASSWORD_ROUNDS", str(DEFAULT_ROUNDS)).strip()
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_ROUNDS
    return min(31, max(MIN_ROUNDS, value))


def hash_password(password: str, *, rounds: int | None = None) -> str:
    """Hash a plain-text password with bcrypt for storage in ``users.password_hash``."""

    salt = bcrypt.gensalt(rounds=rounds if rounds is not None else _rounds())
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, stored: str | None) -> bool:
    if not stored or not isinstance(stored, str):
        return False
    if not stored.startswith(_BCRYPT_PREFIXES):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
