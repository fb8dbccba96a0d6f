"""Opaque credential encoding for stored user records."""
from __future__ import annotations

import secrets
from typing import Optional, Tuple

from passlib.context import CryptContext

# Collections written by the earlier JSON-file service hold plaintext
# passwords; they still verify and are re-hashed on the next successful login.
_pwd_context = CryptContext(schemes=["pbkdf2_sha256", "plaintext"], deprecated=["plaintext"])

# Verified against when an email is unknown so both lookup paths cost the same.
DUMMY_CREDENTIAL = _pwd_context.hash(secrets.token_urlsafe(16))


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        return False


def verify_and_update(password: str, hashed: str) -> Tuple[bool, Optional[str]]:
    """Verify ``password`` and return a replacement hash when ``hashed`` is outdated."""

    try:
        return _pwd_context.verify_and_update(password, hashed)
    except (ValueError, TypeError):
        return False, None


__all__ = ["DUMMY_CREDENTIAL", "hash_password", "verify_password", "verify_and_update"]
