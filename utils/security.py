"""
security helpers:
- Argon2 password hashing via argon2-cffi
- constant-time comparison for opaque token strings
"""
from __future__ import annotations

import hmac
import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

logger = logging.getLogger(__name__)

ph = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """Verify a plaintext password against a stored Argon2 hash.

    Fails closed: a mismatch, a malformed or missing hash, or any other error
    raised while comparing counts as "no match".
    """
    if not password or not password_hash:
        return False
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False
    except Exception:
        logger.warning("password verification errored, treating as mismatch", exc_info=True)
        return False


def tokens_equal(presented: str | None, stored: str | None) -> bool:
    """Exact, constant-time equality of two token strings. None never matches."""
    if presented is None or stored is None:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))
