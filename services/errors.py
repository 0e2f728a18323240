"""
Error taxonomy for the token lifecycle.

Everything raised by the services derives from AuthError so the HTTP layer
can map the whole family in one place (see api/errors.py).
"""
from __future__ import annotations


class AuthError(Exception):
    """Base class for authentication failures."""

    status = 401
    code = "UNAUTHORIZED"
    default_message = "Not authenticated"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class TokenInvalid(AuthError):
    """Malformed, expired or badly signed token. Never says which."""

    code = "TOKEN_INVALID"
    default_message = "Invalid or expired token"


class RefreshFailed(TokenInvalid):
    """Refresh token looked fine but does not match the stored chain."""

    code = "REFRESH_FAILED"
    default_message = "Token refresh failed"


class IssueFailed(AuthError):
    status = 503
    code = "ISSUE_FAILED"
    default_message = "Could not start a session, try again"


class StoreUnavailable(AuthError):
    status = 503
    code = "STORE_UNAVAILABLE"
    default_message = "Token store unavailable"
