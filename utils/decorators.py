from __future__ import annotations
import logging
from functools import wraps
from flask import request, g, current_app, make_response

from services.errors import TokenInvalid
from utils.cookies import set_renewed_cookies

logger = logging.getLogger(__name__)


def access_token_from_request() -> str | None:
    """Access token from the session cookie, else from a Bearer header."""
    token = request.cookies.get(current_app.config["ACCESS_COOKIE_NAME"])
    if token:
        return token
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth.split(" ", 1)[1].strip() or None
    return None


def jwt_required():
    """
    Protect a view with the access token.
    If the access token is missing or fails verification, try exactly one
    renewal with the refresh cookie; on success the new cookies ride along on
    the view's response. Anything else is a 401.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth = current_app.extensions["auth"]
            renewed = None
            try:
                claims = auth.codec.verify_access(access_token_from_request())
            except TokenInvalid:
                refresh_token = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
                if not refresh_token:
                    raise TokenInvalid("Not authenticated")
                # RefreshFailed propagates to the 401 handler
                renewed = auth.renewer.renew(refresh_token)
                claims = auth.codec.verify_access(renewed.access_token)
                logger.info("access token renewed for principal %s", claims.principal_id)

            g.current_claims = claims
            g.current_principal = renewed.principal if renewed else None
            response = make_response(fn(*args, **kwargs))
            if renewed:
                set_renewed_cookies(response, renewed)
            return response

        return wrapper

    return decorator
