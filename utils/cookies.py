"""
Session cookie helpers. Both tokens travel as HttpOnly cookies; each cookie's
max-age matches its token's lifetime.
"""
from __future__ import annotations

from flask import current_app


def _cookie_kwargs() -> dict:
    cfg = current_app.config
    return {
        "httponly": True,
        "secure": cfg.get("COOKIE_SECURE", False),
        "samesite": cfg.get("COOKIE_SAMESITE", "Lax"),
        "path": "/",
    }


def set_access_cookie(response, token: str) -> None:
    cfg = current_app.config
    response.set_cookie(
        cfg["ACCESS_COOKIE_NAME"],
        token,
        max_age=int(cfg["ACCESS_TOKEN_EXPIRES"].total_seconds()),
        **_cookie_kwargs(),
    )


def set_refresh_cookie(response, token: str) -> None:
    cfg = current_app.config
    response.set_cookie(
        cfg["REFRESH_COOKIE_NAME"],
        token,
        max_age=int(cfg["REFRESH_TOKEN_EXPIRES"].total_seconds()),
        **_cookie_kwargs(),
    )


def set_renewed_cookies(response, renewed) -> None:
    """Re-set the access cookie, and the refresh cookie when it was rotated."""
    set_access_cookie(response, renewed.access_token)
    if renewed.refresh_token:
        set_refresh_cookie(response, renewed.refresh_token)


def clear_session_cookies(response) -> None:
    cfg = current_app.config
    kwargs = _cookie_kwargs()
    response.delete_cookie(cfg["ACCESS_COOKIE_NAME"], path=kwargs["path"],
                           secure=kwargs["secure"], httponly=True, samesite=kwargs["samesite"])
    response.delete_cookie(cfg["REFRESH_COOKIE_NAME"], path=kwargs["path"],
                           secure=kwargs["secure"], httponly=True, samesite=kwargs["samesite"])
