"""
Authentication blueprint:
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- GET  /auth/me

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens and longer-lived refresh tokens (JWTs, one secret per kind)
- Keeps exactly one live refresh token per user in users.current_refresh_token,
  rotating it on every refresh when REFRESH_ROTATION is on
- Sends both tokens as HttpOnly cookies; the JSON body carries them too for API clients
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort, current_app

from models.schemas.user import LoginSchema, RefreshSchema, PrincipalOutSchema
from services.errors import StoreUnavailable, TokenInvalid
from utils.cookies import (
    clear_session_cookies,
    set_access_cookie,
    set_refresh_cookie,
    set_renewed_cookies,
)
from utils.decorators import access_token_from_request, jwt_required

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)

login_schema = LoginSchema()
refresh_schema = RefreshSchema()
principal_out_schema = PrincipalOutSchema()


def _auth():
    return current_app.extensions["auth"]


@bp.post("/login")
def login():
    """
    Login: return access and refresh tokens (also set as cookies)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      401:
        description: Invalid email or password
      422:
        description: Validation error
      503:
        description: Token store unavailable
    """
    payload = request.get_json(silent=True) or {}
    data = login_schema.load(payload)

    session = _auth().authenticator.login(data["email"], data["password"])

    response = jsonify(
        {
            "success": True,
            "user": principal_out_schema.dump(session.principal),
            "accessToken": session.access_token,
            "refreshToken": session.refresh_token,
        }
    )
    set_access_cookie(response, session.access_token)
    set_refresh_cookie(response, session.refresh_token)
    return response, 200


@bp.post("/refresh")
def refresh():
    """
    Use the refresh token to obtain a new access token (and a rotated refresh token)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         required: false
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK (new access token; cookies updated)
      401:
        description: Refresh failed, log in again
    """
    token = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    if not token:
        token = refresh_schema.load(request.get_json(silent=True) or {}).get("refresh_token")
    if not token:
        raise TokenInvalid("Refresh token not found")

    renewed = _auth().renewer.renew(token)

    body = {
        "success": True,
        "user": principal_out_schema.dump(renewed.principal),
        "accessToken": renewed.access_token,
    }
    if renewed.refresh_token:
        body["refreshToken"] = renewed.refresh_token
    response = jsonify(body)
    set_renewed_cookies(response, renewed)
    return response, 200


@bp.post("/logout")
def logout():
    """
    logout: revokes the refresh chain and clears both cookies
    ---
    tags:
      - Auth
    responses:
      200:
        description: Logged out (also when the access token had already expired)
      503:
        description: Cookies cleared but the refresh chain could not be revoked
    """
    status = 200
    body = {"success": True, "message": "Logged out successfully"}
    try:
        _auth().authenticator.logout(access_token_from_request())
    except StoreUnavailable:
        logger.error("logout could not revoke refresh chain", exc_info=True)
        status = 503
        body = {"success": False, "message": "Logged out locally, session revocation pending"}

    response = jsonify(body)
    clear_session_cookies(response)
    return response, status


@bp.get("/me")
@jwt_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Not authenticated
      404:
        description: User not found
    """
    principal = g.current_principal
    if principal is None:
        principal = _auth().store.get_principal_by_id(g.current_claims.principal_id)
    if principal is None:
        abort(404)
    return jsonify(
        {
            "success": True,
            "user": principal_out_schema.dump(principal),
        }
    ), 200
