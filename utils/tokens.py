"""
Token codec: mints and verifies the two signed, expiring token kinds.

- access tokens carry {sub, email, role} and live for minutes
- refresh tokens carry {sub} only and live for days
- each kind has its own secret, so leaking one cannot forge the other
- JWTs (compact JWS, HS256 by default) via PyJWT

Every verification failure (bad signature, wrong kind, bad shape, expired)
raises the same TokenInvalid so callers cannot tell the reasons apart.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import jwt
from marshmallow import ValidationError

from models.schemas.token import (
    ACCESS,
    REFRESH,
    AccessClaimsSchema,
    AccessTokenClaims,
    RefreshClaimsSchema,
    RefreshTokenClaims,
)
from services.errors import TokenInvalid

REQUIRED_CLAIMS = ["sub", "iat", "exp", "jti", "type"]

_access_schema = AccessClaimsSchema()
_refresh_schema = RefreshClaimsSchema()


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        issuer: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not access_secret or not refresh_secret:
            raise ValueError("access and refresh secrets are required")
        if access_secret == refresh_secret:
            raise ValueError("access and refresh secrets must differ")
        if not algorithm.startswith("HS"):
            raise ValueError(f"Unsupported algorithm for shared secrets: {algorithm}")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.issuer = issuer
        self.clock = clock

    @classmethod
    def from_config(cls, config: Mapping[str, Any], clock: Callable[[], datetime] = utcnow) -> "TokenCodec":
        return cls(
            access_secret=config["JWT_ACCESS_SECRET"],
            refresh_secret=config["JWT_REFRESH_SECRET"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            access_ttl=config.get("ACCESS_TOKEN_EXPIRES", timedelta(minutes=15)),
            refresh_ttl=config.get("REFRESH_TOKEN_EXPIRES", timedelta(days=7)),
            issuer=config.get("JWT_ISSUER"),
            clock=clock,
        )

    # minting

    def _base_claims(self, subject: str, kind: str, ttl: timedelta) -> Dict[str, Any]:
        iat = int(self.clock().timestamp())
        payload = {
            "sub": str(subject),
            "iat": iat,
            "exp": iat + int(ttl.total_seconds()),
            "jti": generate_jti(),
            "type": kind,
        }
        if self.issuer:
            payload["iss"] = self.issuer
        return payload

    def mint_access(self, principal_id: str, email: str, role: str) -> str:
        payload = self._base_claims(principal_id, ACCESS, self.access_ttl)
        payload["email"] = email
        payload["role"] = str(role)
        return jwt.encode(payload, self._access_secret, algorithm=self.algorithm)

    def mint_refresh(self, principal_id: str) -> str:
        # role/email stay out of refresh tokens so they never go stale
        payload = self._base_claims(principal_id, REFRESH, self.refresh_ttl)
        return jwt.encode(payload, self._refresh_secret, algorithm=self.algorithm)

    # verification

    def _load(self, token: str, secret: str, schema):
        """Signature, kind and claim shape. Expiry is not looked at."""
        if not token or not isinstance(token, str):
            raise TokenInvalid()
        try:
            decoded = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={
                    "require": REQUIRED_CLAIMS,
                    # expiry is checked by check_expiry against the codec clock
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_iss": bool(self.issuer),
                },
            )
            return schema.load(decoded)
        except (jwt.PyJWTError, ValidationError) as exc:
            raise TokenInvalid() from exc

    def check_expiry(self, claims):
        if self.clock() >= claims.expires_at:
            raise TokenInvalid()
        return claims

    def load_refresh(self, token: str) -> RefreshTokenClaims:
        """Signature-checked refresh claims, possibly already expired."""
        return self._load(token, self._refresh_secret, _refresh_schema)

    def verify_access(self, token: str) -> AccessTokenClaims:
        return self.check_expiry(self._load(token, self._access_secret, _access_schema))

    def verify_refresh(self, token: str) -> RefreshTokenClaims:
        return self.check_expiry(self.load_refresh(token))
