"""
Typed claims for the two token kinds.

Decoded JWT payloads are loaded through these schemas before anything reads
them; a payload with the wrong ``type`` tag or a missing/mistyped field is
rejected with a marshmallow ValidationError.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from marshmallow import EXCLUDE, Schema, fields, post_load, validate

ACCESS = "access"
REFRESH = "refresh"


def _from_ts(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


@dataclass(frozen=True)
class AccessTokenClaims:
    principal_id: str
    email: str
    role: str
    issued_at: datetime
    expires_at: datetime
    token_id: str
    kind: str = ACCESS


@dataclass(frozen=True)
class RefreshTokenClaims:
    principal_id: str
    issued_at: datetime
    expires_at: datetime
    token_id: str
    kind: str = REFRESH


class _ClaimsSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    sub = fields.String(required=True, validate=validate.Length(min=1))
    iat = fields.Integer(required=True, strict=True)
    exp = fields.Integer(required=True, strict=True)
    jti = fields.String(required=True, validate=validate.Length(min=1))


class AccessClaimsSchema(_ClaimsSchema):
    type = fields.String(required=True, validate=validate.Equal(ACCESS))
    email = fields.String(required=True, validate=validate.Length(min=1))
    role = fields.String(required=True, validate=validate.Length(min=1))

    @post_load
    def make_claims(self, data, **kwargs):
        return AccessTokenClaims(
            principal_id=data["sub"],
            email=data["email"],
            role=data["role"],
            issued_at=_from_ts(data["iat"]),
            expires_at=_from_ts(data["exp"]),
            token_id=data["jti"],
        )


class RefreshClaimsSchema(_ClaimsSchema):
    type = fields.String(required=True, validate=validate.Equal(REFRESH))

    @post_load
    def make_claims(self, data, **kwargs):
        return RefreshTokenClaims(
            principal_id=data["sub"],
            issued_at=_from_ts(data["iat"]),
            expires_at=_from_ts(data["exp"]),
            token_id=data["jti"],
        )
