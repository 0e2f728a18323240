from marshmallow import EXCLUDE, Schema, fields, pre_load, validate, validates, ValidationError

from models.user import ROLES


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class LoginSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=6))

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data["email"] = _norm_email(data["email"])
        return data


class AdminCreateSchema(LoginSchema):
    name = fields.String(allow_none=True)
    role = fields.String(load_default="ADMIN", validate=validate.OneOf(ROLES))

    @validates("password")
    def validate_password(self, value, **kwargs):
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")


class RefreshSchema(Schema):
    refresh_token = fields.String(load_default=None)


class PrincipalOutSchema(Schema):
    id = fields.String(allow_none=False)
    email = fields.String(allow_none=False)
    name = fields.String(allow_none=True)
    role = fields.String(allow_none=False)
