from marshmallow import Schema, fields, pre_load, validate, validates, ValidationError

PASSWORD_MIN_LENGTH = 8


def _strip(v):
    return v.strip() if isinstance(v, str) else v


def _check_password(value):
    if len(value) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.")


class _EmailNormalizing(Schema):
    """Strip surrounding whitespace from email; case is kept as given."""

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data)
            data["email"] = _strip(data["email"])
        return data


class RegisterSchema(_EmailNormalizing):
    email = fields.Email(required=True, validate=validate.Length(max=255))
    password = fields.String(required=True, load_only=True)
    name = fields.String(required=True, validate=validate.Length(min=1, max=255))
    phone = fields.String(allow_none=True, load_default=None, validate=validate.Length(max=64))

    @validates("password")
    def validate_password(self, value, **kwargs):
        _check_password(value)


class LoginSchema(_EmailNormalizing):
    email = fields.String(required=True)
    password = fields.String(required=True, load_only=True)


class EmailOnlySchema(_EmailNormalizing):
    email = fields.Email(required=True)


class TokenSchema(Schema):
    token = fields.String(required=True, validate=validate.Length(min=1))


class ResetPasswordSchema(Schema):
    token = fields.String(required=True, validate=validate.Length(min=1))
    new_password = fields.String(required=True, load_only=True)

    @validates("new_password")
    def validate_password(self, value, **kwargs):
        _check_password(value)


class RefreshTokenSchema(Schema):
    refresh_token = fields.String(required=True, validate=validate.Length(min=1))


class ProfileUpdateSchema(Schema):
    name = fields.String(validate=validate.Length(min=1, max=255))
    phone = fields.String(allow_none=True, validate=validate.Length(max=64))


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    email = fields.String(allow_none=False)
    name = fields.String()
    phone = fields.String(allow_none=True)
    avatar = fields.String(attribute="avatar_url", allow_none=True)
    email_verified = fields.Boolean()
    oauth_provider = fields.String(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()
