"""Authentication-related Marshmallow schemas."""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class LoginSchema(Schema):
    """Input payload for authenticating a user."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=1, max=128))


class RefreshSchema(Schema):
    """Input payload exchanging an (access, refresh) pair for a new pair."""

    access_token = fields.String(
        required=True, data_key="token", validate=validate.Length(min=1, max=4096)
    )
    refresh_token = fields.String(
        required=True, data_key="refreshToken", validate=validate.Length(min=1, max=256)
    )


class LogoutSchema(Schema):
    """Input payload naming the refresh token to revoke."""

    refresh_token = fields.String(
        required=True, data_key="refreshToken", validate=validate.Length(min=1, max=256)
    )


class UserProfileSchema(Schema):
    """Identity fields echoed to clients."""

    id = fields.Integer(dump_only=True)
    email = fields.Email(dump_only=True)
    first_name = fields.String(dump_only=True, allow_none=True, data_key="firstName")
    last_name = fields.String(dump_only=True, allow_none=True, data_key="lastName")


class TokenPairSchema(UserProfileSchema):
    """Response payload with both tokens and the user's profile."""

    token = fields.String(dump_only=True)
    expires_in = fields.Integer(dump_only=True, data_key="expiresIn")
    refresh_token = fields.String(dump_only=True, data_key="refreshToken")
    refresh_token_expiration = fields.DateTime(
        dump_only=True, format="iso", data_key="refreshTokenExpiration"
    )
