"""Authentication endpoints using the token lifecycle service."""

from __future__ import annotations

from flask import Blueprint, Response, current_app, request

from tokenauth.api.deps import (
    current_user_id,
    get_auth_service,
    json_response,
    require_auth,
    timing,
)
from tokenauth.core.errors import BEARER_FAILURE_MESSAGE, Unauthorized
from tokenauth.core.extensions import limiter
from tokenauth.schemas import (
    LoginSchema,
    LogoutSchema,
    RefreshSchema,
    TokenPairSchema,
    UserProfileSchema,
)
from tokenauth.services.auth import LoginIn, LogoutIn, RefreshIn

bp = Blueprint("auth", __name__, url_prefix="/auth")

login_schema = LoginSchema()
refresh_schema = RefreshSchema()
logout_schema = LogoutSchema()
token_pair_schema = TokenPairSchema()
profile_schema = UserProfileSchema()

LOGIN_FAILURE_MESSAGE = "Invalid credentials"


def _login_rate_limit() -> str:
    return str(current_app.config.get("AUTH_LOGIN_RATE_LIMIT", "5 per minute"))


@bp.post("/login")
@limiter.limit(_login_rate_limit)
@timing
def login():
    """Authenticate credentials and issue a token pair."""

    data = login_schema.load(request.get_json(silent=True) or {})
    result = get_auth_service().login(LoginIn(email=data["email"], password=data["password"]))
    if not result.ok:
        raise Unauthorized(LOGIN_FAILURE_MESSAGE)
    return json_response({"data": token_pair_schema.dump(result.pair)})


@bp.post("/refresh")
@timing
def refresh():
    """Exchange an access token and a refresh token for a new pair."""

    data = refresh_schema.load(request.get_json(silent=True) or {})
    result = get_auth_service().refresh(
        RefreshIn(access_token=data["access_token"], refresh_token=data["refresh_token"])
    )
    if not result.ok:
        raise Unauthorized(BEARER_FAILURE_MESSAGE)
    return json_response({"data": token_pair_schema.dump(result.pair)})


@bp.post("/logout")
@require_auth
@timing
def logout():
    """Revoke one of the caller's refresh tokens.

    Always 204: the response does not reveal whether the token was active.
    """

    data = logout_schema.load(request.get_json(silent=True) or {})
    get_auth_service().revoke(
        LogoutIn(user_id=current_user_id(), refresh_token=data["refresh_token"])
    )
    return Response(status=204)


@bp.get("/me")
@require_auth
@timing
def me():
    """Return the authenticated user's profile."""

    profile = get_auth_service().profile(current_user_id())
    if profile is None:
        raise Unauthorized(BEARER_FAILURE_MESSAGE)
    return json_response({"data": profile_schema.dump(profile)})
