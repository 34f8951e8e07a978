"""Shared API helpers: responses, timing, bearer auth and service wiring."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any, TypeVar

from flask import Response, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from tokenauth.core.errors import BEARER_FAILURE_MESSAGE, Unauthorized
from tokenauth.core.extensions import get_redis
from tokenauth.core.logger import ensure_request_id
from tokenauth.infra.jwt import JWTAccessTokenCodec
from tokenauth.infra.redis import RedisTokenStore
from tokenauth.infra.security import PasswordHashVerifier
from tokenauth.infra.sqlalchemy import SQLAlchemyTokenStore, SQLAlchemyUserDirectory
from tokenauth.services._shared.base import ServiceContext
from tokenauth.services._shared.ports import TokenStore
from tokenauth.services.auth import (
    AuthTokenConfig,
    RefreshTokenGenerator,
    TokenLifecycleService,
)

F = TypeVar("F", bound=Callable[..., Any])

_VERIFIER_KEY = "tokenauth.credential_verifier"


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""

    response = jsonify(payload)
    response.status_code = status
    return response


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            request_endpoint = getattr(request, "endpoint", None)
            current_app.logger.debug(
                "request.elapsed",
                extra={"endpoint": request_endpoint, "elapsed_ms": round(elapsed_ms, 2)},
            )

    return wrapper  # type: ignore[return-value]


def require_auth(func: F) -> F:
    """Ensure the request carries a valid JWT access token."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        verify_jwt_in_request(optional=False)
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def current_user_id() -> int:
    """Return the bearer token's subject as an integer user id.

    :raises Unauthorized: If the subject is not an integer id.
    """

    identity = get_jwt_identity()
    try:
        return int(identity)
    except (TypeError, ValueError) as exc:
        raise Unauthorized(BEARER_FAILURE_MESSAGE) from exc


def build_token_store() -> TokenStore:
    """Return the token store selected by ``TOKEN_STORE_BACKEND``."""

    backend = current_app.config.get("TOKEN_STORE_BACKEND", "sqlalchemy")
    if backend == "redis":
        return RedisTokenStore(get_redis(), SQLAlchemyUserDirectory())
    if backend == "sqlalchemy":
        return SQLAlchemyTokenStore()
    raise RuntimeError(f"Unknown TOKEN_STORE_BACKEND {backend!r}")


def get_auth_service() -> TokenLifecycleService:
    """Build the token lifecycle service for the current request."""

    cfg = current_app.config
    verifier = current_app.extensions.get(_VERIFIER_KEY)
    if verifier is None:
        # Hashing the dummy credential is slow; do it once per app.
        verifier = current_app.extensions.setdefault(_VERIFIER_KEY, PasswordHashVerifier())

    return TokenLifecycleService(
        token_store=build_token_store(),
        credentials=verifier,
        codec=JWTAccessTokenCodec(
            secret=cfg["JWT_SECRET_KEY"],
            lifetime=timedelta(seconds=int(cfg["ACCESS_TOKEN_LIFETIME_SECONDS"])),
            algorithm=cfg.get("JWT_ALGORITHM", "HS256"),
        ),
        generator=RefreshTokenGenerator(int(cfg.get("REFRESH_TOKEN_BYTES", 64))),
        cfg=AuthTokenConfig(
            refresh_expires=timedelta(days=int(cfg["REFRESH_TOKEN_LIFETIME_DAYS"])),
            allow_expired_access_on_refresh=bool(
                cfg.get("REFRESH_ALLOWS_EXPIRED_ACCESS_TOKEN", True)
            ),
        ),
        ctx=ServiceContext(request_id=ensure_request_id()),
    )
