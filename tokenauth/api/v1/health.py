"""Health check endpoint."""

from __future__ import annotations

from flask import Blueprint, current_app
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tokenauth.api.deps import json_response, timing
from tokenauth.core.extensions import db, get_redis

bp = Blueprint("health", __name__)


@bp.get("/health")
@timing
def healthcheck():
    """Return application, database and token-store health information."""

    db_status = "ok"
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        current_app.logger.exception("healthcheck.db_error")
        db_status = "fail"

    backend = current_app.config.get("TOKEN_STORE_BACKEND", "sqlalchemy")
    store_status = db_status
    if backend == "redis":
        try:
            get_redis().ping()
            store_status = "ok"
        except RedisError:
            current_app.logger.exception("healthcheck.redis_error")
            store_status = "fail"

    payload = {
        "status": "ok" if db_status == store_status == "ok" else "degraded",
        "db": db_status,
        "token_store": {"backend": backend, "status": store_status},
        "version": current_app.config.get("APP_VERSION", "dev"),
    }
    return json_response(payload)
