"""Application settings with environment-based simple classes."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Final

from dotenv import load_dotenv

ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'
TOKEN_STORE_BACKENDS: Final[tuple[str, ...]] = ("sqlalchemy", "redis")

# No-op when no .env file exists
load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_int(name: str, default: int) -> int:
    """Parse an integer from an environment variable.

    :param name: Environment variable to inspect.
    :param default: Value used when the variable is unset or blank.
    :returns: Parsed integer.
    :raises ValueError: If the variable is set to something non-numeric.
    """
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return int(val.strip())


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    API_BASE_PREFIX: str
        Root path for registering API blueprints.
    SECRET_KEY: str
        Flask secret. Unused by the token engine but required by Flask.
    JWT_SECRET_KEY: str
        Symmetric key used to sign access tokens. The signed-token codec and
        ``flask-jwt-extended`` (protected routes) read the same value.
    JWT_ALGORITHM: str
        HMAC algorithm for access tokens.
    ACCESS_TOKEN_LIFETIME_SECONDS: int
        Access-token lifetime.
    REFRESH_TOKEN_LIFETIME_DAYS: int
        Refresh-token lifetime (two weeks by default).
    REFRESH_TOKEN_BYTES: int
        Random bytes drawn per refresh token (minimum 64).
    REFRESH_ALLOWS_EXPIRED_ACCESS_TOKEN: bool
        When ``True`` the refresh flow accepts a correctly signed but expired
        access token as the identity hint.
    TOKEN_STORE_BACKEND: str
        ``"sqlalchemy"`` (default) or ``"redis"``.
    REDIS_URL: str | None
        Redis connection URL; required by the ``redis`` backend.
    SQLALCHEMY_DATABASE_URI: str
        Database connection string consumed by SQLAlchemy.
    AUTH_LOGIN_RATE_LIMIT: str
        Flask-Limiter expression applied to the login route.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    CORS_ORIGINS: str
        Comma-separated list of allowed origins for CORS.
    USE_PROXYFIX: bool
        Trust ``X-Forwarded-*`` headers from a reverse proxy.
    PROXY_FIX_HOPS: int
        Number of proxies in front of the app (trusted forwarded entries).
    """

    API_BASE_PREFIX = "/api"

    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")

    # Token engine
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "CHANGE_ME_JWT_SIGNING_KEY_32_BYTES_MIN")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_DECODE_LEEWAY = 0
    ACCESS_TOKEN_LIFETIME_SECONDS = env_int("ACCESS_TOKEN_LIFETIME_SECONDS", 15 * 60)
    REFRESH_TOKEN_LIFETIME_DAYS = env_int("REFRESH_TOKEN_LIFETIME_DAYS", 14)
    REFRESH_TOKEN_BYTES = env_int("REFRESH_TOKEN_BYTES", 64)
    REFRESH_ALLOWS_EXPIRED_ACCESS_TOKEN = env_bool("REFRESH_ALLOWS_EXPIRED_ACCESS_TOKEN", True)

    # Storage
    TOKEN_STORE_BACKEND = os.getenv("TOKEN_STORE_BACKEND", "sqlalchemy").strip().lower()
    REDIS_URL = os.getenv("REDIS_URL") or None
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    # Rate limiting
    AUTH_LOGIN_RATE_LIMIT = os.getenv("AUTH_LOGIN_RATE_LIMIT", "5 per minute")
    RATELIMIT_ENABLED = env_bool("RATELIMIT_ENABLED", True)
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_HEADERS_ENABLED = True

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    # Logging, CORS, proxy
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173")
    USE_PROXYFIX = env_bool("USE_PROXYFIX", True)
    PROXY_FIX_HOPS = env_int("PROXY_FIX_HOPS", 1)

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development."""

    DEBUG = env_bool("FLASK_DEBUG", True)
    CORS_MAX_AGE = 600


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Disables rate limiting so repeated logins in one test do not trip it.
    - Uses a fixed signing key so tokens are reproducible across fixtures.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    JWT_SECRET_KEY = "testing-signing-key-with-at-least-32-bytes"
    TOKEN_STORE_BACKEND = "sqlalchemy"
    REDIS_URL = None
    RATELIMIT_ENABLED = False
    USE_PROXYFIX = False
    PROPAGATE_EXCEPTIONS = False
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments."""

    DEBUG = False
    SQLALCHEMY_ECHO = False
    PROPAGATE_EXCEPTIONS = False


CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)
