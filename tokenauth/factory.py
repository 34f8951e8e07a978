"""Application factory for the token service."""

from __future__ import annotations

from flask import Flask

from tokenauth.core.config import TOKEN_STORE_BACKENDS, BaseConfig, get_config
from tokenauth.core.logger import configure_logging


def create_app(config: str | type[BaseConfig] | object | None = None) -> Flask:
    """Build the token service.

    :param config: Config class, object or import path; ``None`` picks the
        class named by ``APP_ENV``.
    :raises RuntimeError: If ``TOKEN_STORE_BACKEND`` names no known store.
    """
    app = Flask(__name__)
    app.config.from_object(get_config() if config is None else config)

    backend = app.config.get("TOKEN_STORE_BACKEND", "sqlalchemy")
    if backend not in TOKEN_STORE_BACKENDS:
        raise RuntimeError(
            f"Unknown TOKEN_STORE_BACKEND {backend!r}; expected one of {TOKEN_STORE_BACKENDS}"
        )

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    from tokenauth import cli
    from tokenauth.api import init_app as init_api
    from tokenauth.core import cors, errors, extensions, logger, proxy

    # Extensions before the request hooks that use them; blueprints before
    # the error handlers that wrap them.
    for init in (
        proxy.init_app,
        extensions.init_app,
        logger.init_app,
        cors.init_app,
        init_api,
        errors.init_app,
        cli.init_app,
    ):
        init(app)

    app.logger.debug("Token service configured", extra={"token_store": backend})
    return app
