"""Global pytest fixtures for the tokenauth service.

Each test that needs the application gets a fresh app bound to an in-memory
SQLite database; the schema is created and dropped around the test.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from flask import Flask

from tokenauth import create_app
from tokenauth.core.config import TestingConfig
from tokenauth.core.extensions import db as _db
from tokenauth.infra.jwt import JWTAccessTokenCodec
from tokenauth.models import User

from tests.factories import SQLAlchemySession
from tests.factories.user import DEFAULT_PASSWORD, UserFactory
from tests.helpers.clock import FrozenClock


@pytest.fixture()
def app() -> Generator[Flask, None, None]:
    """Create a Flask application configured for testing.

    Yields
    ------
    flask.Flask
        Application instance with :class:`TestingConfig` applied, inside an
        application context, with all tables created.
    """
    # Ensure env-based config does not leak into tests
    os.environ.pop("DATABASE_URL", None)
    application = create_app(TestingConfig)
    with application.app_context():
        _db.create_all()
        yield application
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def session(app: Flask) -> Any:
    """Return the Flask-SQLAlchemy session and wire Factory Boy to it."""
    SQLAlchemySession.set(_db.session)
    yield _db.session
    SQLAlchemySession.set(None)


@pytest.fixture()
def client(app: Flask) -> Any:
    """Return a Flask test client."""
    return app.test_client()


@pytest.fixture()
def user(session: Any) -> User:
    """Persist and return a user whose password is ``DEFAULT_PASSWORD``."""
    return UserFactory(email="a@x.com", first_name="Ada", last_name="Lovelace")


@pytest.fixture()
def password() -> str:
    return DEFAULT_PASSWORD


@pytest.fixture()
def clock() -> FrozenClock:
    """A controllable clock starting at a fixed instant."""
    return FrozenClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC))


@pytest.fixture()
def codec() -> JWTAccessTokenCodec:
    """Codec sharing the testing signing key with the application."""
    return JWTAccessTokenCodec(
        secret=TestingConfig.JWT_SECRET_KEY,
        lifetime=timedelta(seconds=TestingConfig.ACCESS_TOKEN_LIFETIME_SECONDS),
    )
