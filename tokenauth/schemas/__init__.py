"""Convenience exports for application schemas."""

from __future__ import annotations

from .auth import (
    LoginSchema,
    LogoutSchema,
    RefreshSchema,
    TokenPairSchema,
    UserProfileSchema,
)

__all__ = [
    "LoginSchema",
    "LogoutSchema",
    "RefreshSchema",
    "TokenPairSchema",
    "UserProfileSchema",
]
