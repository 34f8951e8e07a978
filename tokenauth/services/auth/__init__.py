from .dto import (
    AuthFailure,
    AuthResult,
    AuthTokenConfig,
    LoginIn,
    LogoutIn,
    RefreshIn,
    TokenPairOut,
    UserProfileOut,
)
from .generator import RefreshTokenGenerator
from .service import TokenLifecycleService

__all__ = [
    "AuthFailure",
    "AuthResult",
    "AuthTokenConfig",
    "LoginIn",
    "LogoutIn",
    "RefreshIn",
    "RefreshTokenGenerator",
    "TokenLifecycleService",
    "TokenPairOut",
    "UserProfileOut",
]
