from tokenauth.models.refresh_token import RefreshToken
from tokenauth.models.user import User

__all__ = ["RefreshToken", "User"]
