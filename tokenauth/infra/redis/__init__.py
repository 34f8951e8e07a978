from .redis_token_store import RedisTokenStore

__all__ = ["RedisTokenStore"]
