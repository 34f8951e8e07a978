from .token_store import SQLAlchemyTokenStore, SQLAlchemyUserDirectory

__all__ = ["SQLAlchemyTokenStore", "SQLAlchemyUserDirectory"]
