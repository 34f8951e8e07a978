from .signed_token_codec import JWTAccessTokenCodec

__all__ = ["JWTAccessTokenCodec"]
