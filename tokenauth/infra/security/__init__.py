from .password_verifier import PasswordHashVerifier

__all__ = ["PasswordHashVerifier"]
