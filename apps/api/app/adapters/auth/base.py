"""Authentication provider interfaces."""

from abc import ABC, abstractmethod

from app.schemas.auth import AuthPrincipal


class AuthVerificationError(Exception):
    """Raised when a bearer token cannot be verified or normalized."""


class TokenVerifier(ABC):
    """Provider-neutral bearer token verification interface."""

    @abstractmethod
    def verify_token(self, token: str) -> AuthPrincipal:
        """Verify token and return the owning principal."""


__all__ = ["AuthVerificationError", "TokenVerifier"]
