"""Auth verifier adapters."""

from .base import AuthVerificationError, TokenVerifier
from .dev_tokens import DevTokenVerifier

__all__ = [
    "AuthVerificationError",
    "DevTokenVerifier",
    "TokenVerifier",
]
