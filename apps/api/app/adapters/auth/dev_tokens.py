"""Development bearer token verifier."""

from app.adapters.auth.base import AuthVerificationError, TokenVerifier
from app.schemas.auth import AuthPrincipal

_TOKEN_PREFIX = "dev"


class DevTokenVerifier(TokenVerifier):
    """Accepts ``dev:<user_id>`` tokens; the user id becomes the job owner."""

    def verify_token(self, token: str) -> AuthPrincipal:
        prefix, separator, user_id = token.partition(":")
        if prefix != _TOKEN_PREFIX or not separator:
            raise AuthVerificationError("Invalid bearer token")

        user_id = user_id.strip()
        if not user_id or ":" in user_id:
            raise AuthVerificationError("Bearer token missing user identity")
        return AuthPrincipal(user_id=user_id)


__all__ = ["DevTokenVerifier"]
