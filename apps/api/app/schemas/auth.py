"""Authentication schemas."""

from pydantic import BaseModel, Field


class AuthPrincipal(BaseModel):
    """Authenticated caller; ``user_id`` is the owner reference stamped on jobs."""

    user_id: str = Field(min_length=1)
