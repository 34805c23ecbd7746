"""Caller identity: verified token claims and the per-request user context."""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from src.core.config import get_settings


class UserContext(BaseModel):
    """The shopper or admin behind the current request."""

    user_id: UUID = Field(description="Supabase user id (JWT sub claim)")
    email: str | None = None
    role: str | None = Field(default=None, description="Application role, e.g. 'admin'")

    @property
    def is_admin(self) -> bool:
        return self.role == get_settings().admin_role

    def can_access(self, owner_id: Any) -> bool:
        """Whether the user may act on an order or cart owned by ``owner_id``.

        Admins may act on any order; everyone else only on their own.
        """
        return self.is_admin or str(owner_id) == str(self.user_id)


class TokenPayload(BaseModel):
    """Claims of a verified Supabase access token."""

    sub: str = Field(description="Supabase user id")
    email: str | None = None
    role: str | None = Field(default=None, description="Postgres role claim, usually 'authenticated'")
    app_metadata: dict[str, Any] = Field(default_factory=dict, description="Server-controlled user metadata")
    exp: int
    iat: int
    aud: str | None = None
    iss: str | None = None

    @property
    def effective_role(self) -> str | None:
        """Application role: ``app_metadata.role`` wins over the Postgres role claim."""
        return self.app_metadata.get("role") or self.role

    def to_user_context(self) -> UserContext:
        return UserContext(user_id=UUID(self.sub), email=self.email, role=self.effective_role)
