"""Authentication schemas for Supabase JWTs and the request user context."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserContext(BaseModel):
    """Authenticated caller extracted from a validated JWT.

    Populated by the auth middleware. The caller's school profile is
    loaded separately from the profiles table.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Profile ID (from JWT sub claim)")
    email: str | None = Field(default=None, description="Email claim if present")
    role: str | None = Field(default=None, description="Postgres role claim, e.g. 'authenticated'")


class TokenPayload(BaseModel):
    """Claims carried by a Supabase-issued JWT."""

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="Postgres role claim")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience")
    iss: str | None = Field(default=None, description="Issuer URL")

    @property
    def expiration_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.exp)

    def to_user_context(self) -> UserContext:
        """Convert token claims to a UserContext.

        Returns:
            UserContext: User context derived from token claims.
        """
        return UserContext(
            user_id=UUID(self.sub),
            email=self.email,
            role=self.role,
        )


class AuthenticatedResponse(BaseModel):
    """Response for the auth verification endpoint."""

    model_config = ConfigDict(from_attributes=True)

    authenticated: bool = Field(default=True, description="Authentication status")
    user_id: str = Field(description="Authenticated user ID")
    email: str | None = Field(default=None, description="User email if available")
    role: str | None = Field(default=None, description="Chat role from the caller's profile")
    school_id: str | None = Field(default=None, description="Caller's school")
