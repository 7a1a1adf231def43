"""Authentication schemas for JWT tokens and user context."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserContext(BaseModel):
    """Authenticated user context extracted from JWT token.

    This model represents the authenticated user for the current request.
    It is populated by the auth middleware from the validated JWT.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: str | None = Field(default=None, description="User's role (e.g., 'user', 'admin')")


class TokenPayload(BaseModel):
    """JWT token payload structure for Supabase tokens.

    Represents the claims contained in a Supabase-issued JWT.
    Used for validation and extraction of user information.
    """

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="User's role")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    @property
    def issued_at_datetime(self) -> datetime:
        """Get issued at as datetime object."""
        return datetime.fromtimestamp(self.iat)

    def to_user_context(self) -> UserContext:
        """Convert token payload to UserContext.

        Returns:
            UserContext: User context derived from token claims.
        """
        return UserContext(
            user_id=UUID(self.sub),
            email=self.email,
            role=self.role,
        )


class AuthenticatedResponse(BaseModel):
    """Response for the authenticated health check."""

    model_config = ConfigDict(from_attributes=True)

    authenticated: bool = Field(default=True, description="Authentication status")
    user_id: str = Field(description="Authenticated user ID")
    email: str | None = Field(default=None, description="User email if available")
    role: str | None = Field(default=None, description="User role if available")


class RegisterRequest(BaseModel):
    """Request schema for POST /auth/register."""

    model_config = ConfigDict(from_attributes=True)

    email: str = Field(..., description="User's email address", min_length=3, max_length=255)
    password: str = Field(..., description="User's password", min_length=8, max_length=100)
    first_name: str = Field(..., description="Given name", min_length=1, max_length=100)
    last_name: str = Field(..., description="Family name", min_length=1, max_length=100)


class RegisterResponse(BaseModel):
    """Response schema for user registration."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(description="Newly created user ID")
    email: str = Field(description="User's email address")
    access_token: str | None = Field(default=None, description="Present when no email confirmation is required")
    refresh_token: str | None = Field(default=None, description="Refresh token if a session was issued")
    message: str = Field(description="Success message")


class LoginRequest(BaseModel):
    """Request schema for user login."""

    model_config = ConfigDict(from_attributes=True)

    email: str = Field(..., description="User's email address")
    password: str = Field(..., description="User's password")


class LoginResponse(BaseModel):
    """Response schema for user login."""

    model_config = ConfigDict(from_attributes=True)

    access_token: str = Field(description="JWT access token")
    refresh_token: str | None = Field(default=None, description="Refresh token if available")
    user_id: str = Field(description="User ID")
    email: str = Field(description="User's email address")
    expires_in: int = Field(description="Token expiration time in seconds")


class MeResponse(BaseModel):
    """Response schema for GET /auth/me."""

    user_id: str = Field(description="Authenticated user ID")
    email: str | None = Field(default=None, description="User email if available")
    first_name: str | None = Field(default=None, description="Profile first name")
    last_name: str | None = Field(default=None, description="Profile last name")
    role: str | None = Field(default=None, description="Profile role")
