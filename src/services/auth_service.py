"""Authentication business logic service."""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import ValidationError
from src.core.config import get_settings
from src.core.supabase import create_auth_client, get_supabase_client
from src.models.profile import UserProfileCreate

logger = logging.getLogger(__name__)

# (event, user) where user is None when signed out
AuthListener = Callable[[str, dict[str, Any] | None], None]


def session_user(session: Any) -> dict[str, Any] | None:
    """Reduce an auth session to the opaque user the storefront observes."""
    user = getattr(session, "user", None) if session is not None else None
    if user is None:
        return None
    return {"user_id": str(user.id), "email": getattr(user, "email", None)}


class AuthService:
    """Service for registering, signing in and observing users."""

    PROFILE_TABLE = "users"

    def __init__(self) -> None:
        """Initialize auth service with isolated Supabase client.

        Uses create_auth_client() instead of get_supabase_client() so that
        set_session() never leaks into the shared client's headers.
        """
        self.client = create_auth_client()
        self.db = get_supabase_client()
        self.settings = get_settings()

    async def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> dict[str, Any]:
        """Create an account and its customer profile row.

        Args:
            email: User's email address.
            password: User's password.
            first_name: Given name stored on the profile.
            last_name: Family name stored on the profile.

        Returns:
            dict: user_id, email, and whether a session was issued.

        Raises:
            ValidationError: If signup fails (e.g., email already exists).
        """
        try:
            response = self.client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {
                        "data": {"first_name": first_name, "last_name": last_name},
                    },
                }
            )
        except Exception as e:
            error_msg = str(e)
            logger.error("Signup failed: %s", error_msg)

            if "already registered" in error_msg.lower() or "already exists" in error_msg.lower():
                raise ValidationError("An account with this email already exists") from e
            if "invalid email" in error_msg.lower():
                raise ValidationError("Invalid email address") from e
            if "password" in error_msg.lower() and "weak" in error_msg.lower():
                raise ValidationError("Password is too weak. Please use a stronger password.") from e

            raise ValidationError(f"Signup failed: {error_msg}") from e

        if not response.user:
            raise ValidationError("Failed to create user account")

        user = response.user
        profile: UserProfileCreate = {
            "user_id": str(user.id),
            "email": user.email or email,
            "first_name": first_name,
            "last_name": last_name,
            "role": "customer",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self.db.table(self.PROFILE_TABLE).insert(profile).execute()
        logger.info("User registered: %s", user.id)

        session = response.session
        return {
            "user_id": str(user.id),
            "email": user.email or email,
            "access_token": session.access_token if session else None,
            "refresh_token": session.refresh_token if session else None,
            "message": "Account created successfully.",
        }

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """Sign in with email and password.

        Args:
            email: User's email address.
            password: User's password.

        Returns:
            dict: Login response with access_token, refresh_token, and user info.

        Raises:
            ValidationError: If login fails.
        """
        try:
            response = self.client.auth.sign_in_with_password(
                {
                    "email": email,
                    "password": password,
                }
            )
        except Exception as e:
            error_msg = str(e)
            logger.error("Login failed: %s", error_msg)

            if "invalid" in error_msg.lower() and "credentials" in error_msg.lower():
                raise ValidationError("Invalid email or password") from e
            if "email not confirmed" in error_msg.lower() or "not verified" in error_msg.lower():
                raise ValidationError("Please verify your email before logging in") from e

            raise ValidationError(f"Login failed: {error_msg}") from e

        if not response.user or not response.session:
            raise ValidationError("Login failed: No session created")

        user = response.user
        session = response.session
        logger.info("User logged in: %s", user.id)

        return {
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "user_id": str(user.id),
            "email": user.email or email,
            "expires_in": session.expires_in or 3600,
        }

    async def logout(self, access_token: str) -> dict[str, Any]:
        """Logout user by invalidating their session.

        Args:
            access_token: User's access token.

        Returns:
            dict: Logout response.
        """
        try:
            self.client.auth.set_session(access_token, "")
            self.client.auth.sign_out()
            logger.info("User logged out")
        except Exception as e:
            # The client drops its token either way
            logger.error("Logout failed: %s", str(e))

        return {"message": "Logged out successfully"}

    async def get_profile(self, user_id: UUID) -> dict[str, Any] | None:
        """Get the users-table profile for a signed-in user."""
        response = (
            self.db.table(self.PROFILE_TABLE)
            .select("*")
            .eq("user_id", str(user_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Forward every auth-state emission to listener.

        Returns:
            Callable: Unsubscribe function.
        """

        def _on_change(event: Any, session: Any) -> None:
            listener(str(getattr(event, "value", event)), session_user(session))

        subscription = self.client.auth.on_auth_state_change(_on_change)
        return subscription.unsubscribe
