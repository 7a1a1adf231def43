"""User profile model type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict
from uuid import UUID


UserRole = Literal["customer", "admin"]


class UserProfile(TypedDict):
    """Users table row representation.

    Keyed by the Supabase Auth user id; created at registration.
    """

    user_id: UUID
    email: str
    first_name: str
    last_name: str
    role: UserRole
    created_at: datetime


class UserProfileCreate(TypedDict, total=False):
    """Data required to create a user profile."""

    user_id: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    created_at: str
