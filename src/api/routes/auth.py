"""Authentication API routes."""

from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, status

from src.api.deps import CurrentUser
from src.api.middleware.auth import extract_bearer_token
from src.api.middleware.error_handler import ValidationError
from src.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    RegisterRequest,
    RegisterResponse,
)
from src.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register new customer",
    description="Create an account with email and password, plus a customer profile.",
)
async def register(data: RegisterRequest) -> RegisterResponse:
    """Register a new customer.

    Args:
        data: Email, password and name.

    Returns:
        RegisterResponse: User ID, email and tokens when a session was issued.

    Raises:
        HTTPException: 400 if signup fails (e.g., email already exists).
    """
    service = AuthService()

    try:
        result = await service.register(
            email=data.email,
            password=data.password,
            first_name=data.first_name,
            last_name=data.last_name,
        )
        return RegisterResponse(**result)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Sign in",
    description="Sign in with email and password and receive access tokens.",
)
async def login(data: LoginRequest) -> LoginResponse:
    """Sign in with email and password.

    Raises:
        HTTPException: 401 if credentials are rejected.
    """
    service = AuthService()

    try:
        result = await service.login(email=data.email, password=data.password)
        return LoginResponse(**result)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        ) from e


@router.post(
    "/logout",
    summary="Sign out",
    description="Revoke the current session.",
)
async def logout(
    user: CurrentUser,
    authorization: Annotated[str, Header()] = "",
) -> dict[str, str]:
    """Sign out the authenticated user.

    The bearer token was already verified by CurrentUser; it is passed on
    so the auth service can revoke the matching session.
    """
    service = AuthService()
    return await service.logout(extract_bearer_token(authorization) or "")


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current user",
    description="Get the authenticated user's token claims and profile.",
)
async def get_current_user_info(user: CurrentUser) -> MeResponse:
    """Return the signed-in user with their profile, if one exists."""
    service = AuthService()
    profile = await service.get_profile(user.user_id) or {}

    return MeResponse(
        user_id=str(user.user_id),
        email=user.email or profile.get("email"),
        first_name=profile.get("first_name"),
        last_name=profile.get("last_name"),
        role=profile.get("role"),
    )
