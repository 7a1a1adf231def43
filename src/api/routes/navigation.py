"""Navigation API routes."""

from fastapi import APIRouter, Query

from src.api.deps import OptionalUser
from src.schemas.navigation import NavigationResponse
from src.services.navigation_service import NavigationService

router = APIRouter(prefix="/navigation", tags=["navigation"])


@router.get(
    "",
    response_model=NavigationResponse,
    summary="Evaluate navigation",
    description=(
        "Returns the header links to show for the current auth state and, for pages that "
        "require or forbid a signed-in user, where to redirect."
    ),
)
async def evaluate_navigation(
    user: OptionalUser,
    path: str = Query(default="/", max_length=2048, description="Path of the page being shown"),
) -> NavigationResponse:
    """Apply the navigation rule for the caller's auth state and page."""
    state = NavigationService().evaluate(user, path)
    return NavigationResponse(**state.to_dict())
