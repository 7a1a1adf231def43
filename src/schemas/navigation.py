"""Navigation Pydantic schemas."""

from pydantic import BaseModel, Field


class NavLinkSchema(BaseModel):
    label: str
    href: str


class NavigationResponse(BaseModel):
    """Response for GET /navigation."""

    signed_in: bool = Field(description="Whether a user is signed in")
    current_path: str = Field(description="Normalized page path")
    visible_links: list[NavLinkSchema] = Field(description="Header links to show")
    redirect_to: str | None = Field(default=None, description="Where to send the user, if anywhere")
