"""Reflect auth state into visible links and page redirects."""

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

from src.core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NavLink:
    label: str
    href: str


@dataclass(frozen=True)
class NavigationState:
    """What the header should show and where, if anywhere, to send the user."""

    signed_in: bool
    current_path: str
    visible_links: list[NavLink] = field(default_factory=list)
    redirect_to: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "signed_in": self.signed_in,
            "current_path": self.current_path,
            "visible_links": [{"label": link.label, "href": link.href} for link in self.visible_links],
            "redirect_to": self.redirect_to,
        }


def normalize_path(path: str) -> str:
    """Drop query and fragment, and force a single trailing slash."""
    path = path.split("?", 1)[0].split("#", 1)[0].strip() or "/"
    if not path.startswith("/"):
        path = f"/{path}"
    if not path.endswith("/"):
        path = f"{path}/"
    return path


class NavigationService:
    """Stateless rule: (user, path) -> NavigationState.

    Evaluation is level-triggered, so calling it again with the same
    inputs always yields the same state.
    """

    def __init__(
        self,
        login_path: str | None = None,
        register_path: str | None = None,
        account_path: str | None = None,
        shop_path: str = "/",
        cart_path: str = "/cart/",
    ) -> None:
        settings = get_settings()
        self.login_path = normalize_path(login_path or settings.login_path)
        self.register_path = normalize_path(register_path or settings.register_path)
        self.account_path = normalize_path(account_path or settings.account_path)
        self.shop_path = shop_path
        self.cart_path = cart_path
        self.protected_paths = {self.account_path}
        self.guest_only_paths = {self.login_path, self.register_path}

    def visible_links(self, signed_in: bool) -> list[NavLink]:
        links = [NavLink("Shop", self.shop_path), NavLink("Cart", self.cart_path)]
        if signed_in:
            links += [NavLink("Account", self.account_path), NavLink("Sign Out", "/logout/")]
        else:
            links += [NavLink("Sign In", self.login_path), NavLink("Register", self.register_path)]
        return links

    def evaluate(self, user: Any | None, current_path: str) -> NavigationState:
        """Recompute links and redirect for the given user and page.

        Args:
            user: Any truthy user object when signed in, None otherwise.
            current_path: Path of the page being shown.

        Returns:
            NavigationState: The full visibility and redirect decision.
        """
        signed_in = user is not None
        path = normalize_path(current_path)

        redirect_to = None
        if not signed_in and path in self.protected_paths:
            redirect_to = self.login_path
        elif signed_in and path in self.guest_only_paths:
            redirect_to = self.account_path

        return NavigationState(
            signed_in=signed_in,
            current_path=path,
            visible_links=self.visible_links(signed_in),
            redirect_to=redirect_to,
        )


class AuthStateWatcher:
    """Re-evaluates navigation on every auth-state emission for one page."""

    def __init__(
        self,
        current_path: str,
        render: Callable[[NavigationState], None],
        navigation: NavigationService | None = None,
    ) -> None:
        self.current_path = current_path
        self.render = render
        self.navigation = navigation or NavigationService()
        self.last_state: NavigationState | None = None

    def handle(self, user: Any | None) -> NavigationState:
        """Apply the full rule for one emission and render it."""
        state = self.navigation.evaluate(user, self.current_path)
        self.last_state = state
        if state.redirect_to:
            logger.info("Redirecting %s -> %s", state.current_path, state.redirect_to)
        self.render(state)
        return state

    async def watch(self, stream: AsyncIterator[Any | None]) -> NavigationState | None:
        """Consume an async stream of users until it ends or a redirect is issued."""
        async for user in stream:
            state = self.handle(user)
            if state.redirect_to:
                break
        return self.last_state

    def attach(self, auth_service: Any) -> Callable[[], None]:
        """Subscribe to an AuthService-style stream. Returns unsubscribe."""
        return auth_service.subscribe(lambda _event, user: self.handle(user))
