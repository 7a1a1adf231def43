"""Explicit checkout state machine and the per-owner attempt registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from threading import Lock
from typing import Any

from src.api.middleware.error_handler import ConflictError

logger = logging.getLogger(__name__)


class CheckoutState(str, Enum):
    """States of a single checkout attempt."""

    IDLE = "idle"
    FORM_VALIDATED = "form_validated"
    ORDER_CREATED = "order_created"
    PAYMENT_AUTHORIZED = "payment_authorized"
    ORDER_FINALIZED = "order_finalized"


# Forward edges of the happy path. Every non-terminal state may also fail
# back to IDLE; ORDER_FINALIZED has no outgoing edges.
TRANSITIONS: dict[CheckoutState, frozenset[CheckoutState]] = {
    CheckoutState.IDLE: frozenset({CheckoutState.FORM_VALIDATED}),
    CheckoutState.FORM_VALIDATED: frozenset({CheckoutState.ORDER_CREATED, CheckoutState.IDLE}),
    CheckoutState.ORDER_CREATED: frozenset({CheckoutState.PAYMENT_AUTHORIZED, CheckoutState.IDLE}),
    CheckoutState.PAYMENT_AUTHORIZED: frozenset({CheckoutState.ORDER_FINALIZED, CheckoutState.IDLE}),
    CheckoutState.ORDER_FINALIZED: frozenset(),
}


def can_transition(source: CheckoutState, target: CheckoutState) -> bool:
    return target in TRANSITIONS[source]


class InvalidTransitionError(ConflictError):
    """Raised when an attempt is asked to take an edge not in TRANSITIONS."""

    def __init__(self, source: CheckoutState, target: CheckoutState) -> None:
        super().__init__(
            message=f"Checkout cannot move from {source.value} to {target.value}.",
        )
        self.source = source
        self.target = target


class CheckoutInProgressError(ConflictError):
    """Raised when a second submit arrives while an attempt is unresolved."""

    def __init__(
        self,
        order_id: str | None = None,
        message: str = "A checkout is already in progress for this cart.",
    ) -> None:
        super().__init__(message=message)
        self.order_id = order_id


class PaymentAwaitingReconciliationError(CheckoutInProgressError):
    """Raised on submit while a captured payment's order is still not Paid."""

    def __init__(self, order_id: str | None, transaction_id: str | None) -> None:
        super().__init__(
            order_id,
            message=(
                "Payment for this cart was already taken and is being confirmed. "
                f"Please contact support with transaction {transaction_id}."
            ),
        )
        self.transaction_id = transaction_id


@dataclass
class CheckoutAttempt:
    """One pass through the checkout flow for one cart owner."""

    owner_key: str
    state: CheckoutState = CheckoutState.IDLE
    order_id: str | None = None
    payment_handle: str | None = None
    transaction_id: str | None = None
    payment_request: dict[str, Any] | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cart_cleared: bool = False
    history: list[CheckoutState] = field(default_factory=list)

    @property
    def in_flight(self) -> bool:
        return self.state not in (CheckoutState.IDLE, CheckoutState.ORDER_FINALIZED)

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    @property
    def awaiting_reconciliation(self) -> bool:
        """Funds were captured but the order never reached Paid."""
        return self.state is CheckoutState.PAYMENT_AUTHORIZED and self.transaction_id is not None

    def transition(self, target: CheckoutState) -> None:
        """Move to target.

        Raises:
            InvalidTransitionError: If the edge is not in the table.
        """
        if not can_transition(self.state, target):
            raise InvalidTransitionError(self.state, target)
        logger.info(
            "Checkout %s: %s -> %s (order %s)",
            self.owner_key,
            self.state.value,
            target.value,
            self.order_id,
        )
        self.history.append(self.state)
        self.state = target

    def fail(self) -> None:
        """Take the failure edge back to IDLE. No-op if already idle."""
        if self.state is CheckoutState.IDLE:
            return
        self.transition(CheckoutState.IDLE)

    def is_stale(self, ttl: timedelta, now: datetime | None = None) -> bool:
        # A captured payment never goes stale; only reconciliation resolves it
        if self.awaiting_reconciliation:
            return False
        now = now or datetime.now(timezone.utc)
        return self.in_flight and now - self.started_at > ttl


class CheckoutAttemptRegistry:
    """Thread-safe map of owner key -> current checkout attempt.

    Acts as the idempotent submit guard: only one unresolved attempt per
    cart owner at a time. Abandoned attempts older than the TTL are
    replaced rather than blocking the owner forever.
    """

    def __init__(self, stale_after: timedelta = timedelta(minutes=60)) -> None:
        self._attempts: dict[str, CheckoutAttempt] = {}
        self._lock = Lock()
        self.stale_after = stale_after

    def begin(self, owner_key: str) -> CheckoutAttempt:
        """Start a new attempt for owner_key.

        Raises:
            PaymentAwaitingReconciliationError: A captured payment's order
                is not yet Paid.
            CheckoutInProgressError: If an unresolved attempt exists.
        """
        with self._lock:
            current = self._attempts.get(owner_key)
            if current is not None and current.awaiting_reconciliation:
                raise PaymentAwaitingReconciliationError(current.order_id, current.transaction_id)
            if current is not None and current.in_flight:
                if not current.is_stale(self.stale_after):
                    raise CheckoutInProgressError(current.order_id)
                logger.warning(
                    "Replacing stale checkout for %s (order %s)",
                    owner_key,
                    current.order_id,
                )
            attempt = CheckoutAttempt(owner_key=owner_key)
            self._attempts[owner_key] = attempt
            return attempt

    def get(self, owner_key: str) -> CheckoutAttempt | None:
        with self._lock:
            return self._attempts.get(owner_key)

    def find_by_order(self, order_id: str) -> CheckoutAttempt | None:
        """The attempt that created order_id, if it is still tracked."""
        with self._lock:
            for attempt in self._attempts.values():
                if attempt.order_id == order_id:
                    return attempt
        return None

    def reconciling_order_ids(self) -> set[str]:
        with self._lock:
            return {
                attempt.order_id
                for attempt in self._attempts.values()
                if attempt.awaiting_reconciliation and attempt.order_id
            }

    def discard(self, owner_key: str) -> None:
        with self._lock:
            self._attempts.pop(owner_key, None)

    def cleanup(self) -> int:
        """Drop resolved and stale attempts. Returns how many were removed."""
        now = datetime.now(timezone.utc)
        with self._lock:
            stale = [
                key
                for key, attempt in self._attempts.items()
                if self._removable(attempt, now)
            ]
            for key in stale:
                del self._attempts[key]
        return len(stale)

    def _removable(self, attempt: CheckoutAttempt, now: datetime) -> bool:
        if attempt.in_flight:
            return attempt.is_stale(self.stale_after, now)
        # Finalized by the webhook: keep until the owner's cart is cleared
        if attempt.state is CheckoutState.ORDER_FINALIZED and not attempt.cart_cleared:
            return now - attempt.started_at > self.stale_after
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)


# Global singleton instance
_registry: CheckoutAttemptRegistry | None = None


def get_checkout_registry() -> CheckoutAttemptRegistry:
    """Get or create the global checkout attempt registry."""
    global _registry
    if _registry is None:
        from src.core.config import get_settings

        ttl = timedelta(minutes=get_settings().pending_order_ttl_minutes)
        _registry = CheckoutAttemptRegistry(stale_after=ttl)
    return _registry


def reset_checkout_registry() -> None:
    """Drop the global registry so the next call re-reads settings."""
    global _registry
    _registry = None
