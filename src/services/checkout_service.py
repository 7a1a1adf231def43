"""Checkout orchestration: form validation, pending orders and payment capture."""

import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import stripe

from src.api.middleware.error_handler import (
    CheckoutError,
    ConflictError,
    ReconciliationError,
    ValidationError,
)
from src.core.config import get_settings
from src.core.stripe import get_stripe, to_minor_units
from src.models.cart import StoredCartLine
from src.models.order import OrderCustomer, OrderTotals
from src.schemas.cart import CartOwner
from src.schemas.checkout import CheckoutForm
from src.services.cart_service import CartStore
from src.services.checkout_state import (
    CheckoutAttemptRegistry,
    CheckoutState,
    get_checkout_registry,
)
from src.services.email_service import EmailService
from src.services.order_service import OrderService

logger = logging.getLogger(__name__)

START_FAILED_MESSAGE = "Could not start checkout. Please try again."
PAYMENT_ERROR_MESSAGE = "An error occurred with the payment. Please try again."
EMPTY_CART_MESSAGE = "Your cart is empty."

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
STATE_PATTERN = re.compile(r"^[A-Za-z]{2}$")
ZIP_PATTERN = re.compile(r"^\d{5}(-\d{4})?$")

# (field, label, pattern) in the order the form shows them
CUSTOMER_FIELDS: list[tuple[str, str, re.Pattern[str] | None]] = [
    ("first_name", "first name", None),
    ("last_name", "last name", None),
    ("email", "email", EMAIL_PATTERN),
    ("address", "address", None),
    ("city", "city", None),
    ("state", "state", STATE_PATTERN),
    ("zip", "zip code", ZIP_PATTERN),
]


def validate_customer(form: CheckoutForm) -> OrderCustomer:
    """Validate the shipping form without touching the cart or any remote.

    Args:
        form: Raw form values.

    Returns:
        OrderCustomer: Trimmed customer data with a derived full name.

    Raises:
        ValidationError: Naming the first invalid field.
    """
    values = {name: getattr(form, name).strip() for name, _, _ in CUSTOMER_FIELDS}

    for name, label, pattern in CUSTOMER_FIELDS:
        value = values[name]
        if not value or (pattern is not None and not pattern.match(value)):
            raise ValidationError(
                message=f"Please provide a valid {label}.",
                details=[{"loc": ["body", name], "msg": f"Invalid {label}", "type": "value_error"}],
            )

    return {
        "name": f"{values['first_name']} {values['last_name']}",
        "first_name": values["first_name"],
        "last_name": values["last_name"],
        "email": values["email"],
        "address": values["address"],
        "city": values["city"],
        "state": values["state"].upper(),
        "zip": values["zip"],
    }


def build_payment_request(
    items: list[StoredCartLine],
    totals: OrderTotals,
    currency: str,
) -> dict[str, Any]:
    """Build the widget's amount breakdown and line items from an order snapshot.

    Only the frozen snapshot is read, so the charged amount always equals
    the pending order's totals even if the live cart changes afterwards.
    """
    total = Decimal(totals["total"])
    return {
        "currency": currency,
        "amount": total,
        "amount_minor": to_minor_units(total),
        "breakdown": {
            "item_total": Decimal(totals["subtotal"]),
            "shipping": Decimal(totals["shipping"]),
        },
        "items": [
            {
                "sku": item["product_id"],
                "name": item["name"],
                "unit_amount": Decimal(item["unit_price"]),
                "quantity": item["quantity"],
            }
            for item in items
        ],
    }


class CheckoutService:
    """Drives one checkout attempt per cart owner through the state machine."""

    def __init__(
        self,
        order_service: OrderService | None = None,
        registry: CheckoutAttemptRegistry | None = None,
        email_service: EmailService | None = None,
    ) -> None:
        """Initialize checkout service with its collaborators."""
        self.stripe = get_stripe()
        self.settings = get_settings()
        self.order_service = order_service if order_service is not None else OrderService()
        self.registry = registry if registry is not None else get_checkout_registry()
        self.email_service = email_service if email_service is not None else EmailService()

    def checkout_status(self, owner: CartOwner, cart: CartStore) -> dict[str, Any]:
        """Current state, totals and whether the submit control is enabled.

        Args:
            owner: Cart owner.
            cart: The owner's cart.

        Returns:
            dict: state, submit_enabled, order_id, transaction_id and totals.
        """
        self._settle_cart(owner, cart)
        attempt = self.registry.get(owner.key)
        in_flight = attempt is not None and attempt.in_flight
        state = attempt.state if in_flight else CheckoutState.IDLE
        totals = cart.compute_totals().to_dict()
        return {
            "state": state.value,
            "submit_enabled": not cart.is_empty and not in_flight,
            "order_id": attempt.order_id if in_flight else None,
            "transaction_id": attempt.transaction_id if in_flight else None,
            "totals": totals,
        }

    async def start_checkout(
        self,
        owner: CartOwner,
        cart: CartStore,
        form: CheckoutForm,
    ) -> dict[str, Any]:
        """Validate the form, create the pending order, then the payment.

        The pending order is always written before the payment widget is
        invoked; if that write fails the payment is never created.

        Args:
            owner: Cart owner submitting the form.
            cart: The owner's cart.
            form: Shipping form values.

        Returns:
            dict: order_id, payment_handle, client_secret and payment request.

        Raises:
            ValidationError: Empty cart or invalid form. No remote call made.
            CheckoutInProgressError: An earlier submit is still unresolved.
            CheckoutError: Order or payment creation failed; safe to retry.
        """
        self._settle_cart(owner, cart)
        if cart.is_empty:
            raise ValidationError(EMPTY_CART_MESSAGE)

        attempt = self.registry.begin(owner.key)

        try:
            customer = validate_customer(form)
        except ValidationError:
            self.registry.discard(owner.key)
            raise
        attempt.transition(CheckoutState.FORM_VALIDATED)

        items = [line.to_dict() for line in cart.lines]
        totals = cart.compute_totals().to_dict()

        try:
            order = await self.order_service.create_order(
                {
                    "user_id": str(owner.user_id) if owner.user_id else None,
                    "cart_token": owner.cart_token if not owner.user_id else None,
                    "customer": customer,
                    "items": items,
                    "totals": totals,
                    "currency": self.settings.currency,
                    "status": "Pending",
                }
            )
        except Exception as e:
            logger.error("Failed to create pending order for %s: %s", owner.key, e)
            attempt.fail()
            raise CheckoutError(START_FAILED_MESSAGE) from e

        order_id = str(order["id"])
        attempt.order_id = order_id
        attempt.transition(CheckoutState.ORDER_CREATED)

        payment_request = build_payment_request(items, totals, self.settings.currency)
        attempt.payment_request = payment_request

        try:
            intent = self.stripe.PaymentIntent.create(
                amount=payment_request["amount_minor"],
                currency=payment_request["currency"],
                capture_method="manual",
                receipt_email=customer["email"],
                description=f"Order {order_id}",
                metadata={"order_id": order_id},
                shipping={
                    "name": customer["name"],
                    "address": {
                        "line1": customer["address"],
                        "city": customer["city"],
                        "state": customer["state"],
                        "postal_code": customer["zip"],
                        "country": "US",
                    },
                },
            )
        except stripe.error.StripeError as e:
            logger.error("Stripe error creating payment for order %s: %s", order_id, e)
            await self._mark_failed(order_id, "payment_error")
            attempt.fail()
            raise CheckoutError(START_FAILED_MESSAGE) from e

        attempt.payment_handle = intent.id

        return {
            "order_id": order_id,
            "state": attempt.state.value,
            "payment_handle": intent.id,
            "client_secret": getattr(intent, "client_secret", None),
            "publishable_key": self.settings.stripe_publishable_key or None,
            "payment": payment_request,
        }

    async def approve(self, owner: CartOwner, cart: CartStore) -> dict[str, Any]:
        """Capture the authorized payment and finalize the order.

        Order of effects: capture, then the order update to Paid, then
        clearing the cart, then the confirmation redirect. When an earlier
        approve captured the payment but could not finalize the order, a
        repeat call retries only the order update; the payment is never
        captured twice.

        Args:
            owner: Cart owner whose attempt is being approved.
            cart: The owner's cart, cleared only after the order is Paid.

        Returns:
            dict: order_id, status, transaction_id and redirect_url.

        Raises:
            ConflictError: No attempt is waiting for approval.
            CheckoutError: The capture failed; the cart is untouched.
            ReconciliationError: Captured but the order update failed. The
                attempt stays blocked until the order is reconciled.
        """
        attempt = self.registry.get(owner.key)
        if attempt is None or not (
            attempt.state is CheckoutState.ORDER_CREATED or attempt.awaiting_reconciliation
        ):
            raise ConflictError("No checkout is awaiting payment approval.")

        order_id = attempt.order_id
        if attempt.state is CheckoutState.ORDER_CREATED:
            try:
                captured = self.stripe.PaymentIntent.capture(attempt.payment_handle)
            except stripe.error.StripeError as e:
                message = await self.fail(owner, str(e), getattr(e, "code", None))
                raise CheckoutError(message) from e

            if getattr(captured, "status", None) != "succeeded":
                message = await self.fail(owner, f"capture status {captured.status}")
                raise CheckoutError(message)

            attempt.transaction_id = getattr(captured, "latest_charge", None) or captured.id
            attempt.transition(CheckoutState.PAYMENT_AUTHORIZED)

        transaction_id = attempt.transaction_id
        try:
            order = await self.order_service.update_order(
                order_id,
                {
                    "status": "Paid",
                    "payment_reference": transaction_id,
                    "paid_at": datetime.now(timezone.utc).isoformat(),
                },
            )
        except Exception as e:
            # Funds have moved: the attempt stays in PAYMENT_AUTHORIZED so no
            # second payment can be started for this cart.
            logger.exception(
                "Payment %s captured but order %s was not finalized: %s",
                transaction_id,
                order_id,
                e,
            )
            raise ReconciliationError(transaction_id=transaction_id, order_id=order_id) from e

        attempt.transition(CheckoutState.ORDER_FINALIZED)
        cart.clear()
        attempt.cart_cleared = True

        await self._send_confirmation(order)

        return {
            "order_id": order_id,
            "status": "Paid",
            "transaction_id": transaction_id,
            "redirect_url": f"{self.settings.confirmation_path}?orderId={order_id}",
        }

    async def cancel(self, owner: CartOwner) -> dict[str, Any]:
        """The user closed the payment widget. No funds have moved.

        The pending order is marked Failed with reason "cancelled" rather
        than left orphaned.
        """
        attempt = self.registry.get(owner.key)
        if attempt is None or not attempt.in_flight:
            return {"state": CheckoutState.IDLE.value, "order_id": None}
        if attempt.awaiting_reconciliation:
            raise ConflictError(
                f"Payment {attempt.transaction_id} was already captured and cannot be cancelled."
            )

        order_id = attempt.order_id
        if order_id:
            await self._mark_failed(order_id, "cancelled")
        attempt.fail()
        logger.info("Checkout cancelled for %s (order %s)", owner.key, order_id)
        return {"state": attempt.state.value, "order_id": order_id}

    async def fail(self, owner: CartOwner, reason: str, code: str | None = None) -> str:
        """Handle an error reported by the payment widget.

        The cart is never touched. Returns the user-facing retry message,
        including the external error code when one was given.
        """
        logger.error("Payment widget error for %s: %s (code=%s)", owner.key, reason, code)

        attempt = self.registry.get(owner.key)
        if attempt is not None and attempt.in_flight and not attempt.awaiting_reconciliation:
            if attempt.order_id:
                await self._mark_failed(attempt.order_id, "payment_error")
            attempt.fail()

        if code:
            return f"{PAYMENT_ERROR_MESSAGE} (code: {code})"
        return PAYMENT_ERROR_MESSAGE

    async def expire_stale_pending_orders(self, now: datetime | None = None) -> int:
        """Mark Pending orders older than the configured TTL as Failed.

        Returns:
            int: Number of orders expired.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=self.settings.pending_order_ttl_minutes)
        stale = await self.order_service.list_stale_pending(cutoff)
        captured = self.registry.reconciling_order_ids()

        expired = 0
        for order in stale:
            if str(order["id"]) in captured:
                continue
            if await self._mark_failed(order["id"], "expired"):
                expired += 1

        if expired:
            logger.info("Expired %d stale pending orders", expired)
        return expired

    def verify_webhook_signature(self, payload: bytes, sig_header: str) -> dict[str, Any]:
        """Verify Stripe webhook signature and return event.

        Args:
            payload: Raw webhook payload bytes.
            sig_header: Stripe-Signature header value.

        Returns:
            dict: Verified Stripe event.

        Raises:
            ValueError: If signature is invalid or Stripe not configured.
        """
        if not self.settings.stripe_webhook_secret:
            raise ValueError("Stripe webhook secret is not configured. Please set STRIPE_WEBHOOK_SECRET environment variable.")

        try:
            return self.stripe.Webhook.construct_event(
                payload, sig_header, self.settings.stripe_webhook_secret
            )
        except stripe.error.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise ValueError("Invalid webhook signature") from e

    async def handle_payment_succeeded(self, event: dict[str, Any]) -> dict[str, Any]:
        """Process payment_intent.succeeded.

        Finalizes orders still Pending, which recovers orders whose update
        failed after capture. Already-Paid orders are left alone.
        """
        intent = event["data"]["object"]
        order_id = intent.get("metadata", {}).get("order_id")
        if not order_id:
            logger.warning("Webhook missing order_id in metadata: %s", intent.get("id"))
            return {}

        order = await self.order_service.get_order(order_id)
        if not order:
            logger.warning("Order not found for payment %s: %s", intent.get("id"), order_id)
            return {}
        if order.get("status") != "Pending":
            return order

        transaction_id = intent.get("latest_charge") or intent.get("id")
        order = await self.order_service.update_order(
            order_id,
            {
                "status": "Paid",
                "payment_reference": transaction_id,
                "paid_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        logger.info("Order %s reconciled to Paid from webhook", order_id)

        # Unblock the owner; their cart is cleared on their next checkout call
        attempt = self.registry.find_by_order(str(order_id))
        if attempt is not None and attempt.awaiting_reconciliation:
            attempt.transition(CheckoutState.ORDER_FINALIZED)
            await self._send_confirmation(order)
        return order

    async def handle_payment_canceled(self, event: dict[str, Any]) -> None:
        """Process payment_intent.canceled by failing the pending order."""
        intent = event["data"]["object"]
        order_id = intent.get("metadata", {}).get("order_id")
        if not order_id:
            logger.warning("Webhook missing order_id in metadata: %s", intent.get("id"))
            return
        await self._mark_failed(order_id, "cancelled")

    async def _mark_failed(self, order_id: str, reason: str) -> bool:
        # Nothing irreversible has happened on these paths; a failed write
        # only leaves a Pending row for the expiry sweep.
        try:
            await self.order_service.mark_failed(order_id, reason)
            return True
        except Exception as e:
            logger.warning("Could not mark order %s failed (%s): %s", order_id, reason, e)
            return False

    def _settle_cart(self, owner: CartOwner, cart: CartStore) -> None:
        """Clear a cart whose order was finalized out of band by the webhook."""
        attempt = self.registry.get(owner.key)
        if attempt is None or attempt.state is not CheckoutState.ORDER_FINALIZED or attempt.cart_cleared:
            return
        cart.clear()
        attempt.cart_cleared = True
        logger.info("Cleared cart for %s after order %s was reconciled", owner.key, attempt.order_id)

    async def _send_confirmation(self, order: dict[str, Any]) -> None:
        # Best-effort: the order is already Paid
        try:
            customer = order.get("customer") or {}
            if not customer.get("email"):
                return
            await self.email_service.send_order_confirmation(
                to_email=customer["email"],
                customer_name=customer.get("name", ""),
                order_id=str(order["id"]),
                items=order.get("items") or [],
                totals=order.get("totals") or {},
            )
        except Exception as e:
            logger.warning("Confirmation email for order %s not sent: %s", order.get("id"), e)


class PendingOrderSweeper:
    """Background task that expires abandoned pending orders."""

    def __init__(self, interval_seconds: int = 300) -> None:
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start background sweep task."""
        if self._task is None:
            self._task = asyncio.create_task(self._loop())
            logger.info("Pending order sweeper started")

    async def stop(self) -> None:
        """Stop background sweep task."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Pending order sweeper stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await CheckoutService().expire_stale_pending_orders()
                removed = get_checkout_registry().cleanup()
                if removed:
                    logger.debug("Dropped %d resolved checkout attempts", removed)
            except Exception as e:
                logger.error("Pending order sweep failed: %s", e)


# Global singleton instance
_sweeper: PendingOrderSweeper | None = None


async def init_pending_order_sweeper() -> PendingOrderSweeper:
    """Start the sweeper. Call at app startup."""
    global _sweeper
    if _sweeper is None:
        _sweeper = PendingOrderSweeper()
    await _sweeper.start()
    return _sweeper


async def shutdown_pending_order_sweeper() -> None:
    """Stop the sweeper. Call at app shutdown."""
    global _sweeper
    if _sweeper:
        await _sweeper.stop()
