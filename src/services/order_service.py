"""Order persistence in the remote document database."""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from src.core.supabase import get_supabase_client
from src.models.order import OrderCreate, OrderUpdate

logger = logging.getLogger(__name__)


class OrderNotFoundError(LookupError):
    """No order row matched an update."""


class OrderService:
    """Service for reading and writing rows in the orders table."""

    TABLE = "orders"

    def __init__(self) -> None:
        """Initialize order service with Supabase client."""
        self.client = get_supabase_client()

    async def create_order(self, data: OrderCreate) -> dict[str, Any]:
        """Insert a new order.

        Args:
            data: Order fields. status defaults to Pending.

        Returns:
            dict: The created order row, including its generated id.
        """
        row: dict[str, Any] = {
            "status": "Pending",
            "payment_reference": None,
            "created_at": datetime.now(timezone.utc).isoformat(),
            **data,
        }
        response = self.client.table(self.TABLE).insert(row).execute()
        order = response.data[0]
        logger.info("Created %s order %s", order.get("status"), order["id"])
        return order

    async def get_order(self, order_id: UUID | str) -> dict[str, Any] | None:
        """Get an order by ID.

        Args:
            order_id: The order's UUID.

        Returns:
            dict | None: The order data or None if not found.
        """
        response = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("id", str(order_id))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def update_order(self, order_id: UUID | str, data: OrderUpdate) -> dict[str, Any]:
        """Update an existing order.

        Args:
            order_id: The order's UUID.
            data: Fields to change.

        Returns:
            dict: The updated order row.

        Raises:
            OrderNotFoundError: If no row was updated.
        """
        update_data = {**data, "updated_at": datetime.now(timezone.utc).isoformat()}
        response = (
            self.client.table(self.TABLE)
            .update(update_data)
            .eq("id", str(order_id))
            .execute()
        )

        if not response.data:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return response.data[0]

    async def mark_failed(self, order_id: UUID | str, reason: str) -> dict[str, Any]:
        """Move a pending order to Failed.

        Paid orders are never touched; the status filter keeps the
        Pending -> Paid transition one-way.
        """
        response = (
            self.client.table(self.TABLE)
            .update(
                {
                    "status": "Failed",
                    "failure_reason": reason,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            )
            .eq("id", str(order_id))
            .eq("status", "Pending")
            .execute()
        )

        if not response.data:
            raise OrderNotFoundError(f"No pending order {order_id}")
        logger.info("Order %s marked Failed (%s)", order_id, reason)
        return response.data[0]

    async def list_orders_for_user(self, user_id: UUID) -> list[dict[str, Any]]:
        """Get all orders for a signed-in user, newest first.

        Args:
            user_id: The user's UUID.

        Returns:
            list[dict]: List of order data.
        """
        response = (
            self.client.table(self.TABLE)
            .select("*")
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .execute()
        )

        return response.data or []

    async def list_stale_pending(self, cutoff: datetime) -> list[dict[str, Any]]:
        """Get Pending orders created before cutoff.

        Args:
            cutoff: Orders created before this moment are stale.

        Returns:
            list[dict]: Stale pending orders.
        """
        response = (
            self.client.table(self.TABLE)
            .select("id, created_at")
            .eq("status", "Pending")
            .lt("created_at", cutoff.isoformat())
            .execute()
        )

        return response.data or []

    async def can_access_order(
        self,
        order_id: UUID,
        user_id: UUID | None = None,
        cart_token: str | None = None,
    ) -> bool:
        """Check if a user or anonymous cart owner can access an order.

        Args:
            order_id: The order's UUID.
            user_id: Optional user ID for signed-in users.
            cart_token: Optional anonymous cart token.

        Returns:
            bool: True if access is allowed.
        """
        order = await self.get_order(order_id)
        if not order:
            return False

        if user_id and order.get("user_id") == str(user_id):
            return True

        if cart_token and order.get("cart_token") == cart_token:
            return True

        return False
