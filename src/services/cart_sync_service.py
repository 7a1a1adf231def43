"""Remote per-user cart mirror and sign-in merge."""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import datetime, timezone
from threading import Lock
from typing import Callable
from uuid import UUID

from src.core.storage import StorageError
from src.core.supabase import get_supabase_client
from src.services.cart_service import CartLine, CartStore, CorruptCartError, deserialize_lines

logger = logging.getLogger(__name__)

CartChangeCallback = Callable[[list[CartLine]], None]


class RemoteCartStore:
    """Key-value view over one user's row in the `carts` table.

    The user owns exactly one remote cart, so the key passed by the
    Cart Store is ignored.
    """

    TABLE = "carts"

    def __init__(self, user_id: UUID, sync_service: "CartSyncService") -> None:
        self.user_id = user_id
        self.sync_service = sync_service
        self.client = get_supabase_client()

    def get_item(self, key: str) -> str | None:
        try:
            response = (
                self.client.table(self.TABLE)
                .select("items")
                .eq("user_id", str(self.user_id))
                .maybe_single()
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to read remote cart for {self.user_id}: {e}") from e

        if not response or not response.data:
            return None
        return json.dumps(response.data.get("items") or [])

    def set_item(self, key: str, value: str) -> None:
        items = json.loads(value)
        try:
            self.client.table(self.TABLE).upsert(
                {
                    "user_id": str(self.user_id),
                    "items": items,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            ).execute()
        except Exception as e:
            raise StorageError(f"Failed to write remote cart for {self.user_id}: {e}") from e

        self.sync_service.publish(self.user_id, value)

    def remove_item(self, key: str) -> None:
        try:
            self.client.table(self.TABLE).delete().eq("user_id", str(self.user_id)).execute()
        except Exception as e:
            raise StorageError(f"Failed to delete remote cart for {self.user_id}: {e}") from e

        self.sync_service.publish(self.user_id, "[]")


class CartSyncService:
    """Live subscriptions on remote carts, plus the sign-in merge policy."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[CartChangeCallback]] = defaultdict(list)
        self._lock = Lock()

    def store_for(self, user_id: UUID) -> RemoteCartStore:
        return RemoteCartStore(user_id, self)

    def subscribe(self, user_id: UUID, callback: CartChangeCallback) -> Callable[[], None]:
        """Subscribe to writes on a user's remote cart.

        Returns:
            Callable: Unsubscribe function.
        """
        key = str(user_id)
        with self._lock:
            self._listeners[key].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(key, [])
                if callback in listeners:
                    listeners.remove(callback)
                if not listeners:
                    self._listeners.pop(key, None)

        return unsubscribe

    def publish(self, user_id: UUID, raw_value: str) -> None:
        """Notify subscribers that a user's remote cart changed."""
        with self._lock:
            listeners = list(self._listeners.get(str(user_id), []))
        if not listeners:
            return

        try:
            lines = deserialize_lines(raw_value)
        except CorruptCartError as e:
            logger.warning("Not publishing unparseable cart for %s: %s", user_id, e)
            return

        for callback in listeners:
            try:
                callback(lines)
            except Exception as e:
                logger.error("Cart subscriber for %s failed: %s", user_id, e)

    def subscriber_count(self, user_id: UUID) -> int:
        with self._lock:
            return len(self._listeners.get(str(user_id), []))

    async def merge_on_sign_in(self, remote: CartStore, local: CartStore) -> int:
        """Merge an anonymous cart into a user's remote cart, once.

        Lines already in the remote cart keep their remote quantity. Lines
        only in the local cart are appended. The local cart is then cleared,
        so repeating the call has no further effect.

        Args:
            remote: Cart Store over the user's remote cart.
            local: Cart Store over the anonymous browser cart.

        Returns:
            int: Number of lines moved from the local cart.
        """
        if local.is_empty:
            return 0

        remote_ids = {line.product_id for line in remote.lines}
        local_only = [line for line in local.lines if line.product_id not in remote_ids]

        if local_only:
            remote.replace_lines(remote.lines + local_only)
        local.clear()

        logger.info("Merged %d local cart lines into %s", len(local_only), remote.key)
        return len(local_only)


# Global singleton instance
_cart_sync_service: CartSyncService | None = None


def get_cart_sync_service() -> CartSyncService:
    """Get or create the global cart sync service."""
    global _cart_sync_service
    if _cart_sync_service is None:
        _cart_sync_service = CartSyncService()
    return _cart_sync_service
