"""Unit tests for the remote cart mirror and sign-in merge."""

import json
from decimal import Decimal
from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest

from src.core.storage import MemoryKeyValueStore, StorageError
from src.services.cart_service import CartStore
from src.services.cart_sync_service import CartSyncService, RemoteCartStore

USER_ID = UUID("550e8400-e29b-41d4-a716-446655440000")
FEE = Decimal("8.00")


@pytest.fixture
def mock_client() -> MagicMock:
    with patch("src.services.cart_sync_service.get_supabase_client") as mock_get:
        client = MagicMock()
        mock_get.return_value = client
        yield client


def memory_cart(key: str) -> CartStore:
    return CartStore(MemoryKeyValueStore(), key, shipping_fee=FEE)


class TestRemoteCartStore:
    """Tests for the carts table view."""

    def test_get_item_serializes_items(self, mock_client: MagicMock) -> None:
        items = [{"product_id": "A", "name": "Mug", "unit_price": "12.50", "image_ref": "", "quantity": 2}]
        response = MagicMock()
        response.data = {"items": items}
        mock_client.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = response

        store = RemoteCartStore(USER_ID, CartSyncService())

        assert json.loads(store.get_item("ignored")) == items
        mock_client.table.assert_called_with("carts")
        mock_client.table.return_value.select.return_value.eq.assert_called_with("user_id", str(USER_ID))

    def test_get_item_without_row_returns_none(self, mock_client: MagicMock) -> None:
        mock_client.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = None

        assert RemoteCartStore(USER_ID, CartSyncService()).get_item("ignored") is None

    def test_cart_store_over_remote_loads_lines(self, mock_client: MagicMock) -> None:
        response = MagicMock()
        response.data = {"items": [{"product_id": "A", "name": "Mug", "unit_price": "12.50", "quantity": 2}]}
        mock_client.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = response

        cart = CartStore(RemoteCartStore(USER_ID, CartSyncService()), "storefrontCart:user", shipping_fee=FEE)

        assert cart.compute_totals().total == Decimal("33.00")

    def test_set_item_upserts_and_publishes(self, mock_client: MagicMock) -> None:
        sync = CartSyncService()
        received = []
        sync.subscribe(USER_ID, received.append)
        value = json.dumps([{"product_id": "A", "name": "Mug", "unit_price": "1.00", "quantity": 1}])

        RemoteCartStore(USER_ID, sync).set_item("ignored", value)

        row = mock_client.table.return_value.upsert.call_args[0][0]
        assert row["user_id"] == str(USER_ID)
        assert row["items"][0]["product_id"] == "A"
        assert [line.product_id for line in received[0]] == ["A"]

    def test_write_failure_raises_and_does_not_publish(self, mock_client: MagicMock) -> None:
        mock_client.table.return_value.upsert.return_value.execute.side_effect = Exception("offline")
        sync = CartSyncService()
        callback = MagicMock()
        sync.subscribe(USER_ID, callback)

        with pytest.raises(StorageError):
            RemoteCartStore(USER_ID, sync).set_item("ignored", "[]")

        callback.assert_not_called()


class TestSubscriptions:
    def test_unsubscribe_stops_notifications(self) -> None:
        sync = CartSyncService()
        callback = MagicMock()
        unsubscribe = sync.subscribe(USER_ID, callback)

        unsubscribe()
        sync.publish(USER_ID, "[]")

        callback.assert_not_called()
        assert sync.subscriber_count(USER_ID) == 0

    def test_failing_subscriber_does_not_block_others(self) -> None:
        sync = CartSyncService()
        broken = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        sync.subscribe(USER_ID, broken)
        sync.subscribe(USER_ID, healthy)

        sync.publish(USER_ID, "[]")

        healthy.assert_called_once_with([])

    def test_unparseable_value_is_not_published(self) -> None:
        sync = CartSyncService()
        callback = MagicMock()
        sync.subscribe(USER_ID, callback)

        sync.publish(USER_ID, "not json")

        callback.assert_not_called()


class TestMergeOnSignIn:
    """Tests for the sign-in merge policy."""

    @pytest.mark.asyncio
    async def test_remote_quantity_wins_and_local_only_lines_append(self) -> None:
        remote = memory_cart("remote")
        remote.add_item("A", "Mug", Decimal("12.50"), quantity=1)
        local = memory_cart("local")
        local.add_item("A", "Mug", Decimal("12.50"), quantity=5)
        local.add_item("B", "Tea", Decimal("3.00"), quantity=2)

        moved = await CartSyncService().merge_on_sign_in(remote, local)

        assert moved == 1
        assert [(line.product_id, line.quantity) for line in remote.lines] == [("A", 1), ("B", 2)]
        assert local.is_empty

    @pytest.mark.asyncio
    async def test_merge_is_applied_once(self) -> None:
        remote = memory_cart("remote")
        local = memory_cart("local")
        local.add_item("B", "Tea", Decimal("3.00"), quantity=2)
        sync = CartSyncService()

        await sync.merge_on_sign_in(remote, local)
        moved_again = await sync.merge_on_sign_in(remote, local)

        assert moved_again == 0
        assert remote.get_line("B").quantity == 2

    @pytest.mark.asyncio
    async def test_empty_local_cart_leaves_remote_untouched(self) -> None:
        remote = memory_cart("remote")
        remote.add_item("A", "Mug", Decimal("12.50"))
        listener = MagicMock()
        remote.subscribe(listener)

        moved = await CartSyncService().merge_on_sign_in(remote, memory_cart("local"))

        assert moved == 0
        listener.assert_not_called()
