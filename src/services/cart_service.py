"""Cart Store: the in-progress cart, mirrored to durable key-value storage."""

import json
import logging
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable

from src.core.config import get_settings
from src.core.storage import KeyValueStore
from src.models.cart import StoredCartLine
from src.models.order import OrderTotals

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal) -> Decimal:
    """Quantize a decimal amount to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class CorruptCartError(ValueError):
    """Stored cart data could not be parsed into valid lines."""


@dataclass(frozen=True)
class CartLine:
    """A single product in the cart. quantity is always >= 1."""

    product_id: str
    name: str
    unit_price: Decimal
    image_ref: str
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    def to_dict(self) -> StoredCartLine:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": str(to_money(self.unit_price)),
            "image_ref": self.image_ref,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CartLine":
        """Parse a stored line.

        Also accepts the legacy browser shape (id/price/imageUrl) so carts
        saved by the old storefront scripts still load.

        Raises:
            CorruptCartError: If the entry is not a valid cart line.
        """
        if not isinstance(data, dict):
            raise CorruptCartError(f"Cart line is not an object: {data!r}")

        product_id = data.get("product_id", data.get("id"))
        raw_price = data.get("unit_price", data.get("price"))
        quantity = data.get("quantity")

        if not isinstance(product_id, str) or not product_id:
            raise CorruptCartError("Cart line has no product id")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise CorruptCartError(f"Cart line {product_id} has invalid quantity {quantity!r}")
        try:
            unit_price = Decimal(str(raw_price))
        except InvalidOperation as e:
            raise CorruptCartError(f"Cart line {product_id} has invalid price {raw_price!r}") from e
        if not unit_price.is_finite() or unit_price < 0:
            raise CorruptCartError(f"Cart line {product_id} has invalid price {raw_price!r}")

        return cls(
            product_id=product_id,
            name=str(data.get("name") or ""),
            unit_price=to_money(unit_price),
            image_ref=str(data.get("image_ref", data.get("imageUrl")) or ""),
            quantity=quantity,
        )


@dataclass(frozen=True)
class Totals:
    """Derived cart totals. Never stored on the cart itself."""

    subtotal: Decimal
    shipping: Decimal
    total: Decimal

    def to_dict(self) -> OrderTotals:
        return {
            "subtotal": str(self.subtotal),
            "shipping": str(self.shipping),
            "total": str(self.total),
        }


def compute_totals(lines: list[CartLine], shipping_fee: Decimal) -> Totals:
    """Compute totals from scratch over the given lines.

    Shipping is the flat fee whenever the subtotal is positive, else zero.
    """
    subtotal = to_money(sum((line.unit_price * line.quantity for line in lines), ZERO))
    shipping = to_money(shipping_fee) if subtotal > 0 else ZERO
    return Totals(subtotal=subtotal, shipping=shipping, total=to_money(subtotal + shipping))


def serialize_lines(lines: list[CartLine]) -> str:
    """Serialize cart lines to the JSON string kept under the cart key."""
    return json.dumps([line.to_dict() for line in lines])


def deserialize_lines(raw: str) -> list[CartLine]:
    """Parse a stored cart value.

    Raises:
        CorruptCartError: If the value is not a JSON list of unique, valid lines.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise CorruptCartError(f"Stored cart is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise CorruptCartError("Stored cart is not a list")

    lines = [CartLine.from_dict(entry) for entry in data]
    seen: set[str] = set()
    for line in lines:
        if line.product_id in seen:
            raise CorruptCartError(f"Duplicate product {line.product_id} in stored cart")
        seen.add(line.product_id)
    return lines


CartListener = Callable[["CartStore"], None]


class CartStore:
    """Single source of truth for one cart, persisted after every mutation.

    Storage read failures and corrupt values load as an empty cart (the
    corrupt key is reset). Write failures are logged and the in-memory cart
    is kept, so a flaky store never crashes a request.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        key: str,
        shipping_fee: Decimal | None = None,
    ) -> None:
        self.storage = storage
        self.key = key
        self.shipping_fee = (
            shipping_fee if shipping_fee is not None else get_settings().shipping_flat_fee
        )
        self._listeners: list[CartListener] = []
        self._lines: list[CartLine] = self._load()

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def get_line(self, product_id: str) -> CartLine | None:
        for line in self._lines:
            if line.product_id == product_id:
                return line
        return None

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_item(
        self,
        product_id: str,
        name: str,
        unit_price: Decimal,
        image_ref: str = "",
        quantity: int = 1,
    ) -> CartLine:
        """Add a product, accumulating quantity if it is already in the cart.

        Raises:
            ValueError: If quantity < 1, price < 0 or product_id is empty.
        """
        if not product_id:
            raise ValueError("product_id is required")
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        unit_price = Decimal(str(unit_price))
        if unit_price < 0:
            raise ValueError("unit_price must not be negative")

        for index, line in enumerate(self._lines):
            if line.product_id == product_id:
                updated = replace(line, quantity=line.quantity + quantity)
                self._lines[index] = updated
                break
        else:
            updated = CartLine(
                product_id=product_id,
                name=name,
                unit_price=to_money(unit_price),
                image_ref=image_ref,
                quantity=quantity,
            )
            self._lines.append(updated)

        logger.debug("Added %d x %s to cart %s", quantity, product_id, self.key)
        self._changed()
        return updated

    def set_quantity(self, product_id: str, quantity: int) -> bool:
        """Set a line's quantity exactly; quantity <= 0 removes the line.

        Returns:
            bool: False if the product is not in the cart (nothing changes).
        """
        if quantity <= 0:
            return self.remove_item(product_id)

        for index, line in enumerate(self._lines):
            if line.product_id == product_id:
                self._lines[index] = replace(line, quantity=quantity)
                self._changed()
                return True
        return False

    def remove_item(self, product_id: str) -> bool:
        """Remove a line. Removing an absent product is a no-op.

        Returns:
            bool: True if a line was removed.
        """
        remaining = [line for line in self._lines if line.product_id != product_id]
        if len(remaining) == len(self._lines):
            return False
        self._lines = remaining
        self._changed()
        return True

    def compute_totals(self) -> Totals:
        return compute_totals(self._lines, self.shipping_fee)

    def clear(self) -> None:
        """Empty the cart and persist the empty state."""
        self._lines = []
        logger.info("Cart %s cleared", self.key)
        self._changed()

    def replace_lines(self, lines: list[CartLine]) -> None:
        """Overwrite the whole cart, e.g. after a sign-in merge."""
        self._lines = list(lines)
        self._changed()

    def _load(self) -> list[CartLine]:
        try:
            raw = self.storage.get_item(self.key)
        except Exception as e:
            logger.error("Failed to read cart %s, starting empty: %s", self.key, e)
            return []

        if raw is None:
            return []

        try:
            return deserialize_lines(raw)
        except CorruptCartError as e:
            logger.warning("Corrupt cart %s reset to empty: %s", self.key, e)
            self._reset_storage()
            return []

    def _reset_storage(self) -> None:
        try:
            self.storage.remove_item(self.key)
        except Exception as e:
            logger.error("Failed to reset corrupt cart %s: %s", self.key, e)

    def _persist(self) -> None:
        try:
            self.storage.set_item(self.key, serialize_lines(self._lines))
        except Exception as e:
            logger.error("Failed to persist cart %s: %s", self.key, e)

    def _changed(self) -> None:
        self._persist()
        for listener in list(self._listeners):
            listener(self)
