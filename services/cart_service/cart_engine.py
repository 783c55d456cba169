"""
Cart Engine Module

The in-session shopping cart: an ordered collection of purchasable lines keyed
by product + size, with per-line quantity bounds and a store-wide minimum order
value that gates checkout.

Rules:
    - A line is identified by (product_id, selected_size). Re-adding the same
      pair increments the existing line instead of creating a duplicate.
    - Every line keeps minimum_order_quantity <= quantity <= stock_at_add_time.
      Out-of-range requests are clamped to the nearest bound, never rejected.
    - Updating a line below its minimum order quantity removes the line.
    - total_items / total_price are recomputed from the lines on every read.

No operation here raises for bad quantities or unknown ids. Quantity-affecting
operations return a QuantityChange so callers can tell the shopper when their
request was clamped.

Example Usage:
    ```python
    engine = CartEngine(minimum_order_value=200)
    change = engine.add_item(AddItemInput(
        product_id="P1", name_en="Combat Boots", name_ka="საბრძოლო ჩექმები",
        unit_price=50, stock_at_add_time=3, selected_size="43",
    ))
    engine.update_quantity(change.cart_item_id, 10)   # clamped to 3
    engine.total_price                                # 150.0
    engine.get_global_minimum_remaining()             # 50.0
    ```
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import UUID, uuid5

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

GLOBAL_MINIMUM_ORDER_VALUE = 200.0
FLOAT_TOLERANCE = 1e-9

# Fixed namespace so identities survive restarts and persisted carts
CART_ITEM_NAMESPACE = UUID("6c1f3a52-0d4e-4f4b-9a57-1b7c2e9d8a10")


def normalize_size(selected_size: Optional[str]) -> Optional[str]:
    """Blank sizes mean "no size dimension"."""
    if selected_size is None:
        return None
    selected_size = str(selected_size).strip()
    return selected_size or None


def cart_item_id_for(product_id: str, selected_size: Optional[str] = None) -> str:
    """Deterministic line identity for a product + size pair."""
    key = json.dumps([str(product_id), normalize_size(selected_size) or ""], ensure_ascii=False)
    return str(uuid5(CART_ITEM_NAMESPACE, key))


def clamp_quantity(quantity: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(quantity, maximum))


def _coerce_min_order_quantity(value: Any) -> int:
    if value is None or value == "":
        return 1
    value = int(value)
    return value if value >= 1 else 1


class CartLine(BaseModel):
    """One purchasable unit the shopper intends to buy."""

    cart_item_id: str
    product_id: str
    name_en: str
    name_ka: str = ""
    unit_price: float = Field(ge=0)
    currency: str = "GEL"
    image: Optional[str] = None
    quantity: int
    selected_size: Optional[str] = None
    stock_at_add_time: int = Field(ge=0)
    min_order_quantity: int = 1

    @field_validator("selected_size", mode="before")
    @classmethod
    def blank_size_is_none(cls, value):
        return normalize_size(value)

    @field_validator("min_order_quantity", mode="before")
    @classmethod
    def minimum_defaults_to_one(cls, value):
        return _coerce_min_order_quantity(value)

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def can_hold_any_quantity(self) -> bool:
        return self.stock_at_add_time >= self.min_order_quantity


class AddItemInput(BaseModel):
    """Product snapshot handed over by the catalog pages."""

    product_id: str
    name_en: str
    name_ka: str = ""
    unit_price: float = Field(ge=0)
    currency: str = "GEL"
    image: Optional[str] = None
    stock_at_add_time: int = Field(ge=0)
    min_order_quantity: int = 1
    selected_size: Optional[str] = None
    quantity: Optional[int] = None

    @field_validator("selected_size", mode="before")
    @classmethod
    def blank_size_is_none(cls, value):
        return normalize_size(value)

    @field_validator("min_order_quantity", mode="before")
    @classmethod
    def minimum_defaults_to_one(cls, value):
        return _coerce_min_order_quantity(value)


class QuantityChange(BaseModel):
    """What a quantity-affecting operation actually did."""

    cart_item_id: str
    requested: int
    applied: int
    clamped: bool = False
    removed: bool = False


class CartEngine:
    """Authoritative in-session list of cart lines."""

    def __init__(self, minimum_order_value: float = GLOBAL_MINIMUM_ORDER_VALUE):
        self.minimum_order_value = float(minimum_order_value)
        self._lines: Dict[str, CartLine] = {}

    @classmethod
    def from_lines(
        cls,
        lines: Iterable[Union[CartLine, Dict[str, Any]]],
        minimum_order_value: float = GLOBAL_MINIMUM_ORDER_VALUE,
    ) -> "CartEngine":
        """Rebuild a cart from persisted lines, restoring every invariant."""
        engine = cls(minimum_order_value=minimum_order_value)
        for raw in lines:
            data = raw.model_dump() if isinstance(raw, CartLine) else dict(raw)
            # Identity is always derived, so older ids are replaced
            data["cart_item_id"] = cart_item_id_for(data.get("product_id", ""), data.get("selected_size"))
            line = CartLine.model_validate(data)
            if not line.can_hold_any_quantity():
                logger.warning(f"Dropping persisted line {line.cart_item_id}: stock below minimum order quantity")
                continue

            existing = engine._lines.get(line.cart_item_id)
            quantity = line.quantity + (existing.quantity if existing else 0)
            source = existing or line
            engine._lines[line.cart_item_id] = source.model_copy(
                update={"quantity": clamp_quantity(quantity, source.min_order_quantity, source.stock_at_add_time)}
            )
        return engine

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def lines(self) -> List[CartLine]:
        """Lines in the order they were first added."""
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def _raw_total(self) -> float:
        return sum(line.line_total for line in self._lines.values())

    @property
    def total_price(self) -> float:
        return round(self._raw_total(), 2)

    def get_line(self, cart_item_id: str) -> Optional[CartLine]:
        return self._lines.get(cart_item_id)

    def get_global_minimum(self) -> float:
        return self.minimum_order_value

    def is_global_minimum_met(self) -> bool:
        # Unrounded, so 199.996 does not pass as 200.00; the epsilon only absorbs float summing error
        return self._raw_total() >= self.minimum_order_value - FLOAT_TOLERANCE

    def get_global_minimum_remaining(self) -> float:
        return round(max(0.0, self.minimum_order_value - self._raw_total()), 2)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_item(self, item: AddItemInput) -> QuantityChange:
        """Add a product snapshot, merging with an existing product + size line."""
        cart_item_id = cart_item_id_for(item.product_id, item.selected_size)
        existing = self._lines.get(cart_item_id)

        if existing is not None:
            increment = item.quantity if item.quantity is not None else 1
            requested = existing.quantity + increment
            applied = clamp_quantity(requested, existing.min_order_quantity, existing.stock_at_add_time)
            self._lines[cart_item_id] = existing.model_copy(update={"quantity": applied})
            return self._change(cart_item_id, requested, applied)

        requested = item.quantity if item.quantity is not None else item.min_order_quantity
        if item.stock_at_add_time < item.min_order_quantity:
            logger.info(
                f"Product {item.product_id} cannot be added: stock {item.stock_at_add_time} "
                f"below minimum order quantity {item.min_order_quantity}"
            )
            return QuantityChange(cart_item_id=cart_item_id, requested=requested, applied=0, clamped=True)

        applied = min(max(requested, item.min_order_quantity), item.stock_at_add_time)
        self._lines[cart_item_id] = CartLine(
            cart_item_id=cart_item_id,
            product_id=item.product_id,
            name_en=item.name_en,
            name_ka=item.name_ka,
            unit_price=item.unit_price,
            currency=item.currency,
            image=item.image,
            quantity=applied,
            selected_size=item.selected_size,
            stock_at_add_time=item.stock_at_add_time,
            min_order_quantity=item.min_order_quantity,
        )
        return self._change(cart_item_id, requested, applied)

    def update_quantity(self, cart_item_id: str, new_quantity: int) -> Optional[QuantityChange]:
        """Set a line's quantity; below its minimum the line is removed."""
        line = self._lines.get(cart_item_id)
        if line is None:
            return None

        if new_quantity < line.min_order_quantity:
            del self._lines[cart_item_id]
            return QuantityChange(cart_item_id=cart_item_id, requested=new_quantity, applied=0, removed=True)

        applied = min(new_quantity, line.stock_at_add_time)
        self._lines[cart_item_id] = line.model_copy(update={"quantity": applied})
        return self._change(cart_item_id, new_quantity, applied)

    def remove_item(self, cart_item_id: str) -> bool:
        return self._lines.pop(cart_item_id, None) is not None

    def clear_cart(self) -> None:
        self._lines.clear()

    # ------------------------------------------------------------------
    # Checkout handoff
    # ------------------------------------------------------------------

    def snapshot(self) -> List[Dict[str, Any]]:
        """Order payload rows read by the checkout flow."""
        return [
            {
                "cart_item_id": line.cart_item_id,
                "product_id": line.product_id,
                "name_en": line.name_en,
                "name_ka": line.name_ka,
                "quantity": line.quantity,
                "selected_size": line.selected_size,
                "unit_price": line.unit_price,
                "currency": line.currency,
            }
            for line in self._lines.values()
        ]

    def to_lines(self) -> List[Dict[str, Any]]:
        """Serializable form used by the persisted cart."""
        return [line.model_dump() for line in self._lines.values()]

    def _change(self, cart_item_id: str, requested: int, applied: int) -> QuantityChange:
        clamped = applied != requested
        if clamped:
            logger.debug(f"Clamped line {cart_item_id} from {requested} to {applied}")
        return QuantityChange(cart_item_id=cart_item_id, requested=requested, applied=applied, clamped=clamped)
