from typing import List, Optional

from pydantic import BaseModel

from services.cart_service.cart_engine import AddItemInput, CartEngine, CartLine, QuantityChange


class AddItemRequest(AddItemInput):
    """Request model for adding a product snapshot to the cart."""


class UpdateQuantityRequest(BaseModel):
    """Request model for updating a line's quantity."""

    quantity: int


class ShippingDetails(BaseModel):
    address: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = "Georgia"
    notes: str = ""


class CheckoutRequest(BaseModel):
    """Request model for handing the cart to checkout."""

    user_id: Optional[str] = None
    shipping: ShippingDetails
    coupon_code: Optional[str] = None
    discount_amount: float = 0.0


class MinimumOrderResponse(BaseModel):
    met: bool
    remaining: float
    minimum: float


class CartResponse(BaseModel):
    """Response model for cart."""

    cart_id: str
    items: List[CartLine]
    total_items: int
    total_price: float
    minimum_order: MinimumOrderResponse

    @classmethod
    def from_engine(cls, cart_id: str, engine: CartEngine) -> "CartResponse":
        return cls(
            cart_id=cart_id,
            items=engine.lines,
            total_items=engine.total_items,
            total_price=engine.total_price,
            minimum_order=MinimumOrderResponse(
                met=engine.is_global_minimum_met(),
                remaining=engine.get_global_minimum_remaining(),
                minimum=engine.get_global_minimum(),
            ),
        )


class CartChangeResponse(BaseModel):
    """Cart after a mutation plus what the mutation actually applied."""

    message: str
    change: Optional[QuantityChange] = None
    cart: CartResponse


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    service: str
    version: str
