from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class OrderItemRequest(BaseModel):
    """Order line as sent by the storefront."""

    product_id: str
    quantity: int = Field(ge=1)
    selected_size: Optional[str] = None


class ShippingInfo(BaseModel):
    address: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = "Georgia"
    notes: str = ""


class PlaceOrderRequest(BaseModel):
    """Request to create an order."""

    items: List[OrderItemRequest]
    shipping: ShippingInfo
    user_id: Optional[str] = None
    coupon_code: Optional[str] = None
    discount_amount: float = Field(default=0.0, ge=0)


class PlaceOrderResponse(BaseModel):
    success: bool = True
    order_id: str
    total_amount: float
    discount_amount: float
    message: str = "Order created successfully"


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    product_name: str
    product_sku: Optional[str] = None
    quantity: int
    unit_price: float
    total_price: float
    selected_size: Optional[str] = None


class OrderResponse(BaseModel):
    """Response model for order."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    status: str
    payment_status: str
    total_amount: float
    discount_amount: float
    currency: str
    shipping_address: str
    shipping_city: str
    shipping_postal_code: str
    shipping_country: str
    notes: str
    created_at: datetime
    items: List[OrderItemResponse]


class UserOrdersResponse(BaseModel):
    user_id: str
    orders: List[OrderResponse]
    total_orders: int


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    service: str
    version: str
