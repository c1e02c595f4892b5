from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime, timezone

from models.order import OrderStatus
from schemas.common import ORMBase


# Output schema for an individual order line item
class OrderItemOut(ORMBase):
    id: int
    product_id: int
    product_title: str
    quantity: int
    price: float
    total: float


class ShippingAddress(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    country: str = Field(min_length=1)
    phone: str = Field(min_length=1)


class OrderLine(BaseModel):
    id: int = Field(gt=0)
    quantity: int = Field(ge=1)


# Input schema for creating a new order; without products the cart is checked out
class OrderCreatePayload(BaseModel):
    products: Optional[List[OrderLine]] = Field(None, min_length=1)
    shipping_address: ShippingAddress
    payment_intent_id: Optional[str] = None


# Output schema representing the full order details
class OrderResponse(ORMBase):
    id: int
    user_id: int
    status: OrderStatus
    subtotal: float
    tax: float
    shipping: float
    total: float
    shipping_address: ShippingAddress
    payment_intent_id: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: List[OrderItemOut]


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


# Schema for updating order status (admin)
class OrderStatusPatch(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery: Optional[datetime] = None

    # Stored as naive UTC like every other timestamp
    @field_validator("estimated_delivery")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class TrackingEvent(BaseModel):
    status: str
    location: str
    timestamp: Optional[datetime] = None
    description: str


class TrackingInfo(BaseModel):
    order_id: int
    status: OrderStatus
    carrier: Optional[str] = None
    tracking_number: str
    tracking_url: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    events: List[TrackingEvent]


class OrderStats(BaseModel):
    total_orders: int
    pending_orders: int
    completed_orders: int
    cancelled_orders: int
    revenue: float
