# backend/models/order.py
import enum
from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship
from database import Base, utcnow

# Enumeration of order lifecycle states
class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

# Happy path, in order
STATUS_FLOW = [OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED]

CANCELLABLE_STATUSES = {OrderStatus.PENDING, OrderStatus.PROCESSING}


def can_transition(old: OrderStatus, new: OrderStatus) -> bool:
    """
    Forward moves along STATUS_FLOW are allowed, as is re-setting the current
    status (tracking updates). CANCELLED is terminal and only reachable from
    PENDING or PROCESSING.
    """
    old, new = OrderStatus(old), OrderStatus(new)
    if old == OrderStatus.CANCELLED:
        return False
    if new == OrderStatus.CANCELLED:
        return old in CANCELLABLE_STATUSES
    return STATUS_FLOW.index(new) >= STATUS_FLOW.index(old)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)

    # Pricing snapshot, fixed at creation
    subtotal = Column(Float, nullable=False)
    tax = Column(Float, nullable=False)
    shipping = Column(Float, nullable=False)
    total = Column(Float, nullable=False)

    # Shipping address details
    shipping_first_name = Column(String, nullable=False)
    shipping_last_name = Column(String, nullable=False)
    shipping_address = Column(String, nullable=False)
    shipping_city = Column(String, nullable=False)
    shipping_state = Column(String, nullable=False)
    shipping_zip_code = Column(String, nullable=False)
    shipping_country = Column(String, nullable=False)
    shipping_phone = Column(String, nullable=False)

    payment_intent_id = Column(String, nullable=True)

    # Fulfillment details
    tracking_number = Column(String, nullable=True)
    carrier = Column(String, nullable=True)
    estimated_delivery = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")
    user = relationship("User")

class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    product_title = Column(String, nullable=False) # Title at the moment of purchase
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False) # Undiscounted unit price
    total = Column(Float, nullable=False) # Discounted line total

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
