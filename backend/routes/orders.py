# backend/routes/orders.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from database import get_db, utcnow
from utils.tokenJWT import get_current_user, role_required
from utils.audit import write_log, client_ip
from utils.errors import ValidationError, NotFoundError, InsufficientStockError
from utils.pricing import discounted_price, order_totals, round_money
from utils import response
from models.users import User, Role
from models.product import Product
from models.cart import Cart, CartItem
from models.order import Order, OrderItem, OrderStatus, CANCELLABLE_STATUSES, can_transition
from schemas.common import Envelope, PageEnvelope
from schemas.order import (
    OrderResponse, OrderItemOut, OrderCreatePayload, OrderLine, ShippingAddress,
    OrderCancelRequest, OrderStatusPatch, TrackingInfo, TrackingEvent, OrderStats,
)

router = APIRouter(prefix="/orders", tags=["Orders"])
logger = logging.getLogger(__name__)

admin_only = role_required(Role.ADMIN.value)


# Map Order model to OrderResponse schema
def _order_to_out(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        status=order.status,
        subtotal=order.subtotal,
        tax=order.tax,
        shipping=order.shipping,
        total=order.total,
        shipping_address=ShippingAddress(
            first_name=order.shipping_first_name,
            last_name=order.shipping_last_name,
            address=order.shipping_address,
            city=order.shipping_city,
            state=order.shipping_state,
            zip_code=order.shipping_zip_code,
            country=order.shipping_country,
            phone=order.shipping_phone,
        ),
        payment_intent_id=order.payment_intent_id,
        tracking_number=order.tracking_number,
        carrier=order.carrier,
        estimated_delivery=order.estimated_delivery,
        delivered_at=order.delivered_at,
        cancelled_at=order.cancelled_at,
        cancel_reason=order.cancel_reason,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[OrderItemOut.model_validate(it) for it in order.items],
    )


def _get_order(db: Session, order_id: int, user: User) -> Order:
    # Customers only see their own orders; admins see all of them
    query = db.query(Order).filter(Order.id == order_id)
    if user.role != Role.ADMIN:
        query = query.filter(Order.user_id == user.id)
    order = query.first()
    if not order:
        raise NotFoundError("Order")
    return order


def _reserve_stock(db: Session, line: OrderLine) -> Product:
    """
    Decrements stock only if enough is left, in a single UPDATE, so two
    concurrent checkouts can never both take the last unit.
    """
    updated = (
        db.query(Product)
        .filter(Product.id == line.id, Product.is_active.is_(True), Product.stock >= line.quantity)
        .update({Product.stock: Product.stock - line.quantity}, synchronize_session="fetch")
    )
    product = db.query(Product).filter(Product.id == line.id, Product.is_active.is_(True)).first()
    if not product:
        raise NotFoundError(f"Product {line.id}")
    if updated == 0:
        raise InsufficientStockError(product.title, product.stock)
    return product


def _restore_stock(db: Session, order: Order):
    for item in order.items:
        db.query(Product).filter(Product.id == item.product_id).update(
            {Product.stock: Product.stock + item.quantity}, synchronize_session="fetch"
        )


def _place_order(db: Session, user: User, lines: List[OrderLine], payload: OrderCreatePayload) -> Order:
    items = []
    subtotal = 0.0
    for line in lines:
        product = _reserve_stock(db, line)
        unit_after_discount = discounted_price(product.price, product.discount_percentage)
        line_total = round_money(unit_after_discount * line.quantity)
        subtotal += line_total
        items.append(OrderItem(
            product_id=product.id,
            product_title=product.title,
            quantity=line.quantity,
            price=product.price,
            total=line_total,
        ))

    subtotal, tax, shipping, total = order_totals(subtotal)
    address = payload.shipping_address
    order = Order(
        user_id=user.id,
        status=OrderStatus.PENDING,
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total=total,
        shipping_first_name=address.first_name,
        shipping_last_name=address.last_name,
        shipping_address=address.address,
        shipping_city=address.city,
        shipping_state=address.state,
        shipping_zip_code=address.zip_code,
        shipping_country=address.country,
        shipping_phone=address.phone,
        payment_intent_id=payload.payment_intent_id,
        items=items,
    )
    db.add(order)

    # Checkout empties the user's cart
    cart = db.query(Cart).filter(Cart.user_id == user.id).first()
    if cart:
        db.query(CartItem).filter(CartItem.cart_id == cart.id).delete(synchronize_session=False)
    return order


@router.post("", response_model=Envelope[OrderResponse], status_code=201)
def create_order(
    payload: OrderCreatePayload,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    lines = payload.products
    if lines is None:
        cart = db.query(Cart).filter(Cart.user_id == current_user.id).first()
        # Same visible lines as GET /cart: deactivated products are skipped
        lines = [
            OrderLine(id=it.product_id, quantity=it.quantity)
            for it in (cart.items if cart else [])
            if it.product and it.product.is_active
        ]
        if not lines:
            raise ValidationError("Cart is empty", code="CART_EMPTY")

    # Stock reservation, order rows and cart clearing commit together or not at all
    try:
        order = _place_order(db, current_user, lines, payload)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)

    logger.info("Order created: %s by user %s total=%s", order.id, current_user.id, order.total)
    write_log(
        db,
        user_id=current_user.id,
        action="ORDER_CREATE",
        resource="orders",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"order_id": order.id, "total": order.total, "items": len(order.items)},
    )
    return response.ok(_order_to_out(order), "Order created successfully")


# Admin routes are declared before /{order_id} so they are not shadowed
@router.get("/admin/all", response_model=PageEnvelope[OrderResponse])
def list_all_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    user_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    query = db.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if user_id:
        query = query.filter(Order.user_id == user_id)

    total = query.count()
    rows = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(skip).limit(limit).all()
    return response.paginated([_order_to_out(o) for o in rows], total, skip, limit)


@router.get("/admin/stats", response_model=Envelope[OrderStats])
def order_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    def _count(*statuses):
        return db.query(func.count(Order.id)).filter(Order.status.in_(statuses)).scalar() or 0

    revenue = (
        db.query(func.coalesce(func.sum(Order.total), 0.0))
        .filter(Order.status != OrderStatus.CANCELLED)
        .scalar()
    )
    stats = OrderStats(
        total_orders=db.query(func.count(Order.id)).scalar() or 0,
        pending_orders=_count(OrderStatus.PENDING),
        completed_orders=_count(OrderStatus.DELIVERED),
        cancelled_orders=_count(OrderStatus.CANCELLED),
        revenue=round_money(float(revenue or 0)),
    )
    return response.ok(stats)


@router.get("", response_model=PageEnvelope[OrderResponse])
def list_my_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Order).filter(Order.user_id == current_user.id)
    if status:
        query = query.filter(Order.status == status)

    total = query.count()
    rows = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(skip).limit(limit).all()
    return response.paginated([_order_to_out(o) for o in rows], total, skip, limit)


@router.get("/{order_id}", response_model=Envelope[OrderResponse])
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return response.ok(_order_to_out(_get_order(db, order_id, current_user)))


@router.post("/{order_id}/cancel", response_model=Envelope[OrderResponse])
def cancel_order(
    order_id: int,
    request: Request,
    payload: Optional[OrderCancelRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    order = db.query(Order).filter(Order.id == order_id, Order.user_id == current_user.id).first()
    if not order:
        raise NotFoundError("Order")

    if order.status not in CANCELLABLE_STATUSES:
        raise ValidationError(f"Cannot cancel order with status {order.status.value}", code="ORDER_CANNOT_CANCEL")

    try:
        _restore_stock(db, order)
        order.status = OrderStatus.CANCELLED
        order.cancelled_at = utcnow()
        order.cancel_reason = payload.reason if payload else None
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)

    logger.info("Order cancelled: %s by user %s", order.id, current_user.id)
    write_log(db, user_id=current_user.id, action="ORDER_CANCEL", resource="orders", status="SUCCESS",
              ip=client_ip(request), meta={"order_id": order.id, "reason": order.cancel_reason})
    return response.ok(_order_to_out(order), "Order cancelled successfully")


@router.get("/{order_id}/tracking", response_model=Envelope[TrackingInfo])
def track_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    order = _get_order(db, order_id, current_user)
    if not order.tracking_number:
        raise NotFoundError("Tracking information", code="TRACKING_UNAVAILABLE")

    tracking_url = None
    if order.carrier:
        tracking_url = f"https://www.{order.carrier.lower()}.com/track?tracknum={order.tracking_number}"

    # Placeholder timeline until a carrier integration exists
    status = order.status.value.lower()
    events = [
        TrackingEvent(status="order_placed", location="Online", timestamp=order.created_at,
                      description="Order placed"),
        TrackingEvent(status=status, location="In Transit", timestamp=order.updated_at,
                      description=f"Order {status}"),
    ]

    info = TrackingInfo(
        order_id=order.id,
        status=order.status,
        carrier=order.carrier,
        tracking_number=order.tracking_number,
        tracking_url=tracking_url,
        estimated_delivery=order.estimated_delivery,
        events=events,
    )
    return response.ok(info)


# Update order status (Admin only)
@router.patch("/{order_id}/status", response_model=Envelope[OrderResponse])
def update_order_status(
    order_id: int,
    payload: OrderStatusPatch,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError("Order")

    old_status = order.status
    new_status = payload.status
    if not can_transition(old_status, new_status):
        raise ValidationError(
            f"Cannot change status from {old_status.value} to {new_status.value}",
            code="INVALID_STATUS_TRANSITION",
        )

    try:
        if new_status == OrderStatus.CANCELLED and old_status != OrderStatus.CANCELLED:
            _restore_stock(db, order)
            order.cancelled_at = utcnow()
        if new_status == OrderStatus.DELIVERED and not order.delivered_at:
            order.delivered_at = utcnow()

        order.status = new_status
        if payload.tracking_number is not None:
            order.tracking_number = payload.tracking_number
        if payload.carrier is not None:
            order.carrier = payload.carrier
        if payload.estimated_delivery is not None:
            order.estimated_delivery = payload.estimated_delivery
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)

    logger.info("Order %s status %s -> %s by admin %s", order.id, old_status.value, new_status.value, current_user.id)
    write_log(
        db,
        user_id=current_user.id,
        action="ORDER_STATUS_UPDATE",
        resource="orders",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"order_id": order.id, "from": old_status.value, "to": new_status.value},
    )
    return response.ok(_order_to_out(order), "Order status updated")
