# backend/routes/cart.py
import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from config import settings
from database import get_db, utcnow
from utils.tokenJWT import get_current_user, get_optional_user
from utils.audit import write_log, client_ip
from utils.errors import ValidationError, NotFoundError, InsufficientStockError
from utils.pricing import discounted_price, round_money
from utils import response
from models.users import User
from models.product import Product
from models.cart import Cart, CartItem
from schemas.cart import CartAddItem, CartUpdateItem, CartOut, CartItemOut
from schemas.common import Envelope
from schemas.product import ProductSummary

router = APIRouter(prefix="/cart", tags=["Cart"])
logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-ID"


def _owner(user: Optional[User], session_id: Optional[str]):
    # Authenticated users own their cart by id; guests by the session header
    if user is not None:
        return user.id, None
    if session_id:
        return None, session_id
    raise ValidationError("Session ID is required", code="SESSION_REQUIRED")


def get_or_create_cart(db: Session, user_id: Optional[int] = None, session_id: Optional[str] = None) -> Cart:
    # Retrieve the owner's cart or create a new one
    if user_id is not None:
        cart = db.query(Cart).filter(Cart.user_id == user_id).first()
    else:
        cart = db.query(Cart).filter(Cart.session_id == session_id, Cart.user_id.is_(None)).first()
        # Expired guest carts are replaced by a fresh one
        if cart and cart.expires_at < utcnow():
            logger.info("Guest cart %s expired, starting a new one", cart.id)
            db.delete(cart)
            db.flush()
            cart = None

    if not cart:
        cart = Cart(
            user_id=user_id,
            session_id=None if user_id is not None else session_id,
            expires_at=utcnow() + timedelta(days=settings.CART_EXPIRY_DAYS),
        )
        db.add(cart)
        db.commit()
        db.refresh(cart)
    return cart


def cart_to_out(cart: Cart) -> CartOut:
    items_out = []
    subtotal = 0.0
    item_count = 0

    for it in cart.items:
        # Lines pointing at deactivated products are hidden
        if not it.product or not it.product.is_active:
            continue
        unit_price = it.product.price
        price_after_discount = discounted_price(unit_price, it.product.discount_percentage)
        item_total = round_money(price_after_discount * it.quantity)

        subtotal += item_total
        item_count += it.quantity

        items_out.append(CartItemOut(
            id=it.id,
            cart_id=it.cart_id,
            product_id=it.product_id,
            quantity=it.quantity,
            product=ProductSummary.model_validate(it.product),
            unit_price=unit_price,
            discounted_price=price_after_discount,
            item_total=item_total,
        ))

    return CartOut(
        id=cart.id,
        items=items_out,
        subtotal=round_money(subtotal),
        item_count=item_count,
        expires_at=cart.expires_at,
    )


def add_item(db: Session, cart: Cart, product_id: int, quantity: int) -> Cart:
    product = db.query(Product).filter(Product.id == product_id, Product.is_active.is_(True)).first()
    if not product:
        raise NotFoundError("Product")

    item = next((it for it in cart.items if it.product_id == product_id), None)

    # Validate stock against what the cart would hold after the add
    total_quantity = (item.quantity if item else 0) + quantity
    if product.stock < total_quantity:
        raise InsufficientStockError(product.title, product.stock)

    if item:
        item.quantity = total_quantity
    else:
        cart.items.append(CartItem(product_id=product.id, quantity=quantity))

    db.commit()
    db.refresh(cart)
    logger.info("Item added to cart %s: product=%s qty=%s", cart.id, product_id, quantity)
    return cart


def merge_guest_cart(db: Session, user_id: int, session_id: str) -> Cart:
    """
    Moves every line of the guest cart into the user's cart, summing quantities
    for products present in both, then deletes the guest cart.
    """
    guest_cart = db.query(Cart).filter(Cart.session_id == session_id, Cart.user_id.is_(None)).first()
    user_cart = get_or_create_cart(db, user_id=user_id)

    # An expired guest cart is discarded, as get_or_create_cart would do
    if guest_cart and guest_cart.expires_at < utcnow():
        db.delete(guest_cart)
        db.commit()
        logger.info("Expired guest cart %s dropped instead of merged", session_id)
        return user_cart

    if not guest_cart or not guest_cart.items:
        return user_cart

    existing = {it.product_id: it for it in user_cart.items}
    for item in guest_cart.items:
        if item.product_id in existing:
            existing[item.product_id].quantity += item.quantity
        else:
            user_cart.items.append(CartItem(product_id=item.product_id, quantity=item.quantity))

    guest_id = guest_cart.id
    db.delete(guest_cart)
    db.commit()
    db.refresh(user_cart)
    logger.info("Guest cart merged: %s -> %s", guest_id, user_cart.id)
    return user_cart


def cleanup_expired_carts(db: Session) -> int:
    # Only guest carts expire; user carts live as long as the account
    expired = db.query(Cart).filter(Cart.user_id.is_(None), Cart.expires_at < utcnow()).all()
    for cart in expired:
        db.delete(cart)
    db.commit()
    logger.info("Cleaned up %s expired carts", len(expired))
    return len(expired)


@router.get("", response_model=Envelope[CartOut])
def get_cart(
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
    session_id: Optional[str] = Header(None, alias=SESSION_HEADER),
):
    user_id, sid = _owner(current_user, session_id)
    cart = get_or_create_cart(db, user_id, sid)
    return response.ok(cart_to_out(cart))


@router.post("/items", response_model=Envelope[CartOut])
def add_to_cart(
    payload: CartAddItem,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
    session_id: Optional[str] = Header(None, alias=SESSION_HEADER),
):
    user_id, sid = _owner(current_user, session_id)
    cart = get_or_create_cart(db, user_id, sid)
    cart = add_item(db, cart, payload.product_id, payload.quantity)

    out = cart_to_out(cart)
    write_log(
        db,
        user_id=user_id,
        action="CART_ADD",
        resource="cart",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"product_id": payload.product_id, "qty": payload.quantity, "cart_items": len(out.items), "subtotal": out.subtotal},
    )
    return response.ok(out, "Item added to cart")


@router.put("/items/{item_id}", response_model=Envelope[CartOut])
def update_cart_item(
    item_id: int,
    payload: CartUpdateItem,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
    session_id: Optional[str] = Header(None, alias=SESSION_HEADER),
):
    user_id, sid = _owner(current_user, session_id)
    cart = get_or_create_cart(db, user_id, sid)

    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.cart_id == cart.id).first()
    if not item:
        raise NotFoundError("Cart item")

    # Validate stock for the new quantity
    if payload.quantity > item.product.stock:
        raise InsufficientStockError(item.product.title, item.product.stock)

    if payload.quantity == 0:
        db.delete(item)
        logger.info("Item removed from cart %s: item=%s", cart.id, item_id)
    else:
        item.quantity = payload.quantity
        logger.info("Cart item updated %s: item=%s qty=%s", cart.id, item_id, payload.quantity)
    db.commit()
    db.refresh(cart)

    out = cart_to_out(cart)
    write_log(
        db,
        user_id=user_id,
        action="CART_UPDATE",
        resource="cart",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"item_id": item_id, "qty": payload.quantity, "subtotal": out.subtotal},
    )
    return response.ok(out, "Cart updated")


@router.delete("/items/{item_id}", response_model=Envelope[CartOut])
def delete_cart_item(
    item_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
    session_id: Optional[str] = Header(None, alias=SESSION_HEADER),
):
    user_id, sid = _owner(current_user, session_id)
    cart = get_or_create_cart(db, user_id, sid)

    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.cart_id == cart.id).first()
    if not item:
        raise NotFoundError("Cart item")

    db.delete(item)
    db.commit()
    db.refresh(cart)

    out = cart_to_out(cart)
    write_log(
        db,
        user_id=user_id,
        action="CART_DELETE",
        resource="cart",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"item_id": item_id, "cart_items": len(out.items), "subtotal": out.subtotal},
    )
    return response.ok(out, "Item removed from cart")


@router.delete("", response_model=Envelope[None])
def clear_cart(
    request: Request,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
    session_id: Optional[str] = Header(None, alias=SESSION_HEADER),
):
    user_id, sid = _owner(current_user, session_id)
    owner_filter = Cart.user_id == user_id if user_id is not None else Cart.session_id == sid
    cart = db.query(Cart).filter(owner_filter).first()

    # Nothing to clear
    if cart is None:
        return response.ok(None, "Cart cleared")

    db.query(CartItem).filter(CartItem.cart_id == cart.id).delete(synchronize_session=False)
    db.commit()
    logger.info("Cart cleared: %s", cart.id)

    write_log(db, user_id=user_id, action="CART_CLEAR", resource="cart", status="SUCCESS", ip=client_ip(request),
              meta={"cart_id": cart.id})
    return response.ok(None, "Cart cleared")


@router.post("/merge", response_model=Envelope[CartOut])
def merge_cart(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    session_id: Optional[str] = Header(None, alias=SESSION_HEADER),
):
    if not session_id:
        raise ValidationError("Session ID is required", code="SESSION_REQUIRED")

    cart = merge_guest_cart(db, current_user.id, session_id)
    out = cart_to_out(cart)
    write_log(db, user_id=current_user.id, action="CART_MERGE", resource="cart", status="SUCCESS",
              ip=client_ip(request), meta={"session_id": session_id, "cart_items": len(out.items)})
    return response.ok(out, "Cart merged successfully")
