# backend/routes/wishlist.py
import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from database import get_db
from utils.tokenJWT import get_current_user
from utils.audit import write_log, client_ip
from utils.errors import NotFoundError, ConflictError
from utils import response
from models.users import User
from models.product import Product
from models.wishlist import Wishlist
from schemas.common import Envelope
from schemas.cart import CartOut
from schemas.wishlist import WishlistAdd, WishlistItemOut, WishlistCount, WishlistCheck
from routes.cart import get_or_create_cart, add_item, cart_to_out

router = APIRouter(prefix="/wishlist", tags=["Wishlist"])
logger = logging.getLogger(__name__)


def _entry(db: Session, user: User, product_id: int) -> Wishlist:
    entry = db.query(Wishlist).filter(Wishlist.user_id == user.id, Wishlist.product_id == product_id).first()
    if not entry:
        raise NotFoundError("Wishlist item")
    return entry


@router.get("", response_model=Envelope[List[WishlistItemOut]])
def get_wishlist(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    rows = (
        db.query(Wishlist)
        .filter(Wishlist.user_id == current_user.id)
        .order_by(Wishlist.created_at.desc(), Wishlist.id.desc())
        .all()
    )
    return response.ok([WishlistItemOut.model_validate(w) for w in rows])


@router.get("/count", response_model=Envelope[WishlistCount])
def wishlist_count(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    count = db.query(func.count(Wishlist.id)).filter(Wishlist.user_id == current_user.id).scalar() or 0
    return response.ok(WishlistCount(count=count))


@router.get("/check/{product_id}", response_model=Envelope[WishlistCheck])
def check_wishlist(product_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    exists = db.query(Wishlist.id).filter(
        Wishlist.user_id == current_user.id, Wishlist.product_id == product_id
    ).first() is not None
    return response.ok(WishlistCheck(product_id=product_id, in_wishlist=exists))


@router.post("", response_model=Envelope[WishlistItemOut], status_code=201)
def add_to_wishlist(
    payload: WishlistAdd,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    product = db.query(Product).filter(Product.id == payload.product_id, Product.is_active.is_(True)).first()
    if not product:
        raise NotFoundError("Product")

    existing = db.query(Wishlist).filter(
        Wishlist.user_id == current_user.id, Wishlist.product_id == payload.product_id
    ).first()
    if existing:
        raise ConflictError("Product already in wishlist", code="ALREADY_IN_WISHLIST")

    entry = Wishlist(user_id=current_user.id, product_id=product.id)
    db.add(entry)
    db.commit()
    db.refresh(entry)

    write_log(db, user_id=current_user.id, action="WISHLIST_ADD", resource="wishlist", status="SUCCESS",
              ip=client_ip(request), meta={"product_id": product.id})
    return response.ok(WishlistItemOut.model_validate(entry), "Added to wishlist")


@router.delete("/{product_id}", response_model=Envelope[None])
def remove_from_wishlist(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    db.delete(_entry(db, current_user, product_id))
    db.commit()

    write_log(db, user_id=current_user.id, action="WISHLIST_REMOVE", resource="wishlist", status="SUCCESS",
              ip=client_ip(request), meta={"product_id": product_id})
    return response.ok(None, "Removed from wishlist")


@router.delete("", response_model=Envelope[None])
def clear_wishlist(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    removed = db.query(Wishlist).filter(Wishlist.user_id == current_user.id).delete(synchronize_session=False)
    db.commit()

    write_log(db, user_id=current_user.id, action="WISHLIST_CLEAR", resource="wishlist", status="SUCCESS",
              ip=client_ip(request), meta={"removed": removed})
    return response.ok(None, "Wishlist cleared")


@router.post("/{product_id}/move-to-cart", response_model=Envelope[CartOut])
def move_to_cart(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    entry = _entry(db, current_user, product_id)

    # Stock is checked by the cart; the entry stays if the add fails
    cart = get_or_create_cart(db, user_id=current_user.id)
    cart = add_item(db, cart, product_id, 1)

    db.delete(entry)
    db.commit()
    db.refresh(cart)

    logger.info("Wishlist product %s moved to cart for user %s", product_id, current_user.id)
    write_log(db, user_id=current_user.id, action="WISHLIST_MOVE_TO_CART", resource="wishlist", status="SUCCESS",
              ip=client_ip(request), meta={"product_id": product_id})
    return response.ok(cart_to_out(cart), "Moved to cart")
