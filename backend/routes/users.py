# backend/routes/users.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from database import get_db
from models.users import User, UserAddress, UserPreferences, Role
from models.order import Order
from models.product import ProductReview
from models.wishlist import Wishlist
from utils.tokenJWT import get_current_user, role_required
from utils.audit import write_log, client_ip
from utils.errors import NotFoundError, ValidationError
from utils import response
from schemas.common import Envelope, PageEnvelope
from schemas.user import (
    UserResponse, UserUpdate, ProfileResponse, ProfileCounts,
    AddressCreate, AddressUpdate, AddressResponse,
    PreferencesUpdate, PreferencesResponse, AdminUserRow, UserStatusUpdate,
)

router = APIRouter(prefix="/users", tags=["Users"])
logger = logging.getLogger(__name__)

admin_only = role_required(Role.ADMIN.value)


def _get_preferences(db: Session, user: User) -> UserPreferences:
    # Preferences are created lazily with their defaults
    if user.preferences is None:
        user.preferences = UserPreferences()
        db.commit()
        db.refresh(user)
    return user.preferences


def _get_address(db: Session, user: User, address_id: int) -> UserAddress:
    address = db.query(UserAddress).filter(UserAddress.id == address_id, UserAddress.user_id == user.id).first()
    if not address:
        raise NotFoundError("Address")
    return address


def _clear_default(db: Session, user: User, keep_id: Optional[int] = None):
    query = db.query(UserAddress).filter(UserAddress.user_id == user.id, UserAddress.is_default.is_(True))
    if keep_id is not None:
        query = query.filter(UserAddress.id != keep_id)
    query.update({UserAddress.is_default: False}, synchronize_session="fetch")


def _sorted_addresses(db: Session, user: User) -> List[UserAddress]:
    return (
        db.query(UserAddress)
        .filter(UserAddress.user_id == user.id)
        .order_by(UserAddress.is_default.desc(), UserAddress.created_at.desc(), UserAddress.id.desc())
        .all()
    )


# =========================
# PROFILE
# =========================
@router.get("/profile", response_model=Envelope[ProfileResponse])
def get_profile(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    preferences = _get_preferences(db, current_user)

    counts = ProfileCounts(
        orders=db.query(func.count(Order.id)).filter(Order.user_id == current_user.id).scalar() or 0,
        reviews=db.query(func.count(ProductReview.id)).filter(ProductReview.user_id == current_user.id).scalar() or 0,
        wishlists=db.query(func.count(Wishlist.id)).filter(Wishlist.user_id == current_user.id).scalar() or 0,
    )
    profile = ProfileResponse(
        **UserResponse.model_validate(current_user).model_dump(),
        preferences=PreferencesResponse.model_validate(preferences),
        addresses=[AddressResponse.model_validate(a) for a in _sorted_addresses(db, current_user)],
        counts=counts,
    )
    return response.ok(profile)


@router.put("/profile", response_model=Envelope[UserResponse])
def update_profile(
    payload: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)

    write_log(db, user_id=current_user.id, action="PROFILE_UPDATE", resource="users", status="SUCCESS",
              ip=client_ip(request), meta={"fields": sorted(changes)})
    return response.ok(UserResponse.model_validate(current_user), "Profile updated successfully")


# =========================
# ADDRESSES
# =========================
@router.get("/addresses", response_model=Envelope[List[AddressResponse]])
def list_addresses(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return response.ok([AddressResponse.model_validate(a) for a in _sorted_addresses(db, current_user)])


@router.post("/addresses", response_model=Envelope[AddressResponse], status_code=201)
def add_address(
    payload: AddressCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    # Only one default address per user
    if payload.is_default:
        _clear_default(db, current_user)

    address = UserAddress(user_id=current_user.id, **payload.model_dump())
    db.add(address)
    db.commit()
    db.refresh(address)
    return response.ok(AddressResponse.model_validate(address), "Address added successfully")


@router.put("/addresses/{address_id}", response_model=Envelope[AddressResponse])
def update_address(
    address_id: int,
    payload: AddressUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    address = _get_address(db, current_user, address_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if changes.get("is_default"):
        _clear_default(db, current_user, keep_id=address.id)

    for field, value in changes.items():
        setattr(address, field, value)
    db.commit()
    db.refresh(address)
    return response.ok(AddressResponse.model_validate(address), "Address updated successfully")


@router.delete("/addresses/{address_id}", response_model=Envelope[None])
def delete_address(
    address_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    address = _get_address(db, current_user, address_id)
    db.delete(address)
    db.commit()
    return response.ok(None, "Address deleted successfully")


@router.put("/addresses/{address_id}/default", response_model=Envelope[AddressResponse])
def set_default_address(
    address_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    address = _get_address(db, current_user, address_id)
    _clear_default(db, current_user, keep_id=address.id)
    address.is_default = True
    db.commit()
    db.refresh(address)
    return response.ok(AddressResponse.model_validate(address), "Default address updated")


# =========================
# PREFERENCES
# =========================
@router.get("/preferences", response_model=Envelope[PreferencesResponse])
def get_preferences(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return response.ok(PreferencesResponse.model_validate(_get_preferences(db, current_user)))


@router.put("/preferences", response_model=Envelope[PreferencesResponse])
def update_preferences(
    payload: PreferencesUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    preferences = _get_preferences(db, current_user)
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(preferences, field, value)
    db.commit()
    db.refresh(preferences)
    return response.ok(PreferencesResponse.model_validate(preferences), "Preferences updated successfully")


# =========================
# ADMIN
# =========================
# Retrieve a list of users with search and pagination (Admin only)
@router.get("/admin/all", response_model=PageEnvelope[AdminUserRow])
def get_all_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, description="Matches email, first or last name"),
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    query = db.query(User)

    if search:
        like = f"%{search.lower()}%"
        query = query.filter(or_(
            User.email.ilike(like),
            User.first_name.ilike(like),
            User.last_name.ilike(like),
        ))

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset(skip).limit(limit).all()

    # Order counts for the page in a single grouped query
    ids = [u.id for u in users]
    order_counts = dict(
        db.query(Order.user_id, func.count(Order.id))
        .filter(Order.user_id.in_(ids))
        .group_by(Order.user_id)
        .all()
    ) if ids else {}

    rows = [
        AdminUserRow(**UserResponse.model_validate(u).model_dump(), order_count=order_counts.get(u.id, 0))
        for u in users
    ]
    return response.paginated(rows, total, skip, limit)


# Activate or deactivate a user account (Admin only)
@router.patch("/admin/{user_id}/status", response_model=Envelope[UserResponse])
def update_user_status(
    user_id: int,
    payload: UserStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User")

    # Prevent self-deactivation
    if user.id == current_user.id and not payload.is_active:
        raise ValidationError("You cannot deactivate your own account", code="CANNOT_DEACTIVATE_SELF")

    user.is_active = payload.is_active
    db.commit()
    db.refresh(user)

    logger.info("User %s %s by admin %s", user.id, "activated" if user.is_active else "deactivated", current_user.id)
    write_log(db, user_id=current_user.id, action="USER_STATUS_UPDATE", resource="users", status="SUCCESS",
              ip=client_ip(request), meta={"target_user_id": user.id, "is_active": user.is_active})
    return response.ok(UserResponse.model_validate(user), "User status updated")
