# backend/routes/products.py
import logging
from typing import Optional, List, Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import or_, func
from sqlalchemy.orm import Session
from sqlalchemy.sql.expression import ColumnElement

from database import get_db
from utils.tokenJWT import get_current_user, role_required
from utils.audit import write_log, client_ip
from utils.errors import NotFoundError, ConflictError
from utils import response
from models.users import User, Role
from models.product import Product, ProductReview
from schemas.common import Envelope, PageEnvelope
import schemas.product as product_schemas

router = APIRouter(prefix="/products", tags=["Products"])
logger = logging.getLogger(__name__)

admin_only = role_required(Role.ADMIN.value)

SORT_COLUMNS = {
    "created_at": Product.created_at,
    "price": Product.price,
    "title": Product.title,
    "rating": Product.rating,
}

# ---- HELPERS ----
def _get_unique_values(db: Session, column: ColumnElement) -> List[str]:
    values = (
        db.query(column)
        .filter(Product.is_active.is_(True), column.isnot(None), column != "")
        .distinct()
        .order_by(column)
        .all()
    )
    return [v[0] for v in values]


def _active_product(db: Session, product_id: int) -> Product:
    product = db.query(Product).filter(Product.id == product_id, Product.is_active.is_(True)).first()
    if not product:
        raise NotFoundError("Product")
    return product


def _search_filter(term: str):
    like = f"%{term}%"
    return or_(
        Product.title.ilike(like),
        Product.description.ilike(like),
        Product.brand.ilike(like),
        Product.category.ilike(like),
    )


def _page(query, skip: int, limit: int, sort_by: str = "created_at", order: str = "desc"):
    sort_col = SORT_COLUMNS.get(sort_by, Product.created_at)
    total = query.count()
    ordered = query.order_by(sort_col.asc() if order == "asc" else sort_col.desc(), Product.id.asc())
    items = ordered.offset(skip).limit(limit).all()
    data = [product_schemas.ProductOut.model_validate(p) for p in items]
    return response.paginated(data, total, skip, limit)


# =========================
# PRODUCT LIST
# =========================
@router.get("", response_model=PageEnvelope[product_schemas.ProductOut])
def list_products(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    sort_by: Literal["created_at", "price", "title", "rating"] = Query("created_at"),
    order: Literal["asc", "desc"] = Query("desc"),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    brand: Optional[str] = Query(None, description="Exact brand, case-insensitive"),
    category: Optional[str] = Query(None, description="Exact category, case-insensitive"),
    in_stock: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    query = db.query(Product).filter(Product.is_active.is_(True))

    if min_price is not None: query = query.filter(Product.price >= min_price)
    if max_price is not None: query = query.filter(Product.price <= max_price)
    if brand: query = query.filter(func.lower(Product.brand) == brand.lower())
    if category: query = query.filter(func.lower(Product.category) == category.lower())
    if in_stock: query = query.filter(Product.stock > 0)
    if search: query = query.filter(_search_filter(search))

    return _page(query, skip, limit, sort_by, order)


# =========================
# LOOKUP ENDPOINTS
# =========================
@router.get("/search", response_model=PageEnvelope[product_schemas.ProductOut])
def search_products(
    q: str = Query(..., min_length=1),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(Product).filter(Product.is_active.is_(True), _search_filter(q))
    return _page(query, skip, limit, "rating", "desc")


@router.get("/categories", response_model=Envelope[List[str]])
def get_categories(db: Session = Depends(get_db)):
    return response.ok(_get_unique_values(db, Product.category))


@router.get("/brands", response_model=Envelope[List[str]])
def get_brands(db: Session = Depends(get_db)):
    return response.ok(_get_unique_values(db, Product.brand))


@router.get("/category/{category}", response_model=PageEnvelope[product_schemas.ProductOut])
def products_by_category(
    category: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(Product).filter(Product.is_active.is_(True), func.lower(Product.category) == category.lower())
    return _page(query, skip, limit)


# =========================
# SINGLE PRODUCT
# =========================
@router.get("/{product_id}", response_model=Envelope[product_schemas.ProductOut])
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = _active_product(db, product_id)
    return response.ok(product_schemas.ProductOut.model_validate(product))


# =========================
# REVIEWS
# =========================
@router.get("/{product_id}/reviews", response_model=PageEnvelope[product_schemas.ReviewOut])
def list_reviews(
    product_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    _active_product(db, product_id)
    query = db.query(ProductReview).filter(ProductReview.product_id == product_id)
    total = query.count()
    rows = query.order_by(ProductReview.created_at.desc(), ProductReview.id.desc()).offset(skip).limit(limit).all()
    return response.paginated([product_schemas.ReviewOut.model_validate(r) for r in rows], total, skip, limit)


@router.post("/{product_id}/reviews", response_model=Envelope[product_schemas.ReviewOut], status_code=201)
def add_review(
    product_id: int,
    payload: product_schemas.ReviewCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    product = _active_product(db, product_id)

    existing = db.query(ProductReview).filter(
        ProductReview.product_id == product_id, ProductReview.user_id == current_user.id
    ).first()
    if existing:
        raise ConflictError("You have already reviewed this product", code="REVIEW_EXISTS")

    reviewer = " ".join(p for p in (current_user.first_name, current_user.last_name) if p) or current_user.email
    review = ProductReview(
        product_id=product_id,
        user_id=current_user.id,
        rating=payload.rating,
        comment=payload.comment,
        reviewer_name=reviewer,
    )
    db.add(review)
    db.flush()

    # Product rating is the mean of all its reviews
    avg = db.query(func.avg(ProductReview.rating)).filter(ProductReview.product_id == product_id).scalar()
    product.rating = round(float(avg or 0), 2)
    db.commit()
    db.refresh(review)

    write_log(db, user_id=current_user.id, action="REVIEW_CREATE", resource="products", status="SUCCESS",
              ip=client_ip(request), meta={"product_id": product_id, "rating": payload.rating})
    return response.ok(product_schemas.ReviewOut.model_validate(review), "Review added")


# =========================
# ADMIN: CREATE / UPDATE / DELETE
# =========================
@router.post("", response_model=Envelope[product_schemas.ProductOut], status_code=201)
def create_product(
    payload: product_schemas.ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    product = Product(**payload.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)

    logger.info("Product created: %s (%s)", product.id, product.title)
    write_log(db, user_id=current_user.id, action="PRODUCT_CREATE", resource="products", status="SUCCESS",
              ip=client_ip(request), meta={"product_id": product.id, "title": product.title})
    return response.ok(product_schemas.ProductOut.model_validate(product), "Product created successfully")


@router.put("/{product_id}", response_model=Envelope[product_schemas.ProductOut])
def update_product(
    product_id: int,
    payload: product_schemas.ProductUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Product")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(product, field, value)
    db.commit()
    db.refresh(product)

    logger.info("Product updated: %s fields=%s", product.id, sorted(changes))
    write_log(db, user_id=current_user.id, action="PRODUCT_UPDATE", resource="products", status="SUCCESS",
              ip=client_ip(request), meta={"product_id": product.id, "fields": sorted(changes)})
    return response.ok(product_schemas.ProductOut.model_validate(product), "Product updated successfully")


@router.delete("/{product_id}", response_model=Envelope[None])
def delete_product(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    product = _active_product(db, product_id)

    # Soft delete; order history keeps pointing at the row
    product.is_active = False
    db.commit()

    logger.info("Product deactivated: %s", product.id)
    write_log(db, user_id=current_user.id, action="PRODUCT_DELETE", resource="products", status="SUCCESS",
              ip=client_ip(request), meta={"product_id": product.id})
    return response.ok(None, "Product deleted successfully")
