# backend/models/product.py
from sqlalchemy import Column, Integer, String, Float, Text, Boolean, DateTime, JSON, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base, utcnow

# Catalog entry. Stock is decremented atomically at checkout;
# deleting a product only clears is_active.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    category = Column(String, nullable=False, index=True)
    brand = Column(String, nullable=False, index=True)

    # Pricing, guarded by check constraints
    price = Column(Float, CheckConstraint("price >= 0"), nullable=False)
    discount_percentage = Column(
        Float, CheckConstraint("discount_percentage >= 0 AND discount_percentage <= 100"), nullable=False, default=0
    )

    stock = Column(Integer, CheckConstraint("stock >= 0"), nullable=False, default=0)
    rating = Column(Float, nullable=False, default=0)

    thumbnail = Column(String, nullable=True)
    images = Column(JSON, nullable=False, default=list)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    reviews = relationship("ProductReview", back_populates="product", cascade="all, delete-orphan")


# A single customer review; one per (product, user)
class ProductReview(Base):
    __tablename__ = "product_reviews"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    rating = Column(Integer, CheckConstraint("rating >= 1 AND rating <= 5"), nullable=False)
    comment = Column(Text, nullable=True)
    reviewer_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    product = relationship("Product", back_populates="reviews")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("product_id", "user_id", name="uq_review_product_user"),
    )
