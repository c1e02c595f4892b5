# backend/models/cart.py
from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base, utcnow

# Represents a shopping cart, owned either by a user or by a guest session
class Cart(Base):
    __tablename__ = "carts" # Table name

    id = Column(Integer, primary_key=True, index=True) # Primary key
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True) # Owner for authenticated users
    session_id = Column(String, index=True, nullable=True) # Owner for guests (X-Session-ID)
    expires_at = Column(DateTime, nullable=False) # Guest carts are purged after this moment
    created_at = Column(DateTime, default=utcnow) # Creation timestamp
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # One-to-many relationship with cart items
    items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan", order_by="CartItem.id")


# Represents a single item (product + quantity) within a cart
class CartItem(Base):
    __tablename__ = "cart_items" # Table name

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), index=True, nullable=False) # Foreign key to parent cart
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False) # Foreign key to product
    quantity = Column(Integer, nullable=False, default=1) # Product quantity

    cart = relationship("Cart", back_populates="items") # Relationship back to Cart
    product = relationship("Product") # Relationship to Product

    __table_args__ = (
        # Unique constraint to prevent duplicate product entries in the same cart
        UniqueConstraint("cart_id", "product_id", name="uq_cartitem_cart_product"),
    )
