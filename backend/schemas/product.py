# backend/schemas/product.py
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional, List

from schemas.common import ORMBase


# Shared base attributes for product entities
class ProductBase(ORMBase):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    price: float = Field(gt=0)
    discount_percentage: float = Field(default=0, ge=0, le=100)
    thumbnail: Optional[str] = None
    images: List[str] = []
    category: str = Field(min_length=1)
    brand: str = Field(min_length=1)
    stock: int = Field(default=0, ge=0)


# Schema for creating a new product
class ProductCreate(ProductBase):
    pass


# Schema for partial product updates (PUT applies only the fields sent)
class ProductUpdate(ORMBase):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, gt=0)
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    thumbnail: Optional[str] = None
    images: Optional[List[str]] = None
    category: Optional[str] = Field(None, min_length=1)
    brand: Optional[str] = Field(None, min_length=1)
    stock: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


# Full product representation including ID
class ProductOut(ProductBase):
    id: int
    description: str = ""
    price: float
    rating: float = 0
    is_active: bool
    created_at: Optional[datetime] = None


# Compact product card embedded in cart lines and wishlist entries
class ProductSummary(ORMBase):
    id: int
    title: str
    price: float
    discount_percentage: float = 0
    thumbnail: Optional[str] = None
    stock: int
    is_active: bool


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


class ReviewOut(ORMBase):
    id: int
    product_id: int
    user_id: int
    rating: int
    comment: Optional[str] = None
    reviewer_name: Optional[str] = None
    created_at: Optional[datetime] = None
