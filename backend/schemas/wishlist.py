from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional

from schemas.common import ORMBase
from schemas.product import ProductSummary


class WishlistAdd(BaseModel):
    product_id: int = Field(gt=0)


class WishlistItemOut(ORMBase):
    id: int
    product_id: int
    created_at: Optional[datetime] = None
    product: ProductSummary


class WishlistCount(BaseModel):
    count: int


class WishlistCheck(BaseModel):
    product_id: int
    in_wishlist: bool
