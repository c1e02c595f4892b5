from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional

from schemas.product import ProductSummary

# Request schema for adding an item to the cart
class CartAddItem(BaseModel):
    product_id: int = Field(gt=0)
    quantity: int = Field(default=1, ge=1)

# Request schema for updating cart item quantity; 0 removes the line
class CartUpdateItem(BaseModel):
    quantity: int = Field(ge=0)

# Response schema for a single cart line item
class CartItemOut(BaseModel):
    id: int
    cart_id: int
    product_id: int
    quantity: int
    product: ProductSummary
    unit_price: float
    discounted_price: float
    item_total: float

# Response schema for the entire cart summary
class CartOut(BaseModel):
    id: int
    items: List[CartItemOut]
    subtotal: float
    item_count: int
    expires_at: Optional[datetime] = None
