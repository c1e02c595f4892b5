# backend/utils/pricing.py
from typing import Optional, Tuple

from config import settings


def round_money(value: float) -> float:
    return round(value, 2)


# Unit price after the product's percentage discount
def discounted_price(price: float, discount_percentage: Optional[float] = None) -> float:
    discount = discount_percentage or 0.0
    return round_money(price * (1 - discount / 100.0))


def order_totals(subtotal: float) -> Tuple[float, float, float, float]:
    """
    Returns (subtotal, tax, shipping, total) for an order.
    Shipping is free from FREE_SHIPPING_THRESHOLD upwards, otherwise a flat rate applies.
    """
    subtotal = round_money(subtotal)
    tax = round_money(subtotal * settings.TAX_RATE)
    shipping = 0.0 if subtotal >= settings.FREE_SHIPPING_THRESHOLD else settings.SHIPPING_FLAT_RATE
    total = round_money(subtotal + tax + shipping)
    return subtotal, tax, shipping, total
