"""Cart package: models, repository, discount expiry and runtime mirrors."""
from .models import Cart, CartItem, CartTotals
from .repository import CartRepository
from .discounts import (
    Countdown,
    DiscountExpiryScheduler,
    DiscountState,
    DiscountWindow,
    discount_window,
    evaluate,
)
from .mirror import CartMirror

__all__ = [
    "Cart",
    "CartItem",
    "CartTotals",
    "CartRepository",
    "Countdown",
    "DiscountExpiryScheduler",
    "DiscountState",
    "DiscountWindow",
    "discount_window",
    "evaluate",
    "CartMirror",
]
