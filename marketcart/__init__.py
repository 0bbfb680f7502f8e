"""marketcart: shared shopping cart with time-bounded item discounts."""
from .cart import (
    Cart,
    CartItem,
    CartMirror,
    CartRepository,
    CartTotals,
    DiscountExpiryScheduler,
    DiscountState,
)
from .checkout import CheckoutBridge, CheckoutSnapshot
from .config import CartConfig
from .engine import CartEngine, create_engine, get_cart_engine
from .realtime import CART_PERSIST_FAILED, CART_UPDATED, ChangeBroadcaster

__version__ = "0.1.0"

__all__ = [
    "Cart",
    "CartItem",
    "CartMirror",
    "CartRepository",
    "CartTotals",
    "DiscountExpiryScheduler",
    "DiscountState",
    "CheckoutBridge",
    "CheckoutSnapshot",
    "CartConfig",
    "CartEngine",
    "create_engine",
    "get_cart_engine",
    "CART_PERSIST_FAILED",
    "CART_UPDATED",
    "ChangeBroadcaster",
]
