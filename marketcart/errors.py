"""
Cart errors and common error messages.

Message strings are centralized to avoid duplication between the
repository, the store adapters and the checkout bridge.
"""

# Store errors
ERROR_STORE_UNAVAILABLE = "Cart storage unavailable"
ERROR_STORE_QUOTA = "Cart storage quota exceeded"
ERROR_MALFORMED_CART = "Stored cart data is malformed"
ERROR_MALFORMED_CHECKOUT = "Stored checkout data is malformed"

# User-facing notices
NOTICE_PERSIST_FAILED = "We couldn't save your cart. Your changes are kept for this visit."
NOTICE_CHECKOUT_NOT_SAVED = "Failed to save checkout data. Please try again."


class CartError(Exception):
    """Base class for marketcart errors."""


class StoreError(CartError):
    """Durable store failure."""


class StoreUnavailable(StoreError):
    """Read or write against the durable store failed (quota, I/O, network)."""


class MalformedPersistedData(StoreError):
    """Stored value is not a valid serialized cart."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"{ERROR_MALFORMED_CART} ({key}): {reason}")
        self.key = key
        self.reason = reason


__all__ = [
    "ERROR_STORE_UNAVAILABLE",
    "ERROR_STORE_QUOTA",
    "ERROR_MALFORMED_CART",
    "ERROR_MALFORMED_CHECKOUT",
    "NOTICE_PERSIST_FAILED",
    "NOTICE_CHECKOUT_NOT_SAVED",
    "CartError",
    "StoreError",
    "StoreUnavailable",
    "MalformedPersistedData",
]
