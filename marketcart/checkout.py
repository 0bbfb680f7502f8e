"""Checkout bridge.

Boundary between the cart core and the checkout form collaborator: it
exposes the cart read-only for the order summary, keeps the most recent
checkout form snapshot, and clears the cart once an order is placed.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .cart.models import Cart, CartTotals
from .cart.repository import CartRepository
from .config import CartConfig, utc_now
from .db import DurableStore
from .errors import ERROR_MALFORMED_CHECKOUT, NOTICE_CHECKOUT_NOT_SAVED, StoreUnavailable
from .logging import get_logger, sanitize_string_for_logging
from .money import format_money

logger = get_logger(__name__)


class PaymentType(str, Enum):
    """Payment methods offered by the checkout form."""
    CREDIT_CARD = "credit-card"
    DEBIT_CARD = "debit-card"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank-transfer"
    CASH_ON_DELIVERY = "cash-on-delivery"


PAYMENT_TYPE_LABELS = {
    PaymentType.CREDIT_CARD.value: "Credit Card (Visa/Mastercard)",
    PaymentType.DEBIT_CARD.value: "Debit Card",
    PaymentType.PAYPAL.value: "PayPal",
    PaymentType.BANK_TRANSFER.value: "Bank Transfer",
    PaymentType.CASH_ON_DELIVERY.value: "Cash on Delivery",
}


def format_payment_type(payment_type: Optional[str]) -> str:
    """Human-readable payment method; unknown values are echoed back."""
    if not payment_type:
        return ""
    return PAYMENT_TYPE_LABELS.get(payment_type, payment_type)


class CheckoutSnapshot(BaseModel):
    """Most recent checkout form submission, stored under marketplace_checkout."""
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field("", alias="fullName")
    phone: str = ""
    email: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""
    notes: str = ""
    payment_type: str = Field("", alias="paymentType")
    order_date: datetime = Field(default_factory=utc_now, alias="orderDate")

    @property
    def delivery_address(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.zip}, {self.country}"


@dataclass(frozen=True)
class OrderSummary:
    """What the confirmation screen and the order log show."""
    customer: str
    phone: str
    email: str
    delivery_address: str
    notes: str
    payment_method: str
    order_date: Optional[datetime]
    item_count: int
    totals: CartTotals

    def lines(self) -> List[str]:
        return [
            "=== ORDER SUMMARY ===",
            f"Customer: {self.customer}",
            f"Phone: {self.phone}",
            f"Email: {self.email}",
            f"Delivery Address: {self.delivery_address}",
            f"Delivery Notes: {self.notes or 'None'}",
            f"Payment Method: {self.payment_method}",
            f"Order Date: {self.order_date.isoformat() if self.order_date else 'N/A'}",
            f"Cart Items: {self.item_count}",
            f"Total Amount: {format_money(self.totals.discounted_total)}",
            "====================",
        ]


class CheckoutBridge:
    """Cart operations consumed by the checkout collaborator."""

    def __init__(
        self,
        repository: CartRepository,
        store: DurableStore,
        config: Optional[CartConfig] = None,
    ):
        self.repository = repository
        self.store = store
        self.config = config or repository.config

    def read_cart_for_summary(self) -> Cart:
        """Current cart, read-only."""
        return self.repository.load()

    def save_checkout(self, snapshot: CheckoutSnapshot) -> bool:
        try:
            self.store.set(self.config.checkout_key, snapshot.model_dump_json(by_alias=True))
            return True
        except StoreUnavailable as e:
            logger.error(f"{NOTICE_CHECKOUT_NOT_SAVED} ({e})")
            return False

    def load_checkout(self) -> Optional[CheckoutSnapshot]:
        try:
            raw = self.store.get(self.config.checkout_key)
        except StoreUnavailable as e:
            logger.warning(f"Error loading checkout data: {e}")
            return None
        if raw is None:
            return None
        try:
            return CheckoutSnapshot.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"{ERROR_MALFORMED_CHECKOUT}: {e.error_count()} errors")
            return None

    def order_summary(self, snapshot: Optional[CheckoutSnapshot] = None) -> OrderSummary:
        cart = self.read_cart_for_summary()
        snapshot = snapshot or CheckoutSnapshot()
        return OrderSummary(
            customer=snapshot.full_name,
            phone=snapshot.phone,
            email=snapshot.email,
            delivery_address=snapshot.delivery_address,
            notes=snapshot.notes,
            payment_method=format_payment_type(snapshot.payment_type),
            order_date=snapshot.order_date,
            item_count=len(cart),
            totals=cart.totals(),
        )

    def on_order_placed(self, snapshot: Optional[CheckoutSnapshot] = None) -> OrderSummary:
        """
        Record a successful submission and clear the cart.

        The summary is built before the cart is cleared.
        """
        if snapshot is not None:
            self.save_checkout(snapshot)
        else:
            snapshot = self.load_checkout()

        summary = self.order_summary(snapshot)
        for line in summary.lines():
            logger.info(sanitize_string_for_logging(line, max_length=200))

        self.repository.clear()
        return summary
