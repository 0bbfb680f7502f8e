"""
Tests for the checkout bridge
"""

import json
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from marketcart.checkout import (
    CheckoutBridge,
    CheckoutSnapshot,
    PaymentType,
    format_payment_type,
)
from marketcart.realtime import CART_UPDATED


@pytest.fixture
def bridge(repository, store, config):
    return CheckoutBridge(repository, store, config=config)


@pytest.fixture
def sample_checkout():
    """Checkout form snapshot as the DOM layer stores it"""
    return {
        "fullName": "Ada Lovelace",
        "phone": "5550100200",
        "email": "ada@example.com",
        "street": "12 Analytical Way",
        "city": "London",
        "state": "Greater London",
        "zip": "N1 9GU",
        "country": "UK",
        "notes": "",
        "paymentType": "paypal",
        "orderDate": "2026-01-01T12:30:00.000Z",
    }


class TestPaymentType:
    """Tests for payment method labels."""

    @pytest.mark.parametrize("value, label", [
        (PaymentType.CREDIT_CARD.value, "Credit Card (Visa/Mastercard)"),
        ("debit-card", "Debit Card"),
        ("paypal", "PayPal"),
        ("bank-transfer", "Bank Transfer"),
        ("cash-on-delivery", "Cash on Delivery"),
        ("crypto", "crypto"),
        (None, ""),
    ])
    def test_labels(self, value, label):
        assert format_payment_type(value) == label


class TestCheckoutSnapshot:
    """Tests for the checkout snapshot model."""

    def test_from_browser_fields(self, sample_checkout):
        snapshot = CheckoutSnapshot.model_validate(sample_checkout)

        assert snapshot.full_name == "Ada Lovelace"
        assert snapshot.payment_type == "paypal"
        assert snapshot.order_date == datetime(2026, 1, 1, 12, 30, tzinfo=timezone.utc)
        assert snapshot.delivery_address == "12 Analytical Way, London, Greater London N1 9GU, UK"

    def test_populate_by_name(self):
        snapshot = CheckoutSnapshot(full_name="Grace", payment_type="debit-card")

        assert snapshot.full_name == "Grace"
        assert snapshot.order_date.tzinfo is not None


class TestCheckoutBridge:
    """Tests for checkout persistence and order placement."""

    def test_read_cart_for_summary(self, bridge, repository, sample_item):
        repository.add(sample_item)

        cart = bridge.read_cart_for_summary()

        assert cart.ids == [1]

    def test_save_and_load_checkout(self, bridge, store, config, sample_checkout):
        snapshot = CheckoutSnapshot.model_validate(sample_checkout)

        assert bridge.save_checkout(snapshot) is True

        raw = json.loads(store.get(config.checkout_key))
        assert raw["fullName"] == "Ada Lovelace"
        assert raw["paymentType"] == "paypal"
        assert bridge.load_checkout() == snapshot

    def test_load_missing_checkout(self, bridge):
        assert bridge.load_checkout() is None

    def test_load_malformed_checkout(self, bridge, store, config):
        store.set(config.checkout_key, "{broken")

        assert bridge.load_checkout() is None

    def test_save_checkout_failure(self, failing_store, repository, config, sample_checkout):
        bridge = CheckoutBridge(repository, failing_store, config=config)

        assert bridge.save_checkout(CheckoutSnapshot.model_validate(sample_checkout)) is False
        assert bridge.load_checkout() is None

    def test_on_order_placed_clears_cart(self, bridge, repository, broadcaster, sample_item, sample_checkout):
        repository.add(sample_item)
        repository.add({"id": 2, "price": 5, "quantity": 1})
        updates = []
        broadcaster.subscribe(updates.append, CART_UPDATED)

        summary = bridge.on_order_placed(CheckoutSnapshot.model_validate(sample_checkout))

        assert summary.customer == "Ada Lovelace"
        assert summary.payment_method == "PayPal"
        assert summary.item_count == 2
        assert summary.totals.discounted_total == Decimal("21")
        assert repository.load() == []
        assert updates == [repository.snapshot]
        assert bridge.load_checkout().email == "ada@example.com"

    def test_on_order_placed_uses_stored_checkout(self, bridge, repository, sample_item, sample_checkout):
        bridge.save_checkout(CheckoutSnapshot.model_validate(sample_checkout))
        repository.add(sample_item)

        summary = bridge.on_order_placed()

        assert summary.customer == "Ada Lovelace"
        assert repository.load() == []

    def test_summary_lines(self, bridge, repository, sample_item, sample_checkout):
        repository.add(sample_item)

        lines = bridge.order_summary(CheckoutSnapshot.model_validate(sample_checkout)).lines()

        assert lines[0] == "=== ORDER SUMMARY ==="
        assert "Delivery Notes: None" in lines
        assert "Payment Method: PayPal" in lines
        assert "Cart Items: 1" in lines
        assert "Total Amount: $16.00" in lines
