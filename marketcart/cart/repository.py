"""Cart repository: the single writer of the persisted cart."""
import json
from dataclasses import replace
from typing import Any, Callable, Mapping, Optional, Union

from marketcart.config import CartConfig, Clock, utc_now
from marketcart.db import DurableStore
from marketcart.errors import (
    NOTICE_PERSIST_FAILED,
    MalformedPersistedData,
    StoreUnavailable,
)
from marketcart.logging import get_logger, sanitize_id_for_logging
from marketcart.realtime import CART_PERSIST_FAILED, CART_UPDATED, ChangeBroadcaster, PersistNotice

from .models import Cart, CartItem, CartTotals, ItemId

logger = get_logger(__name__)


def _whole_quantity(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"quantity must be a whole number, got {value!r}")
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except ValueError as e:
        raise ValueError(f"quantity must be a whole number, got {value!r}") from e
    if not number.is_integer():
        raise ValueError(f"quantity must be a whole number, got {value!r}")
    return int(number)


class CartRepository:
    """
    Owns the canonical cart.

    Every mutation is a whole-cart read-modify-write: read the store, apply
    the change, persist, then publish the new snapshot on ``cartUpdated``.
    Mutations that change nothing (unknown id, discount already gone) skip
    both the write and the publish; clear() always writes.

    Store failures never propagate. load() degrades to an empty cart, while
    a mutation whose read fails builds on the last cart this repository
    knew, so it never writes over items it could not read. Failed writes
    keep the in-memory cart operative and publish a PersistNotice.

    Only invalid arguments raise: ValueError from add(), set_quantity() and
    grant_discount(), before anything is written.
    """

    def __init__(
        self,
        store: DurableStore,
        broadcaster: ChangeBroadcaster,
        config: Optional[CartConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.config = config or CartConfig()
        self.clock = clock or utc_now
        self._cart = Cart()
        self._persist_error: Optional[str] = None

    # =====================================================
    # QUERY
    # =====================================================
    @property
    def snapshot(self) -> Cart:
        """Last cart read or written by this repository."""
        return self._cart

    @property
    def persist_error(self) -> Optional[str]:
        """Message of the last failed write, None once a write succeeds."""
        return self._persist_error

    def load(self) -> Cart:
        """
        Read the cart from the store.

        Missing, corrupt or unreadable data yields an empty cart. While a
        write is failing, the in-memory cart is newer than the store and is
        returned instead.
        """
        return self._load(fallback=Cart())

    def totals(self) -> CartTotals:
        """Totals recomputed from the current entries."""
        return self.load().totals()

    # =====================================================
    # COMMANDS
    # =====================================================
    def add(self, item: Union[CartItem, Mapping[str, Any]]) -> Cart:
        """
        Add an item.

        An id already in the cart gets its quantity incremented; its price,
        discount and addedAt stay as they were. A new id is appended with
        addedAt = now.

        Raises ValueError for a malformed item (missing field, negative
        price, quantity below 1); store failures are absorbed.
        """
        if not isinstance(item, CartItem):
            try:
                item = CartItem.from_dict(dict(item))
            except KeyError as e:
                raise ValueError(f"cart item is missing field {e}") from e

        def change(cart: Cart) -> Cart:
            existing = cart.get(item.id)
            if existing is not None:
                return cart.replace_item(item.id, quantity=existing.quantity + item.quantity)
            return cart.with_items((*cart.items, replace(item, added_at=self.clock())))

        return self._mutate("add", item.id, change)

    def set_quantity(self, item_id: ItemId, quantity: int) -> Cart:
        """
        Replace an item's quantity; zero or less removes it.

        Raises ValueError unless ``quantity`` is a whole number.
        """
        quantity = _whole_quantity(quantity)
        if quantity <= 0:
            return self.remove(item_id)

        def change(cart: Cart) -> Cart:
            if item_id not in cart:
                return cart
            return cart.replace_item(item_id, quantity=quantity)

        return self._mutate("set_quantity", item_id, change)

    def remove(self, item_id: ItemId) -> Cart:
        """Drop an item; unknown ids are ignored."""
        return self._mutate("remove", item_id, lambda cart: cart.without(item_id))

    def strip_discount(self, item_id: ItemId) -> Cart:
        """Remove an item's discount, leaving every other field untouched. Idempotent."""

        def change(cart: Cart) -> Cart:
            item = cart.get(item_id)
            if item is None or not item.has_discount:
                return cart
            return cart.replace_item(item_id, discount_percent=None)

        return self._mutate("strip_discount", item_id, change)

    def grant_discount(self, item_id: ItemId, discount_percent: int) -> Cart:
        """
        (Re)grant a discount; the window restarts at now.

        Raises ValueError for a percent outside (0, 100).
        """

        def change(cart: Cart) -> Cart:
            if item_id not in cart:
                return cart
            return cart.replace_item(
                item_id, discount_percent=discount_percent, added_at=self.clock()
            )

        return self._mutate("grant_discount", item_id, change)

    def clear(self) -> Cart:
        """Empty the cart (after checkout)."""
        return self._mutate("clear", None, lambda cart: Cart(), always_write=True)

    def save(self, cart: Cart) -> bool:
        """
        Write the whole cart to the store.

        Returns False when the store failed; the cart is still kept in
        memory and a cartPersistFailed notice is published.
        """
        self._cart = cart
        try:
            self.store.set(self.config.cart_key, cart.to_json())
        except StoreUnavailable as e:
            self._persist_error = str(e)
            logger.error(f"Failed to persist cart: {e}")
            self.broadcaster.publish(
                PersistNotice(message=NOTICE_PERSIST_FAILED, error=str(e)),
                CART_PERSIST_FAILED,
            )
            return False

        if self._persist_error is not None:
            logger.info("Cart persistence recovered")
        self._persist_error = None
        return True

    def retry_persist(self) -> bool:
        """Retry a failed write with the current in-memory cart."""
        if self._persist_error is None:
            return True
        return self.save(self._cart)

    # =====================================================
    # INTERNALS
    # =====================================================
    def _load(self, fallback: Cart) -> Cart:
        if self._persist_error is not None:
            return self._cart

        try:
            cart = self._read()
        except MalformedPersistedData as e:
            logger.warning(f"Corrupted cart data, starting empty: {e.reason}")
            self._discard_corrupted()
            cart = Cart()
        except StoreUnavailable as e:
            logger.warning(f"Cart store unavailable on read, using {len(fallback)} cached items: {e}")
            # Keep the last known cart as the base for the next mutation
            return fallback

        self._cart = cart
        return cart

    def _read(self) -> Cart:
        key = self.config.cart_key
        raw = self.store.get(key)
        if raw is None:
            return Cart()
        try:
            return Cart.from_json(raw, default_added_at=self.clock())
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise MalformedPersistedData(key, str(e)) from e

    def _discard_corrupted(self) -> None:
        try:
            self.store.remove(self.config.cart_key)
        except StoreUnavailable as e:
            logger.warning(f"Could not remove corrupted cart data: {e}")

    def _mutate(
        self,
        action: str,
        item_id: Optional[ItemId],
        change: Callable[[Cart], Cart],
        always_write: bool = False,
    ) -> Cart:
        # An unreadable store must not be overwritten with an empty base
        current = self._load(fallback=self._cart)
        updated = change(current)
        safe_id = sanitize_id_for_logging(item_id)

        if updated == current and not always_write:
            logger.debug(f"Cart {action} {safe_id}: no change")
            return current

        self.save(updated)
        logger.info(f"Cart {action} {safe_id}: {len(updated)} items, {updated.total_quantity} units")
        self.broadcaster.publish(updated, CART_UPDATED)
        return updated
