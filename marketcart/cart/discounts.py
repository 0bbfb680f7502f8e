"""Discount expiry: windows, states and the expiry scheduler.

Remaining time is always recomputed as ``duration - (now - added_at)`` from
the persisted timestamp, so a restart or reload never resets a countdown.
Expiry is a one-shot transition per item instance, guarded by a latch.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Set

from marketcart.config import CartConfig, Clock, utc_now
from marketcart.logging import get_logger, sanitize_id_for_logging
from marketcart.realtime import CART_UPDATED, ChangeBroadcaster, Unsubscribe

from .models import Cart, CartItem, ItemId
from .repository import CartRepository

logger = get_logger(__name__)


class DiscountState(str, Enum):
    """
    Discount lifecycle of one cart item.

    Flow:
        active -> expiring -> expired -> no_discount

    - active: discount set, window still open
    - expiring: active with less than the expiring threshold left (display hint only)
    - expired: window closed, the discount is about to be stripped
    - no_discount: item carries no discount
    """
    ACTIVE = "active"
    EXPIRING = "expiring"
    EXPIRED = "expired"
    NO_DISCOUNT = "no_discount"


@dataclass(frozen=True)
class DiscountWindow:
    """Interval during which an item's discount is valid."""
    item_id: ItemId
    added_at: datetime
    duration: timedelta

    @property
    def expires_at(self) -> datetime:
        return self.added_at + self.duration

    def remaining(self, now: datetime) -> timedelta:
        remaining = self.duration - (now - self.added_at)
        return max(remaining, timedelta(0))

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def state(self, now: datetime, expiring_threshold: timedelta) -> DiscountState:
        if self.is_expired(now):
            return DiscountState.EXPIRED
        if self.remaining(now) < expiring_threshold:
            return DiscountState.EXPIRING
        return DiscountState.ACTIVE


@dataclass(frozen=True)
class Countdown:
    """Display values for an item's discount timer."""
    state: DiscountState
    remaining_seconds: int

    @property
    def label(self) -> str:
        minutes, seconds = divmod(self.remaining_seconds, 60)
        return f"{minutes:02d}:{seconds:02d}"

    @property
    def is_expiring(self) -> bool:
        return self.state == DiscountState.EXPIRING


def discount_window(item: CartItem, duration: timedelta) -> Optional[DiscountWindow]:
    """Window for a discounted item, None for full-price items."""
    if not item.has_discount or item.added_at is None:
        return None
    return DiscountWindow(item_id=item.id, added_at=item.added_at, duration=duration)


def evaluate(item: Optional[CartItem], now: datetime, config: CartConfig) -> DiscountState:
    """Discount state of an item at ``now``."""
    window = discount_window(item, config.discount_duration) if item is not None else None
    if window is None:
        return DiscountState.NO_DISCOUNT
    return window.state(now, config.expiring_threshold)


class DiscountExpiryScheduler:
    """
    Strips expired discounts through the repository.

    Windows are re-derived from every cartUpdated snapshot: an item that
    loses its discount or leaves the cart releases its window and latch, a
    new addedAt (re-grant or re-add) resets the latch. ``tick`` fires
    ``strip_discount`` at most once per window.
    """

    def __init__(
        self,
        repository: CartRepository,
        broadcaster: ChangeBroadcaster,
        config: Optional[CartConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.repository = repository
        self.broadcaster = broadcaster
        self.config = config or repository.config
        self.clock = clock or repository.clock
        self._windows: Dict[ItemId, DiscountWindow] = {}
        self._latched: Set[ItemId] = set()
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def tracked_ids(self) -> List[ItemId]:
        return list(self._windows)

    @property
    def started(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> List[ItemId]:
        """
        Hydrate from the store, subscribe, and evaluate once.

        Returns ids whose discount had already lapsed (e.g. while the
        process was down) and was stripped during this first evaluation.
        """
        if self._unsubscribe is None:
            self._unsubscribe = self.broadcaster.subscribe(self._on_cart_updated, CART_UPDATED)
        self._sync(self.repository.load())
        logger.info(f"Discount scheduler started, tracking {len(self._windows)} items")
        return self.tick()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._windows.clear()
        self._latched.clear()

    def tick(self, now: Optional[datetime] = None) -> List[ItemId]:
        """Run one evaluation; returns the ids whose discount was stripped."""
        now = now or self.clock()
        expired = [
            item_id
            for item_id, window in list(self._windows.items())
            if window.is_expired(now) and item_id not in self._latched
        ]
        for item_id in expired:
            self._latched.add(item_id)
            logger.info(f"Discount expired for item {sanitize_id_for_logging(item_id)}")
            cart = self.repository.strip_discount(item_id)
            # A no-op strip publishes nothing, so resync from the result
            self._sync(cart)
        return expired

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Tick every ``tick_interval`` seconds until ``stop_event`` is set or cancelled."""
        if not self.started:
            self.start()
        interval = self.config.tick_interval
        try:
            while stop_event is None or not stop_event.is_set():
                try:
                    self.tick()
                except Exception as e:
                    logger.error(f"Discount tick failed: {e}", exc_info=True)
                await asyncio.sleep(interval)
        finally:
            self.stop()

    def state_of(self, item_id: ItemId, now: Optional[datetime] = None) -> DiscountState:
        return evaluate(self.repository.snapshot.get(item_id), now or self.clock(), self.config)

    def countdown(self, item_id: ItemId, now: Optional[datetime] = None) -> Countdown:
        """Countdown for display, re-derived from addedAt on every call."""
        now = now or self.clock()
        item = self.repository.snapshot.get(item_id)
        window = discount_window(item, self.config.discount_duration) if item else None
        if window is None:
            return Countdown(state=DiscountState.NO_DISCOUNT, remaining_seconds=0)
        remaining = int(window.remaining(now).total_seconds())
        return Countdown(
            state=window.state(now, self.config.expiring_threshold),
            remaining_seconds=remaining,
        )

    def _on_cart_updated(self, cart: Cart) -> None:
        self._sync(cart)

    def _sync(self, cart: Cart) -> None:
        windows: Dict[ItemId, DiscountWindow] = {}
        for item in cart:
            window = discount_window(item, self.config.discount_duration)
            if window is not None:
                windows[item.id] = window

        for item_id in list(self._latched):
            previous = self._windows.get(item_id)
            current = windows.get(item_id)
            # Expired -> NoDiscount (or removed), or a fresh window: drop the latch
            if current is None or (previous is not None and current.added_at != previous.added_at):
                self._latched.discard(item_id)

        released = set(self._windows) - set(windows)
        if released:
            logger.debug(f"Released discount timers for {len(released)} items")
        self._windows = windows
