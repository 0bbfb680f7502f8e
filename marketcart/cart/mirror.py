"""Per-runtime view of the shared cart."""
from typing import Callable, Optional

from marketcart.logging import get_logger
from marketcart.realtime import CART_UPDATED, ChangeBroadcaster, Unsubscribe

from .models import Cart, CartTotals
from .repository import CartRepository

logger = get_logger(__name__)


class CartMirror:
    """
    Read cache of the cart for one UI runtime.

    The cached snapshot is never authoritative: it is re-read from the store
    on mount and replaced wholesale by every cartUpdated broadcast.
    """

    def __init__(
        self,
        repository: CartRepository,
        broadcaster: ChangeBroadcaster,
        name: str = "runtime",
        on_change: Optional[Callable[[Cart], None]] = None,
    ):
        self.repository = repository
        self.broadcaster = broadcaster
        self.name = name
        self.on_change = on_change
        self._snapshot = Cart()
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def snapshot(self) -> Cart:
        return self._snapshot

    @property
    def mounted(self) -> bool:
        return self._unsubscribe is not None

    @property
    def total_quantity(self) -> int:
        return self._snapshot.total_quantity

    def totals(self) -> CartTotals:
        return self._snapshot.totals()

    def mount(self) -> Cart:
        """Load from the store and start following broadcasts."""
        if self._unsubscribe is None:
            self._unsubscribe = self.broadcaster.subscribe(self._apply, CART_UPDATED)
        self._apply(self.repository.load())
        logger.debug(f"Cart mirror {self.name} mounted with {len(self._snapshot)} items")
        return self._snapshot

    def unmount(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _apply(self, cart: Cart) -> None:
        self._snapshot = cart
        if self.on_change is None:
            return
        # Same policy on mount and on broadcast: a failing render is logged, never raised
        try:
            self.on_change(cart)
        except Exception as e:
            logger.warning(f"Cart mirror {self.name} on_change failed: {e}", exc_info=True)
