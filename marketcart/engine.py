"""Engine facade: wires store, broadcaster, repository, scheduler and checkout."""
from dataclasses import dataclass
from typing import Optional

from .cart.discounts import DiscountExpiryScheduler
from .cart.mirror import CartMirror
from .cart.repository import CartRepository
from .checkout import CheckoutBridge
from .config import CartConfig, Clock, utc_now
from .db import DurableStore, get_redis, get_store
from .logging import get_logger
from .realtime import ChangeBroadcaster, RedisStreamRelay

logger = get_logger(__name__)


@dataclass
class CartEngine:
    """All cart components sharing one store and one broadcaster."""
    config: CartConfig
    store: DurableStore
    broadcaster: ChangeBroadcaster
    repository: CartRepository
    scheduler: DiscountExpiryScheduler
    checkout: CheckoutBridge

    def mirror(self, name: str, on_change=None) -> CartMirror:
        """New mounted mirror for a UI runtime."""
        mirror = CartMirror(self.repository, self.broadcaster, name=name, on_change=on_change)
        mirror.mount()
        return mirror


def create_engine(
    config: Optional[CartConfig] = None,
    store: Optional[DurableStore] = None,
    clock: Optional[Clock] = None,
    relay: Optional[RedisStreamRelay] = None,
) -> CartEngine:
    """
    Build a cart engine.

    With the redis backend, cartUpdated snapshots are also relayed to the
    configured stream unless an explicit relay is given.
    """
    config = config or CartConfig.from_env()
    store = store or get_store(config)
    clock = clock or utc_now
    broadcaster = ChangeBroadcaster()

    if relay is None and config.store_backend == "redis":
        relay = RedisStreamRelay(get_redis(config), config.stream_key)
    if relay is not None:
        relay.attach(broadcaster)

    repository = CartRepository(store, broadcaster, config=config, clock=clock)
    scheduler = DiscountExpiryScheduler(repository, broadcaster, config=config, clock=clock)
    checkout = CheckoutBridge(repository, store, config=config)
    return CartEngine(
        config=config,
        store=store,
        broadcaster=broadcaster,
        repository=repository,
        scheduler=scheduler,
        checkout=checkout,
    )


# Singleton instance
_engine: Optional[CartEngine] = None


def get_cart_engine() -> CartEngine:
    """Get CartEngine singleton."""
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine
