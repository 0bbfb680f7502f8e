"""Realtime Module - cart change broadcasting.

ChangeBroadcaster delivers cart snapshots to every subscriber in the
process, whichever UI runtime registered it. RedisStreamRelay forwards the
same events to a Redis stream (XADD) for runtimes living in another process.
"""

import json
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from upstash_redis import Redis

from .logging import get_logger

logger = get_logger(__name__)

# Event names
CART_UPDATED = "cartUpdated"
CART_PERSIST_FAILED = "cartPersistFailed"

Listener = Callable[[Any], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class PersistNotice:
    """Transient, retryable notice that the cart could not be saved."""
    message: str
    error: str
    retryable: bool = True


class _Subscription:
    __slots__ = ("listener", "active")

    def __init__(self, listener: Listener):
        self.listener = listener
        self.active = True


class ChangeBroadcaster:
    """
    Synchronous publish/subscribe for cart events.

    - Listeners run in registration order.
    - A listener unsubscribed during delivery gets nothing further from that pass.
    - Events published from inside a listener are queued and delivered after
      the current pass, so every listener sees events in commit order.
    - A failing listener is logged and skipped.
    """

    def __init__(self):
        self._subscriptions: Dict[str, List[_Subscription]] = defaultdict(list)
        self._pending: Deque[Tuple[str, Any]] = deque()
        self._delivering = False

    def subscribe(self, listener: Listener, event: str = CART_UPDATED) -> Unsubscribe:
        """Register a listener; returns a callable that removes it."""
        subscription = _Subscription(listener)
        self._subscriptions[event].append(subscription)

        def unsubscribe() -> None:
            subscription.active = False
            subscriptions = self._subscriptions.get(event, [])
            if subscription in subscriptions:
                subscriptions.remove(subscription)

        return unsubscribe

    def subscriber_count(self, event: str = CART_UPDATED) -> int:
        return len(self._subscriptions.get(event, []))

    def publish(self, payload: Any, event: str = CART_UPDATED) -> None:
        """Deliver ``payload`` to every current listener of ``event``."""
        self._pending.append((event, payload))
        if self._delivering:
            return

        self._delivering = True
        try:
            while self._pending:
                next_event, next_payload = self._pending.popleft()
                self._deliver(next_event, next_payload)
        finally:
            self._delivering = False

    def _deliver(self, event: str, payload: Any) -> None:
        for subscription in list(self._subscriptions.get(event, [])):
            if not subscription.active:
                continue
            try:
                subscription.listener(payload)
            except Exception as e:
                logger.warning(f"Listener for {event} failed: {e}", exc_info=True)


class RedisStreamRelay:
    """
    Forward cartUpdated snapshots to a Redis stream.

    Note: Redis Streams (XADD) rather than Pub/Sub, for compatibility with
    the Upstash REST API and so late readers can replay the latest state.
    """

    def __init__(self, redis: Redis, stream_key: str, maxlen: Optional[int] = 100):
        self.redis = redis
        self.stream_key = stream_key
        self.maxlen = maxlen

    def __call__(self, cart: Any) -> None:
        try:
            payload = {
                "event": CART_UPDATED,
                "items": cart.to_records(),
            }
            self.redis.xadd(
                self.stream_key, "*", {"data": json.dumps(payload)}, maxlen=self.maxlen
            )
            logger.debug(f"Relayed {CART_UPDATED} to {self.stream_key}")
        except Exception as e:
            logger.warning(f"Failed to relay {CART_UPDATED}: {e}", exc_info=True)

    def attach(self, broadcaster: ChangeBroadcaster) -> Unsubscribe:
        return broadcaster.subscribe(self, CART_UPDATED)
