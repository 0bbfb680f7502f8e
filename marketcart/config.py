"""Cart engine configuration.

Process-wide settings are read once from the environment and passed to the
repository, scheduler and checkout bridge as an explicit CartConfig value.
"""
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from .logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]

# Defaults
DEFAULT_CART_KEY = "marketplace_cart"
DEFAULT_CHECKOUT_KEY = "marketplace_checkout"
DEFAULT_STREAM_KEY = "stream:realtime:cart"
DEFAULT_DISCOUNT_SECONDS = 1200  # 20 minutes
DEFAULT_EXPIRING_SECONDS = 300  # "ending soon" hint under 5 minutes
DEFAULT_TICK_SECONDS = 1.0

STORE_BACKENDS = ("file", "memory", "redis")


def utc_now() -> datetime:
    """Default clock: timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid number for {name}: {raw!r}, using {default}")
        return default


@dataclass(frozen=True)
class CartConfig:
    """Settings shared by every cart component."""
    cart_key: str = DEFAULT_CART_KEY
    checkout_key: str = DEFAULT_CHECKOUT_KEY
    discount_duration: timedelta = timedelta(seconds=DEFAULT_DISCOUNT_SECONDS)
    expiring_threshold: timedelta = timedelta(seconds=DEFAULT_EXPIRING_SECONDS)
    tick_interval: float = DEFAULT_TICK_SECONDS
    store_backend: str = "file"
    store_path: Path = field(default_factory=lambda: Path(".marketcart"))
    store_ttl: Optional[int] = None
    stream_key: str = DEFAULT_STREAM_KEY
    redis_url: str = ""
    redis_token: str = ""

    def __post_init__(self):
        if self.discount_duration <= timedelta(0):
            raise ValueError("discount_duration must be positive")
        if self.tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(f"store_backend must be one of {', '.join(STORE_BACKENDS)}")

    @classmethod
    def from_env(cls) -> "CartConfig":
        """
        Build configuration from environment variables.

        Uses the standard Upstash env var names for the redis backend:
        UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN.
        """
        ttl = _env_int("CART_STORE_TTL", 0)
        return cls(
            cart_key=os.environ.get("CART_STORAGE_KEY", DEFAULT_CART_KEY),
            checkout_key=os.environ.get("CHECKOUT_STORAGE_KEY", DEFAULT_CHECKOUT_KEY),
            discount_duration=timedelta(
                seconds=_env_int("CART_DISCOUNT_SECONDS", DEFAULT_DISCOUNT_SECONDS)
            ),
            expiring_threshold=timedelta(
                seconds=_env_int("CART_EXPIRING_SECONDS", DEFAULT_EXPIRING_SECONDS)
            ),
            tick_interval=_env_float("CART_TICK_SECONDS", DEFAULT_TICK_SECONDS),
            store_backend=os.environ.get("CART_STORE_BACKEND", "file").lower(),
            store_path=Path(os.environ.get("CART_STORE_PATH", ".marketcart")),
            store_ttl=ttl or None,
            stream_key=os.environ.get("CART_STREAM_KEY", DEFAULT_STREAM_KEY),
            redis_url=os.environ.get("UPSTASH_REDIS_REST_URL", ""),
            redis_token=os.environ.get("UPSTASH_REDIS_REST_TOKEN", ""),
        )
