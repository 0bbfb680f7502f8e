"""
Durable Store Module - key-value persistence for the cart.

Provides:
- DurableStore protocol (get / set / remove of string values)
- FileStore: one file per key, survives process restart, no network
- MemoryStore: dict-backed, optional byte quota
- RedisStore: Upstash Redis REST client for processes sharing one cart

Every backend raises StoreUnavailable on failure. Callers serialize and
deserialize whole values; there are no transactions.
"""

import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

import httpx
from upstash_redis import Redis
from upstash_redis.errors import UpstashError

from .config import CartConfig
from .errors import ERROR_STORE_QUOTA, ERROR_STORE_UNAVAILABLE, StoreUnavailable
from .logging import get_logger

logger = get_logger(__name__)


class DurableStore(Protocol):
    """Key-value persistence with string values."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """In-process store. Lost on restart; used for ephemeral sessions and tests."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StoreUnavailable(f"{ERROR_STORE_UNAVAILABLE}: value for {key} is not a string")
        if self.quota_bytes is not None:
            used = sum(len(v.encode("utf-8")) for k, v in self._data.items() if k != key)
            if used + len(value.encode("utf-8")) > self.quota_bytes:
                raise StoreUnavailable(f"{ERROR_STORE_QUOTA} ({self.quota_bytes} bytes)")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileStore:
    """
    Directory-backed store: each key is a UTF-8 file under ``root``.

    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so a reader never sees a half-written value.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.root / f"{safe}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StoreUnavailable(f"{ERROR_STORE_UNAVAILABLE}: cannot read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError) as e:
            raise StoreUnavailable(f"{ERROR_STORE_UNAVAILABLE}: cannot write {path}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StoreUnavailable(f"{ERROR_STORE_UNAVAILABLE}: cannot remove {key}: {e}") from e


class RedisStore:
    """Upstash Redis backed store (sync REST client)."""

    def __init__(self, redis: Redis, ttl: Optional[int] = None):
        self.redis = redis
        self.ttl = ttl

    def get(self, key: str) -> Optional[str]:
        try:
            return self.redis.get(key)
        except (UpstashError, httpx.HTTPError) as e:
            raise StoreUnavailable(f"{ERROR_STORE_UNAVAILABLE}: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            if self.ttl:
                self.redis.set(key, value, ex=self.ttl)
            else:
                self.redis.set(key, value)
        except (UpstashError, httpx.HTTPError) as e:
            raise StoreUnavailable(f"{ERROR_STORE_UNAVAILABLE}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self.redis.delete(key)
        except (UpstashError, httpx.HTTPError) as e:
            raise StoreUnavailable(f"{ERROR_STORE_UNAVAILABLE}: {e}") from e


# Singleton instances
_store: Optional[DurableStore] = None
_redis_client: Optional[Redis] = None


def get_redis(config: CartConfig) -> Redis:
    """
    Get sync Upstash Redis client (singleton).

    Used for:
    - RedisStore backend
    - cartUpdated stream relay
    """
    global _redis_client

    if _redis_client is None:
        if not config.redis_url or not config.redis_token:
            raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
        _redis_client = Redis(url=config.redis_url, token=config.redis_token)

    return _redis_client


def get_store(config: Optional[CartConfig] = None) -> DurableStore:
    """Get the configured durable store (singleton)."""
    global _store

    if _store is None:
        config = config or CartConfig.from_env()
        if config.store_backend == "redis":
            _store = RedisStore(get_redis(config), ttl=config.store_ttl)
        elif config.store_backend == "memory":
            logger.warning("Using in-memory cart store; the cart will not survive a restart")
            _store = MemoryStore()
        else:
            _store = FileStore(config.store_path)
        logger.info(f"Cart store backend: {config.store_backend}")

    return _store


def reset_store() -> None:
    """Drop the store and Redis singletons (tests, reconfiguration)."""
    global _store, _redis_client
    _store = None
    _redis_client = None
