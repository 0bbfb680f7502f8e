"""
Tests for durable store adapters
"""

import httpx
import pytest
from unittest.mock import Mock
from upstash_redis.errors import UpstashError

from marketcart import db
from marketcart.config import DEFAULT_CART_KEY, DEFAULT_CHECKOUT_KEY, CartConfig
from marketcart.db import FileStore, MemoryStore, RedisStore, get_store, reset_store
from marketcart.errors import StoreUnavailable


class TestMemoryStore:
    """Tests for the in-memory store."""

    def test_get_missing_key(self):
        """Test missing keys read as None."""
        assert MemoryStore().get("nope") is None

    def test_set_get_remove(self):
        """Test basic round trip."""
        store = MemoryStore()
        store.set(DEFAULT_CART_KEY, "[]")

        assert store.get(DEFAULT_CART_KEY) == "[]"
        store.remove(DEFAULT_CART_KEY)
        assert store.get(DEFAULT_CART_KEY) is None

    def test_remove_missing_key(self):
        """Test removing an absent key is a no-op."""
        MemoryStore().remove("nope")

    def test_quota_exceeded(self):
        """Test writes beyond the quota fail."""
        store = MemoryStore(quota_bytes=10)

        with pytest.raises(StoreUnavailable):
            store.set("k", "x" * 11)
        assert store.get("k") is None

    def test_quota_counts_replacement_once(self):
        """Test overwriting a key does not double count it."""
        store = MemoryStore(quota_bytes=10)
        store.set("k", "x" * 8)
        store.set("k", "y" * 10)

        assert store.get("k") == "y" * 10

    def test_non_string_value(self):
        """Test only strings are stored."""
        with pytest.raises(StoreUnavailable):
            MemoryStore().set("k", 42)


class TestFileStore:
    """Tests for the file-backed store."""

    def test_survives_new_instance(self, tmp_path):
        """Test data written by one instance is read by another (restart)."""
        FileStore(tmp_path).set(DEFAULT_CART_KEY, '[{"id": 1}]')

        assert FileStore(tmp_path).get(DEFAULT_CART_KEY) == '[{"id": 1}]'

    def test_missing_key(self, tmp_path):
        """Test missing files read as None."""
        assert FileStore(tmp_path / "missing").get(DEFAULT_CART_KEY) is None

    def test_remove(self, tmp_path):
        """Test removal deletes the file."""
        store = FileStore(tmp_path)
        store.set(DEFAULT_CHECKOUT_KEY, "{}")
        store.remove(DEFAULT_CHECKOUT_KEY)
        store.remove(DEFAULT_CHECKOUT_KEY)

        assert store.get(DEFAULT_CHECKOUT_KEY) is None

    def test_no_temp_files_left(self, tmp_path):
        """Test atomic writes clean up after themselves."""
        store = FileStore(tmp_path)
        store.set("a", "1")
        store.set("a", "2")

        assert sorted(p.name for p in tmp_path.iterdir()) == ["a.json"]

    def test_unsafe_key_characters(self, tmp_path):
        """Test keys are mapped to safe file names."""
        store = FileStore(tmp_path)
        store.set("../escape", "v")

        assert store.get("../escape") == "v"
        assert all(p.parent == tmp_path for p in tmp_path.iterdir())

    def test_write_failure(self, tmp_path):
        """Test I/O errors surface as StoreUnavailable."""
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StoreUnavailable):
            FileStore(blocker).set("k", "v")


class TestRedisStore:
    """Tests for the Upstash-backed store."""

    def test_get_set_remove(self):
        """Test calls are forwarded to the client."""
        redis = Mock()
        redis.get.return_value = "[]"
        store = RedisStore(redis)

        assert store.get("k") == "[]"
        store.set("k", "v")
        store.remove("k")

        redis.get.assert_called_once_with("k")
        redis.set.assert_called_once_with("k", "v")
        redis.delete.assert_called_once_with("k")

    def test_set_with_ttl(self):
        """Test TTL is passed as ex."""
        redis = Mock()
        RedisStore(redis, ttl=86400).set("k", "v")

        redis.set.assert_called_once_with("k", "v", ex=86400)

    @pytest.mark.parametrize("error", [UpstashError("boom"), httpx.ConnectError("down")])
    def test_errors_wrapped(self, error):
        """Test client errors surface as StoreUnavailable."""
        redis = Mock()
        redis.get.side_effect = error
        redis.set.side_effect = error

        store = RedisStore(redis)
        with pytest.raises(StoreUnavailable):
            store.get("k")
        with pytest.raises(StoreUnavailable):
            store.set("k", "v")


class TestGetStore:
    """Tests for backend selection."""

    def setup_method(self):
        reset_store()

    def teardown_method(self):
        reset_store()

    def test_memory_backend(self):
        assert isinstance(get_store(CartConfig(store_backend="memory")), MemoryStore)

    def test_file_backend(self, tmp_path):
        store = get_store(CartConfig(store_backend="file", store_path=tmp_path))

        assert isinstance(store, FileStore)
        assert store.root == tmp_path

    def test_singleton(self):
        first = get_store(CartConfig(store_backend="memory"))

        assert get_store(CartConfig(store_backend="file")) is first

    def test_redis_backend_requires_credentials(self):
        with pytest.raises(ValueError):
            get_store(CartConfig(store_backend="redis"))

    def test_redis_backend(self, monkeypatch):
        client = Mock()
        monkeypatch.setattr(db, "Redis", Mock(return_value=client))

        store = get_store(CartConfig(store_backend="redis", redis_url="https://x.upstash.io",
                                     redis_token="token", store_ttl=60))

        assert isinstance(store, RedisStore)
        assert store.redis is client
        assert store.ttl == 60
