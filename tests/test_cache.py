"""Tests for the StorableCache facade and the storage factory."""

import time
from pathlib import Path

import pytest
from conftest import FakeClock, FakeMemcache, FakeRedis
from sqlalchemy import create_engine

import storable_cache
from storable_cache import (
    DEFAULT_LIFETIME,
    DEFAULT_SAVETIME,
    CacheConfig,
    FilesStorage,
    InvalidKeyError,
    MemoryStorage,
    SqliteSettings,
    SqliteStorage,
    SqlSettings,
    SqlStorage,
    StorableCache,
    StorageConnectError,
    StorageNotSupportedError,
    create_storage,
)


class TestStorableCacheInit:
    """Tests for StorableCache construction."""

    def test_default_is_memory(self) -> None:
        """Test that a cache without config uses the memory storage."""
        cache = StorableCache()
        assert isinstance(cache.storage, MemoryStorage)

    def test_default_horizons(self) -> None:
        """Test the default lifetime and savetime."""
        cache = StorableCache()
        assert cache.default_lifetime == DEFAULT_LIFETIME == 3
        assert cache.default_savetime == DEFAULT_SAVETIME == 3600

    def test_configured_horizons(self) -> None:
        """Test that the config overrides the default horizons."""
        cache = StorableCache(CacheConfig(default_lifetime=10, default_savetime=100))
        assert cache.default_lifetime == 10
        assert cache.default_savetime == 100

    def test_from_storage(self) -> None:
        """Test wrapping an existing storage."""
        storage = MemoryStorage()
        cache = StorableCache.from_storage(storage)

        assert cache.storage is storage
        assert cache.default_lifetime == DEFAULT_LIFETIME

    def test_version(self) -> None:
        """Test that the package exposes its version."""
        assert storable_cache.__version__ == "0.1.0"


class TestCreateStorage:
    """Tests for selecting a backend by discriminant."""

    @pytest.mark.parametrize("cache_type", ["", "mongo", "MEMORY", "file"])
    def test_unsupported_type(self, cache_type: str) -> None:
        """Test that unknown discriminants raise StorageNotSupportedError."""
        with pytest.raises(StorageNotSupportedError):
            StorableCache(CacheConfig(cache_type=cache_type))

    @pytest.mark.parametrize("cache_type", ["array", "memory"])
    def test_memory_types(self, cache_type: str) -> None:
        """Test that array and memory select the memory storage."""
        storage = create_storage(CacheConfig(cache_type=cache_type))
        assert isinstance(storage, MemoryStorage)

    def test_files_type(self, files_config: CacheConfig) -> None:
        """Test that files selects the filesystem storage."""
        storage = create_storage(files_config)
        assert isinstance(storage, FilesStorage)
        assert storage.cache_dir == Path(files_config.cache_dir)

    def test_files_without_directory(self) -> None:
        """Test that a files cache without cache_dir cannot connect."""
        with pytest.raises(StorageConnectError):
            StorableCache(CacheConfig(cache_type="files"))

    def test_files_with_missing_directory(self, tmp_path: Path) -> None:
        """Test that a nonexistent cache_dir cannot connect."""
        config = CacheConfig(cache_type="files", cache_dir=str(tmp_path / "missing"))
        with pytest.raises(StorageConnectError):
            StorableCache(config)

    def test_sqlite_type(self, sqlite_settings: SqliteSettings) -> None:
        """Test that sqlite selects the SQLite storage with its settings."""
        storage = create_storage(CacheConfig(cache_type="sqlite", sqlite=sqlite_settings))
        assert isinstance(storage, SqliteStorage)
        assert storage.database_path == sqlite_settings.database
        storage.close()

    @pytest.mark.parametrize("cache_type", ["sql", "mysql"])
    def test_sql_types(self, cache_type: str, tmp_path: Path) -> None:
        """Test that sql and mysql select the SQL storage."""
        engine = create_engine(f"sqlite:///{tmp_path / 'sql.db'}")
        config = CacheConfig(cache_type=cache_type, sql=SqlSettings(table="t"))
        storage = create_storage(config, engine)

        assert isinstance(storage, SqlStorage)
        assert storage.table.name == "t"
        engine.dispose()

    def test_sql_without_engine(self) -> None:
        """Test that the SQL storage requires an engine."""
        with pytest.raises(StorageConnectError):
            StorableCache(CacheConfig(cache_type="sql"))

    def test_redis_type(
        self, monkeypatch: pytest.MonkeyPatch, fake_redis: FakeRedis
    ) -> None:
        """Test that redis builds a client from the config."""
        import redis

        from storable_cache.backends.redis import RedisStorage

        calls: list[dict] = []

        def fake_client(**kwargs):
            calls.append(kwargs)
            return fake_redis

        monkeypatch.setattr(redis, "Redis", fake_client)
        config = CacheConfig(
            cache_type="redis", redis_host="cache.local", redis_port=6380, redis_prefix="p:"
        )
        storage = create_storage(config)

        assert isinstance(storage, RedisStorage)
        assert storage.prefix == "p:"
        assert calls[0]["host"] == "cache.local"
        assert calls[0]["port"] == 6380

    def test_redis_unreachable(self) -> None:
        """Test that a Redis server that does not answer cannot connect."""
        config = CacheConfig(cache_type="redis", redis_host="127.0.0.1", redis_port=1)
        with pytest.raises(StorageConnectError):
            StorableCache(config)

    def test_redis_package_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a missing redis package is reported as unsupported."""
        import storable_cache.backends.redis as redis_backend

        monkeypatch.setattr(redis_backend, "redis", None)
        with pytest.raises(StorageNotSupportedError):
            StorableCache(CacheConfig(cache_type="redis"))

    def test_memcached_type(
        self, monkeypatch: pytest.MonkeyPatch, fake_memcache: FakeMemcache
    ) -> None:
        """Test that memcached builds a client from the config."""
        import storable_cache.backends.memcached as memcached_backend

        servers: list[tuple[str, int]] = []

        def fake_client(server, **kwargs):
            servers.append(server)
            return fake_memcache

        monkeypatch.setattr(memcached_backend, "Client", fake_client)
        config = CacheConfig(
            cache_type="memcached", memcached_host="mc.local", memcached_port=11212
        )
        storage = create_storage(config)

        assert isinstance(storage, memcached_backend.MemcachedStorage)
        assert servers == [("mc.local", 11212)]

    def test_memcached_package_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a missing pymemcache package is reported as unsupported."""
        import storable_cache.backends.memcached as memcached_backend

        monkeypatch.setattr(memcached_backend, "Client", None)
        with pytest.raises(StorageNotSupportedError):
            StorableCache(CacheConfig(cache_type="memcached"))


class TestStorableCacheSet:
    """Tests for StorableCache.set()."""

    def test_set_uses_defaults(self, clock: FakeClock) -> None:
        """Test that omitted horizons use the defaults."""
        cache = StorableCache()
        assert cache.set("key", "value") is True

        packet = cache.get_packet("key")
        assert packet is not None
        assert packet.lifetime == 3
        assert packet.savetime == 3600
        assert packet.timestamp == int(clock.now)

    def test_negative_horizons_use_defaults(self) -> None:
        """Test that negative horizons fall back to the defaults."""
        cache = StorableCache()
        cache.set("key", "value", lifetime=-1, savetime=-10)

        packet = cache.get_packet("key")
        assert packet is not None
        assert packet.lifetime == DEFAULT_LIFETIME
        assert packet.savetime == DEFAULT_SAVETIME

    def test_zero_horizons_kept(self) -> None:
        """Test that zero is a valid explicit horizon."""
        cache = StorableCache()
        cache.set("key", "value", lifetime=0, savetime=0)

        packet = cache.get_packet("key")
        assert packet is not None
        assert packet.lifetime == 0
        assert packet.savetime == 0

    def test_configured_defaults_applied(self) -> None:
        """Test that config defaults apply to omitted horizons."""
        cache = StorableCache(CacheConfig(default_lifetime=60, default_savetime=600))
        cache.set("key", "value")

        packet = cache.get_packet("key")
        assert packet is not None
        assert (packet.lifetime, packet.savetime) == (60, 600)

    def test_empty_key_rejected(self) -> None:
        """Test that an empty key raises InvalidKeyError."""
        cache = StorableCache()
        with pytest.raises(InvalidKeyError):
            cache.set("", "value")

    def test_write_failure_reported(self, tmp_path: Path) -> None:
        """Test that a failing backend write returns False."""
        cache_dir = tmp_path / "cache"
        cache_dir.mkdir()
        cache = StorableCache(CacheConfig(cache_type="files", cache_dir=str(cache_dir)))
        cache_dir.rmdir()

        assert cache.set("key", "value") is False


class TestStorableCacheGet:
    """Tests for StorableCache.get() and related reads."""

    def test_get_missing_returns_empty_string(self) -> None:
        """Test the default fallback for a missing key."""
        assert StorableCache().get("missing") == ""

    def test_get_missing_returns_default(self) -> None:
        """Test a caller-supplied fallback for a missing key."""
        assert StorableCache().get("missing", "fallback") == "fallback"

    def test_get_packet_missing(self) -> None:
        """Test that get_packet returns None for a missing key."""
        assert StorableCache().get_packet("missing") is None

    def test_expired_missing(self) -> None:
        """Test that a missing key counts as expired."""
        assert StorableCache().expired("missing") is True

    def test_expired_value_still_returned(self, clock: FakeClock) -> None:
        """Test that a value past lifetime is still served."""
        cache = StorableCache()
        cache.set("key", "value", lifetime=1, savetime=60)
        clock.advance(5)

        assert cache.expired("key") is True
        assert cache.get("key", "fallback") == "value"

    def test_contains(self) -> None:
        """Test the in operator."""
        cache = StorableCache()
        cache.set("key", "value")
        assert "key" in cache
        assert "other" not in cache

    @pytest.mark.parametrize("data", [b"", b"{not json", b"\x00\x01\x02"])
    def test_corrupt_file_entry(self, files_config: CacheConfig, data: bytes) -> None:
        """Test that corrupt stored bytes behave like a miss."""
        cache = StorableCache(files_config)
        cache.set("key", "value")
        cache.storage.path_for("key").write_bytes(data)

        assert cache.has("key") is False
        assert cache.get("key", "fallback") == "fallback"
        assert cache.get_packet("key") is None
        assert cache.expired("key") is True

    def test_corrupt_sqlite_entry(self, sqlite_settings: SqliteSettings) -> None:
        """Test that a malformed SQLite row behaves like a miss."""
        cache = StorableCache(CacheConfig(cache_type="sqlite", sqlite=sqlite_settings))
        cache.storage._run(
            'INSERT INTO "cache" ("key", "value", "created", "lifetime", "savetime")'
            " VALUES (?, ?, ?, ?, ?)",
            ("key", "value", 0, "forever", 3600),
        )

        assert cache.get("key", "fallback") == "fallback"
        assert cache.expired("key") is True
        cache.close()

    def test_corrupt_redis_entry(self, fake_redis: FakeRedis) -> None:
        """Test that undecodable Redis data behaves like a miss."""
        from storable_cache.backends.redis import RedisStorage

        cache = StorableCache.from_storage(RedisStorage(client=fake_redis))
        fake_redis.set("storable-cache:key", b"\xff\xfe")

        assert cache.get("key", "fallback") == "fallback"
        assert cache.expired("key") is True


class TestStorableCacheMaintenance:
    """Tests for delete, delete_outdated, clear and close."""

    def test_delete(self) -> None:
        """Test deleting a stored key."""
        cache = StorableCache()
        cache.set("key", "value")

        assert cache.delete("key") is True
        assert cache.has("key") is False

    def test_delete_missing(self) -> None:
        """Test deleting a missing key does not raise."""
        cache = StorableCache()
        assert cache.delete("missing") is False

    def test_delete_outdated(self, clock: FakeClock) -> None:
        """Test that a sweep removes only outdated entries."""
        cache = StorableCache()
        cache.set("short", "value", lifetime=1, savetime=5)
        cache.set("long", "value", lifetime=1, savetime=500)
        clock.advance(10)

        assert cache.delete_outdated() is True
        assert cache.has("short") is False
        assert cache.has("long") is True

    def test_clear(self) -> None:
        """Test clearing every entry."""
        cache = StorableCache()
        cache.set("a", "1")
        cache.set("b", "2")

        assert cache.clear() is True
        assert cache.has("a") is False
        assert cache.has("b") is False

    def test_context_manager_closes_storage(self, fake_redis: FakeRedis) -> None:
        """Test that leaving the block closes an owned client."""
        from storable_cache.backends.redis import RedisStorage

        storage = RedisStorage(client=fake_redis)
        storage._owns_client = True
        with StorableCache.from_storage(storage) as cache:
            cache.set("key", "value")

        assert fake_redis.closed is True


class TestScenarios:
    """End-to-end usage across backends."""

    @pytest.mark.parametrize("cache_type", ["memory", "files", "sqlite"])
    def test_refresh_with_stale_fallback(
        self, cache_type: str, cache_dir: Path, clock: FakeClock
    ) -> None:
        """Test serving an expired value while the refresh fails."""
        config = CacheConfig(cache_type=cache_type, cache_dir=str(cache_dir))
        with StorableCache(config) as cache:
            cache.set("rates", "1.05", lifetime=60, savetime=86400)
            clock.advance(120)

            assert cache.expired("rates") is True
            assert cache.get("rates") == "1.05"

            cache.set("rates", "1.07", lifetime=60, savetime=86400)
            assert cache.expired("rates") is False
            assert cache.get("rates") == "1.07"

    @pytest.mark.slow
    @pytest.mark.parametrize("cache_type", ["memory", "files"])
    def test_expiry_on_the_wall_clock(self, cache_type: str, cache_dir: Path) -> None:
        """Test lifetime and savetime elapsing in real time."""
        cache = StorableCache(CacheConfig(cache_type=cache_type, cache_dir=str(cache_dir)))
        cache.set("k", "v", 1, 1)
        assert cache.expired("k") is False

        time.sleep(2)

        assert cache.expired("k") is True
        assert cache.delete_outdated() is True
        assert cache.has("k") is False
