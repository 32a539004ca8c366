"""Pytest configuration and fixtures for storable-cache tests."""

import fnmatch
import os
import time
from pathlib import Path

import pytest

from storable_cache import CacheConfig, SqliteSettings


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.5) -> None:
        self.now = start

    def time(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """In-process stand-in for redis.Redis honoring key TTLs."""

    def __init__(self) -> None:
        self.data: dict[bytes, tuple[bytes, float | None]] = {}
        self.closed = False

    @staticmethod
    def _key(key: str | bytes) -> bytes:
        return key if isinstance(key, bytes) else key.encode("utf-8")

    def _alive(self, key: bytes) -> bytes | None:
        item = self.data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and time.time() >= expires_at:
            del self.data[key]
            return None
        return value

    def ping(self) -> bool:
        return True

    def get(self, key: str | bytes) -> bytes | None:
        return self._alive(self._key(key))

    def set(self, key: str | bytes, value: bytes | str, ex: int | None = None) -> bool:
        if isinstance(value, str):
            value = value.encode("utf-8")
        expires_at = time.time() + ex if ex else None
        self.data[self._key(key)] = (value, expires_at)
        return True

    def delete(self, *keys: str | bytes) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(self._key(key), None) is not None:
                removed += 1
        return removed

    def scan_iter(self, match: str = "*", count: int | None = None):
        for key in list(self.data):
            if self._alive(key) is None:
                continue
            if fnmatch.fnmatchcase(key.decode("utf-8"), match):
                yield key

    def close(self) -> None:
        self.closed = True


class FakeMemcache:
    """In-process stand-in for pymemcache's base Client honoring expire."""

    def __init__(self) -> None:
        self.data: dict[str, tuple[bytes, float | None]] = {}
        self.closed = False

    def _alive(self, key: str) -> bytes | None:
        item = self.data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and time.time() >= expires_at:
            del self.data[key]
            return None
        return value

    def version(self) -> bytes:
        return b"1.6.21"

    def get(self, key: str) -> bytes | None:
        return self._alive(key)

    def set(self, key: str, value: bytes, expire: int = 0, noreply: bool | None = None) -> bool:
        expires_at = time.time() + expire if expire else None
        self.data[key] = (value, expires_at)
        return True

    def delete(self, key: str, noreply: bool | None = None) -> bool:
        return self.data.pop(key, None) is not None

    def flush_all(self, noreply: bool | None = None) -> bool:
        self.data.clear()
        return True

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Hide STORABLE_CACHE_* variables of the calling shell from CacheConfig."""
    for name in list(os.environ):
        if name.upper().startswith("STORABLE_CACHE_"):
            monkeypatch.delenv(name)


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Freeze time.time at a known instant; advance it explicitly."""
    fake = FakeClock()
    monkeypatch.setattr(time, "time", fake.time)
    return fake


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Empty, writable cache directory."""
    directory = tmp_path / "cache"
    directory.mkdir()
    return directory


@pytest.fixture
def sqlite_settings(tmp_path: Path) -> SqliteSettings:
    """SQLite settings pointing at a fresh database file."""
    return SqliteSettings(database=str(tmp_path / "cache.db"))


@pytest.fixture
def files_config(cache_dir: Path) -> CacheConfig:
    """Config for the files storage type."""
    return CacheConfig(cache_type="files", cache_dir=str(cache_dir))


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def fake_memcache() -> FakeMemcache:
    return FakeMemcache()
