"""Tests for the in-process volatile tier."""

from __future__ import annotations

import pytest

from kyc.cache import VolatileCache


class _FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_entries_expire_after_ttl():
    clock = _FakeClock()
    cache: VolatileCache[str] = VolatileCache(ttl_seconds=3600, clock=clock)

    cache.set("kyc_data_1", "record")
    clock.advance(3599)
    assert cache.get("kyc_data_1") == "record"

    clock.advance(1)
    assert cache.get("kyc_data_1") is None
    assert len(cache) == 0


def test_reads_do_not_extend_expiry():
    clock = _FakeClock()
    cache: VolatileCache[str] = VolatileCache(ttl_seconds=10, clock=clock)

    cache.set("key", "value")
    for _ in range(9):
        clock.advance(1)
        assert cache.get("key") == "value"

    clock.advance(1)
    assert cache.get("key") is None


def test_rewrite_restarts_the_timer():
    clock = _FakeClock()
    cache: VolatileCache[str] = VolatileCache(ttl_seconds=10, clock=clock)

    cache.set("key", "old")
    clock.advance(8)
    cache.set("key", "new")
    clock.advance(8)

    assert cache.get("key") == "new"


def test_per_entry_ttl_override():
    clock = _FakeClock()
    cache: VolatileCache[str] = VolatileCache(ttl_seconds=100, clock=clock)

    cache.set("short", "a", ttl_seconds=1)
    cache.set("long", "b")
    clock.advance(2)

    assert cache.get("short") is None
    assert cache.get("long") == "b"


def test_invalidate_and_clear():
    cache: VolatileCache[int] = VolatileCache(ttl_seconds=60)
    cache.set("a", 1)
    cache.set("b", 2)

    assert cache.invalidate("a") is True
    assert cache.invalidate("a") is False
    assert cache.get("a") is None

    cache.clear()
    assert len(cache) == 0


def test_rejects_non_positive_ttl():
    with pytest.raises(ValueError):
        VolatileCache(ttl_seconds=0)


def test_writes_purge_expired_entries_that_are_never_read_again():
    clock = _FakeClock(start=0.0)
    cache: VolatileCache[int] = VolatileCache(ttl_seconds=3600, clock=clock)

    for index in range(1000):
        cache.set(f"kyc_data_{index}", index, ttl_seconds=1)
    clock.advance(10)
    cache.set("kyc_data_new", -1)

    assert len(cache) == 1
    assert cache.get("kyc_data_new") == -1


def test_purge_keeps_rewritten_entries_alive():
    clock = _FakeClock(start=0.0)
    cache: VolatileCache[str] = VolatileCache(ttl_seconds=10, clock=clock)

    cache.set("key", "old")
    clock.advance(5)
    cache.set("key", "new")
    clock.advance(6)
    cache.set("other", "value")

    assert cache.get("key") == "new"
    assert len(cache) == 2
