# tests/test_cache.py

from __future__ import annotations

from sms_hub.core.cache import NEVER_EXPIRES, ExpiringCache

from .fakes import FakeClock


def test_get_returns_value_until_ttl_elapses(clock: FakeClock) -> None:
    cache = ExpiringCache(default_ttl=10, clock=clock)
    cache.set("a", 1)

    clock.advance(9.9)
    assert cache.get("a") == 1

    # Expiry is inclusive: now == expires_at means gone.
    clock.advance(0.1)
    assert cache.get("a") is None
    assert cache.size() == 0


def test_explicit_ttl_overrides_default(clock: FakeClock) -> None:
    cache = ExpiringCache(default_ttl=100, clock=clock)
    cache.set("short", "x", ttl=1)
    clock.advance(2)
    assert not cache.has("short")


def test_never_expires_and_zero_ttl(clock: FakeClock) -> None:
    cache = ExpiringCache(default_ttl=1, clock=clock)
    cache.set("forever", "v", ttl=NEVER_EXPIRES)
    cache.set("gone", "v", ttl=0)

    clock.advance(10_000)
    assert cache.get("forever") == "v"
    assert cache.get("gone", "default") == "default"


def test_set_overwrites_and_resets_expiry(clock: FakeClock) -> None:
    cache = ExpiringCache(default_ttl=10, clock=clock)
    cache.set("k", "old")
    clock.advance(8)
    cache.set("k", "new")
    clock.advance(8)
    assert cache.get("k") == "new"


def test_has_evicts_expired_entry(clock: FakeClock) -> None:
    cache = ExpiringCache(default_ttl=5, clock=clock)
    cache.set("k", 1)
    clock.advance(5)
    assert "k" in cache.keys()  # not evicted yet
    assert cache.has("k") is False
    assert "k" not in cache.keys()


def test_delete_clear_and_sweep(clock: FakeClock) -> None:
    cache = ExpiringCache(default_ttl=5, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=NEVER_EXPIRES)
    cache.set("c", 3, ttl=1)

    assert cache.delete("a") is True
    assert cache.delete("a") is False

    clock.advance(2)
    assert cache.sweep_expired() == 1
    assert cache.keys() == ["b"]

    cache.clear()
    assert cache.size() == 0


def test_falsy_values_are_returned() -> None:
    cache = ExpiringCache()
    cache.set("zero", 0)
    cache.set("empty", [])
    assert cache.get("zero", "default") == 0
    assert cache.get("empty", "default") == []
