"""
Tests for the TTL result cache.
"""

import threading

from visibility.cache import ResultCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _cache(ttl=10):
    clock = FakeClock()
    return ResultCache(ttl_for=lambda collection: ttl, clock=clock), clock


def test_get_returns_fresh_entry():
    cache, clock = _cache()
    cache.set(("pilots", 1), "page")
    clock.now = 9
    assert cache.get(("pilots", 1)) == "page"
    assert cache.hits == 1


def test_expired_entry_is_evicted():
    cache, clock = _cache()
    cache.set(("pilots", 1), "page")
    clock.now = 10
    assert cache.get(("pilots", 1)) is None
    assert len(cache) == 0
    assert cache.misses == 1


def test_ttl_is_per_collection():
    clock = FakeClock()
    cache = ResultCache(ttl_for=lambda c: 60 if c == "budgets" else 600, clock=clock)
    cache.set(("budgets",), "b")
    cache.set(("pilots",), "p")
    clock.now = 120
    assert cache.get(("budgets",)) is None
    assert cache.get(("pilots",)) == "p"


def test_invalidate_by_collection():
    cache, _ = _cache()
    cache.set(("pilots", 1), "a")
    cache.set(("pilots", 2), "b")
    cache.set(("budgets", 1), "c")
    assert cache.invalidate("pilots") == 2
    assert len(cache) == 1
    assert cache.invalidate() == 1
    assert len(cache) == 0


def test_set_sweeps_expired_entries():
    cache, clock = _cache(ttl=10)
    for i in range(1000):
        cache.set(("events", i), i)
        clock.now += 10
    assert len(cache) == 1


def test_size_cap_drops_oldest():
    clock = FakeClock()
    cache = ResultCache(ttl_for=lambda c: 600, clock=clock, max_entries=3)
    for i in range(5):
        cache.set(("pilots", i), i)
    assert len(cache) == 3
    assert cache.get(("pilots", 0)) is None
    assert cache.get(("pilots", 4)) == 4


def test_reset_key_moves_to_newest():
    clock = FakeClock()
    cache = ResultCache(ttl_for=lambda c: 600, clock=clock, max_entries=2)
    cache.set(("pilots", 1), "a")
    cache.set(("pilots", 2), "b")
    cache.set(("pilots", 1), "a2")
    cache.set(("pilots", 3), "c")
    assert cache.get(("pilots", 1)) == "a2"
    assert cache.get(("pilots", 2)) is None


def test_concurrent_access_from_threads():
    clock = FakeClock()
    cache = ResultCache(ttl_for=lambda c: 1, clock=clock, max_entries=50)
    errors = []

    def worker(n):
        try:
            for i in range(500):
                key = ("pilots", i % 20)
                cache.set(key, n)
                clock.now += 0.5
                cache.get(key)
                if i % 50 == 0:
                    cache.invalidate("pilots")
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(cache) <= 50
