# tests/test_idempotency.py
from app.core.idempotency import IdempotencyCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_value_is_replayed_until_expiry():
    clock = FakeClock()
    cache = IdempotencyCache(ttl_s=10, clock=clock)
    cache.set("dao:abc", {"id": "dao_1"})

    clock.now = 9.9
    assert cache.get("dao:abc") == {"id": "dao_1"}

    clock.now = 10.1
    assert cache.get("dao:abc") is None
    assert len(cache) == 0


def test_empty_keys_are_ignored():
    cache = IdempotencyCache()
    cache.set(None, "x")
    cache.set("", "x")
    assert cache.get(None) is None
    assert cache.get("") is None
    assert len(cache) == 0
