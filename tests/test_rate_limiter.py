"""Tests for the fixed-window rate limiter."""
import threading

from limits.storage import MemoryStorage

from dietsaas.core.rate_limiter import InMemoryCounterStore, LimitsCounterStore, RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_limiter():
    clock = FakeClock()
    store = InMemoryCounterStore(clock=clock)
    return RateLimiter(store), store, clock


def test_allows_up_to_limit_then_denies():
    limiter, _, _ = make_limiter()
    results = [limiter.check("login:1.2.3.4", 3, 60) for _ in range(5)]
    assert results == [True, True, True, False, False]


def test_denied_calls_are_not_counted():
    limiter, store, _ = make_limiter()
    for _ in range(10):
        limiter.check("login:1.2.3.4", 2, 60)
    assert store.get("login:1.2.3.4").count == 2


def test_window_resets_after_deadline():
    limiter, store, clock = make_limiter()
    for _ in range(3):
        limiter.check("register:ip", 3, 3600)
    assert not limiter.check("register:ip", 3, 3600)

    clock.advance(3600.5)
    assert limiter.check("register:ip", 3, 3600)
    assert store.get("register:ip").count == 1


def test_keys_are_independent():
    limiter, _, _ = make_limiter()
    assert limiter.check("login:a", 1, 60)
    assert not limiter.check("login:a", 1, 60)
    assert limiter.check("login:b", 1, 60)


def test_reset_clears_key():
    limiter, store, _ = make_limiter()
    limiter.check("login:a", 1, 60)
    store.reset("login:a")
    assert store.get("login:a") is None
    assert limiter.check("login:a", 1, 60)


def test_expired_counters_are_swept():
    clock = FakeClock()
    store = InMemoryCounterStore(clock=clock, sweep_interval=60)
    for ip in ("1.1.1.1", "2.2.2.2", "3.3.3.3"):
        store.increment(f"login:{ip}", 30)
    store.increment("register:1.1.1.1", 3600)
    assert len(store) == 4

    clock.advance(45)
    store.increment("login:4.4.4.4", 30)
    assert len(store) == 5

    clock.advance(20)
    store.increment("login:5.5.5.5", 30)

    assert len(store) == 3
    assert store.get("login:1.1.1.1") is None
    assert store.get("login:4.4.4.4").count == 1
    assert store.get("register:1.1.1.1").count == 1


def test_concurrent_increments_are_not_lost():
    store = InMemoryCounterStore()

    def hammer():
        for _ in range(200):
            store.increment("shared", 60)

    threads = [threading.Thread(target=hammer) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.get("shared").count == 1600


def test_limits_backed_store():
    store = LimitsCounterStore(MemoryStorage())
    limiter = RateLimiter(store)

    assert [limiter.check("verify-email:u1", 2, 3600) for _ in range(3)] == [True, True, False]
    record = store.get("verify-email:u1")
    assert record.count == 2
    assert record.reset_at > store.now()

    store.reset("verify-email:u1")
    assert store.get("verify-email:u1") is None


def test_limits_backed_store_from_uri():
    store = LimitsCounterStore.from_uri("memory://")
    assert isinstance(store.storage, MemoryStorage)
