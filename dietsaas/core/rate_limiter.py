"""
Fixed-window rate limiting keyed by an arbitrary identifier
("login:<ip>", "verify-email:<user id>", ...).

Counters live behind a CounterStore so a shared backend can replace the
per-process default when the API runs on more than one instance.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from limits.storage import Storage, storage_from_string

from dietsaas.config import settings

logger = logging.getLogger(__name__)


@dataclass
class CounterRecord:
    count: int
    reset_at: float


class CounterStore(Protocol):
    """Storage contract for rate-limit counters."""

    def increment(self, key: str, window_seconds: float) -> CounterRecord: ...

    def get(self, key: str) -> Optional[CounterRecord]: ...

    def reset(self, key: str) -> None: ...


class InMemoryCounterStore:
    """
    Per-process counter store.
    State is lost on restart and is not shared between processes.

    Expired windows are swept out at most once per `sweep_interval`
    seconds, on the next increment.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0):
        self._clock = clock
        self._records: Dict[str, CounterRecord] = {}
        self._lock = threading.Lock()
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def __len__(self) -> int:
        return len(self._records)

    def now(self) -> float:
        return self._clock()

    def increment(self, key: str, window_seconds: float) -> CounterRecord:
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            record = self._records.get(key)
            if record is None or record.reset_at <= now:
                record = CounterRecord(count=1, reset_at=now + window_seconds)
                self._records[key] = record
            else:
                record.count += 1
            return CounterRecord(record.count, record.reset_at)

    def get(self, key: str) -> Optional[CounterRecord]:
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            return CounterRecord(record.count, record.reset_at)

    def reset(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def _sweep(self, now: float) -> None:
        expired = [key for key, record in self._records.items() if record.reset_at <= now]
        for key in expired:
            del self._records[key]
        self._next_sweep = now + self._sweep_interval
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate-limit counters")


class LimitsCounterStore:
    """
    Counter store on top of a `limits` storage backend, so every API
    instance shares the same counters ("redis://host:6379/0" and friends).
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    @classmethod
    def from_uri(cls, uri: str) -> "LimitsCounterStore":
        return cls(storage_from_string(uri))

    def now(self) -> float:
        # limits stamps expiries with wall-clock time
        return time.time()

    def increment(self, key: str, window_seconds: float) -> CounterRecord:
        count = self.storage.incr(key, max(1, math.ceil(window_seconds)))
        return CounterRecord(count, self.storage.get_expiry(key))

    def get(self, key: str) -> Optional[CounterRecord]:
        count = self.storage.get(key)
        if not count:
            return None
        return CounterRecord(count, self.storage.get_expiry(key))

    def reset(self, key: str) -> None:
        self.storage.clear(key)


class RateLimiter:
    """Approximate limiter: abuse dampening, not exact quota accounting."""

    def __init__(self, store: CounterStore, clock: Optional[Callable[[], float]] = None):
        self.store = store
        self._clock = clock or getattr(store, "now", time.monotonic)

    def check(self, key: str, limit: int, window_seconds: float) -> bool:
        """
        Count one hit for `key`.

        Returns False, without counting, once `limit` hits have been
        recorded in the still-open window.
        """
        record = self.store.get(key)
        if record is not None and record.reset_at > self._clock() and record.count >= limit:
            logger.warning(f"Rate limit hit for {key.split(':', 1)[0]}")
            return False
        self.store.increment(key, window_seconds)
        return True


# =============================================================================
# RATE LIMITER SINGLETON
# =============================================================================

_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the process-wide rate limiter."""
    global _rate_limiter

    if _rate_limiter is None:
        if settings.RATE_LIMIT_STORAGE_URI:
            store = LimitsCounterStore.from_uri(settings.RATE_LIMIT_STORAGE_URI)
        else:
            store = InMemoryCounterStore()
        _rate_limiter = RateLimiter(store)

    return _rate_limiter


def set_rate_limiter(limiter: RateLimiter) -> None:
    """Swap the limiter (shared store in production, fresh store in tests)."""
    global _rate_limiter
    _rate_limiter = limiter
