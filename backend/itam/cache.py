import threading
import time
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Single-value cache with a time-to-live.

    The lock is held while the value is rebuilt, so concurrent misses wait for
    one producer instead of each rendering their own copy.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._lock = threading.Lock()
        self._clock = clock
        self._value: T | None = None
        self._expires_at = 0.0

    def get_or_set(self, ttl_seconds: float, producer: Callable[[], T]) -> T:
        with self._lock:
            now = self._clock()
            if self._value is not None and now < self._expires_at:
                return self._value
            self._value = producer()
            self._expires_at = now + ttl_seconds
            return self._value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._expires_at = 0.0
