from __future__ import annotations

import random
import threading
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from homelink.config.defaults import DEFAULT_FAULT_RATES, DEFAULT_LATENCY_SECONDS, DEFAULT_MAX_REQUESTS_PER_MINUTE

DEFAULT_OPERATION_LATENCY = 1.0


@dataclass
class LatencyPolicy:
    seconds: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_LATENCY_SECONDS))
    scale: float = 1.0
    sleep: Callable[[float], None] = time.sleep

    def delay_for(self, operation: str) -> float:
        base = float(self.seconds.get(operation, DEFAULT_OPERATION_LATENCY))
        return max(0.0, base * self.scale)

    def wait(self, operation: str) -> float:
        delay = self.delay_for(operation)
        if delay > 0:
            self.sleep(delay)
        return delay

    @classmethod
    def instant(cls) -> "LatencyPolicy":
        return cls(scale=0.0)


@dataclass
class FaultPolicy:
    rates: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_FAULT_RATES))
    rng: random.Random = field(default_factory=random.Random)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def rate_for(self, operation: str) -> float:
        return min(1.0, max(0.0, float(self.rates.get(operation, 0.0))))

    def should_fail(self, operation: str) -> bool:
        rate = self.rate_for(operation)
        if rate <= 0.0:
            return False
        if rate >= 1.0:
            return True
        with self._lock:
            return self.rng.random() < rate

    @classmethod
    def never(cls) -> "FaultPolicy":
        return cls(rates={})

    @classmethod
    def always(cls, *operations: str) -> "FaultPolicy":
        return cls(rates={operation: 1.0 for operation in operations})


@dataclass
class RateLimiter:
    max_requests: int = DEFAULT_MAX_REQUESTS_PER_MINUTE
    window_seconds: float = 60.0
    clock: Callable[[], float] = time.monotonic
    _calls: deque[float] = field(default_factory=deque, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def try_acquire(self) -> bool:
        now = self.clock()
        with self._lock:
            while self._calls and (now - self._calls[0]) >= self.window_seconds:
                self._calls.popleft()
            if len(self._calls) >= self.max_requests:
                return False
            self._calls.append(now)
            return True

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()
