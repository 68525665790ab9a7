from __future__ import annotations

import threading
from collections import Counter, deque
from typing import Any

from homelink.config.defaults import DEFAULT_MAX_ANALYTICS_EVENTS
from homelink.util.logging import get_logger

from .events import EVENT_KINDS, AnalyticsEvent, event_adapter

logger = get_logger(__name__)


class AnalyticsAggregator:
    def __init__(self, max_events: int | None = DEFAULT_MAX_ANALYTICS_EVENTS) -> None:
        self._lock = threading.Lock()
        self._events: deque[AnalyticsEvent] = deque(maxlen=max_events)
        self._features: Counter[str] = Counter()
        self._interactions: Counter[str] = Counter()

    def record(self, event: AnalyticsEvent | dict[str, Any]) -> AnalyticsEvent:
        parsed = event_adapter.validate_python(event)
        with self._lock:
            self._events.append(parsed)
        logger.debug("analytics event recorded: %s", parsed.kind)
        return parsed

    def track_feature(self, feature: str) -> None:
        with self._lock:
            self._features[feature] += 1

    def track_interaction(self, device_id: str) -> None:
        with self._lock:
            self._interactions[device_id] += 1

    def events(self, kind: str | None = None) -> list[AnalyticsEvent]:
        with self._lock:
            items = list(self._events)
        if kind is None:
            return items
        return [event for event in items if event.kind == kind]

    def counts(self) -> dict[str, int]:
        with self._lock:
            tally = Counter(event.kind for event in self._events)
        return {kind: tally.get(kind, 0) for kind in EVENT_KINDS}

    def most_used_feature(self) -> str | None:
        with self._lock:
            top = self._features.most_common(1)
        return top[0][0] if top else None

    def top_devices(self, limit: int = 5) -> list[tuple[str, int]]:
        with self._lock:
            return self._interactions.most_common(limit)

    def feature_usage(self) -> dict[str, int]:
        with self._lock:
            return dict(self._features)

    def summary(self) -> dict[str, Any]:
        return {
            "events": self.counts(),
            "most_used_feature": self.most_used_feature(),
            "top_devices": [{"device_id": device_id, "interactions": count} for device_id, count in self.top_devices()],
        }

    def reset(self) -> None:
        with self._lock:
            self._events.clear()
            self._features.clear()
            self._interactions.clear()
