from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from homelink.config.defaults import DEFAULT_NOTIFICATION_COOLDOWN_SECONDS, DEFAULT_NOTIFICATION_HISTORY
from homelink.util.logging import get_logger
from homelink.util.time import now_utc_iso

logger = get_logger(__name__)

DEFAULT_SOUND = "default"


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    category: str = "general"
    sound: str = DEFAULT_SOUND
    created_at: str = field(default_factory=now_utc_iso)


NotificationSink = Callable[[Notification], None]


def logging_sink(notification: Notification) -> None:
    logger.info("notification [%s] %s: %s", notification.category, notification.title, notification.body)


class NotificationDispatcher:
    """Fan-out of local notifications with a per-category cooldown.

    A notification is suppressed when its category delivered anything within
    ``cooldown_seconds``; an identical (category, title, body) triple is also
    suppressed within the same window even when categories are shared by
    different producers.
    """

    def __init__(
        self,
        sinks: Iterable[NotificationSink] | None = None,
        cooldown_seconds: float = DEFAULT_NOTIFICATION_COOLDOWN_SECONDS,
        history_size: int = DEFAULT_NOTIFICATION_HISTORY,
        muted_categories: Iterable[str] = (),
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sinks: list[NotificationSink] = list(sinks) if sinks is not None else [logging_sink]
        self.cooldown_seconds = max(0.0, cooldown_seconds)
        self.muted_categories = set(muted_categories)
        self.enabled = enabled
        self.clock = clock
        self._lock = threading.Lock()
        self._last_by_category: dict[str, float] = {}
        self._last_by_content: dict[tuple[str, str, str], float] = {}
        self._history: deque[Notification] = deque(maxlen=max(1, history_size))
        self._suppressed = 0

    @property
    def history(self) -> list[Notification]:
        with self._lock:
            return list(self._history)

    @property
    def suppressed_count(self) -> int:
        with self._lock:
            return self._suppressed

    def send(self, title: str, body: str, category: str = "general") -> bool:
        if not self.enabled or category in self.muted_categories:
            return False

        now = self.clock()
        content_key = (category, title, body)
        with self._lock:
            self._evict_expired(now)
            last_category = self._last_by_category.get(category)
            last_content = self._last_by_content.get(content_key)
            if self._within_cooldown(now, last_category) or self._within_cooldown(now, last_content):
                self._suppressed += 1
                logger.debug("notification suppressed by cooldown: %s", title)
                return False
            self._last_by_category[category] = now
            self._last_by_content[content_key] = now
            notification = Notification(title=title, body=body, category=category)
            self._history.append(notification)

        for sink in list(self.sinks):
            try:
                sink(notification)
            except Exception:
                logger.exception("notification sink failed: %s", title)
        return True

    def _within_cooldown(self, now: float, last: float | None) -> bool:
        return last is not None and (now - last) < self.cooldown_seconds

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, last in self._last_by_content.items() if not self._within_cooldown(now, last)]
        for key in expired:
            del self._last_by_content[key]

    @property
    def tracked_content_count(self) -> int:
        with self._lock:
            return len(self._last_by_content)

    def reset(self) -> None:
        with self._lock:
            self._last_by_category.clear()
            self._last_by_content.clear()
            self._history.clear()
            self._suppressed = 0
