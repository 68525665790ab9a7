from __future__ import annotations

import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from homelink.config.schema import PollingConfig
from homelink.core.errors import HomeLinkError
from homelink.notify.dispatcher import NotificationDispatcher
from homelink.registry.devices import DeviceRegistry
from homelink.util.logging import get_logger

if TYPE_CHECKING:
    from homelink.pipeline.geofence import GeofenceMonitor

logger = get_logger(__name__)


@dataclass
class RecurringTick:
    """Runs ``action`` every ``interval`` seconds on a daemon thread.

    A firing that comes due while the previous one is still running is
    skipped, never queued.
    """

    name: str
    interval: float
    action: Callable[[], Any]
    clock: Callable[[], float] = time.monotonic
    _thread: threading.Thread | None = field(default=None, init=False)
    _stop_event: threading.Event = field(default_factory=threading.Event, init=False)
    _busy: threading.Lock = field(default_factory=threading.Lock, init=False)
    _counter_lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _runs: int = field(default=0, init=False)
    _skipped: int = field(default=0, init=False)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            if not self._stop_event.is_set():
                return
            # Old loop is mid-firing; it exits on its own stop event.
            logger.warning("tick %s restarted before previous thread exited", self.name)
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run_loop, args=(self._stop_event,), name=f"tick-{self.name}", daemon=True
        )
        self._thread.start()

    def request_stop(self) -> None:
        self._stop_event.set()

    def wait_stopped(self, timeout: float = 3.0) -> None:
        thread = self._thread
        if thread is threading.current_thread():
            return
        if thread and thread.is_alive():
            thread.join(timeout=timeout)
        if thread and not thread.is_alive() and self._thread is thread:
            self._thread = None

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def stop(self, timeout: float = 3.0) -> None:
        self.request_stop()
        self.wait_stopped(timeout=timeout)

    @property
    def runs(self) -> int:
        with self._counter_lock:
            return self._runs

    @property
    def skipped(self) -> int:
        with self._counter_lock:
            return self._skipped

    def _count_skip(self, count: int = 1) -> None:
        with self._counter_lock:
            self._skipped += count

    def run_once(self) -> bool:
        """Execute one firing now; returns ``False`` when it was skipped."""
        if self._stop_event.is_set():
            return False
        if not self._busy.acquire(blocking=False):
            self._count_skip()
            logger.debug("tick %s skipped: previous run still in flight", self.name)
            return False
        try:
            self.action()
        except HomeLinkError as exc:
            logger.debug("tick %s failed: %s", self.name, exc.kind.value)
        except Exception:
            logger.exception("tick %s crashed", self.name)
        finally:
            self._busy.release()
        with self._counter_lock:
            self._runs += 1
        return True

    def _run_loop(self, stop_event: threading.Event) -> None:
        next_due = self.clock() + self.interval
        while True:
            if stop_event.wait(max(0.0, next_due - self.clock())):
                break
            self.run_once()
            next_due += self.interval
            now = self.clock()
            if next_due <= now:
                missed = int((now - next_due) // self.interval) + 1
                next_due += missed * self.interval
                self._count_skip(missed)
                logger.debug("tick %s overran; skipped %s firing(s)", self.name, missed)


class PollingScheduler:
    """Owns the recurring background work that runs while a session is active."""

    def __init__(
        self,
        registry: DeviceRegistry,
        config: PollingConfig | None = None,
        notifications: NotificationDispatcher | None = None,
        geofences: GeofenceMonitor | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or PollingConfig()
        self.notifications = notifications or registry.notifications
        self.geofences = geofences
        self.rng = rng or random.Random()
        self._lock = threading.RLock()
        self._is_online = True
        self.network_tick = RecurringTick("network", self.config.network_check_seconds, self.check_network)
        self.refresh_tick = RecurringTick("refresh", self.config.status_refresh_seconds, self.refresh_devices)
        self.periodic_tick = RecurringTick("periodic", self.config.periodic_task_seconds, self.run_periodic_tasks)

    @property
    def ticks(self) -> tuple[RecurringTick, RecurringTick, RecurringTick]:
        return (self.network_tick, self.refresh_tick, self.periodic_tick)

    @property
    def is_online(self) -> bool:
        with self._lock:
            return self._is_online

    def is_running(self) -> bool:
        return any(tick.is_running() for tick in self.ticks)

    def start(self) -> None:
        if not self.registry.session.is_signed_in:
            logger.debug("polling not started: session is signed out")
            return
        for tick in self.ticks:
            tick.start()
        logger.info("polling started")

    def stop(self, timeout: float = 3.0) -> None:
        for tick in self.ticks:
            tick.request_stop()
        deadline = time.perf_counter() + timeout
        for tick in self.ticks:
            tick.wait_stopped(timeout=max(0.0, deadline - time.perf_counter()))
            if tick.is_running():
                logger.warning("polling thread did not stop before timeout: %s", tick.name)
        logger.info("polling stopped")

    def check_network(self) -> bool:
        online = self.rng.random() < self.config.network_online_probability
        with self._lock:
            changed = online != self._is_online
            self._is_online = online
        if changed:
            logger.info("network status changed: %s", "online" if online else "offline")
        return online

    def refresh_devices(self) -> int:
        if not self.registry.session.is_signed_in:
            return 0
        return self.registry.refresh_all_telemetry()

    def run_periodic_tasks(self) -> None:
        if not self.registry.session.is_signed_in:
            return
        if self.rng.random() < self.config.alert_injection_probability:
            try:
                self.registry.inject_motion_alert()
            except HomeLinkError as exc:
                logger.debug("alert injection failed: %s", exc.kind.value)
        if self.geofences is not None:
            self.geofences.check_status()
        self.check_maintenance()

    def check_maintenance(self) -> int:
        sent = 0
        for device in self.registry.low_battery_devices():
            if self.notifications.send("Low Battery", f"{device.name} battery is at {device.battery}%", category="battery"):
                sent += 1
        for device in self.registry.offline_devices():
            if self.notifications.send("Device Offline", f"{device.name} is offline", category="connectivity"):
                sent += 1
        return sent
