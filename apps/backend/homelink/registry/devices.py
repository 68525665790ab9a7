from __future__ import annotations

import datetime as dt
import random
import threading
from collections.abc import Callable, Iterable
from typing import Any

from homelink.analytics.aggregator import AnalyticsAggregator
from homelink.analytics.events import DeviceCountEvent, MotionAlertEvent, SnapshotCaptureEvent, StreamAccessEvent
from homelink.auth.session import AuthSession
from homelink.config.schema import ThresholdConfig
from homelink.core.errors import ErrorKind, HomeLinkError
from homelink.core.models import (
    Device,
    DeviceStatus,
    DeviceTelemetry,
    DeviceType,
    Geofence,
    MotionAlert,
    MotionSchedule,
    RecordingMode,
    SnapshotResult,
    StreamSession,
    SystemHealth,
)
from homelink.gateway.remote import RemoteGateway
from homelink.health import scorer
from homelink.notify.dispatcher import NotificationDispatcher
from homelink.util.logging import get_logger
from homelink.util.time import ensure_aware, now_utc

logger = get_logger(__name__)

ChangeListener = Callable[[str], None]


class DeviceRegistry:
    """Authoritative in-memory view of devices, telemetry, alerts, schedules
    and geofences.

    All state lives behind one lock and is only written by this class. Remote
    calls are made outside the lock; their results are applied afterwards and
    dropped when the session ended or a newer ``load_devices`` call started in
    the meantime. Accessors return copies so readers never observe a partial
    update.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        session: AuthSession,
        analytics: AnalyticsAggregator | None = None,
        notifications: NotificationDispatcher | None = None,
        thresholds: ThresholdConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.gateway = gateway
        self.session = session
        self.analytics = analytics or AnalyticsAggregator()
        self.notifications = notifications or NotificationDispatcher()
        self.thresholds = thresholds or ThresholdConfig()
        self.rng = rng or random.Random()
        self._lock = threading.RLock()
        self._device_locks: dict[str, threading.Lock] = {}
        self._devices: dict[str, Device] = {}
        self._telemetry: dict[str, DeviceTelemetry] = {}
        self._schedules: dict[str, MotionSchedule] = {}
        self._geofences: dict[str, Geofence] = {}
        self._alerts: list[MotionAlert] = []
        self._is_loading = False
        self._last_error: ErrorKind | None = None
        self._load_generation = 0
        self._health = scorer.score([], self.thresholds.low_battery)
        self._listeners: list[ChangeListener] = []

    # Presentation accessors

    @property
    def devices(self) -> list[Device]:
        with self._lock:
            return [device.model_copy() for device in self._devices.values()]

    @property
    def recent_alerts(self) -> list[MotionAlert]:
        with self._lock:
            return list(self._alerts)

    @property
    def is_loading(self) -> bool:
        with self._lock:
            return self._is_loading

    @property
    def last_error(self) -> ErrorKind | None:
        with self._lock:
            return self._last_error

    @property
    def system_health(self) -> SystemHealth:
        with self._lock:
            return self._health

    @property
    def telemetry(self) -> dict[str, DeviceTelemetry]:
        with self._lock:
            return dict(self._telemetry)

    @property
    def schedules(self) -> dict[str, MotionSchedule]:
        with self._lock:
            return {device_id: schedule.model_copy(deep=True) for device_id, schedule in self._schedules.items()}

    @property
    def geofences(self) -> list[Geofence]:
        with self._lock:
            return [geofence.model_copy(deep=True) for geofence in self._geofences.values()]

    def get_device(self, device_id: str) -> Device:
        with self._lock:
            device = self._devices.get(device_id)
        if device is None:
            raise HomeLinkError(ErrorKind.DEVICE_NOT_FOUND)
        return device.model_copy()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, change: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception("registry listener failed for change %s", change)

    def _accepting(self, generation: int | None = None) -> bool:
        if not self.session.is_signed_in:
            return False
        return generation is None or generation == self._load_generation

    # Loading and refresh

    def load_devices(self) -> bool:
        """Replace the device set with the remote list.

        Returns ``False`` when the response was discarded because a newer load
        started or the session ended while it was in flight.
        """
        with self._lock:
            self._load_generation += 1
            generation = self._load_generation
            self._is_loading = True
        self._emit("loading")

        try:
            fetched = self.gateway.list_devices()
        except HomeLinkError as exc:
            with self._lock:
                if generation == self._load_generation:
                    self._is_loading = False
                    self._last_error = exc.kind
            logger.warning("device list fetch failed: %s", exc.kind.value)
            self._emit("error")
            raise

        with self._lock:
            if not self._accepting(generation):
                logger.info("discarding stale device list response (generation %s)", generation)
                return False
            self._devices = {device.id: device for device in fetched}
            for device_id in list(self._telemetry):
                if device_id not in self._devices:
                    del self._telemetry[device_id]
            for device_id in list(self._schedules):
                if device_id not in self._devices:
                    del self._schedules[device_id]
            self._last_error = None
            count = len(self._devices)

        logger.info("loaded %s devices", count)
        self.analytics.record(DeviceCountEvent(count=count))
        self._emit("devices")

        self.refresh_all_telemetry(generation=generation)
        self.backfill_alerts(generation=generation)

        with self._lock:
            if generation == self._load_generation:
                self._is_loading = False
        self._emit("loading")
        return True

    def _device_lock(self, device_id: str) -> threading.Lock:
        with self._lock:
            lock = self._device_locks.get(device_id)
            if lock is None:
                lock = threading.Lock()
                self._device_locks[device_id] = lock
            return lock

    def refresh_device_status(
        self,
        device_id: str,
        background: bool = False,
        generation: int | None = None,
    ) -> DeviceTelemetry | None:
        with self._device_lock(device_id):
            try:
                telemetry = self.gateway.get_device_status(device_id)
            except HomeLinkError as exc:
                if background:
                    logger.debug("background status refresh failed for %s: %s", device_id, exc.kind.value)
                    return None
                self._record_error(exc)
                raise

            with self._lock:
                if not self._accepting(generation) or device_id not in self._devices:
                    logger.debug("dropping telemetry for %s", device_id)
                    return None
                self._apply_telemetry(telemetry)
        self._emit("telemetry")
        return telemetry

    def _apply_telemetry(self, telemetry: DeviceTelemetry) -> None:
        self._telemetry[telemetry.device_id] = telemetry
        device = self._devices[telemetry.device_id]
        self._devices[telemetry.device_id] = device.model_copy(
            update={
                "status": DeviceStatus.ON if telemetry.online else DeviceStatus.OFF,
                "battery": telemetry.battery,
                "last_seen": telemetry.fetched_at if telemetry.online else device.last_seen,
            }
        )

    def refresh_all_telemetry(self, generation: int | None = None) -> int:
        with self._lock:
            device_ids = list(self._devices)

        refreshed = 0
        for device_id in device_ids:
            if not self._accepting(generation):
                break
            if self.refresh_device_status(device_id, background=True, generation=generation) is not None:
                refreshed += 1

        if self._accepting(generation):
            self.recompute_health()
        logger.debug("refreshed telemetry for %s/%s devices", refreshed, len(device_ids))
        return refreshed

    def backfill_alerts(self, limit_per_device: int = 10, generation: int | None = None) -> int:
        with self._lock:
            device_ids = [device.id for device in self._devices.values() if device.device_type != DeviceType.CHIME]

        fetched: list[MotionAlert] = []
        for device_id in device_ids:
            if not self._accepting(generation):
                return 0
            try:
                fetched.extend(self.gateway.get_recent_motion_alerts(device_id, limit=limit_per_device))
            except HomeLinkError as exc:
                logger.debug("alert backfill failed for %s: %s", device_id, exc.kind.value)

        with self._lock:
            if not self._accepting(generation):
                return 0
            inserted = self._insert_alerts(fetched)
        if inserted:
            self._emit("alerts")
        return inserted

    def inject_motion_alert(self) -> MotionAlert | None:
        alert = self.gateway.simulate_motion_alert()
        if alert is None:
            return None
        with self._lock:
            if not self._accepting() or alert.device_id not in self._devices:
                return None
            inserted = self._insert_alerts([alert])
        if not inserted:
            return None
        self._emit("alerts")
        self.analytics.record(
            MotionAlertEvent(device_id=alert.device_id, alert_type=alert.alert_type, confidence=alert.confidence)
        )
        self.notifications.send("Motion Alert", alert.description, category="motion")
        return alert

    def insert_alert(self, alert: MotionAlert) -> bool:
        with self._lock:
            inserted = self._insert_alerts([alert]) > 0
        if inserted:
            self._emit("alerts")
        return inserted

    def _insert_alerts(self, alerts: Iterable[MotionAlert]) -> int:
        known = {alert.id for alert in self._alerts}
        fresh = [alert for alert in alerts if alert.id not in known]
        if not fresh:
            return 0
        merged = sorted([*self._alerts, *fresh], key=lambda alert: alert.timestamp, reverse=True)
        self._alerts = merged[: self.thresholds.max_recent_alerts]
        retained = {alert.id for alert in self._alerts}
        return sum(1 for alert in fresh if alert.id in retained)

    def recompute_health(self) -> SystemHealth:
        with self._lock:
            health = scorer.score(self._devices.values(), self.thresholds.low_battery)
            self._health = health
        self._emit("health")
        return health

    # Local mutation

    def add_device(self, device: Device) -> Device:
        with self._lock:
            self._devices[device.id] = device
        logger.info("device added: %s", device.id)
        self._emit("devices")
        self.recompute_health()
        return device.model_copy()

    def remove_device(self, device_id: str) -> None:
        with self._lock:
            if self._devices.pop(device_id, None) is None:
                raise HomeLinkError(ErrorKind.DEVICE_NOT_FOUND)
            self._telemetry.pop(device_id, None)
            self._schedules.pop(device_id, None)
            self._device_locks.pop(device_id, None)
        logger.info("device removed: %s", device_id)
        self._emit("devices")
        self.recompute_health()

    def get_device_status(self, device_id: str) -> DeviceTelemetry:
        with self._lock:
            if device_id not in self._devices:
                raise HomeLinkError(ErrorKind.DEVICE_NOT_FOUND)
            cached = self._telemetry.get(device_id)
            if cached is not None:
                return cached
            placeholder = self._placeholder_telemetry(device_id)
            self._telemetry[device_id] = placeholder
            return placeholder

    def _placeholder_telemetry(self, device_id: str) -> DeviceTelemetry:
        return DeviceTelemetry(
            device_id=device_id,
            online=True,
            battery=self.rng.randint(30, 100),
            motion_detection_enabled=True,
            signal_strength=self.rng.randint(2, 4),
            firmware_version=f"v{self.rng.randint(1, 5)}.{self.rng.randint(0, 9)}.{self.rng.randint(0, 9)}",
            temperature=round(self.rng.uniform(15.0, 30.0), 1),
            recording_mode=RecordingMode.AUTO,
            placeholder=True,
        )

    # Derived queries

    def online_devices(self) -> list[Device]:
        return [device for device in self.devices if device.is_online]

    def offline_devices(self) -> list[Device]:
        return [device for device in self.devices if not device.is_online]

    def low_battery_devices(self) -> list[Device]:
        return [device for device in self.devices if scorer.is_low_battery(device, self.thresholds.low_battery)]

    def critical_battery_devices(self) -> list[Device]:
        return [device for device in self.devices if scorer.is_low_battery(device, self.thresholds.critical_battery)]

    def healthy_battery_devices(self) -> list[Device]:
        return [
            device
            for device in self.devices
            if device.battery is not None and device.battery > self.thresholds.healthy_battery
        ]

    def devices_needing_attention(self, now: dt.datetime | None = None) -> list[Device]:
        moment = now or now_utc()
        stale_cutoff = moment - dt.timedelta(hours=self.thresholds.stale_after_hours)
        result: list[Device] = []
        for device in self.devices:
            stale = device.last_seen is not None and ensure_aware(device.last_seen) < stale_cutoff
            if not device.is_online or scorer.is_low_battery(device, self.thresholds.low_battery) or stale:
                result.append(device)
        return result

    def devices_of_type(self, device_type: DeviceType) -> list[Device]:
        return [device for device in self.devices if device.device_type == device_type]

    # Foreground device actions

    def _record_error(self, exc: HomeLinkError) -> None:
        with self._lock:
            self._last_error = exc.kind
        self._emit("error")

    def _interacted(self, device_id: str, feature: str) -> None:
        self.analytics.track_feature(feature)
        self.analytics.track_interaction(device_id)

    def _patch_telemetry(self, device_id: str, **changes: Any) -> None:
        with self._lock:
            if not self._accepting():
                return
            current = self._telemetry.get(device_id)
            if current is None:
                return
            self._telemetry[device_id] = current.model_copy(update=changes)
        self._emit("telemetry")

    def capture_snapshot(self, device_id: str) -> SnapshotResult:
        self._interacted(device_id, "snapshot")
        try:
            result = self.gateway.capture_snapshot(device_id)
        except HomeLinkError as exc:
            self.analytics.record(SnapshotCaptureEvent(device_id=device_id, success=False))
            self._record_error(exc)
            raise
        self.analytics.record(SnapshotCaptureEvent(device_id=device_id, success=True))
        return result

    def get_live_stream(self, device_id: str) -> StreamSession:
        self._interacted(device_id, "live_stream")
        try:
            session = self.gateway.get_stream_url(device_id)
        except HomeLinkError as exc:
            self.analytics.record(StreamAccessEvent(device_id=device_id, success=False))
            self._record_error(exc)
            raise
        self.analytics.record(StreamAccessEvent(device_id=device_id, success=True))
        return session

    def set_recording_mode(self, device_id: str, mode: RecordingMode) -> RecordingMode:
        self._interacted(device_id, "recording_mode")
        try:
            applied = self.gateway.set_recording_mode(device_id, mode)
        except HomeLinkError as exc:
            self._record_error(exc)
            raise
        self._patch_telemetry(device_id, recording_mode=applied)
        return applied

    def activate_siren(self, device_id: str) -> bool:
        return self._set_siren(device_id, True)

    def deactivate_siren(self, device_id: str) -> bool:
        return self._set_siren(device_id, False)

    def _set_siren(self, device_id: str, enabled: bool) -> bool:
        self._interacted(device_id, "siren")
        try:
            applied = self.gateway.set_siren(device_id, enabled)
        except HomeLinkError as exc:
            self._record_error(exc)
            raise
        self._patch_telemetry(device_id, siren_active=applied)
        return applied

    def set_privacy_mode(self, device_id: str, enabled: bool) -> bool:
        self._interacted(device_id, "privacy_mode")
        try:
            applied = self.gateway.set_privacy_mode(device_id, enabled)
        except HomeLinkError as exc:
            self._record_error(exc)
            raise
        self._patch_telemetry(device_id, privacy_mode=applied)
        return applied

    def enable_motion_detection(self, device_id: str) -> bool:
        return self.set_motion_detection(device_id, True)

    def disable_motion_detection(self, device_id: str) -> bool:
        return self.set_motion_detection(device_id, False)

    def set_motion_detection(self, device_id: str, enabled: bool) -> bool:
        self._interacted(device_id, "motion_detection")
        try:
            if enabled:
                applied = self.gateway.enable_motion_detection(device_id)
            else:
                applied = self.gateway.disable_motion_detection(device_id)
        except HomeLinkError as exc:
            self._record_error(exc)
            raise
        self._patch_telemetry(device_id, motion_detection_enabled=applied)
        return applied

    def ensure_motion_detection(self, device_id: str, enabled: bool) -> bool:
        """Set motion detection only when the cached state differs.

        Returns ``True`` when a remote change was made.
        """
        with self._lock:
            current = self._telemetry.get(device_id)
        if current is not None and not current.placeholder and current.motion_detection_enabled == enabled:
            return False
        self.set_motion_detection(device_id, enabled)
        return True

    def toggle_motion_detection(self, device_id: str) -> bool:
        status = self.refresh_device_status(device_id)
        if status is None:
            raise HomeLinkError(ErrorKind.OPERATION_FAILED, "Device status unavailable")
        return self.set_motion_detection(device_id, not status.motion_detection_enabled)

    def get_motion_schedule(self, device_id: str) -> MotionSchedule | None:
        try:
            schedule = self.gateway.get_motion_schedule(device_id)
        except HomeLinkError as exc:
            self._record_error(exc)
            raise
        if schedule is not None:
            with self._lock:
                if self._accepting() and device_id in self._devices:
                    self._schedules[device_id] = schedule
        return schedule

    def set_motion_schedule(self, schedule: MotionSchedule) -> MotionSchedule:
        self._interacted(schedule.device_id, "motion_schedule")
        try:
            stored = self.gateway.set_motion_schedule(schedule)
        except HomeLinkError as exc:
            self._record_error(exc)
            raise
        with self._lock:
            if self._accepting() and stored.device_id in self._devices:
                self._schedules[stored.device_id] = stored
        self._emit("schedules")
        return stored

    # Geofence list

    def get_geofence(self, geofence_id: str) -> Geofence | None:
        with self._lock:
            geofence = self._geofences.get(geofence_id)
        return geofence.model_copy(deep=True) if geofence else None

    def put_geofence(self, geofence: Geofence) -> None:
        with self._lock:
            self._geofences[geofence.id] = geofence.model_copy(deep=True)
        self._emit("geofences")

    def drop_geofence(self, geofence_id: str) -> bool:
        with self._lock:
            removed = self._geofences.pop(geofence_id, None) is not None
        if removed:
            self._emit("geofences")
        return removed

    # Whole-state operations

    def export_state(self) -> dict[str, Any]:
        with self._lock:
            return {
                "devices": [device.model_copy() for device in self._devices.values()],
                "telemetry": dict(self._telemetry),
                "schedules": {device_id: s.model_copy(deep=True) for device_id, s in self._schedules.items()},
                "geofences": [geofence.model_copy(deep=True) for geofence in self._geofences.values()],
                "health": self._health,
            }

    def replace_state(
        self,
        devices: Iterable[Device],
        telemetry: dict[str, DeviceTelemetry],
        schedules: dict[str, MotionSchedule],
        geofences: Iterable[Geofence],
    ) -> None:
        new_devices = {device.id: device.model_copy() for device in devices}
        new_telemetry = {device_id: item for device_id, item in telemetry.items() if device_id in new_devices}
        new_schedules = {device_id: s.model_copy(deep=True) for device_id, s in schedules.items() if device_id in new_devices}
        new_geofences = {geofence.id: geofence.model_copy(deep=True) for geofence in geofences}
        with self._lock:
            self._load_generation += 1
            self._devices = new_devices
            self._telemetry = new_telemetry
            self._schedules = new_schedules
            self._geofences = new_geofences
            self._is_loading = False
        logger.info("registry state replaced: %s devices, %s geofences", len(new_devices), len(new_geofences))
        self._emit("restored")
        self.recompute_health()

    def clear(self) -> None:
        with self._lock:
            self._load_generation += 1
            self._devices.clear()
            self._telemetry.clear()
            self._schedules.clear()
            self._geofences.clear()
            self._alerts.clear()
            self._device_locks.clear()
            self._is_loading = False
            self._last_error = None
            self._health = scorer.score([], self.thresholds.low_battery)
        self._emit("cleared")
