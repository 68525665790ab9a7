from __future__ import annotations

import datetime as dt
import random
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Literal

from homelink.auth.session import AuthSession
from homelink.core.errors import ErrorKind, HomeLinkError
from homelink.core.models import (
    CAMERA_TYPES,
    SIREN_TYPES,
    AlertType,
    Device,
    DeviceStatus,
    DeviceTelemetry,
    DeviceType,
    Geofence,
    MotionAlert,
    MotionSchedule,
    RecordingMode,
    Report,
    SnapshotResult,
    StreamSession,
    new_id,
)
from homelink.gateway.policy import FaultPolicy, LatencyPolicy, RateLimiter
from homelink.util.logging import get_logger
from homelink.util.security import validate_identifier
from homelink.util.time import now_utc

logger = get_logger(__name__)

NotifyHook = Callable[[str, str, str], object]

STREAM_BASE_URL = "https://stream.homelink.invalid/live"
SNAPSHOT_BASE_URL = "https://media.homelink.invalid/snapshots"
STREAM_TTL_SECONDS = 300
MAX_REMOTE_ALERTS_PER_DEVICE = 100

_ALERT_DESCRIPTIONS = {
    AlertType.MOTION: "Motion detected",
    AlertType.PERSON: "Person detected",
    AlertType.VEHICLE: "Vehicle detected",
    AlertType.PACKAGE: "Package delivered",
    AlertType.DOORBELL: "Someone rang the doorbell",
}


def default_catalog() -> list[Device]:
    return [
        Device(name="Front Door", device_type=DeviceType.DOORBELL, location="Entrance"),
        Device(name="Backyard Camera", device_type=DeviceType.CAMERA, location="Backyard"),
        Device(name="Driveway Floodlight", device_type=DeviceType.FLOODLIGHT, location="Driveway"),
        Device(name="Garage Motion Sensor", device_type=DeviceType.MOTION_SENSOR, location="Garage"),
        Device(name="Hallway Chime", device_type=DeviceType.CHIME, location="Hallway"),
    ]


@dataclass
class RemoteDeviceState:
    online: bool = True
    battery: int = 100
    motion_detection_enabled: bool = True
    recording_mode: RecordingMode = RecordingMode.AUTO
    siren_active: bool = False
    privacy_mode: bool = False
    signal_strength: int = 4
    firmware_version: str = "v1.0.0"
    temperature: float = 21.0
    last_motion: dt.datetime | None = None
    last_seen: dt.datetime = field(default_factory=now_utc)


class RemoteGateway:
    """In-process stand-in for the cloud device API.

    Every operation checks the session before anything else, validates its
    identifiers, consumes a rate-limit slot, waits for the operation's
    simulated latency and finally applies fault injection. Failures are always
    raised as ``HomeLinkError``.
    """

    def __init__(
        self,
        session: AuthSession,
        latency: LatencyPolicy | None = None,
        faults: FaultPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
        devices: Iterable[Device] | None = None,
        rng: random.Random | None = None,
        max_backups: int = 5,
        notify: NotifyHook | None = None,
    ) -> None:
        self.session = session
        self.latency = latency or LatencyPolicy()
        self.faults = faults or FaultPolicy()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.rng = rng or random.Random()
        self.max_backups = max(1, max_backups)
        self.notify = notify
        self._lock = threading.RLock()
        self._catalog: dict[str, Device] = {}
        self._remote: dict[str, RemoteDeviceState] = {}
        self._alerts: dict[str, list[MotionAlert]] = {}
        self._schedules: dict[str, MotionSchedule] = {}
        self._geofences: dict[str, Geofence] = {}
        self._backups: dict[str, str] = {}
        for device in devices if devices is not None else default_catalog():
            self.seed_device(device)

    # Simulation controls; these model changes on the service side and do not
    # go through the authenticated call path.

    def seed_device(self, device: Device, state: RemoteDeviceState | None = None) -> None:
        with self._lock:
            self._catalog[device.id] = device
            self._remote[device.id] = state or self._random_state()
            self._alerts.setdefault(device.id, [])

    def unseed_device(self, device_id: str) -> None:
        with self._lock:
            self._catalog.pop(device_id, None)
            self._remote.pop(device_id, None)
            self._alerts.pop(device_id, None)
            self._schedules.pop(device_id, None)

    def remote_state(self, device_id: str) -> RemoteDeviceState:
        with self._lock:
            return self._remote[device_id]

    def _random_state(self) -> RemoteDeviceState:
        return RemoteDeviceState(
            online=True,
            battery=self.rng.randint(30, 100),
            motion_detection_enabled=True,
            signal_strength=self.rng.randint(2, 4),
            firmware_version=f"v{self.rng.randint(1, 5)}.{self.rng.randint(0, 9)}.{self.rng.randint(0, 9)}",
            temperature=round(self.rng.uniform(15.0, 30.0), 1),
        )

    # Call pipeline

    def _begin(self, operation: str) -> None:
        self.session.require_signed_in()
        self._admit(operation)

    def _begin_device(self, operation: str, device_id: str) -> Device:
        self.session.require_signed_in()
        device = self._require_device(device_id)
        self._admit(operation)
        return device

    def _admit(self, operation: str) -> None:
        if not self.rate_limiter.try_acquire():
            logger.warning("rate limit exceeded for %s", operation)
            raise HomeLinkError(ErrorKind.RATE_LIMIT_EXCEEDED)

        self.latency.wait(operation)
        if not self.session.is_signed_in:
            raise HomeLinkError(ErrorKind.NOT_AUTHENTICATED)

    @contextmanager
    def _response(self, operation: str) -> Iterator[None]:
        try:
            yield
        except HomeLinkError:
            raise
        except (KeyError, ValueError, TypeError) as exc:
            logger.debug("remote operation %s produced an invalid response", operation, exc_info=True)
            raise HomeLinkError(ErrorKind.INVALID_RESPONSE) from exc

    def _require_device(self, device_id: str) -> Device:
        try:
            validate_identifier(device_id)
        except ValueError as exc:
            raise HomeLinkError(ErrorKind.DEVICE_NOT_FOUND, f"Invalid device id: {device_id!r}") from exc
        with self._lock:
            device = self._catalog.get(device_id)
        if device is None:
            raise HomeLinkError(ErrorKind.DEVICE_NOT_FOUND)
        return device

    def _require_geofence_id(self, geofence_id: str) -> None:
        self.session.require_signed_in()
        try:
            validate_identifier(geofence_id)
        except ValueError as exc:
            raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"Invalid geofence id: {geofence_id!r}") from exc

    def _require_online(self, device_id: str) -> RemoteDeviceState:
        with self._lock:
            state = self._remote[device_id]
        if not state.online:
            raise HomeLinkError(ErrorKind.DEVICE_OFFLINE)
        return state

    @staticmethod
    def _require_control(device: Device) -> None:
        if device.shared:
            raise HomeLinkError(ErrorKind.INSUFFICIENT_PERMISSIONS)

    def _emit(self, title: str, body: str, category: str) -> None:
        if self.notify is None:
            return
        try:
            self.notify(title, body, category)
        except Exception:
            logger.exception("notification hook failed: %s", title)

    # Devices

    def list_devices(self) -> list[Device]:
        self._begin("list_devices")
        with self._response("list_devices"), self._lock:
            return [self._device_view(device) for device in self._catalog.values()]

    def _device_view(self, device: Device) -> Device:
        state = self._remote[device.id]
        return device.model_copy(
            update={
                "status": DeviceStatus.ON if state.online else DeviceStatus.OFF,
                "battery": state.battery,
                "last_seen": state.last_seen,
            }
        )

    def get_device_status(self, device_id: str) -> DeviceTelemetry:
        self._begin_device("get_device_status", device_id)
        if self.faults.should_fail("get_device_status"):
            raise HomeLinkError(ErrorKind.NETWORK_ERROR)
        with self._response("get_device_status"), self._lock:
            state = self._remote[device_id]
            self._drift(state)
            return DeviceTelemetry(
                device_id=device_id,
                online=state.online,
                battery=state.battery,
                motion_detection_enabled=state.motion_detection_enabled,
                last_motion=state.last_motion,
                signal_strength=state.signal_strength,
                firmware_version=state.firmware_version,
                temperature=state.temperature,
                recording_mode=state.recording_mode,
                siren_active=state.siren_active,
                privacy_mode=state.privacy_mode,
            )

    def _drift(self, state: RemoteDeviceState) -> None:
        if state.online:
            state.battery = max(0, state.battery - self.rng.randint(0, 1))
            state.last_seen = now_utc()
        state.temperature = round(state.temperature + self.rng.uniform(-0.5, 0.5), 1)

    def get_recent_motion_alerts(self, device_id: str, limit: int = 10) -> list[MotionAlert]:
        self._begin_device("get_recent_motion_alerts", device_id)
        with self._lock:
            alerts = sorted(self._alerts.get(device_id, []), key=lambda alert: alert.timestamp, reverse=True)
        return alerts[: max(0, limit)]

    def simulate_motion_alert(self) -> MotionAlert | None:
        self._begin("simulate_motion_alert")
        with self._response("simulate_motion_alert"), self._lock:
            candidates = [
                device
                for device in self._catalog.values()
                if self._remote[device.id].online and self._remote[device.id].motion_detection_enabled
            ]
            if not candidates:
                return None
            device = self.rng.choice(candidates)
            if device.device_type == DeviceType.DOORBELL:
                alert_type = self.rng.choice(list(AlertType))
            else:
                alert_type = self.rng.choice([t for t in AlertType if t != AlertType.DOORBELL])
            alert = MotionAlert(
                device_id=device.id,
                timestamp=now_utc(),
                description=f"{_ALERT_DESCRIPTIONS[alert_type]} at {device.name}",
                alert_type=alert_type,
                confidence=round(self.rng.uniform(0.6, 0.99), 2),
                has_video=device.has_camera,
            )
            history = self._alerts.setdefault(device.id, [])
            history.append(alert)
            del history[:-MAX_REMOTE_ALERTS_PER_DEVICE]
            self._remote[device.id].last_motion = alert.timestamp
            return alert

    # Camera operations

    def capture_snapshot(self, device_id: str) -> SnapshotResult:
        device = self._begin_device("capture_snapshot", device_id)
        if device.device_type not in CAMERA_TYPES:
            raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"{device.name} has no camera")
        state = self._require_online(device_id)
        if state.privacy_mode:
            raise HomeLinkError(ErrorKind.OPERATION_FAILED, "Privacy mode is on")
        if self.faults.should_fail("capture_snapshot"):
            raise HomeLinkError(ErrorKind.OPERATION_FAILED, "Snapshot capture failed")
        captured_at = now_utc()
        result = SnapshotResult(
            device_id=device_id,
            url=f"{SNAPSHOT_BASE_URL}/{device_id}/{captured_at.strftime('%Y%m%dT%H%M%SZ')}.jpg",
            captured_at=captured_at,
        )
        self._emit("Snapshot Captured", f"New snapshot from {device.name}", "snapshot")
        return result

    def get_stream_url(self, device_id: str) -> StreamSession:
        device = self._begin_device("get_stream_url", device_id)
        if device.device_type not in CAMERA_TYPES:
            raise HomeLinkError(ErrorKind.STREAM_UNAVAILABLE, f"{device.name} has no camera")
        state = self._require_online(device_id)
        if state.privacy_mode or self.faults.should_fail("get_stream_url"):
            raise HomeLinkError(ErrorKind.STREAM_UNAVAILABLE)
        return StreamSession(
            device_id=device_id,
            url=f"{STREAM_BASE_URL}/{device_id}/{new_id('session')}.m3u8",
            expires_at=now_utc() + dt.timedelta(seconds=STREAM_TTL_SECONDS),
        )

    def set_recording_mode(self, device_id: str, mode: RecordingMode) -> RecordingMode:
        device = self._begin_device("set_recording_mode", device_id)
        self._require_control(device)
        if device.device_type not in CAMERA_TYPES:
            raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"{device.name} does not record")
        with self._response("set_recording_mode"):
            resolved = RecordingMode(mode)
        with self._lock:
            self._remote[device_id].recording_mode = resolved
        self._emit("Recording Mode Changed", f"{device.name} is now recording in {resolved.value} mode", "recording")
        return resolved

    def set_siren(self, device_id: str, enabled: bool) -> bool:
        device = self._begin_device("set_siren", device_id)
        self._require_control(device)
        if device.device_type not in SIREN_TYPES:
            raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"{device.name} has no siren")
        self._require_online(device_id)
        with self._lock:
            self._remote[device_id].siren_active = enabled
        if enabled:
            self._emit("Siren Activated", f"Siren is sounding at {device.name}", "siren")
        return enabled

    def set_privacy_mode(self, device_id: str, enabled: bool) -> bool:
        device = self._begin_device("set_privacy_mode", device_id)
        self._require_control(device)
        if device.device_type not in CAMERA_TYPES:
            raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"{device.name} has no camera")
        with self._lock:
            self._remote[device_id].privacy_mode = enabled
        return enabled

    # Motion detection

    def enable_motion_detection(self, device_id: str) -> bool:
        return self._set_motion_detection("enable_motion_detection", device_id, True)

    def disable_motion_detection(self, device_id: str) -> bool:
        return self._set_motion_detection("disable_motion_detection", device_id, False)

    def _set_motion_detection(self, operation: str, device_id: str, enabled: bool) -> bool:
        device = self._begin_device(operation, device_id)
        self._require_control(device)
        if device.device_type == DeviceType.CHIME:
            raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"{device.name} has no motion sensor")
        with self._lock:
            self._remote[device_id].motion_detection_enabled = enabled
        return enabled

    def get_motion_schedule(self, device_id: str) -> MotionSchedule | None:
        self._begin_device("get_motion_schedule", device_id)
        with self._lock:
            schedule = self._schedules.get(device_id)
        return schedule.model_copy(deep=True) if schedule else None

    def set_motion_schedule(self, schedule: MotionSchedule) -> MotionSchedule:
        device = self._begin_device("set_motion_schedule", schedule.device_id)
        self._require_control(device)
        stored = schedule.model_copy(deep=True)
        with self._lock:
            self._schedules[schedule.device_id] = stored
        self._emit("Motion Schedule Updated", f"Motion schedule saved for {device.name}", "schedule")
        return stored.model_copy(deep=True)

    # Geofences

    def list_geofences(self) -> list[Geofence]:
        self._begin("list_geofences")
        with self._lock:
            return [geofence.model_copy(deep=True) for geofence in self._geofences.values()]

    def create_geofence(self, geofence: Geofence) -> Geofence:
        self._require_geofence_id(geofence.id)
        self._begin("create_geofence")
        with self._lock:
            if geofence.id in self._geofences:
                raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"Geofence already exists: {geofence.id}")
            self._geofences[geofence.id] = geofence.model_copy(deep=True)
        return geofence.model_copy(deep=True)

    def update_geofence(self, geofence: Geofence) -> Geofence:
        self._require_geofence_id(geofence.id)
        self._begin("update_geofence")
        with self._lock:
            if geofence.id not in self._geofences:
                raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"Unknown geofence: {geofence.id}")
            self._geofences[geofence.id] = geofence.model_copy(deep=True)
        return geofence.model_copy(deep=True)

    def delete_geofence(self, geofence_id: str) -> None:
        self._require_geofence_id(geofence_id)
        self._begin("delete_geofence")
        with self._lock:
            if self._geofences.pop(geofence_id, None) is None:
                raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"Unknown geofence: {geofence_id}")

    # Reports and backups

    def generate_report(
        self,
        report_type: Literal["security", "usage", "device_health"] = "security",
        since: dt.datetime | None = None,
    ) -> Report:
        self._begin("generate_report")
        cutoff = since or (now_utc() - dt.timedelta(days=7))
        with self._lock:
            alerts = [alert for history in self._alerts.values() for alert in history if alert.timestamp >= cutoff]
            states = list(self._remote.values())
            device_count = len(self._catalog)
            schedule_count = len(self._schedules)
            geofence_count = len(self._geofences)

        if report_type == "security":
            details = {kind.value: sum(1 for alert in alerts if alert.alert_type == kind) for kind in AlertType}
        elif report_type == "usage":
            details = {
                "motion_detection_enabled": sum(1 for state in states if state.motion_detection_enabled),
                "privacy_mode": sum(1 for state in states if state.privacy_mode),
                "schedules": schedule_count,
                "geofences": geofence_count,
            }
        else:
            details = {
                "online": sum(1 for state in states if state.online),
                "offline": sum(1 for state in states if not state.online),
                "weak_signal": sum(1 for state in states if state.signal_strength <= 1),
            }
        with self._response("generate_report"):
            return Report(
                report_type=report_type,
                generated_at=now_utc(),
                device_count=device_count,
                alert_count=len(alerts),
                details=details,
            )

    def create_backup(self, payload: str) -> str:
        self._begin("create_backup")
        with self._lock:
            if len(self._backups) >= self.max_backups:
                raise HomeLinkError(ErrorKind.STORAGE_EXCEEDED)
            backup_id = new_id("backup")
            self._backups[backup_id] = payload
        return backup_id

    def restore_backup(self, backup_id: str) -> str:
        self._begin("restore_backup")
        with self._lock:
            payload = self._backups.get(backup_id)
        if payload is None:
            raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"Unknown backup: {backup_id}")
        return payload

    def delete_backup(self, backup_id: str) -> None:
        self._begin("delete_backup")
        with self._lock:
            if self._backups.pop(backup_id, None) is None:
                raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"Unknown backup: {backup_id}")

    def backup_ids(self) -> list[str]:
        with self._lock:
            return list(self._backups)

    def geofence_ids(self) -> list[str]:
        with self._lock:
            return list(self._geofences)
