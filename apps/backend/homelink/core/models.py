from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from homelink.util.time import now_utc


class DeviceType(str, Enum):
    CAMERA = "camera"
    DOORBELL = "doorbell"
    MOTION_SENSOR = "motion_sensor"
    FLOODLIGHT = "floodlight"
    CHIME = "chime"


class DeviceStatus(str, Enum):
    ON = "on"
    OFF = "off"
    OPEN = "open"
    CLOSED = "closed"
    UNKNOWN = "unknown"


class RecordingMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"
    DISABLED = "disabled"
    SCHEDULED = "scheduled"


class AlertType(str, Enum):
    MOTION = "motion"
    PERSON = "person"
    VEHICLE = "vehicle"
    PACKAGE = "package"
    DOORBELL = "doorbell"


class HealthStatus(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"


class GeofenceActionKind(str, Enum):
    ENABLE_MOTION_DETECTION = "enable_motion_detection"
    DISABLE_MOTION_DETECTION = "disable_motion_detection"
    SEND_NOTIFICATION = "send_notification"
    CAPTURE_SNAPSHOT = "capture_snapshot"


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


# Device types that carry a camera and therefore support snapshots, live view
# and recording modes.
CAMERA_TYPES = frozenset({DeviceType.CAMERA, DeviceType.DOORBELL, DeviceType.FLOODLIGHT})
SIREN_TYPES = frozenset({DeviceType.CAMERA, DeviceType.FLOODLIGHT})
ONLINE_STATUSES = frozenset({DeviceStatus.ON, DeviceStatus.OPEN, DeviceStatus.CLOSED})


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


def battery_band(level: int) -> str:
    if level >= 50:
        return "good"
    if level >= 20:
        return "low"
    return "critical"


_SIGNAL_BANDS = {4: "excellent", 3: "good", 2: "fair", 1: "poor"}


class Device(BaseModel):
    id: str = Field(default_factory=lambda: new_id("dev"), frozen=True)
    name: str
    device_type: DeviceType = DeviceType.CAMERA
    status: DeviceStatus = DeviceStatus.UNKNOWN
    battery: int | None = None
    last_seen: dt.datetime | None = None
    location: str | None = None
    shared: bool = False

    @field_validator("battery")
    @classmethod
    def clamp_battery(cls, value: int | None) -> int | None:
        if value is None:
            return None
        return min(100, max(0, value))

    @property
    def is_online(self) -> bool:
        return self.status in ONLINE_STATUSES

    @property
    def has_camera(self) -> bool:
        return self.device_type in CAMERA_TYPES


class DeviceTelemetry(BaseModel):
    model_config = ConfigDict(frozen=True)

    device_id: str
    online: bool
    battery: int = Field(ge=0, le=100)
    motion_detection_enabled: bool
    last_motion: dt.datetime | None = None
    signal_strength: int = Field(ge=1, le=4)
    firmware_version: str
    temperature: float
    recording_mode: RecordingMode = RecordingMode.AUTO
    siren_active: bool = False
    privacy_mode: bool = False
    fetched_at: dt.datetime = Field(default_factory=now_utc)
    placeholder: bool = False

    @property
    def battery_band(self) -> str:
        return battery_band(self.battery)

    @property
    def signal_band(self) -> str:
        return _SIGNAL_BANDS[self.signal_strength]


class MotionAlert(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("alert"))
    device_id: str
    timestamp: dt.datetime
    description: str
    alert_type: AlertType = AlertType.MOTION
    confidence: float = Field(ge=0.0, le=1.0)
    has_video: bool = False


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class GeofenceAction(BaseModel):
    """One step of a geofence's entry routine.

    ``device_ids`` narrows motion/snapshot actions to specific devices; when
    empty the action applies to every registered device that supports it.
    ``title``/``body`` are only meaningful for ``send_notification``.
    """

    model_config = ConfigDict(frozen=True)

    kind: GeofenceActionKind
    device_ids: tuple[str, ...] = ()
    title: str | None = None
    body: str | None = None


class Geofence(BaseModel):
    id: str = Field(default_factory=lambda: new_id("geo"))
    name: str
    center: Coordinate
    radius: float = Field(gt=0.0)
    enabled: bool = True
    actions: list[GeofenceAction] = Field(default_factory=list)


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: dt.time
    end: dt.time

    def contains(self, value: dt.time) -> bool:
        if self.start <= self.end:
            return self.start <= value < self.end
        return value >= self.start or value < self.end


class MotionSchedule(BaseModel):
    device_id: str
    enabled: bool = True
    timezone: str = "UTC"
    days: dict[Weekday, list[TimeRange]] = Field(default_factory=dict)

    def is_active(self, moment: dt.datetime) -> bool:
        if not self.enabled:
            return False
        day = list(Weekday)[moment.weekday()]
        return any(window.contains(moment.time()) for window in self.days.get(day, []))


class SystemHealth(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: HealthStatus
    score: int = Field(ge=0, le=100)
    issues: list[str] = Field(default_factory=list)
    last_updated: dt.datetime = Field(default_factory=now_utc)


class StreamSession(BaseModel):
    device_id: str
    url: str
    expires_at: dt.datetime


class SnapshotResult(BaseModel):
    device_id: str
    url: str
    captured_at: dt.datetime


class Report(BaseModel):
    report_type: Literal["security", "usage", "device_health"]
    generated_at: dt.datetime
    device_count: int
    alert_count: int
    details: dict[str, int] = Field(default_factory=dict)


class BackupSnapshot(BaseModel):
    version: str
    created_at: dt.datetime = Field(default_factory=now_utc)
    devices: list[Device] = Field(default_factory=list)
    telemetry: dict[str, DeviceTelemetry] = Field(default_factory=dict)
    schedules: dict[str, MotionSchedule] = Field(default_factory=dict)
    geofences: list[Geofence] = Field(default_factory=list)
    analytics: dict[str, int] = Field(default_factory=dict)
    health: SystemHealth | None = None
