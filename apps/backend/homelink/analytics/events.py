from __future__ import annotations

import datetime as dt
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from homelink.core.models import AlertType
from homelink.util.time import now_utc


class _EventBase(BaseModel):
    recorded_at: dt.datetime = Field(default_factory=now_utc)


class AuthenticationEvent(_EventBase):
    kind: Literal["authentication"] = "authentication"
    success: bool


class DeviceCountEvent(_EventBase):
    kind: Literal["device_count"] = "device_count"
    count: int


class StreamAccessEvent(_EventBase):
    kind: Literal["stream_access"] = "stream_access"
    device_id: str
    success: bool


class SnapshotCaptureEvent(_EventBase):
    kind: Literal["snapshot_capture"] = "snapshot_capture"
    device_id: str
    success: bool


class MotionAlertEvent(_EventBase):
    kind: Literal["motion_alert"] = "motion_alert"
    device_id: str
    alert_type: AlertType
    confidence: float


class GeofenceEvent(_EventBase):
    kind: Literal["geofence_event"] = "geofence_event"
    geofence_id: str
    entered: bool


AnalyticsEvent = Annotated[
    Union[
        AuthenticationEvent,
        DeviceCountEvent,
        StreamAccessEvent,
        SnapshotCaptureEvent,
        MotionAlertEvent,
        GeofenceEvent,
    ],
    Field(discriminator="kind"),
]

EVENT_KINDS = (
    "authentication",
    "device_count",
    "stream_access",
    "snapshot_capture",
    "motion_alert",
    "geofence_event",
)

event_adapter: TypeAdapter[AnalyticsEvent] = TypeAdapter(AnalyticsEvent)
