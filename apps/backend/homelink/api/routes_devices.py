from __future__ import annotations

from dataclasses import asdict
from typing import Literal

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from homelink.core.errors import HomeLinkError
from homelink.core.models import Device, DeviceType, MotionSchedule, RecordingMode, TimeRange, Weekday
from homelink.health.scorer import device_recommendations
from homelink.util.security import validate_identifier

from .errors import http_error

router = APIRouter(prefix="/devices", tags=["devices"])

DeviceView = Literal["all", "online", "offline", "low_battery", "critical_battery", "healthy_battery", "attention"]


class DevicePayload(BaseModel):
    name: str = Field(min_length=1)
    device_type: DeviceType = DeviceType.CAMERA
    location: str | None = None
    battery: int | None = Field(default=None, ge=0, le=100)


class TogglePayload(BaseModel):
    enabled: bool


class RecordingModePayload(BaseModel):
    mode: RecordingMode


class SchedulePayload(BaseModel):
    enabled: bool = True
    timezone: str = "UTC"
    days: dict[Weekday, list[TimeRange]] = Field(default_factory=dict)


def _device_id(device_id: str) -> str:
    try:
        return validate_identifier(device_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("")
def list_devices(
    request: Request,
    view: DeviceView = "all",
    device_type: DeviceType | None = None,
) -> list[dict[str, object]]:
    registry = request.app.state.homelink.registry
    if view == "online":
        devices = registry.online_devices()
    elif view == "offline":
        devices = registry.offline_devices()
    elif view == "low_battery":
        devices = registry.low_battery_devices()
    elif view == "critical_battery":
        devices = registry.critical_battery_devices()
    elif view == "healthy_battery":
        devices = registry.healthy_battery_devices()
    elif view == "attention":
        devices = registry.devices_needing_attention()
    else:
        devices = registry.devices
    if device_type is not None:
        devices = [device for device in devices if device.device_type == device_type]
    return [device.model_dump(mode="json") for device in devices]


@router.post("")
def add_device(payload: DevicePayload, request: Request) -> dict[str, object]:
    device = request.app.state.homelink.registry.add_device(Device(**payload.model_dump()))
    return device.model_dump(mode="json")


@router.post("/reload")
def reload_devices(request: Request) -> dict[str, object]:
    registry = request.app.state.homelink.registry
    try:
        applied = registry.load_devices()
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return {"applied": applied, "count": len(registry.devices)}


@router.delete("/{device_id}")
def remove_device(device_id: str, request: Request) -> dict[str, bool]:
    try:
        request.app.state.homelink.registry.remove_device(_device_id(device_id))
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


@router.get("/{device_id}/status")
def get_status(device_id: str, request: Request) -> dict[str, object]:
    try:
        telemetry = request.app.state.homelink.registry.get_device_status(_device_id(device_id))
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return {**telemetry.model_dump(mode="json"), "battery_band": telemetry.battery_band, "signal_band": telemetry.signal_band}


@router.post("/{device_id}/status/refresh")
def refresh_status(device_id: str, request: Request) -> dict[str, object]:
    try:
        telemetry = request.app.state.homelink.registry.refresh_device_status(_device_id(device_id))
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    if telemetry is None:
        raise HTTPException(status_code=409, detail="Status update was discarded")
    return telemetry.model_dump(mode="json")


@router.get("/{device_id}/recommendations")
def get_recommendations(device_id: str, request: Request) -> list[dict[str, str]]:
    registry = request.app.state.homelink.registry
    try:
        device = registry.get_device(_device_id(device_id))
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    telemetry = registry.telemetry.get(device.id)
    return [asdict(item) for item in device_recommendations(device, telemetry, registry.thresholds.low_battery)]


@router.post("/{device_id}/snapshot")
def capture_snapshot(device_id: str, request: Request) -> dict[str, object]:
    try:
        result = request.app.state.homelink.registry.capture_snapshot(_device_id(device_id))
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return result.model_dump(mode="json")


@router.post("/{device_id}/stream")
def open_stream(device_id: str, request: Request) -> dict[str, object]:
    try:
        session = request.app.state.homelink.registry.get_live_stream(_device_id(device_id))
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return session.model_dump(mode="json")


@router.put("/{device_id}/recording-mode")
def set_recording_mode(device_id: str, payload: RecordingModePayload, request: Request) -> dict[str, str]:
    try:
        mode = request.app.state.homelink.registry.set_recording_mode(_device_id(device_id), payload.mode)
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return {"recording_mode": mode.value}


@router.put("/{device_id}/siren")
def set_siren(device_id: str, payload: TogglePayload, request: Request) -> dict[str, bool]:
    registry = request.app.state.homelink.registry
    target = _device_id(device_id)
    try:
        active = registry.activate_siren(target) if payload.enabled else registry.deactivate_siren(target)
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return {"siren_active": active}


@router.put("/{device_id}/privacy")
def set_privacy(device_id: str, payload: TogglePayload, request: Request) -> dict[str, bool]:
    try:
        enabled = request.app.state.homelink.registry.set_privacy_mode(_device_id(device_id), payload.enabled)
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return {"privacy_mode": enabled}


@router.put("/{device_id}/motion-detection")
def set_motion_detection(device_id: str, payload: TogglePayload, request: Request) -> dict[str, bool]:
    registry = request.app.state.homelink.registry
    target = _device_id(device_id)
    try:
        if payload.enabled:
            enabled = registry.enable_motion_detection(target)
        else:
            enabled = registry.disable_motion_detection(target)
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return {"motion_detection_enabled": enabled}


@router.post("/{device_id}/motion-detection/toggle")
def toggle_motion_detection(device_id: str, request: Request) -> dict[str, bool]:
    try:
        enabled = request.app.state.homelink.registry.toggle_motion_detection(_device_id(device_id))
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return {"motion_detection_enabled": enabled}


@router.get("/{device_id}/schedule")
def get_schedule(device_id: str, request: Request) -> dict[str, object] | None:
    try:
        schedule = request.app.state.homelink.registry.get_motion_schedule(_device_id(device_id))
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return schedule.model_dump(mode="json") if schedule else None


@router.put("/{device_id}/schedule")
def set_schedule(device_id: str, payload: SchedulePayload, request: Request) -> dict[str, object]:
    schedule = MotionSchedule(device_id=_device_id(device_id), **payload.model_dump())
    try:
        stored = request.app.state.homelink.registry.set_motion_schedule(schedule)
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return stored.model_dump(mode="json")
