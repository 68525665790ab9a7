from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from homelink.config.defaults import DEFAULT_LOW_BATTERY_THRESHOLD
from homelink.core.models import Device, DeviceTelemetry, HealthStatus, SystemHealth
from homelink.util.time import now_utc

ONLINE_WEIGHT = 60
BATTERY_WEIGHT = 0.4
BATTERY_PENALTY_PER_DEVICE = 10

_BANDS: Sequence[tuple[int, HealthStatus]] = (
    (90, HealthStatus.EXCELLENT),
    (75, HealthStatus.GOOD),
    (60, HealthStatus.FAIR),
    (40, HealthStatus.POOR),
)

_BAND_ISSUES = {
    HealthStatus.EXCELLENT: None,
    HealthStatus.GOOD: None,
    HealthStatus.FAIR: "Several devices need attention",
    HealthStatus.POOR: "System health is degraded",
    HealthStatus.CRITICAL: "System requires immediate attention",
}


def band_for(score: int) -> HealthStatus:
    for floor, status in _BANDS:
        if score >= floor:
            return status
    return HealthStatus.CRITICAL


def is_low_battery(device: Device, threshold: int = DEFAULT_LOW_BATTERY_THRESHOLD) -> bool:
    return device.battery is not None and device.battery <= threshold


def score(
    devices: Iterable[Device],
    low_battery_threshold: int = DEFAULT_LOW_BATTERY_THRESHOLD,
    now: dt.datetime | None = None,
) -> SystemHealth:
    items = list(devices)
    total = len(items)
    online = sum(1 for device in items if device.is_online)
    low_battery = sum(1 for device in items if is_low_battery(device, low_battery_threshold))

    online_rate = online / total if total else 0.0
    battery_health = max(0, 100 - BATTERY_PENALTY_PER_DEVICE * low_battery)
    # Half-up rounding; the raw score is never negative.
    total_score = min(100, max(0, int(online_rate * ONLINE_WEIGHT + battery_health * BATTERY_WEIGHT + 0.5)))
    status = band_for(total_score)

    issues: list[str] = []
    band_issue = _BAND_ISSUES[status]
    if band_issue:
        issues.append(band_issue)
    if total == 0:
        issues.append("No devices registered")
    if online < total:
        issues.append("Some devices are offline")
    if low_battery > 0:
        issues.append("Some devices have low battery")

    return SystemHealth(status=status, score=total_score, issues=issues, last_updated=now or now_utc())


@dataclass(frozen=True)
class Recommendation:
    kind: str
    title: str
    description: str
    priority: str


def _firmware_tuple(version: str) -> tuple[int, ...]:
    parts: list[int] = []
    for piece in version.lstrip("vV").split("."):
        try:
            parts.append(int(piece))
        except ValueError:
            break
    return tuple(parts)


def device_recommendations(
    device: Device,
    telemetry: DeviceTelemetry | None = None,
    low_battery_threshold: int = DEFAULT_LOW_BATTERY_THRESHOLD,
) -> list[Recommendation]:
    recommendations: list[Recommendation] = []
    if not device.is_online:
        recommendations.append(
            Recommendation("connectivity", "Device Offline", "Check the device power and Wi-Fi connection", "high")
        )
    if is_low_battery(device, low_battery_threshold):
        recommendations.append(
            Recommendation("battery", "Low Battery", "Consider charging or replacing the battery", "high")
        )
    if telemetry is None:
        return recommendations
    if telemetry.signal_strength <= 1:
        recommendations.append(
            Recommendation("connectivity", "Poor Signal", "Move device closer to router or check interference", "medium")
        )
    if _firmware_tuple(telemetry.firmware_version) < (2, 0):
        recommendations.append(
            Recommendation("firmware", "Firmware Update Available", "Update firmware for improved performance and security", "medium")
        )
    return recommendations
