from __future__ import annotations

import datetime as dt

from homelink.core.models import DeviceStatus, DeviceTelemetry, HealthStatus
from homelink.health.scorer import band_for, device_recommendations, score

from fake_home import make_device

FIXED_NOW = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)


def _fleet() -> list:
    devices = [make_device(f"Camera {index}", battery=80) for index in range(4)]
    devices.append(make_device("Porch", battery=15))
    devices.append(make_device("Garage", status=DeviceStatus.OFF, battery=70))
    return devices


def test_mixed_fleet_scores_good_with_issues() -> None:
    health = score(_fleet(), now=FIXED_NOW)
    assert health.score == 86
    assert health.status == HealthStatus.GOOD
    assert "Some devices are offline" in health.issues
    assert "Some devices have low battery" in health.issues


def test_score_is_deterministic_for_same_input() -> None:
    devices = _fleet()
    assert score(devices, now=FIXED_NOW) == score(devices, now=FIXED_NOW)


def test_empty_fleet_is_poor() -> None:
    health = score([], now=FIXED_NOW)
    assert health.score == 40
    assert health.status == HealthStatus.POOR
    assert health.issues == ["System health is degraded", "No devices registered"]


def test_many_low_battery_devices_floor_battery_health() -> None:
    devices = [make_device(f"Sensor {index}", status=DeviceStatus.OFF, battery=5) for index in range(12)]
    health = score(devices, now=FIXED_NOW)
    assert health.score == 0
    assert health.status == HealthStatus.CRITICAL
    assert health.issues[0] == "System requires immediate attention"


def test_band_boundaries() -> None:
    assert band_for(100) == HealthStatus.EXCELLENT
    assert band_for(90) == HealthStatus.EXCELLENT
    assert band_for(89) == HealthStatus.GOOD
    assert band_for(75) == HealthStatus.GOOD
    assert band_for(74) == HealthStatus.FAIR
    assert band_for(60) == HealthStatus.FAIR
    assert band_for(59) == HealthStatus.POOR
    assert band_for(40) == HealthStatus.POOR
    assert band_for(39) == HealthStatus.CRITICAL


def test_device_recommendations_cover_signal_and_firmware() -> None:
    device = make_device("Backyard", status=DeviceStatus.OFF, battery=10)
    telemetry = DeviceTelemetry(
        device_id=device.id,
        online=False,
        battery=10,
        motion_detection_enabled=True,
        signal_strength=1,
        firmware_version="v1.9.3",
        temperature=20.0,
    )
    titles = [item.title for item in device_recommendations(device, telemetry)]
    assert titles == ["Device Offline", "Low Battery", "Poor Signal", "Firmware Update Available"]


def test_healthy_device_has_no_recommendations() -> None:
    device = make_device("Front", battery=90)
    telemetry = DeviceTelemetry(
        device_id=device.id,
        online=True,
        battery=90,
        motion_detection_enabled=True,
        signal_strength=4,
        firmware_version="v2.1.0",
        temperature=20.0,
    )
    assert device_recommendations(device, telemetry) == []


def test_half_point_scores_round_up() -> None:
    devices = [make_device(f"Camera {index}", battery=80) for index in range(3)]
    devices += [make_device(f"Offline {index}", status=DeviceStatus.OFF, battery=80) for index in range(5)]
    assert score(devices, now=FIXED_NOW).score == 63
