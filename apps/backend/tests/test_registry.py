from __future__ import annotations

import datetime as dt
import random
import threading

import pytest

from homelink.core.errors import ErrorKind, HomeLinkError
from homelink.core.models import AlertType, DeviceStatus, DeviceType, MotionAlert, MotionSchedule
from homelink.gateway.policy import FaultPolicy
from homelink.gateway.remote import RemoteDeviceState

from fake_home import make_device, make_home


def _alert(device_id: str, timestamp: dt.datetime) -> MotionAlert:
    return MotionAlert(
        device_id=device_id,
        timestamp=timestamp,
        description="Motion detected",
        alert_type=AlertType.MOTION,
        confidence=0.9,
    )


def test_alert_list_is_capped_and_sorted() -> None:
    home = make_home()
    base = dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)
    offsets = list(range(75))
    random.Random(3).shuffle(offsets)
    for offset in offsets:
        home.registry.insert_alert(_alert("dev-1", base + dt.timedelta(minutes=offset)))

    alerts = home.registry.recent_alerts
    assert len(alerts) == 50
    timestamps = [alert.timestamp for alert in alerts]
    assert all(earlier > later for earlier, later in zip(timestamps, timestamps[1:]))
    assert timestamps[0] == base + dt.timedelta(minutes=74)
    assert timestamps[-1] == base + dt.timedelta(minutes=25)


def test_duplicate_alert_is_ignored() -> None:
    home = make_home()
    alert = _alert("dev-1", dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc))
    assert home.registry.insert_alert(alert) is True
    assert home.registry.insert_alert(alert) is False
    assert len(home.registry.recent_alerts) == 1


def test_load_devices_replaces_full_set() -> None:
    remote = [make_device("Front Door", DeviceType.DOORBELL), make_device("Backyard")]
    home = make_home(remote)
    home.registry.add_device(make_device("Local Only"))

    assert home.registry.load_devices() is True

    names = sorted(device.name for device in home.registry.devices)
    assert names == ["Backyard", "Front Door"]
    assert set(home.registry.telemetry) == {device.id for device in remote}
    assert home.registry.is_loading is False
    assert [event.count for event in home.analytics.events("device_count")] == [2]


def test_stale_load_response_is_discarded(monkeypatch) -> None:
    first_set = [make_device("Old Camera")]
    second_set = [make_device("New Camera"), make_device("New Doorbell", DeviceType.DOORBELL)]
    home = make_home(first_set + second_set)
    entered = threading.Event()
    release = threading.Event()
    calls = {"count": 0}

    def fake_list_devices() -> list:
        calls["count"] += 1
        if calls["count"] == 1:
            entered.set()
            release.wait(timeout=5)
            return [device.model_copy() for device in first_set]
        return [device.model_copy() for device in second_set]

    monkeypatch.setattr(home.gateway, "list_devices", fake_list_devices)
    results: list[bool] = []
    worker = threading.Thread(target=lambda: results.append(home.registry.load_devices()))
    worker.start()
    assert entered.wait(timeout=5)

    assert home.registry.load_devices() is True
    release.set()
    worker.join(timeout=5)

    assert results == [False]
    assert sorted(device.name for device in home.registry.devices) == ["New Camera", "New Doorbell"]
    assert set(home.registry.telemetry) == {device.id for device in second_set}


def test_load_failure_records_error_and_propagates(monkeypatch) -> None:
    home = make_home([make_device("Backyard")])

    def broken() -> list:
        raise HomeLinkError(ErrorKind.NETWORK_ERROR)

    monkeypatch.setattr(home.gateway, "list_devices", broken)
    with pytest.raises(HomeLinkError) as exc:
        home.registry.load_devices()
    assert exc.value.kind == ErrorKind.NETWORK_ERROR
    assert home.registry.last_error == ErrorKind.NETWORK_ERROR
    assert home.registry.is_loading is False


def test_remove_device_drops_telemetry_and_schedule() -> None:
    camera = make_device("Backyard")
    home = make_home([camera])
    home.registry.load_devices()
    home.registry.set_motion_schedule(MotionSchedule(device_id=camera.id))
    assert camera.id in home.registry.telemetry
    assert camera.id in home.registry.schedules

    home.registry.remove_device(camera.id)

    assert home.registry.devices == []
    assert camera.id not in home.registry.telemetry
    assert camera.id not in home.registry.schedules
    with pytest.raises(HomeLinkError) as exc:
        home.registry.remove_device(camera.id)
    assert exc.value.kind == ErrorKind.DEVICE_NOT_FOUND


def test_status_placeholder_is_created_lazily_and_cached() -> None:
    home = make_home()
    device = home.registry.add_device(make_device("Never Fetched"))

    first = home.registry.get_device_status(device.id)
    second = home.registry.get_device_status(device.id)

    assert first.placeholder is True
    assert first is second
    with pytest.raises(HomeLinkError) as exc:
        home.registry.get_device_status("dev-missing")
    assert exc.value.kind == ErrorKind.DEVICE_NOT_FOUND


def test_refresh_updates_device_from_telemetry() -> None:
    camera = make_device("Backyard", status=DeviceStatus.ON, battery=90)
    home = make_home([camera], states={camera.id: RemoteDeviceState(online=False, battery=12)})
    home.registry.load_devices()

    device = home.registry.get_device(camera.id)
    assert device.status == DeviceStatus.OFF
    assert device.battery == 12
    assert [d.id for d in home.registry.offline_devices()] == [camera.id]
    assert [d.id for d in home.registry.low_battery_devices()] == [camera.id]


def test_derived_queries() -> None:
    home = make_home()
    healthy = home.registry.add_device(make_device("Healthy", battery=90))
    low = home.registry.add_device(make_device("Low", battery=20))
    offline = home.registry.add_device(make_device("Offline", status=DeviceStatus.OFF, battery=60))
    stale = home.registry.add_device(
        make_device("Stale", battery=60).model_copy(
            update={"last_seen": dt.datetime.now(dt.timezone.utc) - dt.timedelta(hours=30)}
        )
    )
    chime = home.registry.add_device(make_device("Chime", DeviceType.CHIME, battery=None))

    assert {d.id for d in home.registry.online_devices()} == {healthy.id, low.id, stale.id, chime.id}
    assert {d.id for d in home.registry.offline_devices()} == {offline.id}
    assert {d.id for d in home.registry.low_battery_devices()} == {low.id}
    assert {d.id for d in home.registry.healthy_battery_devices()} == {healthy.id, offline.id, stale.id}
    assert {d.id for d in home.registry.devices_needing_attention()} == {low.id, offline.id, stale.id}
    assert [d.id for d in home.registry.devices_of_type(DeviceType.CHIME)] == [chime.id]


def test_health_recomputed_after_add_and_remove() -> None:
    home = make_home()
    device = home.registry.add_device(make_device("Front", battery=90))
    assert home.registry.system_health.score == 100
    home.registry.remove_device(device.id)
    assert home.registry.system_health.score == 40


def test_foreground_failure_sets_last_error_and_records_analytics() -> None:
    camera = make_device("Backyard")
    home = make_home([camera], faults=FaultPolicy.always("get_stream_url"))
    home.registry.load_devices()

    with pytest.raises(HomeLinkError) as exc:
        home.registry.get_live_stream(camera.id)

    assert exc.value.kind == ErrorKind.STREAM_UNAVAILABLE
    assert home.registry.last_error == ErrorKind.STREAM_UNAVAILABLE
    events = home.analytics.events("stream_access")
    assert len(events) == 1
    assert events[0].success is False
    assert home.analytics.most_used_feature() == "live_stream"


def test_shared_device_cannot_be_controlled() -> None:
    floodlight = make_device("Driveway", DeviceType.FLOODLIGHT, shared=True)
    home = make_home([floodlight])
    home.registry.load_devices()

    with pytest.raises(HomeLinkError) as exc:
        home.registry.activate_siren(floodlight.id)
    assert exc.value.kind == ErrorKind.INSUFFICIENT_PERMISSIONS


def test_toggle_motion_detection_flips_remote_state() -> None:
    camera = make_device("Backyard")
    home = make_home([camera])
    home.registry.load_devices()

    assert home.registry.toggle_motion_detection(camera.id) is False
    assert home.gateway.remote_state(camera.id).motion_detection_enabled is False
    assert home.registry.telemetry[camera.id].motion_detection_enabled is False
    assert home.registry.toggle_motion_detection(camera.id) is True


def test_results_are_dropped_after_sign_out() -> None:
    camera = make_device("Backyard")
    home = make_home([camera])
    home.registry.load_devices()

    def sign_out_during_delay(seconds: float) -> None:
        home.session.sign_out()

    home.gateway.latency.sleep = sign_out_during_delay
    assert home.registry.refresh_device_status(camera.id, background=True) is None
    with pytest.raises(HomeLinkError) as exc:
        home.registry.refresh_device_status(camera.id)
    assert exc.value.kind == ErrorKind.NOT_AUTHENTICATED


def test_clear_empties_registry_and_supersedes_loads() -> None:
    home = make_home([make_device("Backyard")])
    home.registry.load_devices()
    home.registry.insert_alert(_alert("dev-1", dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)))

    home.registry.clear()

    assert home.registry.devices == []
    assert home.registry.recent_alerts == []
    assert home.registry.telemetry == {}
    assert home.registry.last_error is None


def test_subscribers_receive_change_names() -> None:
    home = make_home([make_device("Backyard")])
    changes: list[str] = []
    unsubscribe = home.registry.subscribe(changes.append)

    home.registry.load_devices()
    unsubscribe()
    home.registry.clear()

    assert "devices" in changes
    assert "health" in changes
    assert "cleared" not in changes


def test_reload_drops_devices_removed_on_the_service() -> None:
    kept = make_device("Backyard")
    dropped = make_device("Garage", DeviceType.MOTION_SENSOR)
    home = make_home([kept, dropped])
    home.registry.load_devices()
    home.gateway.unseed_device(dropped.id)

    home.registry.load_devices()

    assert [device.id for device in home.registry.devices] == [kept.id]
    assert dropped.id not in home.registry.telemetry


def test_critical_battery_is_subset_of_low_battery() -> None:
    home = make_home()
    critical = home.registry.add_device(make_device("Porch", battery=5))
    home.registry.add_device(make_device("Side", battery=18))
    assert [device.id for device in home.registry.critical_battery_devices()] == [critical.id]
    assert len(home.registry.low_battery_devices()) == 2
