from __future__ import annotations

import random

from fastapi.testclient import TestClient

from homelink.gateway.policy import FaultPolicy, LatencyPolicy
from homelink.main import HomeLinkState, create_app


def _state(tmp_path) -> HomeLinkState:
    return HomeLinkState.create(
        data_dir=str(tmp_path / "data"),
        log_level="warning",
        latency=LatencyPolicy.instant(),
        faults=FaultPolicy.never(),
        rng=random.Random(11),
        sinks=[],
    )


def test_sign_in_loads_devices_and_starts_background_work(tmp_path) -> None:
    state = _state(tmp_path)
    try:
        state.sign_in()
        assert len(state.registry.devices) == 5
        assert state.scheduler.is_running() is True
        assert state.geofences.is_running() is True
        assert state.analytics.counts()["authentication"] == 1
    finally:
        state.shutdown()


def test_sign_out_tears_everything_down(tmp_path) -> None:
    state = _state(tmp_path)
    state.sign_in()
    state.registry.capture_snapshot(state.registry.devices[0].id)

    state.sign_out()

    assert state.scheduler.is_running() is False
    assert state.geofences.is_running() is False
    assert state.registry.devices == []
    assert state.analytics.events() == []
    assert state.notifications.history == []
    state.shutdown()


def test_shutdown_is_idempotent(tmp_path) -> None:
    state = _state(tmp_path)
    state.sign_in()
    state.shutdown()
    state.shutdown()
    assert state.scheduler.is_running() is False


def test_settings_overrides_are_persisted(tmp_path) -> None:
    state = HomeLinkState.create(
        data_dir=str(tmp_path / "data"),
        log_level="warning",
        gateway={"latency_scale": 0.0, "seed": 5},
    )
    assert state.gateway.latency.scale == 0.0
    assert state.settings_store.settings.gateway.seed == 5
    assert (tmp_path / "data" / "logs" / "homelink.log").exists()
    state.shutdown()


def _client(tmp_path) -> TestClient:
    return TestClient(create_app(state=_state(tmp_path)))


def test_health_endpoint_reports_session(tmp_path) -> None:
    with _client(tmp_path) as client:
        response = client.get("/api/health")
        assert response.status_code == 200
        payload = response.json()
        assert payload["ok"] is True
        assert payload["signed_in"] is False
        assert payload["system"]["status"] == "poor"


def test_actions_require_sign_in(tmp_path) -> None:
    with _client(tmp_path) as client:
        response = client.post("/api/devices/reload")
        assert response.status_code == 401
        detail = response.json()["detail"]
        assert detail["kind"] == "not_authenticated"
        assert detail["recovery_hint"] == "Sign in and try again."


def test_device_flow_through_api(tmp_path) -> None:
    with _client(tmp_path) as client:
        assert client.post("/api/auth/sign-in").json()["signed_in"] is True

        devices = client.get("/api/devices").json()
        assert len(devices) == 5
        cameras = client.get("/api/devices", params={"device_type": "camera"}).json()
        assert [device["name"] for device in cameras] == ["Backyard Camera"]
        camera_id = cameras[0]["id"]

        status = client.get(f"/api/devices/{camera_id}/status").json()
        assert status["device_id"] == camera_id
        assert status["battery_band"] in {"good", "low", "critical"}

        snapshot = client.post(f"/api/devices/{camera_id}/snapshot")
        assert snapshot.status_code == 200
        assert client.put(f"/api/devices/{camera_id}/siren", json={"enabled": True}).json() == {"siren_active": True}
        assert client.get("/api/devices/dev-missing/status").status_code == 404
        assert client.get("/api/devices/bad id!/status").status_code == 400

        notifications = client.get("/api/alerts/notifications").json()
        assert [item["title"] for item in notifications["items"]][:2] == ["Snapshot Captured", "Siren Activated"]

        assert client.post("/api/auth/sign-out").json()["signed_in"] is False
        assert client.get("/api/devices").json() == []


def test_geofence_and_backup_endpoints(tmp_path) -> None:
    with _client(tmp_path) as client:
        client.post("/api/auth/sign-in")
        created = client.post(
            "/api/geofences",
            json={"name": "Home", "latitude": 37.3349, "longitude": -122.009, "radius": 150},
        )
        assert created.status_code == 200
        geofence_id = created.json()["id"]

        moved = client.post("/api/geofences/location", json={"latitude": 37.3349, "longitude": -122.009}).json()
        assert moved["transitions"] == [{"geofence_id": geofence_id, "entered": True}]
        assert client.get("/api/geofences").json()[0]["inside"] is True

        backup = client.post("/api/backup").json()
        assert backup["file"] == "SmartHomeBackup.json"
        assert backup["geofences"] == 1

        assert client.delete(f"/api/geofences/{geofence_id}").json() == {"ok": True}
        restored = client.post("/api/backup/restore").json()
        assert restored["devices"] == 5
        assert len(client.get("/api/geofences").json()) == 1
