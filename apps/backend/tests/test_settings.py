from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from homelink.config.migrate import SettingsStore
from homelink.config.schema import CoreSettings, GatewayConfig, PollingConfig


def test_defaults_match_documented_intervals() -> None:
    settings = CoreSettings(data_dir="/tmp/homelink-data")
    assert settings.polling.network_check_seconds == 5
    assert settings.polling.status_refresh_seconds == 30
    assert settings.polling.periodic_task_seconds == 30
    assert settings.thresholds.max_recent_alerts == 50
    assert settings.thresholds.low_battery == 20
    assert settings.gateway.fault_rates == {"get_stream_url": 0.5, "capture_snapshot": 0.5}
    assert settings.backup_file == "SmartHomeBackup.json"


def test_store_writes_settings_file(tmp_path) -> None:
    store = SettingsStore(data_dir=str(tmp_path))
    path = tmp_path / "config" / "settings.json"
    assert path.exists()
    assert json.loads(path.read_text(encoding="utf-8"))["data_dir"] == str(tmp_path.resolve())
    assert (tmp_path / "backups").is_dir()
    assert store.settings.version == "1.0.0"


def test_legacy_settings_are_migrated(tmp_path) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True)
    (config_dir / "settings.json").write_text(
        json.dumps({"version": "0.9.0", "polling": None, "thresholds": {"low_battery": 25}}),
        encoding="utf-8",
    )

    store = SettingsStore(data_dir=str(tmp_path))

    assert store.settings.version == "1.0.0"
    assert store.settings.backup_version == "0.9.0"
    assert store.settings.thresholds.low_battery == 25
    assert store.settings.polling.status_refresh_seconds == 30


def test_update_merges_nested_sections(tmp_path) -> None:
    store = SettingsStore(data_dir=str(tmp_path))
    store.update(gateway={"latency_scale": 0.0})
    reloaded = SettingsStore(data_dir=str(tmp_path))
    assert reloaded.settings.gateway.latency_scale == 0.0
    assert reloaded.settings.gateway.max_requests_per_minute == 60


def test_invalid_values_are_rejected_or_clamped() -> None:
    with pytest.raises(ValidationError):
        PollingConfig(status_refresh_seconds=0)
    assert PollingConfig(alert_injection_probability=4.0).alert_injection_probability == 1.0
    assert GatewayConfig(fault_rates={"get_stream_url": -1}).fault_rates == {"get_stream_url": 0.0}
