from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from homelink.util.paths import ensure_data_tree, resolve_data_dir

from .defaults import APP_VERSION, BACKUP_VERSION, DEFAULT_BACKUP_FILE, DEFAULT_MAX_ANALYTICS_EVENTS
from .schema import CoreSettings


class SettingsStore:
    def __init__(self, data_dir: str | None = None) -> None:
        chosen_dir = resolve_data_dir(data_dir)
        self._data_tree = ensure_data_tree(chosen_dir)

        self.settings_path = self._data_tree["config"] / "settings.json"
        raw_settings = self._read_json(self.settings_path, default={})
        migrated = migrate_settings(raw_settings, str(chosen_dir))
        self._settings = CoreSettings.model_validate(migrated)
        self._settings.data_dir = str(chosen_dir)
        self.save()

    @property
    def settings(self) -> CoreSettings:
        return self._settings

    @property
    def data_tree(self) -> dict[str, Path]:
        return self._data_tree

    def update(self, **changes: Any) -> CoreSettings:
        merged = self._settings.model_dump()
        for key, value in changes.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        self._settings = CoreSettings.model_validate(merged)
        self.save()
        return self._settings

    def save(self) -> None:
        payload = self._settings.model_dump(mode="json")
        self._write_json(self.settings_path, payload)

    @staticmethod
    def _read_json(path: Path, default: dict[str, Any]) -> dict[str, Any]:
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return default

    @staticmethod
    def _write_json(path: Path, payload: dict[str, Any]) -> None:
        path.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")


def migrate_settings(raw: dict[str, Any], data_dir: str) -> dict[str, Any]:
    if not raw:
        return {
            "version": APP_VERSION,
            "backup_version": BACKUP_VERSION,
            "data_dir": data_dir,
            "backup_file": DEFAULT_BACKUP_FILE,
            "max_analytics_events": DEFAULT_MAX_ANALYTICS_EVENTS,
            "polling": {},
            "gateway": {},
            "thresholds": {},
            "notifications": {},
        }

    # Settings written before backups were versioned separately from the app.
    raw.setdefault("backup_version", raw.get("version", BACKUP_VERSION))
    raw["version"] = APP_VERSION
    raw.setdefault("data_dir", data_dir)
    raw.setdefault("backup_file", DEFAULT_BACKUP_FILE)
    raw.setdefault("max_analytics_events", DEFAULT_MAX_ANALYTICS_EVENTS)
    for section in ("polling", "gateway", "thresholds", "notifications"):
        if not isinstance(raw.get(section), dict):
            raw[section] = {}
    return raw
