from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import ValidationError

from homelink.analytics.aggregator import AnalyticsAggregator
from homelink.config.defaults import BACKUP_VERSION, DEFAULT_BACKUP_FILE
from homelink.core.errors import ErrorKind, HomeLinkError
from homelink.core.models import BackupSnapshot, Geofence
from homelink.gateway.remote import RemoteGateway
from homelink.registry.devices import DeviceRegistry
from homelink.util.logging import get_logger
from homelink.util.time import now_utc

logger = get_logger(__name__)


def parse_snapshot(raw: BackupSnapshot | dict[str, Any] | str | bytes) -> BackupSnapshot:
    if isinstance(raw, BackupSnapshot):
        return raw
    try:
        if isinstance(raw, (str, bytes)):
            return BackupSnapshot.model_validate_json(raw)
        return BackupSnapshot.model_validate(raw)
    except ValidationError as exc:
        raise HomeLinkError(ErrorKind.INVALID_RESPONSE, "Backup data is malformed") from exc


class BackupManager:
    def __init__(
        self,
        registry: DeviceRegistry,
        data_dir: Path,
        analytics: AnalyticsAggregator | None = None,
        gateway: RemoteGateway | None = None,
        version: str = BACKUP_VERSION,
        backup_file: str = DEFAULT_BACKUP_FILE,
    ) -> None:
        self.registry = registry
        self.analytics = analytics or registry.analytics
        self.gateway = gateway or registry.gateway
        self.version = version
        self.backup_file = backup_file
        self.backups_dir = data_dir / "backups"
        self.backups_dir.mkdir(parents=True, exist_ok=True)

    def create_backup(self) -> BackupSnapshot:
        state = self.registry.export_state()
        snapshot = BackupSnapshot(
            version=self.version,
            created_at=now_utc(),
            devices=state["devices"],
            telemetry=state["telemetry"],
            schedules=state["schedules"],
            geofences=state["geofences"],
            analytics=self.analytics.counts(),
            health=state["health"],
        )
        logger.info("backup created: %s devices, %s geofences", len(snapshot.devices), len(snapshot.geofences))
        return snapshot

    def restore(self, snapshot: BackupSnapshot | dict[str, Any] | str | bytes) -> BackupSnapshot:
        """Replace registry state with ``snapshot``; nothing is written on failure."""
        parsed = parse_snapshot(snapshot)
        if parsed.version != self.version:
            logger.warning("backup version %s rejected (running %s)", parsed.version, self.version)
            raise HomeLinkError(
                ErrorKind.INCOMPATIBLE_VERSION,
                f"Backup version {parsed.version} is not compatible with {self.version}",
            )
        self.registry.replace_state(parsed.devices, parsed.telemetry, parsed.schedules, parsed.geofences)
        self._sync_geofences(parsed.geofences)
        logger.info("backup restored from %s", parsed.created_at.isoformat())
        return parsed

    def _sync_geofences(self, geofences: list[Geofence]) -> None:
        """Register restored geofences with the remote service; local state is already replaced."""
        remote_ids = set(self.gateway.geofence_ids())
        for geofence in geofences:
            try:
                if geofence.id in remote_ids:
                    self.gateway.update_geofence(geofence)
                else:
                    self.gateway.create_geofence(geofence)
            except HomeLinkError as exc:
                logger.warning("restored geofence %s not synced remotely: %s", geofence.id, exc.kind.value)

    def _path(self, path: Path | None) -> Path:
        return path if path is not None else self.backups_dir / self.backup_file

    def save(self, snapshot: BackupSnapshot, path: Path | None = None) -> Path:
        target = self._path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(target.suffix + ".tmp")
        tmp.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(target)
        logger.info("backup saved: %s", target.name)
        return target

    def load(self, path: Path | None = None) -> BackupSnapshot:
        source = self._path(path)
        if not source.exists():
            raise HomeLinkError(ErrorKind.OPERATION_FAILED, f"Backup file not found: {source.name}")
        return parse_snapshot(source.read_text(encoding="utf-8"))

    def upload(self, snapshot: BackupSnapshot | None = None) -> str:
        payload = (snapshot or self.create_backup()).model_dump_json()
        backup_id = self.gateway.create_backup(payload)
        logger.info("backup uploaded: %s", backup_id)
        return backup_id

    def restore_remote(self, backup_id: str) -> BackupSnapshot:
        payload = self.gateway.restore_backup(backup_id)
        return self.restore(payload)

    def remote_backups(self) -> list[str]:
        return self.gateway.backup_ids()

    def delete_remote(self, backup_id: str) -> None:
        self.gateway.delete_backup(backup_id)
        logger.info("remote backup deleted: %s", backup_id)
