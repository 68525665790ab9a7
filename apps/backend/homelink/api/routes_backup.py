from __future__ import annotations

from fastapi import APIRouter, Request

from homelink.core.errors import HomeLinkError
from homelink.core.models import BackupSnapshot

from .errors import http_error

router = APIRouter(prefix="/backup", tags=["backup"])


def _summary(snapshot: BackupSnapshot) -> dict[str, object]:
    return {
        "version": snapshot.version,
        "created_at": snapshot.created_at.isoformat(),
        "devices": len(snapshot.devices),
        "geofences": len(snapshot.geofences),
        "schedules": len(snapshot.schedules),
    }


@router.post("")
def create_backup(request: Request) -> dict[str, object]:
    backups = request.app.state.homelink.backups
    snapshot = backups.create_backup()
    path = backups.save(snapshot)
    return {**_summary(snapshot), "file": path.name}


@router.post("/restore")
def restore_backup(request: Request) -> dict[str, object]:
    backups = request.app.state.homelink.backups
    try:
        snapshot = backups.restore(backups.load())
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return _summary(snapshot)


@router.post("/remote")
def upload_backup(request: Request) -> dict[str, str]:
    try:
        backup_id = request.app.state.homelink.backups.upload()
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return {"backup_id": backup_id}


@router.post("/remote/{backup_id}/restore")
def restore_remote_backup(backup_id: str, request: Request) -> dict[str, object]:
    try:
        snapshot = request.app.state.homelink.backups.restore_remote(backup_id)
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return _summary(snapshot)


@router.get("/remote")
def list_remote_backups(request: Request) -> dict[str, list[str]]:
    return {"items": request.app.state.homelink.backups.remote_backups()}


@router.delete("/remote/{backup_id}")
def delete_remote_backup(backup_id: str, request: Request) -> dict[str, bool]:
    try:
        request.app.state.homelink.backups.delete_remote(backup_id)
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return {"ok": True}
