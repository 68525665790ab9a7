from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Query, Request

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("")
def list_alerts(request: Request, device_id: str | None = None, limit: int = Query(default=50, ge=1, le=50)) -> list[dict[str, object]]:
    alerts = request.app.state.homelink.registry.recent_alerts
    if device_id:
        alerts = [alert for alert in alerts if alert.device_id == device_id]
    return [alert.model_dump(mode="json") for alert in alerts[:limit]]


@router.get("/notifications")
def list_notifications(request: Request) -> dict[str, object]:
    dispatcher = request.app.state.homelink.notifications
    return {
        "items": [asdict(item) for item in dispatcher.history],
        "suppressed": dispatcher.suppressed_count,
    }
