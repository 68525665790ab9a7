from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Request

from homelink.config.defaults import APP_VERSION
from homelink.core.errors import HomeLinkError
from homelink.util.security import scrub_sensitive

from .errors import http_error

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def get_health(request: Request) -> dict[str, object]:
    state = request.app.state.homelink
    registry = state.registry
    return {
        "ok": True,
        "version": APP_VERSION,
        "signed_in": state.session.is_signed_in,
        "network_online": state.scheduler.is_online,
        "polling": state.scheduler.is_running(),
        "geofence_monitoring": state.geofences.is_running(),
        "loading": registry.is_loading,
        "last_error": registry.last_error.value if registry.last_error else None,
        "devices": len(registry.devices),
        "system": registry.system_health.model_dump(mode="json"),
        "notifications_suppressed": state.notifications.suppressed_count,
    }


@router.get("/analytics")
def get_analytics(request: Request) -> dict[str, object]:
    return request.app.state.homelink.analytics.summary()


@router.get("/settings")
def get_settings(request: Request) -> dict[str, object]:
    settings = request.app.state.homelink.settings_store.settings
    return scrub_sensitive(settings.model_dump(mode="json"))


@router.get("/report/{report_type}")
def get_report(report_type: Literal["security", "usage", "device_health"], request: Request) -> dict[str, object]:
    try:
        report = request.app.state.homelink.gateway.generate_report(report_type)
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return report.model_dump(mode="json")
