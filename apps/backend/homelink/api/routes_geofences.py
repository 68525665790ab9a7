from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from homelink.core.errors import HomeLinkError
from homelink.core.models import Coordinate, Geofence, GeofenceAction

from .errors import http_error

router = APIRouter(prefix="/geofences", tags=["geofences"])


class GeofencePayload(BaseModel):
    name: str = Field(min_length=1)
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    radius: float = Field(gt=0.0)
    enabled: bool = True
    actions: list[GeofenceAction] = Field(default_factory=list)


class LocationPayload(BaseModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


def _to_geofence(payload: GeofencePayload, geofence_id: str | None = None) -> Geofence:
    fields: dict[str, object] = {
        "name": payload.name,
        "center": Coordinate(latitude=payload.latitude, longitude=payload.longitude),
        "radius": payload.radius,
        "enabled": payload.enabled,
        "actions": payload.actions,
    }
    if geofence_id is not None:
        fields["id"] = geofence_id
    return Geofence(**fields)


@router.get("")
def list_geofences(request: Request) -> list[dict[str, object]]:
    state = request.app.state.homelink
    return [
        {**geofence.model_dump(mode="json"), "inside": state.geofences.is_inside(geofence.id)}
        for geofence in state.registry.geofences
    ]


@router.post("")
def create_geofence(payload: GeofencePayload, request: Request) -> dict[str, object]:
    try:
        geofence = request.app.state.homelink.geofences.create(_to_geofence(payload))
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return geofence.model_dump(mode="json")


@router.put("/{geofence_id}")
def update_geofence(geofence_id: str, payload: GeofencePayload, request: Request) -> dict[str, object]:
    state = request.app.state.homelink
    if state.registry.get_geofence(geofence_id) is None:
        raise HTTPException(status_code=404, detail="Geofence not found")
    try:
        geofence = state.geofences.update(_to_geofence(payload, geofence_id))
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return geofence.model_dump(mode="json")


@router.delete("/{geofence_id}")
def delete_geofence(geofence_id: str, request: Request) -> dict[str, bool]:
    try:
        request.app.state.homelink.geofences.remove(geofence_id)
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return {"ok": True}


@router.post("/location")
def update_location(payload: LocationPayload, request: Request) -> dict[str, object]:
    transitions = request.app.state.homelink.geofences.update_location(payload.latitude, payload.longitude)
    return {"transitions": [{"geofence_id": gid, "entered": entered} for gid, entered in transitions]}
