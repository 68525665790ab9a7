from __future__ import annotations

from fastapi import APIRouter, Request

from homelink.core.errors import HomeLinkError

from .errors import http_error

router = APIRouter(prefix="/auth", tags=["auth"])


def _status(request: Request) -> dict[str, object]:
    session = request.app.state.homelink.session
    return {"signed_in": session.is_signed_in, "state": session.state.value}


@router.get("/status")
def get_status(request: Request) -> dict[str, object]:
    return _status(request)


@router.post("/sign-in")
def sign_in(request: Request) -> dict[str, object]:
    try:
        request.app.state.homelink.sign_in()
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return _status(request)


@router.post("/refresh")
def refresh(request: Request) -> dict[str, object]:
    try:
        request.app.state.homelink.session.refresh()
    except HomeLinkError as exc:
        raise http_error(exc) from exc
    return _status(request)


@router.post("/sign-out")
def sign_out(request: Request) -> dict[str, object]:
    request.app.state.homelink.sign_out()
    return _status(request)
