from __future__ import annotations

from fastapi import HTTPException

from homelink.core.errors import ErrorKind, HomeLinkError

STATUS_BY_KIND = {
    ErrorKind.NOT_AUTHENTICATED: 401,
    ErrorKind.AUTHENTICATION_FAILED: 401,
    ErrorKind.INSUFFICIENT_PERMISSIONS: 403,
    ErrorKind.DEVICE_NOT_FOUND: 404,
    ErrorKind.DEVICE_OFFLINE: 409,
    ErrorKind.INCOMPATIBLE_VERSION: 409,
    ErrorKind.OPERATION_FAILED: 400,
    ErrorKind.RATE_LIMIT_EXCEEDED: 429,
    ErrorKind.INVALID_RESPONSE: 502,
    ErrorKind.NETWORK_ERROR: 502,
    ErrorKind.STREAM_UNAVAILABLE: 503,
    ErrorKind.STORAGE_EXCEEDED: 507,
}


def http_error(exc: HomeLinkError) -> HTTPException:
    return HTTPException(status_code=STATUS_BY_KIND.get(exc.kind, 400), detail=exc.to_dict())
