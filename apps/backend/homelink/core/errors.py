from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    NETWORK_ERROR = "network_error"
    INVALID_RESPONSE = "invalid_response"
    DEVICE_NOT_FOUND = "device_not_found"
    OPERATION_FAILED = "operation_failed"
    STREAM_UNAVAILABLE = "stream_unavailable"
    AUTHENTICATION_FAILED = "authentication_failed"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    INSUFFICIENT_PERMISSIONS = "insufficient_permissions"
    DEVICE_OFFLINE = "device_offline"
    STORAGE_EXCEEDED = "storage_exceeded"
    INCOMPATIBLE_VERSION = "incompatible_version"


_DESCRIPTIONS = {
    ErrorKind.NOT_AUTHENTICATED: "Not signed in",
    ErrorKind.NETWORK_ERROR: "Network request failed",
    ErrorKind.INVALID_RESPONSE: "Received an invalid response from the service",
    ErrorKind.DEVICE_NOT_FOUND: "Device not found",
    ErrorKind.OPERATION_FAILED: "Operation failed",
    ErrorKind.STREAM_UNAVAILABLE: "Live stream is unavailable",
    ErrorKind.AUTHENTICATION_FAILED: "Authentication failed",
    ErrorKind.RATE_LIMIT_EXCEEDED: "Too many requests",
    ErrorKind.INSUFFICIENT_PERMISSIONS: "Insufficient permissions for this device",
    ErrorKind.DEVICE_OFFLINE: "Device is offline",
    ErrorKind.STORAGE_EXCEEDED: "Storage limit exceeded",
    ErrorKind.INCOMPATIBLE_VERSION: "Backup version is not compatible",
}

_RECOVERY_HINTS = {
    ErrorKind.NOT_AUTHENTICATED: "Sign in and try again.",
    ErrorKind.NETWORK_ERROR: "Check your connection and try again.",
    ErrorKind.INVALID_RESPONSE: "Try again later.",
    ErrorKind.DEVICE_NOT_FOUND: "Refresh the device list.",
    ErrorKind.OPERATION_FAILED: "Try the action again.",
    ErrorKind.STREAM_UNAVAILABLE: "Wait a moment and reopen the live view.",
    ErrorKind.AUTHENTICATION_FAILED: "Check your account and sign in again.",
    ErrorKind.RATE_LIMIT_EXCEEDED: "Wait a minute before retrying.",
    ErrorKind.INSUFFICIENT_PERMISSIONS: "Ask the device owner for control access.",
    ErrorKind.DEVICE_OFFLINE: "Check the device power and Wi-Fi connection.",
    ErrorKind.STORAGE_EXCEEDED: "Delete older backups or recordings.",
    ErrorKind.INCOMPATIBLE_VERSION: "Create a new backup with the current app version.",
}


def recovery_hint(kind: ErrorKind) -> str:
    return _RECOVERY_HINTS[kind]


class HomeLinkError(Exception):
    def __init__(self, kind: ErrorKind, message: str | None = None) -> None:
        self.kind = kind
        self.message = message or _DESCRIPTIONS[kind]
        super().__init__(f"{kind.value}: {self.message}")

    @property
    def recovery_hint(self) -> str:
        return recovery_hint(self.kind)

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message, "recovery_hint": self.recovery_hint}
