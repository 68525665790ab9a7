from __future__ import annotations

import re
from typing import Any
from uuid import uuid4

ACCESS_TOKEN_RE = re.compile(r"\b(at|rt)-[0-9a-f]{32}\b")
TOKEN_PAIR_RE = re.compile(r"((?:access_|refresh_)?token\s*[=:]\s*)([^\s,;]+)", re.IGNORECASE)
PASSWORD_PAIR_RE = re.compile(r"(password\s*[=:]\s*)([^\s,;]+)", re.IGNORECASE)
IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")


def issue_token(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex}"


def validate_identifier(value: str) -> str:
    text = str(value)
    if not IDENTIFIER_RE.fullmatch(text):
        raise ValueError("Invalid identifier")
    return text


def redact_secrets(text: str) -> str:
    text = TOKEN_PAIR_RE.sub(r"\1***", text)
    text = PASSWORD_PAIR_RE.sub(r"\1***", text)
    text = ACCESS_TOKEN_RE.sub(lambda match: f"{match.group(1)}-***", text)
    return text


def scrub_sensitive(obj: Any) -> Any:
    if isinstance(obj, dict):
        out: dict[str, Any] = {}
        for key, value in obj.items():
            lowered = str(key).lower()
            if "password" in lowered or "token" in lowered or "secret" in lowered:
                out[key] = "***"
            else:
                out[key] = scrub_sensitive(value)
        return out
    if isinstance(obj, list):
        return [scrub_sensitive(v) for v in obj]
    if isinstance(obj, str):
        return redact_secrets(obj)
    return obj
