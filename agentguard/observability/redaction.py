"""Secret redaction for commands written to the audit log."""

from __future__ import annotations

import re
from typing import Any

REDACTED = "***REDACTED***"

_BEARER_RE = re.compile(r"(?i)\b(Bearer|Basic)\s+[A-Za-z0-9._~+/=\-]+")
_URL_CREDENTIALS_RE = re.compile(r"\b([a-zA-Z][a-zA-Z0-9+.\-]*://[^:/@\s]+):[^@/\s]+@")
_SECRET_FLAG_RE = re.compile(
    r"(?i)(--(?:password|passwd|token|secret|api-key|apikey|access-key)[=\s])(\S+)"
)
_SECRET_ASSIGNMENT_RE = re.compile(
    r"\b([A-Za-z0-9_]*(?:TOKEN|SECRET|PASSWORD|PASSWD|API_KEY|APIKEY|ACCESS_KEY)[A-Za-z0-9_]*)=(\S+)",
    re.IGNORECASE,
)
_TOKEN_VALUE_PATTERNS = (
    re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}"),
    re.compile(r"\bxox[baprs]-[A-Za-z0-9-]{10,}"),
    re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}"),
    re.compile(r"\bAKIA[0-9A-Z]{16}\b"),
)


def redact_command(text: str) -> str:
    """Mask credentials that commonly appear inside shell commands."""
    redacted = _BEARER_RE.sub(lambda m: f"{m.group(1)} {REDACTED}", text)
    redacted = _URL_CREDENTIALS_RE.sub(rf"\1:{REDACTED}@", redacted)
    redacted = _SECRET_FLAG_RE.sub(rf"\1{REDACTED}", redacted)
    redacted = _SECRET_ASSIGNMENT_RE.sub(rf"\1={REDACTED}", redacted)
    for pattern in _TOKEN_VALUE_PATTERNS:
        redacted = pattern.sub(REDACTED, redacted)
    return redacted


def redact_entry(payload: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of an audit payload with every string field redacted."""
    return {
        key: redact_command(value) if isinstance(value, str) else value
        for key, value in payload.items()
    }
