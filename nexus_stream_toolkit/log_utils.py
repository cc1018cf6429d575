"""Structured event logging with secret redaction."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

#: Logger that receives one record per :func:`log_event` call.
events_logger = logging.getLogger("nexus_stream_toolkit.events")

REDACTED = "[REDACTED]"
MAX_LOG_STRING = 8000
MAX_DEPTH = 8

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "pass",
        "pwd",
        "secret",
        "token",
        "authorization",
        "apikey",
        "api_key",
        "key",
        "credentials",
    }
)

REDACT_PATTERNS = (
    re.compile(r"bearer\s+[a-z0-9._-]+", re.IGNORECASE),
    re.compile(r"\bsk-[a-z0-9_-]{8,}\b", re.IGNORECASE),
    re.compile(r"\bgsk_[a-z0-9_-]{8,}\b", re.IGNORECASE),
    re.compile(r"\bsk-ant-[a-z0-9_-]{8,}\b", re.IGNORECASE),
    re.compile(r"\bAIza[0-9a-z_-]{8,}\b", re.IGNORECASE),
    re.compile(r"\bxai-[a-z0-9_-]{8,}\b", re.IGNORECASE),
)

_LEVELS = {"info": logging.INFO, "warn": logging.WARNING, "warning": logging.WARNING, "error": logging.ERROR}


def _is_sensitive_key(key: Any) -> bool:
    lowered = str(key).lower()
    return lowered in SENSITIVE_KEYS or "password" in lowered or "token" in lowered


def redact_string(value: Any, max_length: int = MAX_LOG_STRING) -> str:
    """Mask credentials in *value* and truncate it to *max_length* characters."""
    output = str(value)
    for pattern in REDACT_PATTERNS:
        output = pattern.sub(REDACTED, output)
    if max_length > 0 and len(output) > max_length:
        extra = len(output) - max_length
        return f"{output[:max_length]}...[truncated {extra} chars]"
    return output


def sanitize_for_log(value: Any, depth: int = 0) -> Any:
    """Return a copy of *value* safe to log.

    Values under sensitive keys are replaced wholesale, strings are redacted,
    nesting deeper than ``MAX_DEPTH`` is cut off.
    """
    if depth > MAX_DEPTH:
        return "[TRUNCATED]"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, Mapping):
        return {
            key: REDACTED if _is_sensitive_key(key) else sanitize_for_log(item, depth + 1)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_for_log(item, depth + 1) for item in value]
    return redact_string(value)


def log_event(event: str, data: Optional[Mapping[str, Any]] = None, level: str = "info") -> None:
    """Emit one structured, redacted record on the events logger.

    Logging problems never propagate to the caller.
    """
    levelno = _LEVELS.get(level.lower(), logging.INFO)
    if not events_logger.isEnabledFor(levelno):
        return
    try:
        sanitized: Dict[str, Any] = sanitize_for_log(dict(data or {}))
        events_logger.log(
            levelno,
            "%s %s",
            event,
            json.dumps(sanitized, default=str, ensure_ascii=False),
            extra={"event": event, "data": sanitized},
        )
    except Exception:
        logger.debug("Failed to log event %s", event, exc_info=True)


class RedactingFilter(logging.Filter):
    """Masks credentials in every record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_string(record.msg, max_length=0)
        if record.args:
            if isinstance(record.args, Mapping):
                record.args = sanitize_for_log(record.args)
            else:
                record.args = tuple(
                    redact_string(arg, max_length=0) if isinstance(arg, str) else arg
                    for arg in record.args
                )
        return True
