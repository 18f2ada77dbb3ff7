"""
DocSpace Logging — Structured JSON-lines logging on top of stdlib logging.

Implements:
- JsonLineFormatter: one compact JSON object per record
- init_logging(): root handler setup from docspace.yaml's logging section
- Audit entry builders for security decisions and document events

Audit entries go to the "docspace.audit" logger. Each carries the current
RequestContext (user_id, request_id) when one is set.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from docspace.engine.context import get_request_context

logger = logging.getLogger("docspace.engine.logging")
audit_logger = logging.getLogger("docspace.audit")

# Attributes every LogRecord has; anything else came in via ``extra=``.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JsonLineFormatter(logging.Formatter):
    """Render a LogRecord as a single compact JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                data[key] = value
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str, separators=(",", ":"))


def init_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """
    Install a single stream handler on the root logger.

    Calling it again replaces the handler installed by the previous call, so
    tests and the CLI can re-initialize freely.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_docspace", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler._docspace = True  # type: ignore[attr-defined]
    if fmt == "json":
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root.addHandler(handler)
    root.setLevel(level.upper())
    logger.debug(f"Logging initialized (level={level}, format={fmt})")
    return handler


# ---------------------------------------------------------------------------
# Audit entry builders
# ---------------------------------------------------------------------------

def _base_entry(event_type: str, **fields: Any) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"event_type": event_type}
    ctx = get_request_context()
    if ctx is not None:
        entry["user_id"] = ctx.user_id
        entry["request_id"] = ctx.request_id
    entry.update({k: v for k, v in fields.items() if v is not None})
    return entry


def log_security_event(
    action: str,
    subject: str,
    *,
    allowed: bool,
    required_permission: Optional[str] = None,
    effective_permission: Optional[str] = None,
    user_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Record an access decision on a folder/file subject (e.g. "file:12")."""
    entry = _base_entry(
        "security",
        action=action,
        subject=subject,
        allowed=allowed,
        required_permission=required_permission,
        effective_permission=effective_permission,
    )
    if user_id is not None:
        entry["user_id"] = user_id
    level = logging.INFO if allowed else logging.WARNING
    audit_logger.log(level, f"{action} on {subject}: {'allowed' if allowed else 'denied'}", extra=entry)
    return entry


def log_document_event(
    action: str,
    file_id: int,
    **details: Any,
) -> Dict[str, Any]:
    """Record a document lifecycle event (upload, overwrite, save-back, delete)."""
    entry = _base_entry("document", action=action, file_id=file_id, **details)
    audit_logger.info(f"{action} file {file_id}", extra=entry)
    return entry
