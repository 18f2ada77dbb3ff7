"""
Best-effort side operations.

Some blob-store calls are advisory: the folder marker object written on
folder creation and the cleanup deletes issued when a folder or file is
removed. Their failure must never fail the request that triggered them.

``attempt()`` runs such a call and returns an ``Attempt`` describing the
outcome. Failures are logged at WARNING with the label and the original
error, then handed back as data instead of being raised.

Usage:
    outcome = await attempt("folder marker", blobs.put(key, b""))
    if not outcome.ok:
        ...  # already logged
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Generic, Optional, TypeVar

logger = logging.getLogger("docspace.engine.attempt")

T = TypeVar("T")


@dataclass
class Attempt(Generic[T]):
    """Outcome of a best-effort operation."""

    label: str
    ok: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "ok": self.ok,
            "error": repr(self.error) if self.error else None,
        }


async def attempt(label: str, awaitable: Awaitable[T], **log_context: Any) -> Attempt[T]:
    """Await ``awaitable``; log and capture any failure instead of raising it."""
    try:
        value = await awaitable
    except Exception as e:
        logger.warning(
            f"Best-effort operation '{label}' failed: {e!r}",
            extra={"attempt": label, **log_context},
        )
        return Attempt(label=label, ok=False, error=e)
    return Attempt(label=label, ok=True, value=value)
