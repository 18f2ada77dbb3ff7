"""
DocSpace Request Context — Per-request identity carried in a ContextVar.

Set by the authentication dependency once the bearer token is verified and
read by the audit log helpers, so every structured log line can be tied back
to a user and a request.

Usage:
    from docspace.engine.context import (
        RequestContext,
        set_request_context,
        get_request_context,
        require_request_context,
    )
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from docspace.engine.errors import UnauthorizedError

current_request_context: ContextVar[Optional["RequestContext"]] = ContextVar(
    "request_context", default=None
)


@dataclass
class RequestContext:
    """Authenticated subject of the current request."""

    user_id: int
    username: str
    request_id: str = field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "user_id": self.user_id,
            "username": self.username,
            "request_id": self.request_id,
        }


def set_request_context(ctx: RequestContext) -> None:
    """Set the request context for the current task."""
    current_request_context.set(ctx)


def get_request_context() -> Optional[RequestContext]:
    """Get the current request context. Returns None if not set."""
    return current_request_context.get()


def require_request_context() -> RequestContext:
    """Get request context or raise error if not set."""
    ctx = get_request_context()
    if ctx is None:
        raise UnauthorizedError("No request context — user not authenticated")
    return ctx


def clear_request_context() -> None:
    """Clear the request context (e.g. at request end)."""
    current_request_context.set(None)
