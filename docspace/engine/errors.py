"""
DocSpace Error Hierarchy — Structured exceptions mapped onto HTTP statuses.

Every error carries a JSON-serializable context so it can be logged as a
single structured line and, where safe, returned to the caller.

Hierarchy:
    DocSpaceError
    ├── UnauthorizedError         — No authenticated subject (401)
    ├── ForbiddenError            — Effective permission missing/insufficient (403)
    ├── NotFoundError             — Folder/file/user id does not resolve (404)
    ├── ValidationError           — Bad input: empty name, missing field (400)
    ├── ConflictError             — State conflict (400)
    │   ├── NameConflictError     — Same-named sibling for the same owner
    │   ├── InvalidMoveError      — Folder moved into itself
    │   └── CyclicMoveError       — Folder moved under its own descendant
    ├── RangeNotSatisfiableError  — Byte range outside content (416)
    ├── UpstreamError             — External collaborator failed (500)
    │   ├── BlobStoreError        — Object store get/put/delete failed
    │   ├── RemoteFetchError      — Downloading bytes from a URL failed
    │   └── ConversionFailedError — Conversion service rejected the request
    └── ConfigError               — Invalid docspace.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class DocSpaceError(Exception):
    """
    Base error for all DocSpace failures.
    Structured for logging — all context serializable to JSON.
    """

    http_status: int = 500

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.request_id: Optional[str] = context.get("request_id")
        self.object_ref: Optional[str] = context.get("object_ref")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "request_id": self.request_id,
            "object_ref": self.object_ref,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("request_id", "object_ref")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def public_message(self) -> str:
        """Message that is safe to hand back to an API caller."""
        return self.message

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.object_ref:
            parts.append(f"object_ref={self.object_ref}")
        if self.request_id:
            parts.append(f"request_id={self.request_id}")
        return " | ".join(parts)


class UnauthorizedError(DocSpaceError):
    """No authenticated subject on the request."""

    http_status = 401


class ForbiddenError(DocSpaceError):
    """
    Access denied. Includes the user and the permission that was required.
    """

    http_status = 403

    def __init__(self, message: str, **context: Any):
        self.user_id: Optional[int] = context.get("user_id")
        self.required_permission: Optional[str] = context.get("required_permission")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["user_id"] = self.user_id
        d["required_permission"] = self.required_permission
        return d


class NotFoundError(DocSpaceError):
    """Folder, file or user id does not resolve."""

    http_status = 404


class ValidationError(DocSpaceError):
    """
    Input validation failed (empty name, missing field, unsupported format).
    """

    http_status = 400

    def __init__(self, message: str, **context: Any):
        self.field: Optional[str] = context.get("field")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["field"] = self.field
        return d


class ConflictError(DocSpaceError):
    """The requested change conflicts with the current tree state."""

    http_status = 400


class NameConflictError(ConflictError):
    """A same-named sibling owned by the same user already exists."""
    pass


class InvalidMoveError(ConflictError):
    """A folder cannot be moved into itself."""
    pass


class CyclicMoveError(ConflictError):
    """A folder cannot be moved under one of its own descendants."""
    pass


class RangeNotSatisfiableError(DocSpaceError):
    """Requested byte range lies outside the content."""

    http_status = 416

    def __init__(self, message: str, **context: Any):
        self.size: Optional[int] = context.get("size")
        super().__init__(message, **context)


class UpstreamError(DocSpaceError):
    """
    An external collaborator (object store, editor, conversion service) failed.
    The original error is logged; callers only ever see a generic message.
    """

    http_status = 500
    public_text = "Upstream service failure"

    def __init__(self, message: str, **context: Any):
        self.cause: Optional[BaseException] = context.get("cause")
        self.status_code: Optional[int] = context.get("status_code")
        super().__init__(message, **context)

    def public_message(self) -> str:
        return self.public_text

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["status_code"] = self.status_code
        return d


class BlobStoreError(UpstreamError):
    """Object store get/put/delete/list failed."""

    public_text = "Storage backend failure"

    def __init__(self, message: str, **context: Any):
        self.key: Optional[str] = context.get("key")
        super().__init__(message, **context)


class BlobNotFoundError(BlobStoreError):
    """The object store has no blob at the requested key."""
    pass


class RemoteFetchError(UpstreamError):
    """Downloading bytes from a remote URL failed."""

    public_text = "Could not download remote document"


class ConversionFailedError(UpstreamError):
    """The conversion service failed or returned no output."""

    public_text = "Could not convert the document to the requested format"

    def __init__(self, message: str, **context: Any):
        self.conversion_error: Optional[int] = context.get("conversion_error")
        super().__init__(message, **context)


class ConfigError(DocSpaceError):
    """Configuration error — invalid docspace.yaml."""
    pass
