"""
DocSpace Storage Paths — Name validation and blob key derivation.

Blob keys mirror the folder hierarchy:

    users/<Capitalized username>/<folder>/<sub folder>/<file name>

Keys are derived once, when a folder or file is created. Renames and moves
only touch metadata; the blob stays at its original key.
"""

from __future__ import annotations

import logging
import re
import unicodedata

from docspace.engine.errors import ValidationError

logger = logging.getLogger("docspace.storage.paths")

# Browsers send UTF-8 multipart filenames that some stacks decode as latin-1;
# such names show up with characters from this block.
_MOJIBAKE_CHARS = re.compile("[\u00c0-\u00ff]")

_RESERVED_NAMES = {".", ".."}


def owner_root_prefix(username: str, user_prefix: str = "users/") -> str:
    """Root prefix for everything a user owns: ``users/Alice``."""
    if not username:
        raise ValidationError("Username is required to derive a storage prefix", field="username")
    return f"{user_prefix}{username[:1].upper()}{username[1:]}"


def join_key(prefix: str, name: str) -> str:
    return f"{prefix.rstrip('/')}/{name}"


def validate_name(name: str, field: str = "name") -> str:
    """
    Trim and validate a folder or file name.

    Rejects empty names, names containing a path separator and the
    reserved names ``.`` and ``..``.
    """
    trimmed = (name or "").strip()
    if not trimmed:
        raise ValidationError("Name must not be empty", field=field)
    if "/" in trimmed or "\\" in trimmed:
        raise ValidationError(f"Name must not contain path separators: {trimmed!r}", field=field)
    if trimmed in _RESERVED_NAMES:
        raise ValidationError(f"Reserved name: {trimmed!r}", field=field)
    return trimmed


def repair_encoding(name: str) -> str:
    """Undo a UTF-8-read-as-latin-1 decode. Returns ``name`` unchanged if that fails."""
    if not _MOJIBAKE_CHARS.search(name):
        return name
    try:
        return name.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return name


def sanitize_filename(name: str) -> str:
    """
    Normalize an uploaded file name.

    Steps: encoding repair, NFC normalization, trimming, and dropping any
    directory component the client sent along.
    """
    repaired = repair_encoding(name or "")
    normalized = unicodedata.normalize("NFC", repaired).strip()
    base = normalized.replace("\\", "/").rsplit("/", 1)[-1].strip()
    if base != name:
        logger.debug(f"Sanitized file name {name!r} -> {base!r}")
    return validate_name(base, field="file")
