"""
Document formats understood by the editor.
"""

from __future__ import annotations

import mimetypes
from typing import Optional

OFFICE_EXTENSIONS = frozenset(
    {"doc", "docx", "xls", "xlsx", "ppt", "pptx", "odt", "ods", "odp", "csv", "rtf", "pdf"}
)

_CELL = {"xls", "xlsx", "ods", "csv"}
_SLIDE = {"ppt", "pptx", "odp"}

# mimetypes tables differ between platforms; these must be stable.
_CONTENT_TYPES = {
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "odt": "application/vnd.oasis.opendocument.text",
    "ods": "application/vnd.oasis.opendocument.spreadsheet",
    "odp": "application/vnd.oasis.opendocument.presentation",
    "csv": "text/csv",
    "rtf": "application/rtf",
    "pdf": "application/pdf",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def extension_of(name: str) -> str:
    """Lower-case extension without the dot, or "" if there is none."""
    base = name.rsplit("/", 1)[-1]
    return base.rsplit(".", 1)[-1].lower() if "." in base else ""


def is_office_file(name: str) -> bool:
    return extension_of(name) in OFFICE_EXTENSIONS


def document_type(name: str) -> str:
    """Editor family: word, cell or slide."""
    ext = extension_of(name)
    if ext in _CELL:
        return "cell"
    if ext in _SLIDE:
        return "slide"
    return "word"


def content_type_for(name: str, fallback: Optional[str] = None) -> str:
    ext = extension_of(name)
    if ext in _CONTENT_TYPES:
        return _CONTENT_TYPES[ext]
    guessed, _ = mimetypes.guess_type(name)
    return guessed or fallback or DEFAULT_CONTENT_TYPE
