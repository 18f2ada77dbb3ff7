"""
HTTP byte range handling for streamed downloads.

Supported forms of the ``Range`` header (single range only):

    bytes=a-b   bytes a..b inclusive
    bytes=a-    from a to the end
    bytes=-n    the last n bytes

A header that does not parse is ignored and the full body is served.
A range that parses but lies outside the content raises
RangeNotSatisfiableError.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from docspace.engine.errors import RangeNotSatisfiableError

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$")


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # inclusive
    size: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.size}"


def parse_range(header: Optional[str], size: int) -> Optional[ByteRange]:
    """
    Parse a Range header against content of ``size`` bytes.

    Returns None when there is no usable header (serve everything).
    """
    if not header:
        return None
    match = _RANGE_RE.match(header)
    if match is None:
        return None
    first, last = match.groups()
    if not first and not last:
        return None

    if not first:
        suffix = int(last)
        if suffix == 0:
            raise RangeNotSatisfiableError("Empty suffix range", size=size)
        start = max(size - suffix, 0)
        end = size - 1
    else:
        start = int(first)
        end = int(last) if last else size - 1
        if last and end < start:
            return None

    if start >= size or end >= size:
        raise RangeNotSatisfiableError(
            f"Range {header!r} not satisfiable for {size} bytes", size=size
        )
    return ByteRange(start=start, end=end, size=size)


def unsatisfied_content_range(size: int) -> str:
    return f"bytes */{size}"
