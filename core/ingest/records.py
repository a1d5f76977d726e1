"""Inflate CloudTrail files and split them into raw record byte spans.

CloudTrail files look like::

    {"Records":[
        {<evt1>},
        {<evt2>},
        ...
    ]}

Rather than decoding the whole document we find the byte range of every
object nested directly inside the envelope, so each record can be handed on
exactly as it was written. Braces inside string values are not special-cased.
"""

from __future__ import annotations

import gzip
import re
import zlib
from dataclasses import dataclass, field

from core.errors import CorruptPayload

_BRACE_RE = re.compile(rb"[{}]")


def decompress(data: bytes) -> bytes:
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        raise CorruptPayload(str(exc)) from exc


@dataclass(slots=True)
class RecordBuffer:
    data: bytes = b""
    spans: list[tuple[int, int]] = field(default_factory=list)
    position: int = 0

    def __len__(self) -> int:
        return len(self.spans)

    @property
    def remaining(self) -> int:
        return len(self.spans) - self.position

    def pop(self) -> bytes:
        start, end = self.spans[self.position]
        self.position += 1
        return self.data[start:end]


def split_records(data: bytes) -> RecordBuffer:
    """Return a buffer holding one span per top-level object inside the envelope."""
    spans: list[tuple[int, int]] = []
    depth = 0
    start = 0
    last = len(data) - 1
    for match in _BRACE_RE.finditer(data):
        pos = match.start()
        if data[pos] == 0x7B:  # {
            if depth == 1:
                start = pos
            depth += 1
        else:
            depth -= 1
            # a record closing on the final byte means the envelope was cut short
            if depth == 1 and pos < last:
                spans.append((start, pos + 1))
    return RecordBuffer(data=data, spans=spans)


__all__ = ["RecordBuffer", "decompress", "split_records"]
