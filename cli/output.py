"""Output helpers for the ctstream CLI."""

from __future__ import annotations

import json
import sys
from typing import IO

from core.models import CloudTrailEvent, FileReference

FORMATS = ("raw", "json")


def render_event(event: CloudTrailEvent, fmt: str) -> bytes:
    if fmt == "raw":
        return event.data
    if fmt == "json":
        payload = {"timestamp": event.timestamp, "record": json.loads(event.data)}
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")
    raise ValueError(f"Unsupported format: {fmt}")


class EventWriter:
    """Write one event per line to a binary stream."""

    def __init__(self, stream: IO[bytes], fmt: str = "raw") -> None:
        if fmt not in FORMATS:
            raise ValueError(f"Unsupported format: {fmt}")
        self.stream = stream
        self.fmt = fmt
        self.count = 0

    def write(self, event: CloudTrailEvent) -> None:
        self.stream.write(render_event(event, self.fmt) + b"\n")
        self.count += 1

    def flush(self) -> None:
        self.stream.flush()


def write_files(files: list[FileReference] | tuple[FileReference, ...], stream: IO[str] | None = None) -> None:
    out = stream or sys.stdout
    for ref in files:
        out.write(ref.describe() + "\n")


__all__ = ["EventWriter", "FORMATS", "render_event", "write_files"]
