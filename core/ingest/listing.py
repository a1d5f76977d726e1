"""Enumerate CloudTrail object keys under S3 prefixes.

Listing runs in waves: cursors are split into chunks no larger than the
download concurrency, every cursor of a chunk is listed on its own worker, and
the per-worker key lists are merged in worker order once the whole chunk has
finished.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from core.errors import RemoteAPIError
from core.ingest.local import is_log_file
from core.models import FileReference, ListingCursor

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_TIMESTAMP_RE = re.compile(r".*_CloudTrail_[^_]+_([^_]+)Z_")
KEY_TIMESTAMP_FORMAT = "%Y%m%dT%H%M"
START_AFTER_FORMAT = "%Y/%m/%d/"
CLOUDTRAIL_SUFFIX = "/CloudTrail/"


@dataclass(frozen=True, slots=True)
class KeyWindow:
    """Inclusive bounds on the timestamp embedded in CloudTrail file names."""

    start: Optional[str] = None
    end: Optional[str] = None

    @classmethod
    def from_interval(cls, start: datetime | None, end: datetime | None) -> "KeyWindow":
        return cls(
            start=start.strftime(KEY_TIMESTAMP_FORMAT) if start else None,
            end=end.strftime(KEY_TIMESTAMP_FORMAT) if end else None,
        )

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, key: str) -> bool:
        if self.is_open:
            return True
        match = KEY_TIMESTAMP_RE.search(key)
        if match is None:
            return True
        stamp = match.group(1)
        if self.start is not None and stamp < self.start:
            return False
        if self.end is not None and stamp > self.end:
            return False
        return True


def accept_key(key: str, window: KeyWindow) -> bool:
    return is_log_file(key) and window.contains(key)


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    if not items or size < 1:
        return []
    return [list(items[pos:pos + size]) for pos in range(0, len(items), size)]


def expand_regions(
    client: Any,
    bucket: str,
    prefixes: Iterable[str],
    start: datetime | None = None,
) -> list[ListingCursor]:
    """Turn each ``.../CloudTrail/`` prefix into one cursor per region folder."""
    cursors: list[ListingCursor] = []
    for prefix in prefixes:
        if not prefix.endswith(CLOUDTRAIL_SUFFIX):
            continue
        try:
            output = client.list_objects_v2(Bucket=bucket, Prefix=prefix, Delimiter="/")
        except (ClientError, BotoCoreError) as exc:
            raise RemoteAPIError.from_exception("s3-listing", exc) from exc
        for common in output.get("CommonPrefixes", []):
            region_prefix = common["Prefix"]
            # start_after need not name a real key
            start_after = region_prefix + start.strftime(START_AFTER_FORMAT) if start else None
            cursors.append(ListingCursor(prefix=region_prefix, start_after=start_after))
    return cursors


class KeyLister:
    """List keys for a set of cursors with bounded fan-out."""

    def __init__(self, client: Any, bucket: str, concurrency: int, window: KeyWindow | None = None) -> None:
        self.client = client
        self.bucket = bucket
        self.concurrency = concurrency
        self.window = window or KeyWindow()

    def list_files(self, cursors: Sequence[ListingCursor]) -> list[FileReference]:
        files: list[FileReference] = []
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="s3-list") as executor:
            for chunk in chunked(cursors, self.concurrency):
                futures = [executor.submit(self._list_cursor, cursor) for cursor in chunk]
                wait(futures)
                files.extend(self._merge(chunk, futures))
        return files

    def _merge(self, chunk: list[ListingCursor], futures: list[Future]) -> list[FileReference]:
        failures = [(cursor, future.exception()) for cursor, future in zip(chunk, futures) if future.exception()]
        if failures:
            for cursor, exc in failures[1:]:
                logger.warning("Listing s3://%s/%s also failed: %s", self.bucket, cursor.prefix, exc)
            _, first = failures[0]
            if isinstance(first, (ClientError, BotoCoreError)):
                raise RemoteAPIError.from_exception("s3-listing", first) from first
            raise first

        merged: list[FileReference] = []
        for future in futures:
            merged.extend(future.result())
        return merged

    def _list_cursor(self, cursor: ListingCursor) -> list[FileReference]:
        params: dict[str, str] = {"Bucket": self.bucket, "Prefix": cursor.prefix}
        if cursor.start_after:
            params["StartAfter"] = cursor.start_after

        found: list[FileReference] = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(**params):
            for obj in page.get("Contents", []):
                key = obj["Key"]
                if accept_key(key, self.window):
                    found.append(FileReference.for_key(key, bucket=self.bucket))
        logger.debug("Listed %d keys under s3://%s/%s", len(found), self.bucket, cursor.prefix)
        return found


__all__ = [
    "KeyWindow",
    "KeyLister",
    "accept_key",
    "chunked",
    "expand_regions",
]
