"""Batched, bounded-concurrency downloads of S3 objects into a slot pool."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from core.errors import RemoteAPIError
from core.models import FileReference

logger = logging.getLogger(__name__)


class Downloader:
    """Serve file bodies in list order, fetching ``concurrency`` files per batch.

    ``consumed`` counts files whose bodies have been fetched into slots;
    ``filled`` and ``cursor`` track how many slots the current batch filled
    and how many of them have been handed out.
    """

    def __init__(self, client: Any, concurrency: int, default_bucket: str | None = None) -> None:
        self.client = client
        self.concurrency = concurrency
        self.default_bucket = default_bucket
        self.slots: list[Optional[bytes]] = [None] * concurrency
        self.consumed = 0
        self.filled = 0
        self.cursor = 0

    def read_next(self, files: Sequence[FileReference]) -> bytes:
        if self.cursor < self.filled:
            data = self.slots[self.cursor]
            self.cursor += 1
            return data  # type: ignore[return-value]

        batch = list(files[self.consumed:self.consumed + self.concurrency])
        if not batch:
            raise IndexError("no files left to download")

        bodies = self._fetch_batch(batch)
        for slot, body in enumerate(bodies):
            self.slots[slot] = body
        self.filled = len(bodies)
        self.consumed += len(bodies)
        self.cursor = 1
        return self.slots[0]  # type: ignore[return-value]

    def _fetch_batch(self, batch: list[FileReference]) -> list[bytes]:
        logger.debug("Downloading batch of %d files starting at %s", len(batch), batch[0].describe())
        with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="s3-get") as executor:
            futures = [executor.submit(self._fetch, ref) for ref in batch]
            wait(futures)

        failures = [(ref, future.exception()) for ref, future in zip(batch, futures) if future.exception()]
        if failures:
            for ref, exc in failures[1:]:
                logger.warning("Download of %s also failed: %s", ref.describe(), exc)
            _, first = failures[0]
            if isinstance(first, (ClientError, BotoCoreError)):
                raise RemoteAPIError.from_exception("s3-download", first) from first
            raise first
        return [future.result() for future in futures]

    def _fetch(self, ref: FileReference) -> bytes:
        bucket = ref.bucket or self.default_bucket
        response = self.client.get_object(Bucket=bucket, Key=ref.key)
        return response["Body"].read()


__all__ = ["Downloader"]
