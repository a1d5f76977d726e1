"""Pull-based CloudTrail event producer.

A producer is opened once against a local directory, an S3 prefix or an SQS
queue and then asked for one event at a time::

    producer = EventProducer.open("s3://trail-bucket/AWSLogs/123456789012", config)
    while True:
        try:
            event = producer.next_event()
        except RetryLater:
            continue
        except EndOfStream:
            break
        handle(event.data, event.timestamp)

A producer is single-owner: pulls against one instance must not overlap.
"""

from __future__ import annotations

import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from core import aws
from core.errors import ConfigurationError, CorruptPayload, EndOfStream, RetryLater
from core.ingest.download import Downloader
from core.ingest.interval import parse_interval
from core.ingest.listing import KeyLister, KeyWindow, expand_regions
from core.ingest.local import discover_files, read_local
from core.ingest.locator import parse_locator, resolve_prefixes
from core.ingest.queue import QueuePoller, resolve_queue_url
from core.ingest.records import RecordBuffer, decompress, split_records
from core.models import (
    CloudTrailEvent,
    FileReference,
    ListingCursor,
    LocalOrigin,
    Origin,
    QueueOrigin,
    S3Origin,
    SourceConfig,
)

logger = logging.getLogger(__name__)

INSIGHT_EVENT_TYPE = "AwsCloudTrailInsight"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
RFC3339_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2})(?:\.(?P<fraction>\d+))?(?P<zone>[Zz]|[+-]\d{2}:\d{2})$"
)

EMPTY_POLL = "empty-poll"
EMPTY_FILE = "empty-file"
CORRUPT_FILE = "corrupt-file"
MALFORMED_RECORD = "malformed-record"
BAD_EVENT_TIME = "bad-event-time"
INSIGHT_EVENT = "insight-event"


def event_timestamp(value: Any) -> Optional[int]:
    """Convert an RFC 3339 ``eventTime`` into nanoseconds since the epoch."""
    match = RFC3339_RE.match(value) if isinstance(value, str) else None
    if match is None:
        return None
    zone = match.group("zone")
    if zone in "Zz":
        zone = "+00:00"
    try:
        parsed = datetime.fromisoformat(match.group("base") + zone)
    except ValueError:
        return None
    delta = parsed - EPOCH
    # nanosecond precision, digits past the ninth are truncated
    nanos = int((match.group("fraction") or "")[:9].ljust(9, "0"))
    return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + nanos


class EventProducer:
    """Session state for one opened origin."""

    def __init__(
        self,
        origin: Origin,
        config: SourceConfig,
        files: list[FileReference],
        downloader: Downloader | None = None,
        poller: QueuePoller | None = None,
    ) -> None:
        self.origin = origin
        self.config = config
        self._files = files
        self._next_file = 0
        self._buffer = RecordBuffer()
        self._downloader = downloader
        self._poller = poller
        self._finished = False

    # Opening ---------------------------------------------------------------
    @classmethod
    def open(
        cls,
        locator: str,
        config: SourceConfig | dict[str, Any] | None = None,
        *,
        s3_client: Any | None = None,
        sqs_client: Any | None = None,
        session: Any | None = None,
        now: datetime | None = None,
    ) -> "EventProducer":
        if not isinstance(config, SourceConfig):
            config = SourceConfig.from_mapping(config)
        origin = parse_locator(locator)
        # validated for every origin, only S3 listings use the window
        start, end = parse_interval(config.interval, now=now)
        if start and end and end < start:
            raise ConfigurationError(
                "interval", f"start time {start.isoformat()} must be less than end time {end.isoformat()}"
            )

        if isinstance(origin, LocalOrigin):
            producer = cls(origin, config, discover_files(origin.root))
        else:
            if config.download_concurrency < 1:
                raise ConfigurationError(
                    "config", f'invalid S3DownloadConcurrency: "{config.download_concurrency}"'
                )
            if isinstance(origin, S3Origin):
                producer = cls._open_s3(origin, config, s3_client or aws.s3_client(session), start, end)
            else:
                producer = cls._open_queue(
                    origin,
                    config,
                    s3_client or aws.s3_client(session),
                    sqs_client or aws.sqs_client(session),
                )

        logger.info("Opened %s with %d files", locator, len(producer.files))
        return producer

    @classmethod
    def _open_s3(
        cls,
        origin: S3Origin,
        config: SourceConfig,
        client: Any,
        start: datetime | None,
        end: datetime | None,
    ) -> "EventProducer":
        prefixes = resolve_prefixes(client, origin.bucket, origin.prefix, config.accounts)
        cursors = expand_regions(client, origin.bucket, prefixes, start)
        if not cursors:
            # no region folders found, list what we were given
            cursors = [ListingCursor(prefix=origin.prefix)]

        lister = KeyLister(client, origin.bucket, config.download_concurrency, KeyWindow.from_interval(start, end))
        files = lister.list_files(cursors)
        if not files:
            logger.warning("No CloudTrail files found under s3://%s/%s", origin.bucket, origin.prefix)
        downloader = Downloader(client, config.download_concurrency, default_bucket=origin.bucket)
        return cls(origin, config, files, downloader=downloader)

    @classmethod
    def _open_queue(cls, origin: QueueOrigin, config: SourceConfig, s3: Any, sqs: Any) -> "EventProducer":
        queue_url = resolve_queue_url(sqs, origin.queue_name, config.sqs_owner_account)
        poller = QueuePoller(sqs, queue_url, delete_on_read=config.sqs_delete, use_s3_sns=config.use_s3_sns)
        downloader = Downloader(s3, config.download_concurrency)
        return cls(origin, config, poller.poll(), downloader=downloader, poller=poller)

    # Pulling ---------------------------------------------------------------
    @property
    def files(self) -> tuple[FileReference, ...]:
        return tuple(self._files)

    @property
    def queue_url(self) -> Optional[str]:
        return self._poller.queue_url if self._poller else None

    def next_event(self) -> CloudTrailEvent:
        """Return the next event, or raise ``EndOfStream`` / ``RetryLater``."""
        if self._buffer.remaining == 0:
            self._open_next_file()
        raw = self._buffer.pop()
        return self._to_event(raw)

    def events(self, stop_on_retry: bool = False, poll_interval: float = 0.0) -> Iterator[CloudTrailEvent]:
        """Yield events until end of stream.

        Skipped records are passed over silently. On an empty queue poll the
        generator returns when ``stop_on_retry`` is set, otherwise it sleeps
        ``poll_interval`` seconds and polls again.
        """
        while True:
            try:
                yield self.next_event()
            except EndOfStream:
                return
            except RetryLater as signal:
                if signal.reason != EMPTY_POLL:
                    continue
                if stop_on_retry:
                    return
                if poll_interval:
                    time.sleep(poll_interval)

    def _open_next_file(self) -> None:
        if self._finished:
            raise EndOfStream()

        if self._next_file >= len(self._files):
            if self._poller is None:
                self._finished = True
                raise EndOfStream()
            self._files.extend(self._poller.poll())
            if self._next_file >= len(self._files):
                raise RetryLater(EMPTY_POLL)

        ref = self._files[self._next_file]
        if self._downloader is None:
            # an unreadable local file is skipped on the next pull
            self._next_file += 1
            data = read_local(ref)
        else:
            # a failed batch is fetched again on the next pull
            data = self._downloader.read_next(self._files)
            self._next_file += 1

        if ref.is_compressed:
            try:
                data = decompress(data)
            except CorruptPayload as exc:
                logger.warning("Skipping corrupt compressed file %s: %s", ref.describe(), exc)
                self._buffer = RecordBuffer()
                raise RetryLater(CORRUPT_FILE) from exc

        self._buffer = split_records(data)
        logger.debug("Read %d records from %s", len(self._buffer), ref.describe())
        if self._buffer.remaining == 0:
            raise RetryLater(EMPTY_FILE)

    def _to_event(self, raw: bytes) -> CloudTrailEvent:
        try:
            record = json.loads(raw)
        except ValueError:
            logger.debug("Skipping record that is not valid JSON")
            raise RetryLater(MALFORMED_RECORD) from None
        if not isinstance(record, dict):
            raise RetryLater(MALFORMED_RECORD)

        timestamp = event_timestamp(record.get("eventTime"))
        if timestamp is None:
            logger.debug("Skipping record with missing or invalid eventTime")
            raise RetryLater(BAD_EVENT_TIME)

        event_type = record.get("eventType")
        if not isinstance(event_type, str):
            raise RetryLater(MALFORMED_RECORD)
        if event_type == INSIGHT_EVENT_TYPE:
            raise RetryLater(INSIGHT_EVENT)

        return CloudTrailEvent(data=raw, timestamp=timestamp)


__all__ = ["EventProducer", "INSIGHT_EVENT_TYPE", "event_timestamp"]
