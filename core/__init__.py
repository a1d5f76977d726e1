"""Core engine for pulling CloudTrail records from local, S3 and SQS origins."""

from .errors import CloudTrailSourceError, EndOfStream, RetryLater
from .models import CloudTrailEvent, FileReference, SourceConfig

__all__ = [
    "CloudTrailEvent",
    "CloudTrailSourceError",
    "EndOfStream",
    "FileReference",
    "RetryLater",
    "SourceConfig",
]
