"""CloudTrail ingestion: origin resolution, listing, downloading and record production."""

from .producer import EventProducer
from .records import RecordBuffer, split_records

__all__ = ["EventProducer", "RecordBuffer", "split_records"]
