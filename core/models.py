"""Data models shared across the ingestion engine."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from core.errors import ConfigurationError

ACCOUNT_LIST_RE = re.compile(r"^(?: *\d{12} *,?)*$")


@dataclass(frozen=True, slots=True)
class LocalOrigin:
    root: Path


@dataclass(frozen=True, slots=True)
class S3Origin:
    bucket: str
    prefix: str = ""


@dataclass(frozen=True, slots=True)
class QueueOrigin:
    queue_name: str


Origin = Union[LocalOrigin, S3Origin, QueueOrigin]


@dataclass(frozen=True, slots=True)
class FileReference:
    """One log file to read: a local path, or a key in ``bucket``."""

    key: str
    is_compressed: bool
    bucket: Optional[str] = None

    @classmethod
    def for_key(cls, key: str, bucket: str | None = None) -> "FileReference":
        return cls(key=key, is_compressed=key.endswith(".json.gz"), bucket=bucket)

    def describe(self) -> str:
        if self.bucket is None:
            return self.key
        return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True, slots=True)
class ListingCursor:
    prefix: str
    start_after: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CloudTrailEvent:
    """Original bytes of one CloudTrail record and its eventTime in ns since the epoch."""

    data: bytes
    timestamp: int


class SourceConfig(BaseModel):
    """Options controlling how a session lists, downloads and polls."""

    download_concurrency: int = Field(default=32, alias="S3DownloadConcurrency")
    interval: str = Field(default="", alias="S3Interval")
    account_list: str = Field(default="", alias="S3AccountList")
    use_s3_sns: bool = Field(default=False, alias="UseS3SNS")
    sqs_delete: bool = Field(default=True, alias="SQSDelete")
    sqs_owner_account: str = Field(default="", alias="SQSOwnerAccount")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @field_validator("account_list")
    @classmethod
    def _check_account_list(cls, value: str) -> str:
        if not ACCOUNT_LIST_RE.match(value):
            raise ValueError(f'invalid account list: "{value}"')
        return value

    @property
    def accounts(self) -> list[str]:
        return [account.strip() for account in self.account_list.split(",") if account.strip()]

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> "SourceConfig":
        try:
            return cls.model_validate(data or {})
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
            )
            raise ConfigurationError("config", problems) from exc


__all__ = [
    "LocalOrigin",
    "S3Origin",
    "QueueOrigin",
    "Origin",
    "FileReference",
    "ListingCursor",
    "CloudTrailEvent",
    "SourceConfig",
]
