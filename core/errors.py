"""Error taxonomy and pull signals for CloudTrail sources."""

from __future__ import annotations

from botocore.exceptions import BotoCoreError, ClientError


class CloudTrailSourceError(Exception):
    """Base class for fatal ingestion errors.

    Messages take the form ``"<subsystem>: <kind>: <detail>"`` so operators can
    tell a missing input from a failing AWS call without reading the source.
    """

    kind = "error"

    def __init__(self, subsystem: str, detail: str) -> None:
        super().__init__(f"{subsystem}: {self.kind}: {detail}")
        self.subsystem = subsystem
        self.detail = detail


class ConfigurationError(CloudTrailSourceError):
    kind = "bad configuration"


class InputNotFoundError(CloudTrailSourceError):
    kind = "no input found"


class LocalIOError(CloudTrailSourceError):
    kind = "local I/O failure"


class RemoteAPIError(CloudTrailSourceError):
    kind = "remote API failure"

    @classmethod
    def from_exception(cls, subsystem: str, exc: BaseException) -> "RemoteAPIError":
        if isinstance(exc, ClientError):
            error = exc.response.get("Error", {})
            code = error.get("Code", "Unknown")
            message = error.get("Message") or str(exc)
            error_obj = cls(subsystem, f"{code}: {message}")
        elif isinstance(exc, BotoCoreError):
            error_obj = cls(subsystem, str(exc))
        else:
            error_obj = cls(subsystem, f"{type(exc).__name__}: {exc}")
        return error_obj


class NotificationFormatError(RemoteAPIError):
    kind = "bad queue notification"


class CorruptPayload(ValueError):
    """Raised when a compressed file cannot be inflated."""


class PullSignal(Exception):
    """Non-error outcome of a pull that produced no record."""


class EndOfStream(PullSignal):
    """Every file has been consumed; terminal for local and S3 origins."""


class RetryLater(PullSignal):
    """No record this time; call again."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


__all__ = [
    "CloudTrailSourceError",
    "ConfigurationError",
    "InputNotFoundError",
    "LocalIOError",
    "RemoteAPIError",
    "NotificationFormatError",
    "CorruptPayload",
    "PullSignal",
    "EndOfStream",
    "RetryLater",
]
