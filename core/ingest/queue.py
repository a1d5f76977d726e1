"""Poll an SQS queue for notifications about new CloudTrail objects.

Messages arrive as SNS envelopes. The inner ``Message`` is either CloudTrail's
own delivery notification::

    {"s3Bucket": "bucket", "s3ObjectKey": ["AWSLogs/.../file.json.gz"]}

or, when ``use_s3_sns`` is set, a native S3 event notification with one entry
per created object under ``Records``.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import unquote_plus

from botocore.exceptions import BotoCoreError, ClientError

from core.errors import NotificationFormatError, RemoteAPIError
from core.models import FileReference

logger = logging.getLogger(__name__)


def resolve_queue_url(client: Any, queue_name: str, owner_account: str = "") -> str:
    params: dict[str, str] = {"QueueName": queue_name}
    if owner_account:
        params["QueueOwnerAWSAccountId"] = owner_account
    try:
        return client.get_queue_url(**params)["QueueUrl"]
    except (ClientError, BotoCoreError) as exc:
        raise RemoteAPIError.from_exception("sqs", exc) from exc


def _load_json(text: Any, what: str) -> Any:
    if not isinstance(text, str):
        raise NotificationFormatError("sqs", f"{what} is not a string")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise NotificationFormatError("sqs", f"{what} is not valid JSON: {exc}") from exc


def parse_s3_event(message: dict[str, Any]) -> list[FileReference]:
    files: list[FileReference] = []
    for record in message.get("Records") or []:
        try:
            bucket = record["s3"]["bucket"]["name"]
            key = unquote_plus(record["s3"]["object"]["key"])
        except (KeyError, TypeError) as exc:
            raise NotificationFormatError("sqs", f"S3 event record missing {exc}") from exc
        files.append(FileReference.for_key(key, bucket=bucket))
    return files


def parse_cloudtrail_notification(message: dict[str, Any]) -> list[FileReference]:
    bucket = message.get("s3Bucket")
    keys = message.get("s3ObjectKey") or []
    if not bucket or not isinstance(keys, list):
        raise NotificationFormatError("sqs", "CloudTrail notification needs s3Bucket and an s3ObjectKey list")
    return [FileReference.for_key(key, bucket=bucket) for key in keys]


def parse_notification(body: str, use_s3_sns: bool = False) -> list[FileReference]:
    """Extract file references from the body of one SQS message."""
    envelope = _load_json(body, "message body")
    if not isinstance(envelope, dict) or "Type" not in envelope:
        raise NotificationFormatError("sqs", "received SQS message that did not have a Type property")
    if envelope["Type"] != "Notification":
        raise NotificationFormatError("sqs", "received SQS message that was not a SNS Notification")

    message = _load_json(envelope.get("Message"), "SNS Message")
    if not isinstance(message, dict):
        raise NotificationFormatError("sqs", "SNS Message is not a JSON object")
    if use_s3_sns:
        return parse_s3_event(message)
    return parse_cloudtrail_notification(message)


class QueuePoller:
    """Receive one notification per poll and turn it into file references."""

    def __init__(self, client: Any, queue_url: str, delete_on_read: bool = True, use_s3_sns: bool = False) -> None:
        self.client = client
        self.queue_url = queue_url
        self.delete_on_read = delete_on_read
        self.use_s3_sns = use_s3_sns

    def poll(self) -> list[FileReference]:
        try:
            result = self.client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=1,
                MessageAttributeNames=["All"],
            )
        except (ClientError, BotoCoreError) as exc:
            raise RemoteAPIError.from_exception("sqs", exc) from exc

        messages = result.get("Messages") or []
        if not messages:
            return []

        message = messages[0]
        if self.delete_on_read:
            # delete before processing so the message is not read again
            try:
                self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=message["ReceiptHandle"])
            except (ClientError, BotoCoreError) as exc:
                raise RemoteAPIError.from_exception("sqs", exc) from exc

        files = parse_notification(message.get("Body"), use_s3_sns=self.use_s3_sns)
        logger.info("Queue message %s announced %d files", message.get("MessageId", "?"), len(files))
        return files


__all__ = [
    "QueuePoller",
    "parse_notification",
    "parse_s3_event",
    "parse_cloudtrail_notification",
    "resolve_queue_url",
]
