"""Shared fakes for S3 and SQS plus CloudTrail payload builders."""

from __future__ import annotations

import json
from typing import Any, Iterable

import pytest
from botocore.exceptions import ClientError


def _client_error(operation: str, code: str = "AccessDenied", message: str = "Access Denied") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeBody:
    def __init__(self, data: bytes) -> None:
        self.data = data

    def read(self) -> bytes:
        return self.data


class FakePaginator:
    def __init__(self, client: "FakeS3") -> None:
        self.client = client

    def paginate(self, **kwargs):
        token = None
        while True:
            params = dict(kwargs)
            if token is not None:
                params["ContinuationToken"] = token
            page = self.client.list_objects_v2(**params)
            yield page
            if not page.get("IsTruncated"):
                return
            token = page["NextContinuationToken"]


class FakeS3:
    """In-memory S3 with ListObjectsV2 semantics good enough for prefix walks."""

    def __init__(
        self,
        buckets: dict[str, dict[str, bytes]] | None = None,
        page_size: int = 1000,
        fail_prefixes: Iterable[str] = (),
        fail_keys: Iterable[str] = (),
    ) -> None:
        self.buckets = {name: dict(objects) for name, objects in (buckets or {}).items()}
        self.page_size = page_size
        self.fail_prefixes = set(fail_prefixes)
        self.fail_keys = set(fail_keys)
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def get_paginator(self, name: str) -> FakePaginator:
        assert name == "list_objects_v2"
        return FakePaginator(self)

    def list_objects_v2(self, Bucket, Prefix="", Delimiter=None, StartAfter=None, ContinuationToken=None, **_):  # noqa: N803
        self.calls.append(("list_objects_v2", {"Bucket": Bucket, "Prefix": Prefix, "Delimiter": Delimiter, "StartAfter": StartAfter}))
        if Prefix in self.fail_prefixes:
            raise _client_error("ListObjectsV2")

        entries: list[tuple[str, str]] = []
        seen_prefixes: set[str] = set()
        for key in sorted(self.buckets.get(Bucket, {})):
            if not key.startswith(Prefix):
                continue
            if StartAfter is not None and key <= StartAfter:
                continue
            rest = key[len(Prefix):]
            if Delimiter and Delimiter in rest:
                common = Prefix + rest.split(Delimiter, 1)[0] + Delimiter
                if common not in seen_prefixes:
                    seen_prefixes.add(common)
                    entries.append(("prefix", common))
                continue
            entries.append(("key", key))

        offset = int(ContinuationToken or 0)
        chunk = entries[offset:offset + self.page_size]
        page: dict[str, Any] = {
            "Contents": [{"Key": value} for kind, value in chunk if kind == "key"],
            "CommonPrefixes": [{"Prefix": value} for kind, value in chunk if kind == "prefix"],
            "IsTruncated": offset + self.page_size < len(entries),
        }
        if page["IsTruncated"]:
            page["NextContinuationToken"] = str(offset + self.page_size)
        return page

    def get_object(self, Bucket, Key):  # noqa: N803
        self.calls.append(("get_object", {"Bucket": Bucket, "Key": Key}))
        if Key in self.fail_keys:
            raise _client_error("GetObject", code="NoSuchKey", message="The specified key does not exist.")
        return {"Body": FakeBody(self.buckets[Bucket][Key])}

    def operations(self, name: str) -> list[dict[str, Any]]:
        return [params for op, params in self.calls if op == name]


class FakeSQS:
    """Queue of message bodies; received messages stay in flight until deleted."""

    def __init__(self, bodies: Iterable[str] = (), account: str = "123456789012") -> None:
        self.pending = list(bodies)
        self.account = account
        self.in_flight: dict[str, str] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._counter = 0

    def push(self, body: str) -> None:
        self.pending.append(body)

    def get_queue_url(self, QueueName, QueueOwnerAWSAccountId=None):  # noqa: N803
        self.calls.append(("get_queue_url", {"QueueName": QueueName, "QueueOwnerAWSAccountId": QueueOwnerAWSAccountId}))
        if QueueName == "missing":
            raise _client_error("GetQueueUrl", code="AWS.SimpleQueueService.NonExistentQueue", message="queue does not exist")
        owner = QueueOwnerAWSAccountId or self.account
        return {"QueueUrl": f"https://sqs.us-east-1.amazonaws.com/{owner}/{QueueName}"}

    def receive_message(self, **kwargs):
        self.calls.append(("receive_message", kwargs))
        assert kwargs["MaxNumberOfMessages"] == 1
        if not self.pending:
            return {}
        self._counter += 1
        handle = f"handle-{self._counter}"
        body = self.pending.pop(0)
        self.in_flight[handle] = body
        return {"Messages": [{"MessageId": f"msg-{self._counter}", "ReceiptHandle": handle, "Body": body}]}

    def delete_message(self, QueueUrl, ReceiptHandle):  # noqa: N803
        self.calls.append(("delete_message", {"QueueUrl": QueueUrl, "ReceiptHandle": ReceiptHandle}))
        self.in_flight.pop(ReceiptHandle)
        return {}

    def operation_names(self) -> list[str]:
        return [op for op, _ in self.calls]


def make_record(index: int = 0, **overrides: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "eventVersion": "1.08",
        "userIdentity": {"type": "IAMUser", "arn": "arn:aws:iam::123456789012:user/Alice"},
        "eventTime": f"2024-01-01T00:{index:02d}:00Z",
        "eventSource": "s3.amazonaws.com",
        "eventName": "GetObject",
        "awsRegion": "us-east-1",
        "requestParameters": {"bucketName": "example", "key": f"object-{index}"},
        "eventType": "AwsApiCall",
        "eventID": f"id-{index}",
    }
    record.update(overrides)
    return record


def make_trail_file(records: list[dict[str, Any]]) -> bytes:
    return json.dumps({"Records": records}).encode("utf-8")


def sns_envelope(message: dict[str, Any]) -> str:
    return json.dumps({"Type": "Notification", "MessageId": "sns-1", "Message": json.dumps(message)})


@pytest.fixture
def fake_s3():
    return FakeS3


@pytest.fixture
def fake_sqs():
    return FakeSQS


@pytest.fixture
def trail_record():
    return make_record


@pytest.fixture
def trail_file():
    return make_trail_file


@pytest.fixture
def sns_message():
    return sns_envelope
