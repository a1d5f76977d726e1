"""Resolve input locators into origins and S3 listing prefixes.

CloudTrail writes objects under

    <prefix>/AWSLogs/<account>/CloudTrail/<region>/YYYY/MM/DD/<file>
    <prefix>/AWSLogs/<org-id>/<account>/CloudTrail/<region>/YYYY/MM/DD/<file>

so the shape of the prefix a user hands us tells whether it points at a single
account, a whole organization, or something we should list verbatim.
"""

from __future__ import annotations

import enum
import logging
import re
from pathlib import Path
from typing import Any, Iterable

from botocore.exceptions import BotoCoreError, ClientError

from core.errors import ConfigurationError, RemoteAPIError
from core.models import LocalOrigin, Origin, QueueOrigin, S3Origin

logger = logging.getLogger(__name__)

S3_SCHEME = "s3://"
SQS_SCHEME = "sqs://"
CLOUDTRAIL_DIR = "CloudTrail/"

_ORG_ID = r"o-[a-z0-9]{10,32}"
ACCOUNT_PREFIX_RE = re.compile(rf"(?:^|/)AWSLogs/(?:{_ORG_ID}/)?\d{{12}}/?$")
ORGANIZATION_PREFIX_RE = re.compile(rf"(?:^|/)AWSLogs(?:/{_ORG_ID})?/?$")


class PrefixShape(enum.Enum):
    ACCOUNT = "account"
    ORGANIZATION = "organization"
    VERBATIM = "verbatim"


def parse_locator(text: str) -> Origin:
    """Map ``s3://``, ``sqs://`` or a plain path onto its origin."""
    if not text:
        raise ConfigurationError("locator", "missing input locator")
    if text.startswith(S3_SCHEME):
        bucket, _, prefix = text[len(S3_SCHEME):].partition("/")
        if not bucket:
            raise ConfigurationError("locator", f'S3 locator must include a bucket name: "{text}"')
        return S3Origin(bucket=bucket, prefix=prefix)
    if text.startswith(SQS_SCHEME):
        queue_name = text[len(SQS_SCHEME):]
        if not queue_name:
            raise ConfigurationError("locator", f'SQS locator must include a queue name: "{text}"')
        return QueueOrigin(queue_name=queue_name)
    return LocalOrigin(root=Path(text))


def classify_prefix(prefix: str) -> PrefixShape:
    if ACCOUNT_PREFIX_RE.search(prefix):
        return PrefixShape.ACCOUNT
    if ORGANIZATION_PREFIX_RE.search(prefix):
        return PrefixShape.ORGANIZATION
    return PrefixShape.VERBATIM


def _with_slash(prefix: str) -> str:
    return prefix if prefix.endswith("/") else prefix + "/"


def account_prefixes(org_prefix: str, accounts: Iterable[str]) -> list[str]:
    base = _with_slash(org_prefix)
    return [f"{base}{account}/{CLOUDTRAIL_DIR}" for account in accounts]


def discover_account_prefixes(client: Any, bucket: str, org_prefix: str) -> list[str]:
    """List one level under an organization prefix and keep the account folders."""
    base = _with_slash(org_prefix)
    found: list[str] = []
    paginator = client.get_paginator("list_objects_v2")
    try:
        for page in paginator.paginate(Bucket=bucket, Prefix=base, Delimiter="/"):
            for common in page.get("CommonPrefixes", []):
                path = common["Prefix"]
                if ACCOUNT_PREFIX_RE.search(path):
                    found.append(_with_slash(path) + CLOUDTRAIL_DIR)
    except (ClientError, BotoCoreError) as exc:
        raise RemoteAPIError.from_exception("s3-listing", exc) from exc
    logger.debug("Discovered %d account prefixes under s3://%s/%s", len(found), bucket, base)
    return found


def resolve_prefixes(client: Any, bucket: str, prefix: str, accounts: list[str]) -> list[str]:
    """Return the listing roots for ``prefix`` according to its shape."""
    shape = classify_prefix(prefix)
    if shape is PrefixShape.ACCOUNT:
        return [_with_slash(prefix) + CLOUDTRAIL_DIR]
    if shape is PrefixShape.ORGANIZATION:
        if accounts:
            return account_prefixes(prefix, accounts)
        return discover_account_prefixes(client, bucket, prefix)
    return [prefix]


__all__ = [
    "PrefixShape",
    "parse_locator",
    "classify_prefix",
    "account_prefixes",
    "discover_account_prefixes",
    "resolve_prefixes",
]
