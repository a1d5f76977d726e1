"""boto3 session and client construction."""

from __future__ import annotations

from typing import Any

import boto3
import botocore.session
from botocore.exceptions import ProfileNotFound

from core.errors import ConfigurationError


def build_session(
    profile: str | None = None,
    region: str | None = None,
    config_file: str | None = None,
    credentials_file: str | None = None,
) -> boto3.Session:
    # file paths are scoped to this session, the process environment is left alone
    core_session = botocore.session.Session()
    if config_file:
        core_session.set_config_variable("config_file", config_file)
    if credentials_file:
        core_session.set_config_variable("credentials_file", credentials_file)
    try:
        return boto3.Session(
            botocore_session=core_session,
            profile_name=profile or None,
            region_name=region or None,
        )
    except ProfileNotFound as exc:
        raise ConfigurationError("aws", str(exc)) from exc


def s3_client(session: boto3.Session | None = None) -> Any:
    return (session or boto3.Session()).client("s3")


def sqs_client(session: boto3.Session | None = None) -> Any:
    return (session or boto3.Session()).client("sqs")


__all__ = ["build_session", "s3_client", "sqs_client"]
