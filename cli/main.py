"""Command line interface for pulling CloudTrail records."""

from __future__ import annotations

import argparse
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Any

from cli import config, output
from cli.logs import setup_logging
from core import aws
from core.errors import (
    CloudTrailSourceError,
    ConfigurationError,
    InputNotFoundError,
    LocalIOError,
    RemoteAPIError,
)
from core.ingest.locator import S3_SCHEME, SQS_SCHEME
from core.ingest.producer import EventProducer

EXIT_CODES = {
    ConfigurationError: 2,
    InputNotFoundError: 3,
    RemoteAPIError: 4,
    LocalIOError: 4,
}


class CLIError(Exception):
    def __init__(self, message: str, exit_code: int = 2) -> None:
        super().__init__(message)
        self.exit_code = exit_code


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("locator", help="Local directory, s3://bucket[/prefix] or sqs://queue-name")
    parser.add_argument("--download-concurrency", type=int, help="Files listed or downloaded in parallel")
    parser.add_argument("--interval", help="Time window, e.g. 2d, 2w-1w or 2024-01-01T00:00:00Z-2024-01-02T00:00:00Z")
    parser.add_argument("--account-list", help="Comma-separated account ids for organization trails")
    parser.add_argument("--use-s3-sns", action="store_true", default=None, help="Queue carries S3 event notifications")
    parser.add_argument("--no-sqs-delete", dest="sqs_delete", action="store_false", default=None)
    parser.add_argument("--sqs-owner-account", help="Account owning the SQS queue")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ctstream", description="Stream CloudTrail records from files, S3 or SQS")
    parser.add_argument("--config", type=Path, default=Path("ctstream.yml"), help="Path to CLI configuration file")
    parser.add_argument("--log-level", help="Logging level override")
    parser.add_argument("--log-format", choices=["text", "json"], help="Logging format override")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # stream ----------------------------------------------------------------
    stream_cmd = subparsers.add_parser("stream", help="Write CloudTrail records one per line")
    _add_source_arguments(stream_cmd)
    stream_cmd.add_argument("--limit", type=int, default=0, help="Stop after this many records")
    stream_cmd.add_argument("--follow", action="store_true", help="Keep polling an empty queue instead of exiting")
    stream_cmd.add_argument("--poll-interval", type=float, default=5.0, help="Seconds between empty queue polls")
    stream_cmd.add_argument("--output", type=Path)
    stream_cmd.add_argument("--format", choices=list(output.FORMATS), help="Output format override")

    # files -----------------------------------------------------------------
    files_cmd = subparsers.add_parser("files", help="List the files a source resolves to")
    _add_source_arguments(files_cmd)

    return parser


def app(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        try:
            settings = config.load_settings(args.config)
        except (ValueError, OSError) as exc:
            raise CLIError(f"Invalid configuration file {args.config}: {exc}") from exc
        setup_logging(args.log_level or settings.log_level, args.log_format or settings.log_format)

        if args.command == "stream":
            return _cmd_stream(args, settings)
        if args.command == "files":
            return _cmd_files(args, settings)
    except CLIError as exc:
        print(exc, file=sys.stderr)
        return exc.exit_code
    except CloudTrailSourceError as exc:
        print(exc, file=sys.stderr)
        return _exit_code(exc)
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - unexpected errors bubble up
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


# ---------------------------------------------------------------------------
# Command implementations


def _cmd_stream(args: argparse.Namespace, settings: config.Settings) -> int:
    producer = _open_producer(args, settings)
    fmt = args.format or settings.output_format
    if fmt not in output.FORMATS:
        raise CLIError(f"Unsupported output format: {fmt}")

    with ExitStack() as stack:
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            stream = stack.enter_context(args.output.open("wb"))
        else:
            stream = sys.stdout.buffer
        writer = output.EventWriter(stream, fmt)
        for event in producer.events(stop_on_retry=not args.follow, poll_interval=args.poll_interval):
            writer.write(event)
            if args.limit and writer.count >= args.limit:
                break
        writer.flush()
    return 0


def _cmd_files(args: argparse.Namespace, settings: config.Settings) -> int:
    producer = _open_producer(args, settings)
    output.write_files(producer.files)
    return 0


# ---------------------------------------------------------------------------
# Helpers


def _open_producer(args: argparse.Namespace, settings: config.Settings) -> EventProducer:
    source_config = settings.source_config(_source_overrides(args))
    session = None
    if args.locator.startswith((S3_SCHEME, SQS_SCHEME)):
        session = aws.build_session(
            profile=settings.aws.profile,
            region=settings.aws.region,
            config_file=settings.aws.config_file,
            credentials_file=settings.aws.credentials_file,
        )
    return EventProducer.open(args.locator, source_config, session=session)


def _source_overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "download_concurrency": args.download_concurrency,
        "interval": args.interval,
        "account_list": args.account_list,
        "use_s3_sns": args.use_s3_sns,
        "sqs_delete": args.sqs_delete,
        "sqs_owner_account": args.sqs_owner_account,
    }


def _exit_code(exc: CloudTrailSourceError) -> int:
    for error_type, code in EXIT_CODES.items():
        if isinstance(exc, error_type):
            return code
    return 1


def main() -> None:
    raise SystemExit(app())


if __name__ == "__main__":
    main()
