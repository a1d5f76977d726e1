"""Discover and read CloudTrail files from the local filesystem."""

from __future__ import annotations

import logging
from pathlib import Path

from core.errors import InputNotFoundError, LocalIOError
from core.models import FileReference

logger = logging.getLogger(__name__)


def is_log_file(name: str) -> bool:
    return name.endswith(".json") or name.endswith(".json.gz")


def discover_files(root: Path) -> list[FileReference]:
    """Walk ``root`` recursively and collect every ``.json`` / ``.json.gz`` file."""
    if not root.exists():
        raise InputNotFoundError("local", f"cannot open {root}")

    if root.is_file():
        candidates = [root]
    else:
        candidates = sorted(p for p in root.rglob("*") if p.is_file())

    files = [FileReference.for_key(str(path)) for path in candidates if is_log_file(path.name)]
    if not files:
        raise InputNotFoundError("local", f"no json files found in {root}")

    logger.debug("Found %d log files under %s", len(files), root)
    return files


def read_local(ref: FileReference) -> bytes:
    try:
        return Path(ref.key).read_bytes()
    except OSError as exc:
        raise LocalIOError("local", f"cannot read {ref.key}: {exc}") from exc


__all__ = ["is_log_file", "discover_files", "read_local"]
