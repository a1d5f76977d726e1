"""Configuration loader for the ctstream CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from core.models import SourceConfig

DEFAULTS = {
    "output_format": "raw",
    "log_level": "WARNING",
    "log_format": "text",
}


@dataclass(slots=True)
class AWSSettings:
    profile: str | None = None
    region: str | None = None
    config_file: str | None = None
    credentials_file: str | None = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "AWSSettings":
        return cls(
            profile=data.get("profile"),
            region=data.get("region"),
            config_file=data.get("config_file"),
            credentials_file=data.get("credentials_file"),
        )


@dataclass(slots=True)
class Settings:
    source: dict[str, Any] = field(default_factory=dict)
    aws: AWSSettings = field(default_factory=AWSSettings)
    output_format: str = DEFAULTS["output_format"]
    log_level: str = DEFAULTS["log_level"]
    log_format: str = DEFAULTS["log_format"]

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "Settings":
        logging_section = data.get("logging") or {}
        return cls(
            source=dict(data.get("source") or {}),
            aws=AWSSettings.from_mapping(data.get("aws") or {}),
            output_format=data.get("output_format", DEFAULTS["output_format"]),
            log_level=str(logging_section.get("level", DEFAULTS["log_level"])),
            log_format=logging_section.get("format", DEFAULTS["log_format"]),
        )

    def source_config(self, overrides: dict[str, Any] | None = None) -> SourceConfig:
        """Build the engine configuration, with CLI flags winning over the file."""
        merged = dict(self.source)
        for name, info in SourceConfig.model_fields.items():
            if info.alias and info.alias in merged:
                merged.setdefault(name, merged.pop(info.alias))
        for key, value in (overrides or {}).items():
            if value is not None:
                merged[key] = value
        return SourceConfig.from_mapping(merged)


def load_settings(path: Path) -> Settings:
    if not path.exists():
        return Settings()

    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict):
        raise ValueError("Configuration file must be a mapping of keys to values.")

    return Settings.from_mapping(data)


__all__ = ["AWSSettings", "Settings", "load_settings"]
