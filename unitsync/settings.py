"""
unitsync Settings - Configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files. Command-line
flags are layered on top by passing them as keyword arguments.
"""

import math
import re
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Any) -> timedelta:
    """Parse a duration given as seconds or a Go-style string.

    Accepts timedelta instances, numbers of seconds, numeric strings and
    strings such as "1h", "10s", "500ms" or "1m30s".

    Raises:
        ValueError: If the value cannot be interpreted as a duration
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"invalid duration: {value!r}")

    text = str(value).strip()
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ValueError(f"invalid duration: {value!r}")
        return timedelta(seconds=seconds)

    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return timedelta(seconds=seconds)


def format_duration(value: timedelta) -> str:
    """Render a timedelta compactly, e.g. 1h, 10s, 0.5s."""
    seconds = value.total_seconds()
    if seconds >= 3600 and seconds % 3600 == 0:
        return f"{int(seconds // 3600)}h"
    if seconds >= 60 and seconds % 60 == 0:
        return f"{int(seconds // 60)}m"
    return f"{seconds:g}s"


class UnitSyncSettings(BaseSettings):
    """
    unitsync configuration settings.

    Settings are loaded from:
    1. Keyword arguments (command-line flags)
    2. Environment variables
    3. .env file in current directory
    4. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="UNITSYNC_",  # All unitsync env vars must start with UNITSYNC_
    )

    src: Path = Field(
        default=Path("."),
        description="Directory containing your unit files (env: UNITSYNC_SRC)",
    )

    dest: Path = Field(
        default=Path("/etc/systemd/system"),
        description="systemd's unit file directory (env: UNITSYNC_DEST)",
    )

    resync: timedelta = Field(
        default=timedelta(hours=1),
        description="How often to check for unit file consistency (env: UNITSYNC_RESYNC)",
    )

    retry: timedelta = Field(
        default=timedelta(seconds=1),
        description="How often to retry failed operations (env: UNITSYNC_RETRY)",
    )

    timeout: timedelta = Field(
        default=timedelta(seconds=10),
        description="Timeout for systemctl operations (env: UNITSYNC_TIMEOUT)",
    )

    systemctl: str = Field(
        default="systemctl",
        description="systemctl binary used to control units (env: UNITSYNC_SYSTEMCTL)",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR) (env: UNITSYNC_LOG_LEVEL)",
    )

    @field_validator("resync", "retry", "timeout", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> Any:
        # ISO-8601 strings ("PT1H") are left to pydantic
        if isinstance(value, str) and value.strip().upper().startswith("P"):
            return value
        return parse_duration(value)

    @field_validator("resync", "retry", "timeout")
    @classmethod
    def _positive(cls, value: timedelta) -> timedelta:
        if value.total_seconds() <= 0:
            raise ValueError("duration must be positive")
        return value


# Global settings instance
_settings: UnitSyncSettings | None = None


def get_settings() -> UnitSyncSettings:
    """
    Get the global settings instance.

    Creates the settings instance on first call, then returns cached instance.

    Returns:
        UnitSyncSettings instance
    """
    global _settings
    if _settings is None:
        _settings = UnitSyncSettings()
    return _settings


def reload_settings() -> UnitSyncSettings:
    """
    Reload settings from environment/files.

    Useful for testing or when .env file changes.

    Returns:
        Fresh UnitSyncSettings instance
    """
    global _settings
    _settings = UnitSyncSettings()
    return _settings
