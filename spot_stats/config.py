"""
Configuration for spot-stats.

Values come from environment variables; command line flags override them.

  SPOT_STATS_DATA_DIR       export directory to build from (no default)
  SPOT_STATS_SNAPSHOT_PATH  snapshot file (default: .data/spot_stats.snapshot)
  SPOT_STATS_COMPRESS       compress snapshots: 1/0, true/false, yes/no (default: 1)
  SPOT_STATS_LOG_LEVEL      loguru level for stderr (default: WARNING)
"""

import os
from pathlib import Path
from typing import Mapping, Optional

from loguru import logger
from pydantic import BaseModel, Field, field_validator

DATA_DIR = Path(".data")
DEFAULT_SNAPSHOT_PATH = DATA_DIR / "spot_stats.snapshot"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be one of {sorted(_TRUE | _FALSE)}, got {value!r}")


def check_log_level(value: str) -> str:
    """Upper-cased ``value`` if loguru knows the level, else ValueError."""
    level = value.strip().upper()
    try:
        logger.level(level)
    except ValueError as e:
        raise ValueError(f"Unknown log level {value!r}") from e
    return level


class Settings(BaseModel):
    """Runtime settings."""

    data_dir: Optional[Path] = Field(None, description="Export directory, required on first run")
    snapshot_path: Path = Field(DEFAULT_SNAPSHOT_PATH, description="Where the snapshot is kept")
    compress: bool = Field(True, description="DEFLATE-compress the snapshot payload")
    log_level: str = Field("WARNING", description="Log level for stderr output")

    @field_validator("log_level")
    @classmethod
    def _upper(cls, v: str) -> str:
        return check_log_level(v)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``SPOT_STATS_*`` environment variables."""
        env = os.environ if environ is None else environ
        values: dict = {}
        if env.get("SPOT_STATS_DATA_DIR"):
            values["data_dir"] = Path(env["SPOT_STATS_DATA_DIR"])
        if env.get("SPOT_STATS_SNAPSHOT_PATH"):
            values["snapshot_path"] = Path(env["SPOT_STATS_SNAPSHOT_PATH"])
        if env.get("SPOT_STATS_COMPRESS"):
            values["compress"] = _parse_bool("SPOT_STATS_COMPRESS", env["SPOT_STATS_COMPRESS"])
        if env.get("SPOT_STATS_LOG_LEVEL"):
            values["log_level"] = env["SPOT_STATS_LOG_LEVEL"]
        return cls(**values)
