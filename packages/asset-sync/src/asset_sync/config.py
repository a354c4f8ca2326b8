"""Configuration and logging setup."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 3.0
MAX_LOCK_TIMEOUT = 24 * 60 * 60.0
DEFAULT_LOG_LEVEL = "info"
CONFIG_ENV_VAR = "ASSET_SYNC_CONFIG"
CONFIG_SECTION = "asset-sync"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

LogLevel = Literal["debug", "info", "warning", "error", "critical"]


class SyncConfig(BaseModel):
    """Settings read from the ``[asset-sync]`` table of a TOML file.

    Keys use dashes in the file (``lock-timeout = 5``).
    """

    model_config = ConfigDict(
        alias_generator=lambda name: name.replace("_", "-"),
        populate_by_name=True,
        extra="forbid",
    )

    lock_timeout: float = Field(default=DEFAULT_LOCK_TIMEOUT, gt=0, le=MAX_LOCK_TIMEOUT)
    log_level: LogLevel = DEFAULT_LOG_LEVEL
    log_file: str | None = None


def load_config(path: str | Path | None = None) -> SyncConfig:
    """Load config from `path`, or from $ASSET_SYNC_CONFIG if not given.

    Falls back to defaults when neither names an existing file.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR)
        if not path:
            return SyncConfig()

    config_file = Path(path)
    if not config_file.is_file():
        logger.debug("No config at %s, using defaults", config_file)
        return SyncConfig()

    try:
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(config_file, str(e)) from e

    try:
        return SyncConfig.model_validate(data.get(CONFIG_SECTION, {}))
    except ValidationError as e:
        raise ConfigError(config_file, str(e)) from e


def configure_logging(level: str = DEFAULT_LOG_LEVEL, log_file: str | Path | None = None) -> None:
    """Send ``asset_sync`` logs to stderr, and to `log_file` if given.

    Replaces handlers from earlier calls.
    """
    package_logger = logging.getLogger("asset_sync")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    package_logger.setLevel(level.upper())
    formatter = logging.Formatter(LOG_FORMAT)

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    package_logger.addHandler(stream)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)
