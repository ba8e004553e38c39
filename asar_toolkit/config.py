"""
Configuration for asar-toolkit.

Settings are plain dataclass fields. ``ToolkitConfig.from_env`` overrides the
defaults from ``ASAR_TOOLKIT_*`` environment variables.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "ASAR_TOOLKIT_"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class ToolkitConfig:
    """Settings shared by the session, the dispatcher and the CLI."""
    max_workers: Optional[int] = None  # None lets the executor pick
    log_level: str = "WARNING"
    text_encoding: str = "utf-8"
    fetch_timeout: float = 300.0  # seconds, for remote archives
    id_prefix: str = "R"  # prefix of generated archive ids

    def __post_init__(self):
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.fetch_timeout <= 0:
            raise ValueError(f"fetch_timeout must be positive, got {self.fetch_timeout}")

    def copy(self) -> "ToolkitConfig":
        """Return an independent copy of this configuration."""
        return replace(self)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ToolkitConfig":
        """Build a configuration from ``ASAR_TOOLKIT_<FIELD>`` variables.

        Unset variables keep their defaults. An empty ``MAX_WORKERS`` means
        "let the executor decide".
        """
        if environ is None:
            environ = os.environ

        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            if f.name == "max_workers":
                values[f.name] = int(raw) if raw.strip() else None
            elif f.name == "fetch_timeout":
                values[f.name] = float(raw)
            elif f.name == "log_level":
                values[f.name] = raw.upper()
            else:
                values[f.name] = raw

        config = cls(**values)
        if values:
            logger.debug("Configuration from environment: %s", sorted(values))
        return config


def configure_logging(level="WARNING") -> None:
    """Set up root logging for command line use.

    ``level`` is a level name or number. Repeated calls only change the level.
    """
    if isinstance(level, str):
        name = level.upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name}")

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
