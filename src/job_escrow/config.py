"""Job escrow configuration constants and engine settings.

Durations are in seconds and amounts in the smallest currency unit.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

# Agreement limits
MAX_JOB_ID_LEN = 256
MAX_IDENTITY_LEN = 64
MIN_CONFIRMATION_PERIOD = 60  # 1 minute
MAX_CONFIRMATION_PERIOD = 365 * 24 * 3600  # 365 days
DEFAULT_CONFIRMATION_PERIOD = 7 * 24 * 3600  # 7 days

# Stakes
MIN_STAKE = 1
MAX_STAKE = 2**64 - 1

# Logging
DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


@dataclass
class EngineConfig:
    """Settings shared by the CLI and embedding applications."""

    confirmation_period: int = DEFAULT_CONFIRMATION_PERIOD
    log_level: str = DEFAULT_LOG_LEVEL
    fixture_dir: Optional[str] = None

    def __post_init__(self) -> None:
        if not MIN_CONFIRMATION_PERIOD <= self.confirmation_period <= MAX_CONFIRMATION_PERIOD:
            raise ValueError(
                f"confirmation_period must be within "
                f"[{MIN_CONFIRMATION_PERIOD}, {MAX_CONFIRMATION_PERIOD}]"
            )
        self.log_level = self.log_level.upper()

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load configuration from environment variables."""
        period = os.environ.get("JOB_ESCROW_CONFIRMATION_PERIOD")
        return cls(
            confirmation_period=int(period) if period else DEFAULT_CONFIRMATION_PERIOD,
            log_level=os.environ.get("JOB_ESCROW_LOG_LEVEL", DEFAULT_LOG_LEVEL),
            fixture_dir=os.environ.get("JOB_ESCROW_FIXTURE_DIR") or None,
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "EngineConfig":
        """Load configuration from a YAML mapping; missing keys keep defaults."""
        data = yaml.safe_load(Path(path).read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at top level")
        return cls(
            confirmation_period=int(data.get("confirmation_period", DEFAULT_CONFIRMATION_PERIOD)),
            log_level=str(data.get("log_level", DEFAULT_LOG_LEVEL)),
            fixture_dir=data.get("fixture_dir"),
        )
