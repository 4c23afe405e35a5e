"""Configuration module for the normal map QLog converter."""
from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import numpy as np


DIRECTION_FORWARD = "forward"
DIRECTION_INVERSE = "inverse"
DIRECTIONS = (DIRECTION_FORWARD, DIRECTION_INVERSE)

BIAS = 0.0
THREADS = 0  # one worker per core
ROWS_PER_TASK = 64
BIT_DEPTH = 8
SUPPORTED_BIT_DEPTHS = (8, 16)
ROUND_TRIP_TOLERANCE = 1e-3


class ConfigurationError(ValueError):
    """Raised when the runtime configuration cannot drive a conversion."""


@dataclass(frozen=True)
class ConversionConfig:
    """Immutable runtime configuration shared by every worker of a run."""

    direction: str = DIRECTION_FORWARD
    derive_z: bool = False
    bias: float = BIAS
    threads: int = THREADS
    rows_per_task: int = ROWS_PER_TASK
    bit_depth: int = BIT_DEPTH
    verify: bool = False
    log_file: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.direction not in DIRECTIONS:
            raise ConfigurationError(
                f"Unknown direction {self.direction!r}; expected one of {', '.join(DIRECTIONS)}"
            )
        # the converters run in float32, so the bias has to fit there too
        with np.errstate(over="ignore"):
            finite = bool(np.isfinite(np.float32(self.bias)))
        if not finite:
            raise ConfigurationError(f"Bias must be a finite number, got {self.bias!r}")
        if self.threads < 0:
            raise ConfigurationError(f"Thread count cannot be negative, got {self.threads}")
        if self.rows_per_task <= 0:
            raise ConfigurationError(f"rows_per_task must be positive, got {self.rows_per_task}")
        if self.bit_depth not in SUPPORTED_BIT_DEPTHS:
            raise ConfigurationError(
                f"Unsupported bit depth {self.bit_depth}; expected one of {SUPPORTED_BIT_DEPTHS}"
            )

    @property
    def inverse(self) -> bool:
        return self.direction == DIRECTION_INVERSE

    @property
    def max_workers(self) -> Optional[int]:
        """Worker count for the thread pool, ``None`` lets the executor pick."""

        return self.threads or None

    def as_dict(self) -> Dict[str, object]:
        """Return the configuration as a plain dictionary."""

        return asdict(self)


def build_config(overrides: Optional[Mapping[str, object]] = None) -> ConversionConfig:
    """Create a configuration with optional overrides.

    Unknown keys are ignored so callers can pass a wider mapping (for example
    the vars of an argparse namespace).
    """

    config = ConversionConfig()
    if overrides:
        known = set(config.as_dict())
        accepted = {key: value for key, value in overrides.items() if key in known}
        return replace(config, **accepted)
    return config
