"""Apply the per-pixel converters to a whole image buffer."""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from ...core.config import ConversionConfig
from ...core.utils_parallel import limited_threads, partition_rows, run_parallel
from .bias import BiasParameters, calibrate_bias
from .convert import basis_to_qlog, pole_mask, qlog_to_basis

LOGGER = logging.getLogger("normal_qlog.qlog.dispatcher")


def required_channels(config: ConversionConfig) -> int:
    """Minimum channel count the configured direction reads."""

    if config.inverse or config.derive_z:
        return 2
    return 3


def _check_buffer(buffer: np.ndarray, config: ConversionConfig) -> None:
    if not isinstance(buffer, np.ndarray) or buffer.ndim != 3:
        raise ValueError("Image buffer must be a (height, width, channels) array")
    if not np.issubdtype(buffer.dtype, np.floating):
        raise ValueError(f"Image buffer must hold floating point samples, got {buffer.dtype}")
    minimum = required_channels(config)
    if buffer.shape[-1] < minimum:
        raise ValueError(
            f"{config.direction.capitalize()} conversion needs at least {minimum} channels, "
            f"buffer has {buffer.shape[-1]}"
        )


def convert_buffer(
    buffer: np.ndarray,
    config: ConversionConfig,
    bias_params: Optional[BiasParameters] = None,
) -> np.ndarray:
    """Convert every pixel of *buffer* in place and return it.

    Rows are split into disjoint bands that are converted concurrently; each
    band is owned by exactly one worker. Channels past the third are never
    touched, and the third one is only written when present.
    """

    _check_buffer(buffer, config)
    params = bias_params or calibrate_bias(config.bias)
    derive_z = config.derive_z and not config.inverse
    produced = min(buffer.shape[-1], 3)

    def _convert_band(rows: slice) -> int:
        band = buffer[rows]
        if config.inverse:
            converted = qlog_to_basis(band, params)
        else:
            converted = basis_to_qlog(band, params, derive_z=derive_z)
        band[..., :produced] = converted[..., :produced]
        return band.shape[0] * band.shape[1]

    bands = partition_rows(buffer.shape[0], config.rows_per_task)
    with limited_threads(config.max_workers):
        visited = run_parallel(_convert_band, bands, max_workers=config.max_workers)
    LOGGER.debug(
        "Converted %d pixels (%s) in %d bands with bias %.4g",
        sum(visited),
        config.direction,
        len(bands),
        params.bias,
    )
    return buffer


def count_pole_pixels(
    buffer: np.ndarray,
    config: ConversionConfig,
    bias_params: Optional[BiasParameters] = None,
) -> int:
    """Count pixels of an unconverted buffer that hit the pole singularity."""

    _check_buffer(buffer, config)
    params = bias_params or calibrate_bias(config.bias)
    return int(np.count_nonzero(pole_mask(buffer, params, inverse=config.inverse)))
