"""Read, convert and write a single normal map file."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import logging
import numpy as np

from ...core.config import ConversionConfig
from ...core.utils_io import read_image, write_image
from .bias import calibrate_bias
from .dispatcher import convert_buffer, count_pole_pixels, required_channels
from .validation import RoundTripReport, measure_round_trip_error

LOGGER = logging.getLogger("normal_qlog.qlog.pipeline")


@dataclass
class ConversionReport:
    input_path: Path
    output_path: Path
    width: int
    height: int
    channels: int
    pole_pixels: int
    round_trip: Optional[RoundTripReport] = None


def _pad_to_three_channels(buffer: np.ndarray) -> np.ndarray:
    """Append a neutral third channel to two-channel maps."""

    if buffer.shape[-1] != 2:
        return buffer
    neutral = np.full(buffer.shape[:-1] + (1,), 0.5, dtype=buffer.dtype)
    return np.concatenate([buffer, neutral], axis=-1)


def convert_file(input_path: Path | str, output_path: Path | str, config: ConversionConfig) -> ConversionReport:
    """Convert *input_path* according to *config* and write *output_path*.

    :class:`~normal_qlog.core.utils_io.DecodeError` is raised before any
    conversion work happens; :class:`~normal_qlog.core.utils_io.EncodeError`
    after the buffer was converted.
    """

    source = Path(input_path)
    destination = Path(output_path)
    params = calibrate_bias(config.bias)
    LOGGER.debug(
        "Bias %.4g -> apply exponent %.6g, remove exponent %.6g",
        params.bias,
        params.apply_bias,
        params.remove_bias,
    )

    buffer = read_image(source)
    height, width, channels = buffer.shape
    if channels < required_channels(config):
        raise ValueError(
            f"{source} has {channels} channel(s); {config.direction} conversion needs at least "
            f"{required_channels(config)}"
        )
    buffer = _pad_to_three_channels(buffer)
    LOGGER.info("Converting %s (%dx%d, %d channels, %s)", source, width, height, channels, config.direction)

    pole_pixels = count_pole_pixels(buffer, config, params)
    original = buffer.copy() if config.verify else None
    convert_buffer(buffer, config, params)

    round_trip = None
    if original is not None:
        round_trip = measure_round_trip_error(original, buffer, config, params)
        if round_trip.passed():
            LOGGER.info(
                "Round-trip error max=%.6f mean=%.6f within tolerance %.1e",
                round_trip.max_error,
                round_trip.mean_error,
                round_trip.tolerance,
            )
        else:
            LOGGER.warning(
                "Round-trip error max=%.6f mean=%.6f exceeds tolerance %.1e",
                round_trip.max_error,
                round_trip.mean_error,
                round_trip.tolerance,
            )

    write_image(buffer, destination, bit_depth=config.bit_depth)
    LOGGER.info("Wrote %s", destination)
    return ConversionReport(
        input_path=source,
        output_path=destination,
        width=width,
        height=height,
        channels=buffer.shape[-1],
        pole_pixels=pole_pixels,
        round_trip=round_trip,
    )
