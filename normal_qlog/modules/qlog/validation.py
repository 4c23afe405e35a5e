"""Round-trip checks for converted buffers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import logging
import numpy as np

from ...core.config import ROUND_TRIP_TOLERANCE, ConversionConfig
from .bias import EPSILON, BiasParameters, calibrate_bias
from .convert import basis_to_qlog, get_z_from_xy, pack_normal, qlog_to_basis, unpack_normal

LOGGER = logging.getLogger("normal_qlog.qlog.validation")


@dataclass
class RoundTripReport:
    max_error: float
    mean_error: float
    tolerance: float = ROUND_TRIP_TOLERANCE

    def passed(self) -> bool:
        return self.max_error <= self.tolerance


def _unit_reference(original: np.ndarray, derive_z: bool) -> np.ndarray:
    """Packed unit normals that the forward map actually encodes.

    The encoding keeps the source Z and the direction of (X, Y), so a source
    normal that is not unit length is compared against the unit normal with
    the same Z and XY direction. Pole pixels encode the identity rotation.
    """

    x = unpack_normal(original[..., 0])
    y = unpack_normal(original[..., 1])
    z = get_z_from_xy(x, y) if derive_z else unpack_normal(original[..., 2])
    z = np.clip(z, -1.0, 1.0)

    planar = np.sqrt(x * x + y * y)
    pole = planar < EPSILON
    target = np.sqrt(np.maximum(1.0 - z * z, 0.0))
    scale = np.where(pole, 0.0, target / np.where(pole, 1.0, planar))
    vectors = np.stack([x * scale, y * scale, np.where(pole, 1.0, z)], axis=-1)
    return pack_normal(vectors)


def measure_round_trip_error(
    original: np.ndarray,
    converted: np.ndarray,
    config: ConversionConfig,
    bias_params: Optional[BiasParameters] = None,
) -> RoundTripReport:
    """Convert *converted* back and compare it with *original*.

    Forward runs are compared on X, Y and Z against the source normal
    renormalised to unit length, since stored normals are rarely exactly
    unit length. Inverse runs are compared on the two QLog channels.
    """

    params = bias_params or calibrate_bias(config.bias)
    if config.inverse:
        restored = basis_to_qlog(converted, params)[..., :2]
        reference = np.asarray(original[..., :2], dtype=np.float32)
    else:
        restored = qlog_to_basis(converted, params)
        reference = _unit_reference(np.asarray(original, dtype=np.float32), config.derive_z)

    if restored.size == 0:
        return RoundTripReport(max_error=0.0, mean_error=0.0)
    error = np.abs(restored - reference)
    report = RoundTripReport(max_error=float(error.max()), mean_error=float(error.mean()))
    LOGGER.debug("Round-trip error max=%.6f mean=%.6f", report.max_error, report.mean_error)
    return report
