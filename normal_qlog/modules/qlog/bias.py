"""Precision bias curve applied to QLog components before packing.

A single signed ``bias`` value controls a power-law warp of the normalised
``[-1, 1]`` QLog range. Positive values spend more of the packed range on
small angles (close to the surface normal), negative values spend it on
large angles. The exponents used to pack and unpack are reciprocal, so the
warp is exactly invertible for any bias.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

QUARTER_PI = np.float32(np.pi / 4.0)
EPSILON = np.finfo(np.float32).eps

_ONE = np.float32(1.0)
_HALF = np.float32(0.5)
_TWO = np.float32(2.0)


@dataclass(frozen=True)
class BiasParameters:
    """Exponents derived from a bias value, fixed for a whole conversion run."""

    bias: float
    apply_bias: float
    remove_bias: float


def calibrate_bias(bias: float = 0.0) -> BiasParameters:
    """Derive the pack (``apply_bias``) and unpack (``remove_bias``) exponents.

    ``remove_bias`` is ``bias + 1`` for non-negative bias and
    ``1 / (1 - bias)`` for negative bias; ``apply_bias`` is its reciprocal.
    """

    value = np.float32(bias)
    if value >= 0.0:
        remove_bias = _ONE + value
    else:
        remove_bias = _ONE / (-value + _ONE)
    apply_bias = _ONE / remove_bias
    return BiasParameters(bias=float(bias), apply_bias=float(apply_bias), remove_bias=float(remove_bias))


def _signed_power(values: np.ndarray, exponent: float) -> np.ndarray:
    return np.sign(values) * np.power(np.abs(values), np.float32(exponent))


def apply_bias_then_pack(value, params: BiasParameters) -> np.ndarray:
    """Warp QLog components in ``[-pi/4, pi/4]`` and pack them to ``[0, 1]``."""

    result = np.asarray(value, dtype=np.float32) / QUARTER_PI
    result = _signed_power(result, params.apply_bias)
    return (result + _ONE) * _HALF


def unpack_then_remove_bias(value, params: BiasParameters) -> np.ndarray:
    """Inverse of :func:`apply_bias_then_pack`."""

    result = np.asarray(value, dtype=np.float32) * _TWO - _ONE
    result = _signed_power(result, params.remove_bias)
    return result * QUARTER_PI
