"""Basis normal <-> quaternion logarithm normal conversion."""
from __future__ import annotations

from .bias import BiasParameters, apply_bias_then_pack, calibrate_bias, unpack_then_remove_bias
from .convert import basis_to_qlog, get_z_from_xy, qlog_to_basis
from .dispatcher import convert_buffer, count_pole_pixels
from .pipeline import ConversionReport, convert_file
from .validation import RoundTripReport, measure_round_trip_error

__all__ = [
    "BiasParameters",
    "apply_bias_then_pack",
    "calibrate_bias",
    "unpack_then_remove_bias",
    "basis_to_qlog",
    "get_z_from_xy",
    "qlog_to_basis",
    "convert_buffer",
    "count_pole_pixels",
    "ConversionReport",
    "convert_file",
    "RoundTripReport",
    "measure_round_trip_error",
]
