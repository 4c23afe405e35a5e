"""Per-pixel conversion between basis normals and quaternion logarithm normals.

Both converters take packed pixels, i.e. arrays whose last axis holds the
channel values stored in the image (``[0, 1]``), and return a new
``(..., 3)`` float32 array of packed results. They work on a single pixel
(shape ``(C,)``) as well as on whole rows or images.

A basis normal ``(x, y, z)`` is the image of the pole ``(0, 0, 1)`` under a
rotation about an axis in the XY plane. The QLog vector ``(u, v)`` is the
imaginary part of the logarithm of that rotation's quaternion: it points
along ``(x, y)`` and its length is the half-angle of the rotation.
"""
from __future__ import annotations

import numpy as np

from .bias import EPSILON, BiasParameters, apply_bias_then_pack, unpack_then_remove_bias

_ZERO = np.float32(0.0)
_HALF = np.float32(0.5)
_ONE = np.float32(1.0)
_TWO = np.float32(2.0)


def unpack_normal(packed) -> np.ndarray:
    """Map stored values in ``[0, 1]`` to vector components in ``[-1, 1]``."""

    return np.asarray(packed, dtype=np.float32) * _TWO - _ONE


def pack_normal(components) -> np.ndarray:
    """Map vector components in ``[-1, 1]`` to stored values in ``[0, 1]``."""

    return (np.asarray(components, dtype=np.float32) + _ONE) * _HALF


def get_z_from_xy(x, y) -> np.ndarray:
    """Reconstruct the upper hemisphere Z component of a unit normal.

    The radicand ``1 - x^2 - y^2`` collapses to 0 below float32 epsilon so
    slightly denormalised inputs never yield NaN.
    """

    x = np.asarray(x, dtype=np.float32)
    y = np.asarray(y, dtype=np.float32)
    radicand = _ONE - (x * x + y * y)
    return np.where(radicand < EPSILON, _ZERO, np.sqrt(np.maximum(radicand, _ZERO))).astype(np.float32)


def _guard_denominator(magnitude: np.ndarray) -> np.ndarray:
    # at the pole the direction is undefined, numerators are ~0 there anyway
    return np.where(magnitude < EPSILON, _ONE, magnitude).astype(np.float32)


def _channels(packed, minimum: int) -> np.ndarray:
    pixels = np.asarray(packed, dtype=np.float32)
    if pixels.ndim == 0 or pixels.shape[-1] < minimum:
        raise ValueError(f"Expected at least {minimum} channels, got array of shape {pixels.shape}")
    return pixels


def basis_to_qlog(packed, params: BiasParameters, *, derive_z: bool = False) -> np.ndarray:
    """Convert packed basis normals to packed QLog normals.

    The third output channel carries no information and is always 0.5.
    With ``derive_z`` the stored Z channel is ignored (and may be absent)
    and recomputed from X and Y.
    """

    pixels = _channels(packed, 2 if derive_z else 3)
    x = unpack_normal(pixels[..., 0])
    y = unpack_normal(pixels[..., 1])
    if derive_z:
        z = get_z_from_xy(x, y)
    else:
        z = unpack_normal(pixels[..., 2])

    denominator = _guard_denominator(np.sqrt(x * x + y * y))
    cos_half_angle = np.sqrt(np.clip((_ONE + z) * _HALF, _ZERO, _ONE))
    half_angle = np.arccos(cos_half_angle)

    u = (x * half_angle) / denominator
    v = (y * half_angle) / denominator

    result = np.empty(pixels.shape[:-1] + (3,), dtype=np.float32)
    result[..., 0] = apply_bias_then_pack(u, params)
    result[..., 1] = apply_bias_then_pack(v, params)
    result[..., 2] = _HALF
    return result


def qlog_to_basis(packed, params: BiasParameters) -> np.ndarray:
    """Convert packed QLog normals back to packed basis normals."""

    pixels = _channels(packed, 2)
    u = unpack_then_remove_bias(pixels[..., 0], params)
    v = unpack_then_remove_bias(pixels[..., 1], params)

    half_angle = np.sqrt(u * u + v * v)
    denominator = _guard_denominator(half_angle)
    angle = _TWO * half_angle
    sin_angle = np.sin(angle)

    result = np.empty(pixels.shape[:-1] + (3,), dtype=np.float32)
    result[..., 0] = pack_normal((u * sin_angle) / denominator)
    result[..., 1] = pack_normal((v * sin_angle) / denominator)
    result[..., 2] = pack_normal(np.cos(angle))
    return result


def pole_mask(packed, params: BiasParameters, *, inverse: bool = False) -> np.ndarray:
    """Boolean mask of pixels that fall on the epsilon-guarded pole."""

    pixels = _channels(packed, 2)
    if inverse:
        a = unpack_then_remove_bias(pixels[..., 0], params)
        b = unpack_then_remove_bias(pixels[..., 1], params)
    else:
        a = unpack_normal(pixels[..., 0])
        b = unpack_normal(pixels[..., 1])
    return np.sqrt(a * a + b * b) < EPSILON
