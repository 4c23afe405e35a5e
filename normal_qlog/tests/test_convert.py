"""Tests for the basis <-> QLog per-pixel converters."""
from __future__ import annotations

import numpy as np
import pytest

from normal_qlog.modules.qlog.bias import calibrate_bias, unpack_then_remove_bias
from normal_qlog.modules.qlog.convert import (
    basis_to_qlog,
    get_z_from_xy,
    pack_normal,
    pole_mask,
    qlog_to_basis,
)

ROUND_TRIP_BIASES = [-1.0, -0.5, 0.0, 0.5, 2.0]


def _unit_normals(count: int = 2000, seed: int = 7) -> np.ndarray:
    """Packed unit normals with polar angle in [0.05, 2.8] radians."""

    rng = np.random.default_rng(seed)
    theta = rng.uniform(0.05, 2.8, count)
    phi = rng.uniform(-np.pi, np.pi, count)
    vectors = np.stack(
        [np.sin(theta) * np.cos(phi), np.sin(theta) * np.sin(phi), np.cos(theta)],
        axis=-1,
    )
    return pack_normal(vectors.astype(np.float32))


@pytest.mark.parametrize("bias", [-3.0, 0.0, 0.5, 4.0])
def test_pole_maps_to_neutral_qlog(bias: float) -> None:
    params = calibrate_bias(bias)
    result = basis_to_qlog(np.array([0.5, 0.5, 1.0], dtype=np.float32), params)
    np.testing.assert_array_equal(result, np.array([0.5, 0.5, 0.5], dtype=np.float32))


def test_x_axis_maps_to_edge_of_qlog_range() -> None:
    result = basis_to_qlog(np.array([1.0, 0.5, 0.5], dtype=np.float32), calibrate_bias(0.0))
    np.testing.assert_allclose(result, [1.0, 0.5, 0.5], atol=1e-6)


def test_negative_y_axis_maps_to_lower_edge() -> None:
    result = basis_to_qlog(np.array([0.5, 0.0, 0.5], dtype=np.float32), calibrate_bias(0.0))
    np.testing.assert_allclose(result, [0.5, 0.0, 0.5], atol=1e-6)


@pytest.mark.parametrize("bias", [-3.0, 0.0, 2.0])
def test_neutral_qlog_maps_to_pole(bias: float) -> None:
    result = qlog_to_basis(np.array([0.5, 0.5, 0.5], dtype=np.float32), calibrate_bias(bias))
    np.testing.assert_array_equal(result, np.array([0.5, 0.5, 1.0], dtype=np.float32))


@pytest.mark.parametrize("bias", ROUND_TRIP_BIASES)
def test_forward_then_inverse_round_trip(bias: float) -> None:
    params = calibrate_bias(bias)
    normals = _unit_normals()
    restored = qlog_to_basis(basis_to_qlog(normals, params), params)
    np.testing.assert_allclose(restored, normals, atol=1e-4)


@pytest.mark.parametrize("bias", ROUND_TRIP_BIASES)
def test_inverse_then_forward_round_trip(bias: float) -> None:
    params = calibrate_bias(bias)
    rng = np.random.default_rng(11)
    qlog = rng.uniform(0.1, 0.9, (500, 2)).astype(np.float32)
    # float32 cannot resolve z = cos(2h) for tiny half-angles, keep away from the pole
    qlog = qlog[np.abs(qlog - 0.5).max(axis=-1) > 0.15]
    # tiny unbiased components vanish once packed around 0.5 as basis x or y
    unbiased = unpack_then_remove_bias(qlog, params)
    qlog = qlog[np.abs(unbiased).min(axis=-1) > 1e-3]
    assert len(qlog) > 100
    restored = basis_to_qlog(qlog_to_basis(qlog, params), params)
    np.testing.assert_allclose(restored[..., :2], qlog, atol=1e-4)


def test_round_trip_close_to_pole_stays_finite() -> None:
    params = calibrate_bias(0.0)
    vectors = np.array([[1e-3, 0.0, 1.0], [0.0, -1e-3, 1.0], [1e-6, 1e-6, 1.0]], dtype=np.float32)
    normals = pack_normal(vectors)
    restored = qlog_to_basis(basis_to_qlog(normals, params), params)
    assert np.isfinite(restored).all()
    np.testing.assert_allclose(restored, normals, atol=1e-3)


def test_derive_z_ignores_stored_z() -> None:
    params = calibrate_bias(0.25)
    normals = _unit_normals(200, seed=3)
    upper = normals[normals[:, 2] > 0.5]
    garbage = upper.copy()
    garbage[:, 2] = 0.0
    derived = basis_to_qlog(garbage, params, derive_z=True)
    stored = basis_to_qlog(upper, params)
    np.testing.assert_allclose(derived, stored, atol=1e-4)


def test_derive_z_accepts_two_channels() -> None:
    params = calibrate_bias(0.0)
    result = basis_to_qlog(np.array([[0.5, 0.5]], dtype=np.float32), params, derive_z=True)
    np.testing.assert_array_equal(result, [[0.5, 0.5, 0.5]])


def test_forward_requires_z_channel_without_derive_z() -> None:
    with pytest.raises(ValueError):
        basis_to_qlog(np.array([0.5, 0.5], dtype=np.float32), calibrate_bias(0.0))


def test_inverse_requires_two_channels() -> None:
    with pytest.raises(ValueError):
        qlog_to_basis(np.array([0.5], dtype=np.float32), calibrate_bias(0.0))


def test_get_z_from_xy_values() -> None:
    z = get_z_from_xy(np.array([0.6, 0.0, 0.0, 0.8]), np.array([0.0, 0.0, 1.0, 0.8]))
    np.testing.assert_allclose(z, [0.8, 1.0, 0.0, 0.0], atol=1e-6)


def test_get_z_from_xy_is_never_negative_or_nan() -> None:
    rng = np.random.default_rng(5)
    x = rng.uniform(-1.5, 1.5, 1000)
    y = rng.uniform(-1.5, 1.5, 1000)
    z = get_z_from_xy(x, y)
    assert np.isfinite(z).all()
    assert (z >= 0.0).all()


@pytest.mark.parametrize("bias", [-4.0, 0.0, 4.0])
@pytest.mark.parametrize("derive_z", [False, True])
def test_arbitrary_packed_input_never_produces_nan(bias: float, derive_z: bool) -> None:
    params = calibrate_bias(bias)
    rng = np.random.default_rng(13)
    pixels = rng.uniform(0.0, 1.0, (64, 64, 3)).astype(np.float32)
    pixels[0, 0] = [0.5, 0.5, 0.5]
    pixels[0, 1] = [0.0, 0.0, 0.0]
    pixels[0, 2] = [1.0, 1.0, 1.0]
    forward = basis_to_qlog(pixels, params, derive_z=derive_z)
    inverse = qlog_to_basis(pixels, params)
    assert np.isfinite(forward).all()
    assert np.isfinite(inverse).all()
    assert (forward[..., 2] == 0.5).all()


def test_converters_keep_leading_shape() -> None:
    params = calibrate_bias(0.0)
    pixels = np.full((4, 5, 4), 0.5, dtype=np.float32)
    assert basis_to_qlog(pixels, params).shape == (4, 5, 3)
    assert qlog_to_basis(pixels, params).shape == (4, 5, 3)


def test_pole_mask_flags_only_pole_pixels() -> None:
    params = calibrate_bias(0.0)
    pixels = np.array([[0.5, 0.5, 1.0], [0.75, 0.5, 0.9], [0.5, 0.5, 0.5]], dtype=np.float32)
    np.testing.assert_array_equal(pole_mask(pixels, params), [True, False, True])
    np.testing.assert_array_equal(pole_mask(pixels, params, inverse=True), [True, False, True])
