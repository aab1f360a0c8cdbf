"""
Tests for the surpass.interpolation module.
"""

import numpy as np
import pytest

from surpass.interpolation import (
  BoundedComponent,
  Interpolate1D,
  Interpolate2D,
  InterpolatePeriodic2D,
  catmull_rom_kernel,
  cubic_kernel,
  interpolate_irregular,
  linear_kernel,
)


@pytest.mark.parametrize("kernel", [catmull_rom_kernel, cubic_kernel, linear_kernel])
def test_kernels_hit_the_inner_nodes(kernel):
  assert kernel(1.0, 2.0, 5.0, 3.0, 0.0) == pytest.approx(2.0)
  assert kernel(1.0, 2.0, 5.0, 3.0, 1.0) == pytest.approx(5.0)


def test_interpolate1d_reproduces_a_quadratic():
  x = np.arange(0.0, 10.01, 0.5)
  f = Interpolate1D(x, (x - 4.3) ** 2)
  for t in (1.2, 3.3, 4.3, 7.77, 9.5):
    assert f(t) == pytest.approx((t - 4.3) ** 2, abs=1e-9)


def test_interpolate1d_boundaries():
  x = np.arange(0.0, 10.01, 1.0)
  y = np.arange(len(x), dtype=float) * 3.0
  f = Interpolate1D(x, y, linear_kernel)
  # below x[0] + 2 * step the first value is returned
  assert f(-5.0) == y[0]
  assert f(1.99) == y[0]
  # above x[n - 2] the last value is returned
  assert f(9.01) == y[-1]
  assert f(100.0) == y[-1]
  assert f(9.0) == pytest.approx(27.0)
  assert f(5.5) == pytest.approx(16.5)


def test_interpolate1d_rejects_bad_grids():
  with pytest.raises(ValueError):
    Interpolate1D([0, 1, 2, 3], [0, 1, 2])
  with pytest.raises(ValueError):
    Interpolate1D([0, 1, 2], [0, 1, 2])


def test_interpolate2d_reproduces_a_plane_and_clamps():
  x = np.arange(0.0, 6.0)
  y = np.arange(0.0, 8.0)
  z = np.add.outer(2.0 * x, 3.0 * y)
  f = Interpolate2D(x, y, z)
  assert f(2.5, 3.25) == pytest.approx(2.0 * 2.5 + 3.0 * 3.25)
  assert np.isfinite(f(-10.0, 100.0))


def test_interpolate2d_borders_follow_interpolate1d():
  x = np.arange(0.0, 6.0)
  y = np.arange(0.0, 8.0)
  z = np.add.outer(2.0 * x, 3.0 * y)
  f = Interpolate2D(x, y, z, linear_kernel)
  # each axis snaps to its first row below t0 + 2 * step, to its last row above x[n - 2]
  assert f(-10.0, 3.25) == pytest.approx(9.75)
  assert f(1.99, 3.25) == pytest.approx(9.75)
  assert f(100.0, 3.25) == pytest.approx(10.0 + 9.75)
  assert f(2.5, -4.0) == pytest.approx(5.0)
  assert f(2.5, 6.5) == pytest.approx(5.0 + 21.0)
  assert f(-1.0, 100.0) == pytest.approx(21.0)
  along_x = Interpolate1D(x, 2.0 * x + 9.0, linear_kernel)
  for t in (-3.0, 0.5, 1.99, 2.0, 3.7, 4.0, 4.01, 12.0):
    assert f(t, 3.0) == pytest.approx(along_x(t))


def test_interpolate2d_rejects_mismatched_values():
  with pytest.raises(ValueError):
    Interpolate2D(np.arange(5.0), np.arange(6.0), np.zeros((6, 5)))


def test_periodic2d_wraps_arguments():
  n = 36
  x = np.arange(n) * 10.0
  z = np.add.outer(np.sin(np.radians(x)), np.cos(np.radians(x)))
  f = InterpolatePeriodic2D(x, x, z)
  assert f(15.0, 25.0) == pytest.approx(f(15.0 + 360.0, 25.0 - 720.0))
  assert f(355.0, 5.0) == pytest.approx(np.sin(np.radians(355.0)) + np.cos(np.radians(5.0)), abs=1e-3)


def test_bounded_component():
  f = BoundedComponent(lambda t: 1.0, 2.0, 4.0)
  assert f(3.0) == 1.0
  assert f(1.0) == pytest.approx(1.0)
  assert f(0.0) == pytest.approx(4.0)
  assert f(7.0) == pytest.approx(9.0)
  with pytest.raises(ValueError):
    BoundedComponent(lambda t: 0.0, 4.0, 2.0)


def test_interpolate_irregular():
  x = [0.0, 1.0, 3.0, 7.0]
  y = [0.0, 2.0, 4.0, 0.0]
  assert interpolate_irregular(x, y, 2.0) == pytest.approx(3.0)
  assert interpolate_irregular(x, y, 5.0) == pytest.approx(2.0)
  assert interpolate_irregular(x, y, -1.0) == 0.0
  assert interpolate_irregular(x, y, 9.0) == 0.0
