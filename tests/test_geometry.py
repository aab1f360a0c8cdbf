"""
Tests for the surpass.geometry module.
"""

import math

import numpy as np
import pytest

from surpass.geometry import (
  PeriodicBox,
  Vec3,
  Vec3Periodic,
  centroid,
  distance,
  get_box,
  planar_angle,
  r14x,
  random_rotation,
  rg_square,
  rigid_translate,
  set_box_len,
)


@pytest.fixture
def restore_box():
  old = get_box().box_len
  yield
  set_box_len(old)


# -------------------------
# Vec3
# -------------------------


def test_vec3_arithmetic():
  a = Vec3(1, 2, 3)
  b = Vec3(4, 5, 6)
  assert list(a + b) == [5, 7, 9]
  assert list(b - a) == [3, 3, 3]
  assert list(a * 2) == [2, 4, 6]
  assert list(b / 2) == [2, 2.5, 3]
  assert a.dot(b) == 32
  assert list(a.cross(b)) == [-3, 6, -3]
  a += b
  assert list(a) == [5, 7, 9]


def test_vec3_norm_returns_previous_length_and_normalizes():
  v = Vec3(3, 0, 4)
  assert v.norm() == pytest.approx(5.0)
  assert v.length() == pytest.approx(1.0)


def test_vec3_norm_of_zero_vector_is_zero_and_leaves_it_untouched():
  v = Vec3()
  assert v.norm() == 0.0
  assert list(v) == [0.0, 0.0, 0.0]


def test_vec3_distance_to_itself_is_zero():
  v = Vec3(1.5, -2.0, 7.0)
  assert v.distance_to(v) == 0.0
  assert v.distance_square_to(Vec3(1.5, -2.0, 8.0)) == pytest.approx(1.0)


# -------------------------
# Periodic box
# -------------------------


def test_wrap_is_floor_based():
  box = PeriodicBox(10.0)
  assert box.wrap(12.5) == pytest.approx(2.5)
  assert box.wrap(-2.5) == pytest.approx(7.5)
  assert box.wrap(-10.0) == pytest.approx(0.0)


@pytest.mark.parametrize("a,b", [(0.0, 9.0), (1.0, 26.0), (-13.0, 4.0), (3.3, 3.3), (0.0, 5.0), (-5.0, 0.0)])
def test_closest_delta_is_sign_symmetric_and_bounded(a, b):
  box = PeriodicBox(10.0)
  d1 = box.delta(a, b)
  d2 = box.delta(b, a)
  assert d1 == -d2
  assert abs(d1) <= 5.0


def test_closest_delta_returns_minimum_image():
  box = PeriodicBox(10.0)
  assert box.delta(0.0, 9.0) == pytest.approx(-1.0)
  assert box.delta(9.0, 0.0) == pytest.approx(1.0)
  assert box.delta(0.0, 23.0) == pytest.approx(3.0)
  assert box.closest_distance_square((0, 0, 0), (9, 9, 9)) == pytest.approx(3.0)


def test_box_len_must_be_positive():
  with pytest.raises(ValueError):
    PeriodicBox(0.0)


def test_vec3_periodic_uses_process_wide_box(restore_box):
  set_box_len(20.0)
  a = Vec3Periodic(1.0, 1.0, 1.0)
  b = Vec3Periodic(19.0, 1.0, 1.0)
  assert a.closest_delta_x(b) == pytest.approx(-2.0)
  assert b.closest_delta_x(a) == pytest.approx(2.0)
  assert a.closest_distance_to(b) == pytest.approx(2.0)
  assert Vec3Periodic(-1.0, 21.0, 5.0).wrap().x == pytest.approx(19.0)


# -------------------------
# Helpers on coordinates
# -------------------------


def test_r14x_sign_follows_handedness():
  right = [(1, 0, 0), (0, 1, 0.5), (-1, 0, 1.0), (0, -1, 1.5)]
  left = [(x, -y, z) for x, y, z in right]
  d = distance(right[0], right[3])
  assert r14x(*right) == pytest.approx(d)
  assert r14x(*left) == pytest.approx(-d)


def test_planar_angle():
  assert planar_angle((1, 0, 0), (0, 0, 0), (0, 1, 0)) == pytest.approx(90.0)
  assert planar_angle((1, 0, 0), (0, 0, 0), (-1, 0, 0)) == pytest.approx(180.0)
  assert planar_angle((0, 0, 0), (0, 0, 0), (1, 0, 0)) == 0.0


def test_rg_square_and_centroid():
  xyz = np.array([[1.0, 0, 0], [-1.0, 0, 0]])
  assert rg_square(xyz) == pytest.approx(1.0)
  assert np.allclose(centroid(xyz), 0.0)


def test_rigid_translate_in_place():
  xyz = np.zeros((3, 3))
  rigid_translate(xyz, (1, 2, 3))
  assert np.allclose(xyz, [[1, 2, 3]] * 3)


def test_random_rotation_is_orthonormal():
  r = random_rotation(np.random.default_rng(3))
  assert np.allclose(r @ r.T, np.eye(3))
  assert math.isclose(np.linalg.det(r), 1.0, rel_tol=1e-9)
