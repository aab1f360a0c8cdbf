"""
Geometry primitives used by the SURPASS model: a small 3-vector class,
a periodic box with minimum image deltas and a few helpers that work on
numpy coordinate arrays of shape (n, 3).
"""

import math
from typing import Optional, Sequence

import numpy as np


### CLASSES ###
class Vec3:
  """A point / vector in 3D.

  Besides the coordinates every point carries a small integer ``atom_type``
  (bead class: 0 helix, 1 strand, 2 coil) and an ``id`` used to refer back
  to external tables.
  """

  __slots__ = ("x", "y", "z", "atom_type", "id")

  def __init__(self, x: float = 0.0, y: float = 0.0, z: float = 0.0, atom_type: int = 0, id: int = 0):
    self.x = float(x)
    self.y = float(y)
    self.z = float(z)
    self.atom_type = atom_type
    self.id = id

  def __repr__(self):
    return f"Vec3({self.x:.3f}, {self.y:.3f}, {self.z:.3f})"

  def __iter__(self):
    yield self.x
    yield self.y
    yield self.z

  def __getitem__(self, i: int) -> float:
    return (self.x, self.y, self.z)[i]

  def __eq__(self, other):
    return isinstance(other, Vec3) and self.x == other.x and self.y == other.y and self.z == other.z

  def __add__(self, other: "Vec3") -> "Vec3":
    return Vec3(self.x + other.x, self.y + other.y, self.z + other.z, self.atom_type, self.id)

  def __sub__(self, other: "Vec3") -> "Vec3":
    return Vec3(self.x - other.x, self.y - other.y, self.z - other.z, self.atom_type, self.id)

  def __mul__(self, f: float) -> "Vec3":
    return Vec3(self.x * f, self.y * f, self.z * f, self.atom_type, self.id)

  __rmul__ = __mul__

  def __truediv__(self, f: float) -> "Vec3":
    return Vec3(self.x / f, self.y / f, self.z / f, self.atom_type, self.id)

  def __neg__(self) -> "Vec3":
    return Vec3(-self.x, -self.y, -self.z, self.atom_type, self.id)

  def __iadd__(self, other: "Vec3") -> "Vec3":
    self.x += other.x
    self.y += other.y
    self.z += other.z
    return self

  def __isub__(self, other: "Vec3") -> "Vec3":
    self.x -= other.x
    self.y -= other.y
    self.z -= other.z
    return self

  def __imul__(self, f: float) -> "Vec3":
    self.x *= f
    self.y *= f
    self.z *= f
    return self

  def __itruediv__(self, f: float) -> "Vec3":
    self.x /= f
    self.y /= f
    self.z /= f
    return self

  def set(self, other: "Vec3"):
    self.x, self.y, self.z = other.x, other.y, other.z

  def dot(self, other: "Vec3") -> float:
    return self.x * other.x + self.y * other.y + self.z * other.z

  def cross(self, other: "Vec3") -> "Vec3":
    return Vec3(
      self.y * other.z - self.z * other.y,
      self.z * other.x - self.x * other.z,
      self.x * other.y - self.y * other.x,
    )

  def length_squared(self) -> float:
    return self.x * self.x + self.y * self.y + self.z * self.z

  def length(self) -> float:
    return math.sqrt(self.length_squared())

  def norm(self) -> float:
    """Normalizes this vector in place.

    Returns:
      The length of the vector before normalization; a zero vector is left untouched
    """
    d = self.length()
    if d > 0.0:
      self.x /= d
      self.y /= d
      self.z /= d
    return d

  def distance_square_to(self, other: "Vec3") -> float:
    dx = self.x - other.x
    dy = self.y - other.y
    dz = self.z - other.z
    return dx * dx + dy * dy + dz * dz

  def distance_to(self, other: "Vec3") -> float:
    return math.sqrt(self.distance_square_to(other))

  def to_array(self) -> np.ndarray:
    return np.array([self.x, self.y, self.z])


class PeriodicBox:
  """A cubic periodic box of width ``box_len``.

  ``wrap`` always returns the floor-based representative in ``[0, L)``;
  ``closest_delta`` returns the signed displacement to the nearest image,
  ``|d| <= L/2`` and ``closest_delta(a, b) == -closest_delta(b, a)``.
  """

  def __init__(self, box_len: float = 1000.0):
    self.set_box_len(box_len)

  def set_box_len(self, box_len: float):
    if box_len <= 0:
      raise ValueError(f"Box width must be positive, got {box_len}")
    self.box_len = float(box_len)
    self.half_box_len = self.box_len / 2.0

  def wrap(self, x: float) -> float:
    return x - self.box_len * math.floor(x / self.box_len)

  def delta(self, a: float, b: float) -> float:
    """Minimum image of ``b - a`` along one axis."""
    d = b - a
    if -self.half_box_len <= d <= self.half_box_len:
      return d
    # reduce the magnitude only, so that both signs are treated identically
    m = abs(d)
    m -= self.box_len * math.floor(m / self.box_len)
    if m > self.half_box_len:
      m -= self.box_len
    return m if d > 0 else -m

  def closest_delta(self, a: Sequence[float], b: Sequence[float]):
    return (self.delta(a[0], b[0]), self.delta(a[1], b[1]), self.delta(a[2], b[2]))

  def closest_distance_square(self, a: Sequence[float], b: Sequence[float]) -> float:
    dx, dy, dz = self.closest_delta(a, b)
    return dx * dx + dy * dy + dz * dz


class Vec3Periodic(Vec3):
  """A :obj:`Vec3` whose distances are measured through the process-wide periodic box."""

  __slots__ = ()

  def wrap_x(self) -> float:
    return _BOX.wrap(self.x)

  def wrap_y(self) -> float:
    return _BOX.wrap(self.y)

  def wrap_z(self) -> float:
    return _BOX.wrap(self.z)

  def wrap(self) -> "Vec3Periodic":
    return Vec3Periodic(self.wrap_x(), self.wrap_y(), self.wrap_z(), self.atom_type, self.id)

  def closest_delta_x(self, other: Vec3) -> float:
    return _BOX.delta(self.x, other.x)

  def closest_delta_y(self, other: Vec3) -> float:
    return _BOX.delta(self.y, other.y)

  def closest_delta_z(self, other: Vec3) -> float:
    return _BOX.delta(self.z, other.z)

  def closest_distance_square_to(self, other: Vec3) -> float:
    return _BOX.closest_distance_square(self, other)

  def closest_distance_to(self, other: Vec3) -> float:
    return math.sqrt(self.closest_distance_square_to(other))


### GLOBALS ###
_BOX = PeriodicBox()


### FUNCTIONS ###
def set_box_len(box_len: float):
  """Sets the width of the process-wide periodic box. Call it once, before sampling starts."""
  _BOX.set_box_len(box_len)


def get_box() -> PeriodicBox:
  return _BOX


def distance(a: Sequence[float], b: Sequence[float]) -> float:
  dx = a[0] - b[0]
  dy = a[1] - b[1]
  dz = a[2] - b[2]
  return math.sqrt(dx * dx + dy * dy + dz * dz)


def r14x(p1: Sequence[float], p2: Sequence[float], p3: Sequence[float], p4: Sequence[float]) -> float:
  """
  -------------------------------------------------------
  Signed distance between the first and the fourth of four consecutive points.
  The sign is the handedness of the three pseudo-bond vectors,
  i.e. the sign of det(p2-p1, p3-p2, p4-p3): positive for right-handed
  (helical) turns and negative for left-handed ones.
  -------------------------------------------------------
  Parameters:
    p1..p4: Four consecutive bead positions (any indexable triple of floats)
  Returns:
    r14x: The signed pseudo-dihedral length (float)
  """
  ax, ay, az = p2[0] - p1[0], p2[1] - p1[1], p2[2] - p1[2]
  bx, by, bz = p3[0] - p2[0], p3[1] - p2[1], p3[2] - p2[2]
  cx, cy, cz = p4[0] - p3[0], p4[1] - p3[1], p4[2] - p3[2]
  det = ax * (by * cz - bz * cy) - ay * (bx * cz - bz * cx) + az * (bx * cy - by * cx)
  d = distance(p1, p4)
  return -d if det < 0 else d


def planar_angle(a: Sequence[float], b: Sequence[float], c: Sequence[float]) -> float:
  """Returns the a-b-c angle in degrees; 0 if any two points coincide."""
  ux, uy, uz = a[0] - b[0], a[1] - b[1], a[2] - b[2]
  vx, vy, vz = c[0] - b[0], c[1] - b[1], c[2] - b[2]
  nu = math.sqrt(ux * ux + uy * uy + uz * uz)
  nv = math.sqrt(vx * vx + vy * vy + vz * vz)
  if nu == 0.0 or nv == 0.0:
    return 0.0
  cos = (ux * vx + uy * vy + uz * vz) / (nu * nv)
  return math.degrees(math.acos(max(-1.0, min(1.0, cos))))


def centroid(xyz: np.ndarray) -> np.ndarray:
  return np.asarray(xyz, dtype=float).mean(axis=0)


def rg_square(xyz: np.ndarray) -> float:
  """Squared radius of gyration of a set of points."""
  xyz = np.asarray(xyz, dtype=float)
  return float(np.mean(np.sum((xyz - xyz.mean(axis=0)) ** 2, axis=1)))


def rigid_translate(xyz: np.ndarray, v: Sequence[float]):
  """Translates the coordinates in place."""
  xyz += np.asarray(v, dtype=xyz.dtype)


def random_rotation(rng: Optional[np.random.Generator] = None) -> np.ndarray:
  """Returns a random 3x3 rotation matrix (uniform over SO(3)) built from a random unit quaternion."""
  if rng is None:
    rng = np.random.default_rng()
  q = rng.normal(size=4)
  q /= np.linalg.norm(q)
  w, x, y, z = q
  return np.array(
    [
      [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
      [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
      [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
    ]
  )
