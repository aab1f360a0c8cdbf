"""
Regular-grid interpolators used to evaluate knowledge-based potentials.

Every interpolator is built from a four-point kernel ``K(y0, y1, y2, y3, mu)``
that interpolates between ``y1`` and ``y2`` for ``mu`` in [0, 1].
"""

import bisect
import math
from typing import Callable, Sequence

import numpy as np

Kernel = Callable[[float, float, float, float, float], float]


### FUNCTIONS ###
def catmull_rom_kernel(y0: float, y1: float, y2: float, y3: float, mu: float) -> float:
  mu2 = mu * mu
  a0 = -0.5 * y0 + 1.5 * y1 - 1.5 * y2 + 0.5 * y3
  a1 = y0 - 2.5 * y1 + 2.0 * y2 - 0.5 * y3
  a2 = -0.5 * y0 + 0.5 * y2
  return a0 * mu * mu2 + a1 * mu2 + a2 * mu + y1


def cubic_kernel(y0: float, y1: float, y2: float, y3: float, mu: float) -> float:
  mu2 = mu * mu
  a0 = y3 - y2 - y0 + y1
  a1 = y0 - y1 - a0
  a2 = y2 - y0
  return a0 * mu * mu2 + a1 * mu2 + a2 * mu + y1


def linear_kernel(y0: float, y1: float, y2: float, y3: float, mu: float) -> float:
  return y1 + (y2 - y1) * mu


def interpolate_irregular(x: Sequence[float], y: Sequence[float], t: float) -> float:
  """Piecewise linear interpolation on a sorted, not necessarily uniform grid.
  Arguments outside the grid are clamped to the first / last value."""
  if len(x) != len(y):
    raise ValueError(f"Grid has {len(x)} points but {len(y)} values were given")
  if t <= x[0]:
    return y[0]
  if t >= x[-1]:
    return y[-1]
  k = bisect.bisect_right(x, t) - 1
  mu = (t - x[k]) / (x[k + 1] - x[k])
  return y[k] + (y[k + 1] - y[k]) * mu


def _check_grid(x: Sequence[float], name: str):
  if len(x) < 4:
    raise ValueError(f"At least four grid points are required along {name}, got {len(x)}")
  step = x[1] - x[0]
  if step <= 0:
    raise ValueError(f"Grid along {name} must be increasing")
  return float(x[0]), float(step)


### CLASSES ###
class Interpolate1D:
  """Interpolates a function tabulated on a uniform grid.

  Parameters:
    x: Uniformly spaced grid points (at least four)
    y: Function values at the grid points
    kernel: Four-point interpolation kernel, Catmull-Rom by default

  Raises:
    ValueError: When ``x`` and ``y`` differ in size or the grid is too short
  """

  def __init__(self, x: Sequence[float], y: Sequence[float], kernel: Kernel = catmull_rom_kernel):
    if len(x) != len(y):
      raise ValueError(f"Interpolation grid has {len(x)} points but {len(y)} values were given")
    self.x0, self.step = _check_grid(x, "x")
    self.x = [float(v) for v in x]
    self.y = [float(v) for v in y]
    self.n = len(self.x)
    self.kernel = kernel
    self._low = self.x0 + 2.0 * self.step
    self._high = self.x[self.n - 2]

  def __call__(self, t: float) -> float:
    if t < self._low:
      return self.y[0]
    if t > self._high:
      return self.y[-1]
    klo = min(int((t - self.x0) / self.step), self.n - 3)
    mu = (t - self.x[klo]) / self.step
    y = self.y
    return self.kernel(y[klo - 1], y[klo], y[klo + 1], y[klo + 2], mu)


class Interpolate2D:
  """Interpolates a function tabulated on a uniform 2D grid.

  Interpolation runs first along X for the four neighbouring Y rows, then
  along Y. Each axis treats its borders the way :obj:`Interpolate1D` does:
  an argument below ``t0 + 2 * step`` takes the first grid row along that
  axis, an argument above the next-to-last grid point takes the last one.

  Parameters:
    x: Uniform grid along the first dimension (nx points)
    y: Uniform grid along the second dimension (ny points)
    z: Values, array-like of shape (nx, ny)
    kernel: Four-point interpolation kernel
  """

  def __init__(self, x: Sequence[float], y: Sequence[float], z, kernel: Kernel = catmull_rom_kernel):
    z = np.asarray(z, dtype=float)
    if z.shape != (len(x), len(y)):
      raise ValueError(f"Values of shape {z.shape} don't match the ({len(x)}, {len(y)}) grid")
    self.x0, self.step_x = _check_grid(x, "x")
    self.y0, self.step_y = _check_grid(y, "y")
    self.nx, self.ny = z.shape
    self.z = z.tolist()
    self.kernel = kernel

  def _locate(self, t: float, t0: float, step: float, n: int):
    """Four neighbour indexes along one axis and the fraction between the inner two."""
    if t < t0 + 2.0 * step:
      return (0, 0, 0, 0), 0.0
    if t > t0 + (n - 2) * step:
      return (n - 1,) * 4, 0.0
    k = min(int((t - t0) / step), n - 3)
    return (k - 1, k, k + 1, k + 2), (t - (t0 + k * step)) / step

  def __call__(self, tx: float, ty: float) -> float:
    ix, mux = self._locate(tx, self.x0, self.step_x, self.nx)
    iy, muy = self._locate(ty, self.y0, self.step_y, self.ny)
    z = self.z
    rows = []
    for j in iy:
      rows.append(self.kernel(z[ix[0]][j], z[ix[1]][j], z[ix[2]][j], z[ix[3]][j], mux))
    return self.kernel(rows[0], rows[1], rows[2], rows[3], muy)


class InterpolatePeriodic2D(Interpolate2D):
  """2D interpolation of a function periodic in both dimensions, e.g. a
  torsion-angle map. The period along each axis is ``n * step``; arguments
  are wrapped into the grid and neighbour indexes wrap modulo ``n``."""

  def _locate(self, t: float, t0: float, step: float, n: int):
    period = n * step
    t = t0 + (t - t0) - period * math.floor((t - t0) / period)
    k = int((t - t0) / step) % n
    mu = min(max((t - (t0 + k * step)) / step, 0.0), 1.0)
    return ((k - 1) % n, k, (k + 1) % n, (k + 2) % n), mu


class BoundedComponent:
  """Wraps a 1D function with a quadratic penalty outside ``[x_b, x_e]``."""

  def __init__(self, fn: Callable[[float], float], x_b: float, x_e: float):
    if x_e < x_b:
      raise ValueError(f"Upper bound {x_e} is below the lower bound {x_b}")
    self.fn = fn
    self.x_b = float(x_b)
    self.x_e = float(x_e)

  def __call__(self, x: float) -> float:
    if x < self.x_b:
      return (x - self.x_b) ** 2
    if x > self.x_e:
      return (self.x_e - x) ** 2
    return self.fn(x)
