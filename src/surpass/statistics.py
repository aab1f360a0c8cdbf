"""
Random number sources and a small normal distribution estimator.
"""

import math
from typing import List, Optional, Sequence

import numpy as np


### FUNCTIONS ###
def make_rng(seed: Optional[int] = None, replica_index: int = 0) -> np.random.Generator:
  """Creates an independent random generator for one replica.

  Generators for different ``replica_index`` values derived from the same
  master ``seed`` are statistically independent and reproducible.

  Parameters:
    seed: Master seed, ``None`` draws fresh entropy from the OS
    replica_index: Index of the replica (or sampling thread)

  Returns:
    A numpy random Generator
  """
  ss = np.random.SeedSequence(seed, spawn_key=(replica_index,))
  return np.random.default_rng(ss)


### CLASSES ###
class NormalDistribution:
  """1D normal distribution with plain and trimmed (robust) parameter estimation.

  Parameters:
    mean: Initial mean
    sdev: Initial standard deviation
  """

  def __init__(self, mean: float = 0.0, sdev: float = 1.0):
    self.parameters = [float(mean), float(sdev)]
    self._set_up_constants()

  def __repr__(self):
    return f"<NormalDistribution: mean={self.mean:.4f}, sdev={self.sdev:.4f}>"

  @property
  def mean(self) -> float:
    return self.parameters[0]

  @property
  def sdev(self) -> float:
    return self.parameters[1]

  def _set_up_constants(self):
    self._const = 1.0 / (self.parameters[1] * math.sqrt(2.0 * math.pi)) if self.parameters[1] > 0 else math.inf

  def set_parameters(self, mean: float, sdev: float):
    self.parameters = [float(mean), float(sdev)]
    self._set_up_constants()

  def _fit(self, values: np.ndarray) -> List[float]:
    avg = float(values.mean())
    var = float(np.mean(values * values)) - avg * avg
    self.set_parameters(avg, math.sqrt(max(var, 0.0)))
    return self.parameters

  def estimate(self, observations: Sequence[Sequence[float]], col: int = 0) -> List[float]:
    """Estimates the mean and the standard deviation from column ``col`` of the observations."""
    values = np.asarray(observations, dtype=float)[:, col]
    return self._fit(values)

  def robust_estimate(self, observations: Sequence[Sequence[float]], col: int = 0, max_rounds: int = 100) -> List[float]:
    """
    -------------------------------------------------------
    Estimates parameters with average trimming: observations sorted by
    column ``col`` are trimmed from both ends while they lie further than
    two standard deviations (of the current parameters) from the current
    mean. Trimming stops after ``max_rounds`` rounds, when neither end
    can be trimmed, or (for samples of at most 100 rows) when a quarter of
    the sample has been removed. Both the mean and the sum of squares are
    then accumulated over the same column ``col``.
    -------------------------------------------------------
    Parameters:
      observations: Rows of observations (2D array-like)
      col.........: Column holding the observed variable (int)
      max_rounds..: Upper limit of trimming rounds (int)
    Returns:
      parameters: [mean, sdev] (list<float>)
    """
    values = np.sort(np.asarray(observations, dtype=float)[:, col])
    lo, hi = 0, len(values)
    n = len(values)
    low_cut = self.mean - 2.0 * self.sdev
    high_cut = self.mean + 2.0 * self.sdev
    trim_begin, trim_end = True, True
    for k in range(max_rounds + 1):
      if not (trim_begin or trim_end):
        break
      if n <= 100 and k == n // 4:
        break
      trim_begin = trim_begin and hi - lo > 1 and values[lo] < low_cut
      if trim_begin:
        lo += 1
      trim_end = trim_end and hi - lo > 1 and values[hi - 1] > high_cut
      if trim_end:
        hi -= 1
    return self._fit(values[lo:hi])

  def evaluate(self, x: float) -> float:
    x -= self.parameters[0]
    return self._const * math.exp(-(x * x) / (2.0 * self.parameters[1] * self.parameters[1]))

  @staticmethod
  def cdf(x: float, avg: float, sdev: float) -> float:
    """Probability of drawing a value smaller than ``x``."""
    return 0.5 * (1.0 + math.erf((x - avg) / (sdev * math.sqrt(2.0))))
