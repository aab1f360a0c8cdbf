"""
Scalar measurements of a system, printed as columns by
:obj:`surpass.observers.ObserveEvaluators`.
"""

import time
from typing import Callable, Optional

import numpy as np
from Bio.SVDSuperimposer import SVDSuperimposer

from surpass.geometry import get_box, rg_square
from surpass.systems import ResidueChain


### CLASSES ###
class Evaluator:
  """Base class of evaluators: a name, a column width and ``evaluate()``."""

  name = "Evaluator"
  min_width = 5
  precision = 2

  def evaluate(self) -> float:
    raise NotImplementedError

  @property
  def width(self) -> int:
    return max(self.min_width, len(self.name))

  def header_string(self) -> str:
    return f"{self.name:^{self.width}}"

  def value_string(self) -> str:
    return f"{self.evaluate():{self.width}.{self.precision}f}"


class Timer(Evaluator):
  """Wall time in seconds since the evaluator was created."""

  name = "time"
  min_width = 8

  def __init__(self):
    self.start = time.perf_counter()

  def evaluate(self) -> float:
    return time.perf_counter() - self.start


class RgSquare(Evaluator):
  """Squared radius of gyration of the whole system."""

  name = "Rg^2"

  def __init__(self, system: ResidueChain):
    self.system = system

  def evaluate(self) -> float:
    return rg_square(self.system.coordinates)


class REndSquare(Evaluator):
  """Squared distance between the first and the last atom of a chain, using the minimum image."""

  name = "REnd^2"

  def __init__(self, system: ResidueChain, chain: int = 0):
    self.system = system
    self.chain = chain

  def evaluate(self) -> float:
    r = self.system.atoms_for_chain(self.chain)
    return get_box().closest_distance_square(self.system.coordinates[r.first_atom], self.system.coordinates[r.last_atom])


class CM(Evaluator):
  """Distance of the centre of mass from the origin."""

  name = "CM"
  min_width = 7

  def __init__(self, system: ResidueChain):
    self.system = system

  def evaluate(self) -> float:
    return float(np.linalg.norm(self.system.coordinates.mean(axis=0)))


class CrmsdEvaluator(Evaluator):
  """
  -------------------------------------------------------
  Coordinate RMSD to a reference conformation after optimal superposition.
  -------------------------------------------------------
  Parameters:
    system...: The observed system (ResidueChain)
    reference: Reference coordinates of the same shape (np.ndarray)
    name.....: Column name (str)
  Raises:
    ValueError: when the reference has a different number of atoms
  """

  min_width = 8

  def __init__(self, system: ResidueChain, reference, name: str = "crmsd"):
    reference = np.asarray(reference, dtype=np.float64)
    if reference.shape != system.coordinates.shape:
      raise ValueError(f"Reference has {len(reference)} atoms, the system has {system.n_atoms}")
    self.system = system
    self.reference = reference.copy()
    self.name = name
    self.sup = SVDSuperimposer()

  def evaluate(self) -> float:
    self.sup.set(self.reference, self.system.coordinates.copy())
    self.sup.run()
    return float(self.sup.get_rms())


class EchoEvaluator(Evaluator):
  """Prints any value computed by a callable, e.g. a single energy term or a temperature."""

  def __init__(self, getter: Callable[[], float], name: str, min_width: int = 8, precision: int = 2):
    self.getter = getter
    self.name = name
    self.min_width = min_width
    self.precision = precision

  def evaluate(self) -> float:
    return float(self.getter())


### FUNCTIONS ###
def standard_evaluators(system: ResidueChain, reference: Optional[np.ndarray] = None):
  """Timer, Rg^2 and end-to-end distance, plus crmsd when a reference is given."""
  out = [Timer(), RgSquare(system), REndSquare(system)]
  if reference is not None:
    out.append(CrmsdEvaluator(system, reference))
  return out
