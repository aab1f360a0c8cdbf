"""
Local knowledge-based terms of the SURPASS force field. Each of them
measures a geometric feature of a short window of beads and scores it with a
1D mean-field potential selected by the secondary structure of the window.
"""

import math
from typing import List, Optional, Sequence, Union

from surpass.config import from_file_or_db
from surpass.constants import DEFAULT_LOCAL_TABLES, SS_CODES
from surpass.forcefield.base import ShortRangeEnergyBase
from surpass.geometry import planar_angle, r14x
from surpass.log import logger
from surpass.mean_field import MeanFieldDistributions, MissingDistributionError, load_1D_distributions
from surpass.structure import SecondaryStructure
from surpass.systems import SurpassModel


### FUNCTIONS ###
def _load_table(table: Union[str, MeanFieldDistributions, None], default: str, pseudocounts: float) -> MeanFieldDistributions:
  if isinstance(table, MeanFieldDistributions):
    return table
  if table is None or table == "-":
    table = default
  return load_1D_distributions(from_file_or_db(table), pseudocounts)


def local_term_parameters(parameters: Sequence[str]):
  """Table file (``-`` for the default one) and pseudocounts from the arguments of a weights file line."""
  table = parameters[0] if len(parameters) > 0 else None
  pseudocounts = float(parameters[1]) if len(parameters) > 1 else -1
  return table, pseudocounts


### CLASSES ###
class SurpassLocalTerm(ShortRangeEnergyBase):
  """
  -------------------------------------------------------
  A short-range term scored with a mean-field table. The potential of
  window ``w`` is the table block keyed by the secondary structure
  letters of beads ``w``, ``w + span // 2`` and ``w + span``.
  -------------------------------------------------------
  Parameters:
    system......: The scored system (SurpassModel)
    table.......: Table path, already loaded table, or None / "-" for the default table (str|MeanFieldDistributions)
    pseudocounts: Pseudocounts used to convert probabilities into energies, see :obj:`load_1D_distributions` (float)
    ss..........: Secondary structure of the beads used to select the potentials; the model's own by default (str)
  Raises:
    MissingDistributionError: when the table lacks a key required by the system
  """

  name = "SurpassLocalTerm"
  span = 0

  def __init__(self, system: SurpassModel, table: Union[str, MeanFieldDistributions, None] = None, pseudocounts: float = -1, ss: Optional[str] = None):
    super().__init__(system, self.span)
    self.xyz = system.coordinates
    self.table = _load_table(table, DEFAULT_LOCAL_TABLES[self.name], pseudocounts)
    ss = system.ss if ss is None else ss
    if len(ss) != self.n_residues:
      raise ValueError(f"Secondary structure of length {len(ss)} given for {self.n_residues} residues")
    self._potentials: List = [None] * self.n_residues
    mid = self.span // 2
    for w in self.windows:
      self._potentials[w] = self.table.at(ss[w] + ss[w + mid] + ss[w + self.span])
    logger.debug(f"{self.name}: {len(self.windows)} windows scored with {self.table.name}")

  def feature(self, w: int) -> float:
    raise NotImplementedError

  def window_energy(self, w: int) -> float:
    return self._potentials[w](self.feature(w))


class SurpassR13(SurpassLocalTerm):
  """Distance between beads ``i`` and ``i + 2``."""

  name = "SurpassR13"
  span = 2
  endpoints_only = True

  def feature(self, w: int) -> float:
    a, b = self.xyz[w], self.xyz[w + 2]
    return math.sqrt((a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (a[2] - b[2]) ** 2)


class SurpassR14(SurpassLocalTerm):
  """Chiral distance between beads ``i`` and ``i + 3`` (see :obj:`surpass.geometry.r14x`)."""

  name = "SurpassR14"
  span = 3

  def feature(self, w: int) -> float:
    x = self.xyz
    return r14x(x[w], x[w + 1], x[w + 2], x[w + 3])


class SurpassR15(SurpassLocalTerm):
  """Distance between beads ``i`` and ``i + 4``."""

  name = "SurpassR15"
  span = 4
  endpoints_only = True

  def feature(self, w: int) -> float:
    a, b = self.xyz[w], self.xyz[w + 4]
    return math.sqrt((a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (a[2] - b[2]) ** 2)


class SurpassA13(SurpassLocalTerm):
  """Planar angle at bead ``i + 1`` of three consecutive beads, in degrees."""

  name = "SurpassA13"
  span = 2

  def feature(self, w: int) -> float:
    x = self.xyz
    return planar_angle(x[w], x[w + 1], x[w + 2])


class ShortRangeMF(ShortRangeEnergyBase):
  """
  -------------------------------------------------------
  Sequence-aware variant of a local distance term. The potential for a
  window is a mixture over the secondary structure probabilities of its two
  end residues: ``sum_jk f_j(first) * f_k(last) * U[aa_first aa_last . j k](d)``
  where ``d`` is the distance between the end beads of the window.
  Keys of the table look like ``AL.HE``.
  -------------------------------------------------------
  Parameters:
    system......: The scored system (SurpassModel)
    table.......: Table path or an already loaded table (str|MeanFieldDistributions)
    secondary...: Sequence and secondary structure fractions of the beads (SecondaryStructure)
    span........: Distance along the chain between the end beads of a window (int)
    pseudocounts: Pseudocounts used to convert probabilities into energies (float)
  """

  name = "ShortRangeMF"
  endpoints_only = True

  def __init__(self, system: SurpassModel, table: Union[str, MeanFieldDistributions], secondary: SecondaryStructure, span: int = 2, pseudocounts: float = -1):
    super().__init__(system, span)
    if len(secondary) != self.n_residues or not secondary.sequence:
      raise ValueError("ShortRangeMF needs a sequence and secondary structure for every residue")
    self.xyz = system.coordinates
    self.secondary = secondary
    self.table = table if isinstance(table, MeanFieldDistributions) else load_1D_distributions(from_file_or_db(table), pseudocounts)
    self._potentials: List = [None] * self.n_residues
    seq = secondary.sequence
    for w in self.windows:
      pair = seq[w] + seq[w + span] + "."
      block = []
      for j in SS_CODES:
        for k in SS_CODES:
          key = pair + j + k
          if not self.table.contains_distribution(key):
            raise MissingDistributionError(key, self.table.known_distributions(), self.table.name)
          block.append(self.table.at(key))
      self._potentials[w] = block

  def window_energy(self, w: int) -> float:
    a, b = self.xyz[w], self.xyz[w + self.span]
    d = math.sqrt((a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (a[2] - b[2]) ** 2)
    f1 = self.secondary.fractions[w]
    f2 = self.secondary.fractions[w + self.span]
    block = self._potentials[w]
    en = 0.0
    for j in range(3):
      for k in range(3):
        en += block[j * 3 + k](d) * f1[j] * f2[k]
    return en
