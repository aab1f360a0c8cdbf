"""
Base classes of energy terms that can be evaluated for a single residue,
a contiguous chunk of residues or the whole system.

Movers rely on these three methods being consistent: the energy difference
of a move is computed by calling ``calculate_by_residue`` (or
``calculate_by_chunk``) on the moved window before and after the move.
"""

from typing import List

import numpy as np

from surpass.systems import ResidueChain


### CLASSES ###
class ByResidueEnergy:
  """Interface shared by every energy term."""

  name = "ByResidueEnergy"

  def __repr__(self):
    return f"<{type(self).__name__}: Name={self.name}>"

  def calculate_by_residue(self, which_residue: int) -> float:
    raise NotImplementedError

  def calculate_by_chunk(self, chunk_from: int, chunk_to: int) -> float:
    raise NotImplementedError

  def calculate(self) -> float:
    raise NotImplementedError


class ShortRangeEnergyBase(ByResidueEnergy):
  """
  -------------------------------------------------------
  A term made of windows of ``span + 1`` consecutive residues.
  Window ``w`` covers residues ``w .. w + span`` and exists only
  when all of them belong to the same chain.
  Subclasses provide :obj:`window_energy`.
  -------------------------------------------------------
  Parameters:
    system: The scored system (ResidueChain)
    span..: Distance along the chain between the first and the last residue of a window (int)
  """

  name = "ShortRangeEnergyBase"
  # True when the windowed feature depends only on the first and the last residue
  endpoints_only = False

  def __init__(self, system: ResidueChain, span: int):
    self.system = system
    self.span = span
    self.n_residues = system.count_residues()
    self.windows: List[int] = []
    for chain in system.chain_ranges:
      first = system.residue_for_atom[chain.first_atom]
      last = system.residue_for_atom[chain.last_atom]
      self.windows.extend(range(int(first), int(last) - span + 1))
    self._is_window = np.zeros(self.n_residues, dtype=bool)
    self._is_window[self.windows] = True

  def window_energy(self, w: int) -> float:
    raise NotImplementedError

  def windows_for_residue(self, which_residue: int) -> List[int]:
    """Windows whose feature changes when ``which_residue`` moves."""
    if self.endpoints_only:
      candidates = (which_residue - self.span, which_residue)
    else:
      candidates = range(which_residue - self.span, which_residue + 1)
    return [w for w in candidates if 0 <= w < self.n_residues and self._is_window[w]]

  def calculate_by_residue(self, which_residue: int) -> float:
    en = 0.0
    for w in self.windows_for_residue(which_residue):
      en += self.window_energy(w)
    return en

  def calculate_by_chunk(self, chunk_from: int, chunk_to: int) -> float:
    en = 0.0
    for w in range(max(0, chunk_from - self.span), min(self.n_residues - 1, chunk_to) + 1):
      if self._is_window[w]:
        en += self.window_energy(w)
    return en

  def calculate(self) -> float:
    en = 0.0
    for w in self.windows:
      en += self.window_energy(w)
    return en


class LongRangeByResidues(ByResidueEnergy):
  """
  -------------------------------------------------------
  A pairwise term. Residues ``i`` and ``j`` interact if and only
  if ``|i - j| >= offset``; subclasses provide the pair kernel.
  -------------------------------------------------------
  Parameters:
    system: The scored system (ResidueChain)
    offset: Minimum sequence separation of an interacting pair (int)
  """

  name = "LongRangeByResidues"

  def __init__(self, system: ResidueChain, offset: int = 1):
    self.system = system
    self.n_residues = system.count_residues()
    self.residue_offset = offset

  @property
  def residue_offset(self) -> int:
    return self._offset

  @residue_offset.setter
  def residue_offset(self, offset: int):
    self._offset = offset
    # with zero offset the self-pair must be visited once only
    self._zero_correction = 1 if offset == 0 else 0

  def energy_kernel(self, moved_residue: int, other_residue: int) -> float:
    raise NotImplementedError

  def calculate_by_residue(self, which_residue: int) -> float:
    en = 0.0
    for ri in range(0, which_residue - self._offset + 1):
      en += self.energy_kernel(which_residue, ri)
    for ri in range(which_residue + self._offset + self._zero_correction, self.n_residues):
      en += self.energy_kernel(which_residue, ri)
    return en

  def calculate_by_chunk(self, chunk_from: int, chunk_to: int) -> float:
    """Chunk residues interacting with the rest of the system and with each other, each pair once."""
    en = 0.0
    for r in range(chunk_from, chunk_to + 1):
      for ri in range(0, min(r - self._offset - self._zero_correction, chunk_from - 1) + 1):
        en += self.energy_kernel(r, ri)
      for ri in range(max(chunk_to + 1, r + self._offset + self._zero_correction), self.n_residues):
        en += self.energy_kernel(r, ri)
    for ir in range(chunk_from + self._offset, chunk_to + 1):
      for jr in range(chunk_from, ir - self._offset + 1):
        en += self.energy_kernel(jr, ir)
    return en

  def calculate(self) -> float:
    en = 0.0
    for k in range(self._offset, self.n_residues):
      for i in range(0, k - self._offset + 1):
        en += self.energy_kernel(k, i)
    return en
