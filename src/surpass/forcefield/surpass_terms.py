"""
Non-local terms of the SURPASS force field: helix stiffness, local
excluded volume, globularity of chains and square-well contacts.
"""

import math
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from surpass.config import from_file_or_db
from surpass.constants import (
  ATOM_TYPE_COIL,
  ATOM_TYPE_HELIX,
  ATOM_TYPE_STRAND,
  DEFAULT_CONTACT_TABLE,
  LOCAL_REPULSION_CAPS,
  LOCAL_REPULSION_CUTOFF,
  LOCAL_REPULSION_SEQ_SEPARATION,
)
from surpass.forcefield.base import ByResidueEnergy, LongRangeByResidues
from surpass.forcefield.hydrogen_bond import SurpassHydrogenBond
from surpass.log import logger
from surpass.systems import SurpassModel


### CLASSES ###
class SurpassHelixStiffness(ByResidueEnergy):
  """
  -------------------------------------------------------
  Keeps helices straight. For a helix of ``L`` beads the expected
  end-to-end distance is ``D = 1.45 L - 1.8``; a shorter helix pays
  ``L * penalty`` where the penalty is ``(D - 2) - d`` for helices of 10 to
  30 beads shorter than ``D - 2`` and ``D - d`` for any helix shorter
  than ``D``.

  The energy of a helix is reported once by :obj:`calculate` and by
  :obj:`calculate_by_chunk`; :obj:`calculate_by_residue` returns the
  energy of the helix the residue belongs to (zero outside helices).
  -------------------------------------------------------
  Parameters:
    system: The scored system (SurpassModel)
  """

  name = "SurpassHelixStiffness"

  def __init__(self, system: SurpassModel):
    self.system = system
    self.xyz = system.coordinates

  @staticmethod
  def penalty(length: int, d: float) -> float:
    expected = 1.45 * length - 1.8
    if 10 <= length <= 30 and d < expected - 2:
      return (expected - 2) - d
    if d < expected:
      return expected - d
    return 0.0

  def helix_energy(self, helix_index: int) -> float:
    h = self.system.alfa_ranges[helix_index]
    a, b = self.xyz[h.first_atom], self.xyz[h.last_atom]
    d = math.sqrt((a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (a[2] - b[2]) ** 2)
    return h.size * self.penalty(h.size, d)

  def calculate_by_residue(self, which_residue: int) -> float:
    atom = self.system.atoms_for_residue(which_residue).first_atom
    helix = self.system.alfa_index_for_atoms[atom]
    if helix == self.system.n_atoms:
      return 0.0
    return self.helix_energy(int(helix))

  def calculate_by_chunk(self, chunk_from: int, chunk_to: int) -> float:
    first = self.system.atoms_for_residue(chunk_from).first_atom
    last = self.system.atoms_for_residue(chunk_to).last_atom
    helices = {int(h) for h in self.system.alfa_index_for_atoms[first : last + 1] if h != self.system.n_atoms}
    return sum(self.helix_energy(h) for h in sorted(helices))

  def calculate(self) -> float:
    return sum(self.helix_energy(h) for h in range(len(self.system.alfa_ranges)))


class SurpassLocalRepulsion(ByResidueEnergy):
  """
  -------------------------------------------------------
  Local excluded volume. Bead ``i`` counts the beads ``j`` with
  ``|i - j| >= 4`` inside a sphere of 6 A around it; above the cap
  of its class (helix 2, strand 6, coil 4) it pays ``(count - cap)^2``.

  Moving a bead changes the count of every bead at least four positions
  away, so :obj:`calculate_by_residue` and :obj:`calculate_by_chunk`
  return the penalties of the moved beads together with the penalties of
  every bead whose count may include a moved bead. Only the beads closer
  than four positions to all the moved ones are left out.
  -------------------------------------------------------
  Parameters:
    system: The scored system (SurpassModel)
  """

  name = "SurpassLocalRepulsion"

  def __init__(self, system: SurpassModel):
    self.system = system
    self.xyz = system.coordinates
    self._r2 = LOCAL_REPULSION_CUTOFF * LOCAL_REPULSION_CUTOFF
    self._caps = np.array([LOCAL_REPULSION_CAPS[int(t)] for t in system.atom_type])
    n = system.n_atoms
    idx = np.arange(n)
    self._far = np.abs(idx[:, None] - idx[None, :]) >= LOCAL_REPULSION_SEQ_SEPARATION

  def count_neighbors(self, atom: int) -> int:
    d = self.xyz - self.xyz[atom]
    r2 = np.einsum("ij,ij->i", d, d)
    return int(np.count_nonzero((r2 < self._r2) & self._far[atom]))

  def penalties(self) -> np.ndarray:
    """Penalty of every bead."""
    d = self.xyz[:, None, :] - self.xyz[None, :, :]
    r2 = np.einsum("ijk,ijk->ij", d, d)
    excess = np.count_nonzero((r2 < self._r2) & self._far, axis=1) - self._caps
    return np.where(excess > 0, excess * excess, 0).astype(float)

  def _dependent_energy(self, first_atom: int, last_atom: int) -> float:
    pen = self.penalties()
    # beads within three positions of every moved bead keep their count
    lo = max(last_atom - LOCAL_REPULSION_SEQ_SEPARATION + 1, 0)
    hi = min(first_atom + LOCAL_REPULSION_SEQ_SEPARATION - 1, self.system.n_atoms - 1)
    en = float(pen.sum())
    for j in range(lo, hi + 1):
      if j < first_atom or j > last_atom:
        en -= pen[j]
    return en

  def calculate_by_residue(self, which_residue: int) -> float:
    r = self.system.atoms_for_residue(which_residue)
    return self._dependent_energy(r.first_atom, r.last_atom)

  def calculate_by_chunk(self, chunk_from: int, chunk_to: int) -> float:
    first = self.system.atoms_for_residue(chunk_from).first_atom
    last = self.system.atoms_for_residue(chunk_to).last_atom
    return self._dependent_energy(first, last)

  def calculate(self) -> float:
    return float(self.penalties().sum())


class SurpassCentrosymmetric(ByResidueEnergy):
  """
  -------------------------------------------------------
  Globularity of every chain. For a chain of ``n`` beads the beads
  within ``R = sqrt(n + 18)`` from the chain centroid are counted:
  fewer than half of the chain costs ``0.2 sqrt(floor(n/2) - count) + 5``,
  more than 60% costs ``5 (count - floor(0.6 n))``.
  -------------------------------------------------------
  Parameters:
    system: The scored system (SurpassModel)
  """

  name = "SurpassCentrosymmetric"

  def __init__(self, system: SurpassModel):
    self.system = system
    self.xyz = system.coordinates

  def chain_energy(self, chain: int) -> float:
    r = self.system.atoms_for_chain(chain)
    n = r.size
    xyz = self.xyz[r.first_atom : r.last_atom + 1]
    d = xyz - xyz.mean(axis=0)
    count = int(np.count_nonzero(np.einsum("ij,ij->i", d, d) < n + 18.0))
    if count < 0.5 * n:
      return 0.2 * math.sqrt(int(0.5 * n) - count) + 5.0
    if count > 0.6 * n:
      return 5.0 * (count - int(0.6 * n))
    return 0.0

  def calculate_by_residue(self, which_residue: int) -> float:
    atom = self.system.atoms_for_residue(which_residue).first_atom
    return self.chain_energy(self.system.chain_for(atom))

  def calculate_by_chunk(self, chunk_from: int, chunk_to: int) -> float:
    return self.calculate_by_residue(chunk_from)

  def calculate(self) -> float:
    return sum(self.chain_energy(k) for k in range(self.system.count_chains()))


class SurpassContactEnergy(LongRangeByResidues):
  """
  -------------------------------------------------------
  Square-well contacts between beads of different secondary structure
  elements. A pair closer than ``shift + min_distance`` pays
  ``high_energy``; a pair between ``ave_distance`` and ``max_distance``
  earns ``low_energy`` unless one of the beads is a coil or both are
  strands of the same sheet. Pairs closer than five positions along the
  chain (six for two helix beads) are skipped.

  The distance thresholds are read from a table of rows
  ``type_i type_j min_distance ave_distance max_distance``
  indexed by bead class (0 helix, 1 strand, 2 coil).

  Sheets are found again from the current coordinates on every call.
  When the moved residues can change the sheets, the residue and chunk
  energies also include the strand pairs not involving them.
  -------------------------------------------------------
  Parameters:
    system.......: The scored system (SurpassModel)
    high_energy..: Energy of a clash (float)
    low_energy...: Energy of a contact (float)
    contact_shift: Added to every clash distance (float)
    table........: Cut-off table path; the default database table when not given (str)
    hydrogen_bond: Term whose sheets are used to group strands; a new one when not given (SurpassHydrogenBond)
  """

  name = "SurpassContactEnergy"

  def __init__(
    self,
    system: SurpassModel,
    high_energy: float,
    low_energy: float,
    contact_shift: float,
    table: Optional[str] = None,
    hydrogen_bond: Optional[SurpassHydrogenBond] = None,
  ):
    super().__init__(system, offset=3)
    self.system = system
    self.xyz = system.coordinates
    self.high_energy = high_energy
    self.low_energy = low_energy
    self.contact_shift = contact_shift
    self.hydrogen_bond = hydrogen_bond if hydrogen_bond is not None else SurpassHydrogenBond(system)
    self.min2, self.ave2, self.max2 = load_contact_cutoffs(table or DEFAULT_CONTACT_TABLE, contact_shift)
    logger.info(f"Energy parameters (high_en, low_en, shift): {high_energy} {low_energy} {contact_shift}")

  @classmethod
  def from_parameters(cls, system: SurpassModel, parameters: Sequence[str], **kwargs) -> "SurpassContactEnergy":
    if len(parameters) < 3:
      raise ValueError("SurpassContactEnergy requires three parameters: high_energy_level, low_energy_level, contact_shift")
    table = parameters[3] if len(parameters) > 3 else None
    return cls(system, float(parameters[0]), float(parameters[1]), float(parameters[2]), table, **kwargs)

  def _refresh_sheets(self):
    if self.hydrogen_bond.n_strands > 1:
      self.hydrogen_bond.find_hydrogen_bonds()

  def _sheet_pairs_energy(self, first: int, last: int) -> float:
    """Pairs of strand beads outside ``first .. last``; the only pairs whose energy follows the sheets."""
    beta = [a for a in self.system.atoms_in_beta if a < first or a > last]
    en = 0.0
    for k, j in enumerate(beta):
      for i in beta[k + 1 :]:
        if i - j >= self.residue_offset:
          en += self.energy_kernel(i, j)
    return en

  def calculate_by_residue(self, which_residue: int) -> float:
    self._refresh_sheets()
    en = super().calculate_by_residue(which_residue)
    if self.hydrogen_bond.n_strands > 1 and self.hydrogen_bond.depends_on(which_residue, which_residue):
      en += self._sheet_pairs_energy(which_residue, which_residue)
    return en

  def calculate_by_chunk(self, chunk_from: int, chunk_to: int) -> float:
    self._refresh_sheets()
    en = super().calculate_by_chunk(chunk_from, chunk_to)
    if self.hydrogen_bond.n_strands > 1 and self.hydrogen_bond.depends_on(chunk_from, chunk_to):
      en += self._sheet_pairs_energy(chunk_from, chunk_to)
    return en

  def calculate(self) -> float:
    self._refresh_sheets()
    return super().calculate()

  def energy_kernel(self, moved_residue: int, other_residue: int) -> float:
    i, j = moved_residue, other_residue
    s = self.system
    if s.ss_element_for_atoms[i] == s.ss_element_for_atoms[j] and s.ss_element_for_atoms[i] != 0:
      return 0.0
    if abs(i - j) <= 4:
      return 0.0
    ti, tj = int(s.atom_type[i]), int(s.atom_type[j])
    rewarded = ti != ATOM_TYPE_COIL and tj != ATOM_TYPE_COIL
    if ti == tj == ATOM_TYPE_HELIX and abs(i - j) <= 5:
      return 0.0
    if ti == tj == ATOM_TYPE_STRAND:
      sheets = self.hydrogen_bond.union_find_sheets
      if sheets.find_set(int(s.beta_index_for_atoms[i])) == sheets.find_set(int(s.beta_index_for_atoms[j])):
        rewarded = False
    a, b = self.xyz[i], self.xyz[j]
    r2 = (a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (a[2] - b[2]) ** 2
    if r2 >= self.max2[ti, tj]:
      return 0.0
    en = 0.0
    if r2 < self.min2[ti, tj]:
      en += self.high_energy
    if r2 > self.ave2[ti, tj] and rewarded:
      en += self.low_energy
    return en


### FUNCTIONS ###
def load_contact_cutoffs(fname: str, contact_shift: float = 0.0):
  """
  -------------------------------------------------------
  Reads the contact cut-off table. Returns three 3x3 arrays
  of squared distances (clash, contact start, contact end)
  indexed by bead class.
  -------------------------------------------------------
  Parameters:
    fname........: Table path, searched in the database too (str)
    contact_shift: Added to every clash distance (float)
  Returns:
    min2, ave2, max2: Squared thresholds (np.ndarray)
  """
  df = pd.read_csv(
    from_file_or_db(fname), sep=r"\s+", comment="#", header=None, names=["type_i", "type_j", "min_distance", "ave_distance", "max_distance"]
  )
  if df.empty:
    raise ValueError(f"No contact cut-offs found in {fname}")
  cut = np.zeros((3, 3, 3))
  seen = np.zeros((3, 3), dtype=bool)
  for row in df.itertuples(index=False):
    i, j = int(row.type_i), int(row.type_j)
    if not (0 <= i < 3 and 0 <= j < 3):
      raise ValueError(f"Bead class out of range in {fname}: {i} {j}")
    cut[:, i, j] = (contact_shift + row.min_distance, row.ave_distance, row.max_distance)
    seen[i, j] = True
  if not seen.all():
    raise ValueError(f"{fname} must define cut-offs for all 9 pairs of bead classes")
  logger.debug("Contact excluded volume parameters:\n\t     H    E    C\n" + "".join(f"\t{c} {cut[0, k, 0]:5.2f}{cut[0, k, 1]:5.2f}{cut[0, k, 2]:5.2f}\n" for k, c in enumerate("HEC")))
  cut = cut * cut
  return cut[0], cut[1], cut[2]
