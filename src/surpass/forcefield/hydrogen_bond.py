"""
Hydrogen bonds between beta strands of a SURPASS model and the beta-sheet
topology derived from them.
"""

import math
from typing import Dict, List, Tuple

import numpy as np

from surpass.constants import (
  HBOND_MAX_DISTANCE,
  HBOND_MIN_PLANAR_ANGLE,
  HBOND_MIN_STRAND_COS,
  HBOND_OPTIMAL_DISTANCE,
  HBOND_WELL_OFFSET,
  TOPOLOGY_ANTIPARALLEL,
  TOPOLOGY_NONE,
  TOPOLOGY_PARALLEL,
)
from surpass.forcefield.base import ByResidueEnergy
from surpass.systems import SurpassModel


### CLASSES ###
class UnionFind:
  """Disjoint sets of hashable elements, with path compression and union by rank."""

  def __init__(self):
    self._parent: Dict = {}
    self._rank: Dict = {}

  def __len__(self):
    return len(self._parent)

  def add_element(self, e):
    self._parent[e] = e
    self._rank[e] = 0

  def find_set(self, e):
    root = e
    while self._parent[root] != root:
      root = self._parent[root]
    while self._parent[e] != root:
      self._parent[e], e = root, self._parent[e]
    return root

  def union_set(self, a, b):
    ra, rb = self.find_set(a), self.find_set(b)
    if ra == rb:
      return ra
    if self._rank[ra] < self._rank[rb]:
      ra, rb = rb, ra
    self._parent[rb] = ra
    if self._rank[ra] == self._rank[rb]:
      self._rank[ra] += 1
    return ra

  def disconnect(self):
    """Puts every element back into its own set."""
    for e in self._parent:
      self._parent[e] = e
      self._rank[e] = 0

  def count_sets(self) -> int:
    return len({self.find_set(e) for e in self._parent})


class SurpassHydrogenBond(ByResidueEnergy):
  """
  -------------------------------------------------------
  Hydrogen bond term of the SURPASS force field.

  Every strand bead ``y`` looks for at most one acceptor on each other
  strand: a bead ``j`` closer than 6 A, whose strand runs (anti)parallel to
  the strand of ``y`` (``|cos| > 0.57``), choosing the one whose bond is the
  most perpendicular to both strands. When two or more acceptors were found,
  the pair spanning the widest planar angle (at least 125 degrees) is kept;
  otherwise the best single acceptor is kept. Each bond of length ``r`` is
  rewarded with ``-log((exp(-(r - 4.65)^2) + 0.57) / 0.57)``.

  Strands bonded in both directions are marked in
  :obj:`beta_topology_matrix` as parallel (1) or antiparallel (2) and are
  joined into sheets.

  Moving any strand bead, or a bead that sets the direction of a strand
  bead, may change which acceptors are chosen anywhere in the system, so
  :obj:`calculate_by_residue` and :obj:`calculate_by_chunk` return the
  whole hydrogen bond energy for such residues and zero for the others.
  -------------------------------------------------------
  Parameters:
    system: The scored system (SurpassModel)
  """

  name = "SurpassHydrogenBond"

  def __init__(self, system: SurpassModel):
    self.system = system
    self.xyz = system.coordinates
    self.n_atoms = system.n_atoms
    self.n_strands = len(system.beta_ranges)
    size = max(self.n_strands, 1)
    self.hydrogen_bonds: List[Tuple[int, int]] = [(self.n_atoms, self.n_atoms)] * len(system.atoms_in_beta)
    self.beta_topology_matrix = np.zeros((size, size), dtype=np.int8)
    self.count_matrix = np.zeros((size, size), dtype=np.int32)
    self.union_find_sheets = UnionFind()
    for i in range(self.n_strands):
      self.union_find_sheets.add_element(i)
    self._beta_position = {a: k for k, a in enumerate(system.atoms_in_beta)}
    self.dependent_atoms = np.zeros(self.n_atoms, dtype=bool)
    for a in system.atoms_in_beta:
      self.dependent_atoms[self._direction_atoms(a)] = True
    self.find_hydrogen_bonds()

  def _direction_atoms(self, atom: int) -> List[int]:
    """The bead itself and the two beads whose difference gives its strand direction."""
    chain = self.system.atoms_for_chain(self.system.chain_for(atom))
    if atom == chain.first_atom:
      return [atom, atom + 2]
    if atom == chain.last_atom:
      return [atom - 2, atom]
    return [atom - 1, atom, atom + 1]

  def _vec_along(self, atom: int) -> np.ndarray:
    ends = self._direction_atoms(atom)
    return self.xyz[ends[-1]] - self.xyz[ends[0]]

  def depends_on(self, first_atom: int, last_atom: int) -> bool:
    """True when moving any of the atoms ``first_atom .. last_atom`` may change the bonds."""
    return bool(self.dependent_atoms[first_atom : last_atom + 1].any())

  def _best_acceptors(self, y: int, along: Dict[int, np.ndarray]) -> List[int]:
    """The best acceptor of ``y`` on every other strand, in strand order."""
    partners = []
    h2 = along[y]
    n2 = np.linalg.norm(h2)
    own = self.system.beta_index_for_atoms[y]
    for b, strand in enumerate(self.system.beta_ranges):
      if b == own:
        continue
      best, best_dev, best_r = None, math.inf, HBOND_MAX_DISTANCE
      for j in strand:
        h1 = self.xyz[j] - self.xyz[y]
        r = float(np.linalg.norm(h1))
        if r > best_r or r == 0.0:
          continue
        h3 = along[j]
        n3 = np.linalg.norm(h3)
        if n2 == 0.0 or n3 == 0.0:
          continue
        if abs(float(np.dot(h2, h3)) / (n2 * n3)) <= HBOND_MIN_STRAND_COS:
          continue
        dev = min(abs(float(np.dot(h1, h2))) / (r * n2), abs(float(np.dot(h1, h3))) / (r * n3))
        if dev <= best_dev:
          best, best_dev, best_r = j, dev, r
      if best is not None:
        partners.append(best)
    return partners

  def find_hydrogen_bonds(self):
    """Recomputes the bonds, the count matrix, the topology matrix and the sheets."""
    self.beta_topology_matrix[:] = TOPOLOGY_NONE
    self.count_matrix[:] = 0
    self.union_find_sheets.disconnect()
    if not self.system.atoms_in_beta:
      return
    beta_index = self.system.beta_index_for_atoms
    along = {a: self._vec_along(a) for a in self.system.atoms_in_beta}
    for k, y in enumerate(self.system.atoms_in_beta):
      partners = self._best_acceptors(y, along)
      bond = (self.n_atoms, self.n_atoms)
      if len(partners) >= 2:
        best_angle = HBOND_MIN_PLANAR_ANGLE
        for a in range(len(partners) - 1):
          for b in range(a + 1, len(partners)):
            h1 = self.xyz[partners[a]] - self.xyz[y]
            h2 = self.xyz[partners[b]] - self.xyz[y]
            cos = float(np.dot(h1, h2)) / (np.linalg.norm(h1) * np.linalg.norm(h2))
            angle = math.degrees(math.acos(max(-1.0, min(1.0, cos))))
            if angle >= best_angle:
              best_angle = angle
              bond = (partners[a], partners[b])
        if bond[0] == self.n_atoms:
          closest = min(partners, key=lambda j: float(np.sum((self.xyz[j] - self.xyz[y]) ** 2)))
          bond = (closest, self.n_atoms)
      elif len(partners) == 1:
        bond = (partners[0], self.n_atoms)
      self.hydrogen_bonds[k] = bond
      for j in bond:
        if j != self.n_atoms:
          self.count_matrix[beta_index[y], beta_index[j]] += 1

    for a in range(self.n_strands):
      for b in range(a + 1, self.n_strands):
        if self.count_matrix[a, b] > 0 and self.count_matrix[b, a] > 0:
          t = TOPOLOGY_PARALLEL if self._strands_parallel(a, b) else TOPOLOGY_ANTIPARALLEL
          self.beta_topology_matrix[a, b] = t
          self.beta_topology_matrix[b, a] = t
          self.union_find_sheets.union_set(a, b)

  def _strands_parallel(self, a: int, b: int) -> bool:
    ra, rb = self.system.beta_ranges[a], self.system.beta_ranges[b]
    va = self.xyz[ra.last_atom] - self.xyz[ra.first_atom]
    vb = self.xyz[rb.last_atom] - self.xyz[rb.first_atom]
    return float(np.dot(va, vb)) > 0.0

  @staticmethod
  def bond_energy(r: float) -> float:
    d = r - HBOND_OPTIMAL_DISTANCE
    return -math.log((math.exp(-d * d) + HBOND_WELL_OFFSET) / HBOND_WELL_OFFSET)

  def residue_energy(self, which_residue: int) -> float:
    """Energy of the bonds donated by a residue, as found by the last :obj:`find_hydrogen_bonds`."""
    y = self.system.atoms_for_residue(which_residue).first_atom
    k = self._beta_position.get(y)
    if k is None:
      return 0.0
    en = 0.0
    for j in self.hydrogen_bonds[k]:
      if j != self.n_atoms:
        d = self.xyz[j] - self.xyz[y]
        en += self.bond_energy(math.sqrt(float(np.dot(d, d))))
    return en

  def calculate_by_residue(self, which_residue: int) -> float:
    r = self.system.atoms_for_residue(which_residue)
    if not self.depends_on(r.first_atom, r.last_atom):
      return 0.0
    return self.calculate()

  def calculate_by_chunk(self, chunk_from: int, chunk_to: int) -> float:
    first = self.system.atoms_for_residue(chunk_from).first_atom
    last = self.system.atoms_for_residue(chunk_to).last_atom
    if not self.depends_on(first, last):
      return 0.0
    return self.calculate()

  def calculate(self) -> float:
    self.find_hydrogen_bonds()
    return sum(self.residue_energy(self.system.residue_for(y)) for y in self.system.atoms_in_beta)

  def count_sheets(self) -> int:
    return self.union_find_sheets.count_sets()

  def topology_fingerprint(self) -> str:
    """Upper triangle of the topology matrix flattened into a string of digits."""
    m = self.beta_topology_matrix
    return "".join(str(int(m[i, j])) for i in range(self.n_strands) for j in range(i + 1, self.n_strands))
