"""
Local Cartesian moves of a SURPASS chain.

A mover backs up the beads it is about to displace, perturbs them, asks the
energy for the difference on the moved window only and lets an acceptance
criterion decide. A rejected move restores the backup, leaving the
coordinate array exactly as it was.
"""

from typing import Iterator, List, Optional

import numpy as np

from surpass.forcefield.base import ByResidueEnergy
from surpass.log import get_channel
from surpass.systems import ResidueChain

logger = get_channel("movers")


### CLASSES ###
class Mover:
  """
  -------------------------------------------------------
  Base class of all movers. Keeps the move statistics:
  :obj:`commit` counts an accepted move, :obj:`revert` a rejected one.
  -------------------------------------------------------
  Parameters:
    system........: The system to move (ResidueChain)
    energy........: Energy used to compute the difference caused by a move (ByResidueEnergy)
    max_move_range: Largest displacement along each axis (float)
    rng...........: Random generator shared with the acceptance criterion of the same replica (np.random.Generator)
  """

  name = "Mover"

  def __init__(self, system: ResidueChain, energy: ByResidueEnergy, max_move_range: float, rng: Optional[np.random.Generator] = None):
    self.system = system
    self.energy = energy
    self.rng = rng if rng is not None else np.random.default_rng()
    self.n_attempted = 0
    self.n_successful = 0
    # large enough for any move of this mover; undo never allocates
    self.backup = np.empty_like(system.coordinates)
    self.max_move_range = max_move_range

  def __repr__(self):
    return f"<{type(self).__name__}: Range={self.max_move_range}, Attempted={self.n_attempted}, Accepted={self.n_successful}>"

  @property
  def max_move_range(self) -> float:
    return self._max_move_range

  @max_move_range.setter
  def max_move_range(self, step: float):
    self._max_move_range = float(step)
    logger.info(f"{self.name}: maximum move range set to [-{step}, {step}]")

  def move(self, criterion) -> bool:
    raise NotImplementedError

  def n_moves(self, n: int, criterion) -> int:
    """Attempts ``n`` moves, returns the number of the accepted ones."""
    return sum(self.move(criterion) for _ in range(n))

  def undo(self):
    raise NotImplementedError

  def commit(self):
    self.n_attempted += 1
    self.n_successful += 1

  def revert(self):
    self.n_attempted += 1

  def clear_move_counter(self):
    self.n_attempted = 0
    self.n_successful = 0

  def get_success_rate(self) -> float:
    """Fraction of accepted moves; 0.0 before any attempt."""
    if self.n_attempted == 0:
      return 0.0
    return self.n_successful / self.n_attempted

  def get_and_clear_success_rate(self) -> float:
    rate = self.get_success_rate()
    self.clear_move_counter()
    return rate


class PerturbResidue(Mover):
  """
  -------------------------------------------------------
  Moves every bead of a random residue by a random vector
  with components drawn uniformly from ``[-range, range]``.
  -------------------------------------------------------
  Parameters:
    system........: The system to move (ResidueChain)
    energy........: Energy evaluated with ``calculate_by_residue`` (ByResidueEnergy)
    max_move_range: Largest displacement along each axis (float)
    rng...........: Random generator (np.random.Generator)
  """

  name = "PerturbResidue"

  def __init__(self, system: ResidueChain, energy: ByResidueEnergy, max_move_range: float = 0.3, rng: Optional[np.random.Generator] = None):
    super().__init__(system, energy, max_move_range, rng)
    self.n_residues = system.count_residues()
    self.last_moved = -1

  def move(self, criterion) -> bool:
    r = int(self.rng.integers(0, self.n_residues))
    atoms = self.system.atoms_for_residue(r)
    first, last = atoms.first_atom, atoms.last_atom + 1
    self.last_moved = r
    xyz = self.system.coordinates
    before = self.energy.calculate_by_residue(r)
    self.backup[first:last] = xyz[first:last]
    step = self._max_move_range
    xyz[first:last] += self.rng.uniform(-step, step, size=(last - first, 3))
    after = self.energy.calculate_by_residue(r)
    if criterion.test(before, after):
      self.commit()
      return True
    self.undo()
    self.revert()
    return False

  def undo(self):
    atoms = self.system.atoms_for_residue(self.last_moved)
    self.system.coordinates[atoms.first_atom : atoms.last_atom + 1] = self.backup[atoms.first_atom : atoms.last_atom + 1]


class PerturbChainFragment(Mover):
  """
  -------------------------------------------------------
  Moves ``n_moved`` consecutive beads as a symmetric wedge. A random
  vector ``d`` drawn from ``[-range, range]^3`` is scaled by
  ``f = 2 / (1 + n_moved)``; beads ``k`` positions away from either end of
  the fragment move by ``(k + 1) f d`` and the central bead of an odd
  fragment moves by ``d``. The first and the last bead of the system never
  move.
  -------------------------------------------------------
  Parameters:
    system........: The system to move (ResidueChain)
    n_moved.......: Length of the moved fragment (int)
    energy........: Energy evaluated with ``calculate_by_chunk`` (ByResidueEnergy)
    max_move_range: Largest displacement along each axis (float)
    rng...........: Random generator (np.random.Generator)
  """

  name = "PerturbChainFragment"

  def __init__(self, system: ResidueChain, n_moved: int, energy: ByResidueEnergy, max_move_range: float = 0.5, rng: Optional[np.random.Generator] = None):
    if n_moved < 1 or system.count_residues() - n_moved - 1 < 1:
      raise ValueError(f"Can't move fragments of {n_moved} residues in a system of {system.count_residues()} residues")
    super().__init__(system, energy, max_move_range, rng)
    self.n_moved = n_moved
    self.n_residues = system.count_residues()
    self.last_moved_from = -1
    self.last_moved_to = -1

  def move(self, criterion) -> bool:
    start = int(self.rng.integers(1, self.n_residues - self.n_moved - 1, endpoint=True))
    end = start + self.n_moved - 1
    self.last_moved_from, self.last_moved_to = start, end
    f = 2.0 / (1.0 + self.n_moved)
    step = self._max_move_range
    d = self.rng.uniform(-step, step, size=3) * f

    first = self.system.atoms_for_residue(start).first_atom
    last = self.system.atoms_for_residue(end).last_atom + 1
    xyz = self.system.coordinates
    before = self.energy.calculate_by_chunk(start, end)
    self.backup[first:last] = xyz[first:last]
    for k in range(self.n_moved // 2):
      for r in (start + k, end - k):
        a = self.system.atoms_for_residue(r)
        xyz[a.first_atom : a.last_atom + 1] += d * (k + 1)
    if self.n_moved % 2 == 1:
      a = self.system.atoms_for_residue((start + end) // 2)
      xyz[a.first_atom : a.last_atom + 1] += d / f
    after = self.energy.calculate_by_chunk(start, end)
    if criterion.test(before, after):
      self.commit()
      return True
    self.undo()
    self.revert()
    return False

  def undo(self):
    first = self.system.atoms_for_residue(self.last_moved_from).first_atom
    last = self.system.atoms_for_residue(self.last_moved_to).last_atom + 1
    self.system.coordinates[first:last] = self.backup[first:last]


class MoversSet:
  """
  -------------------------------------------------------
  A bag of movers. A mover added with ``k`` is tried ``k`` times per
  sweep on average; the order of the moves within a sweep is random
  and drawn once at the beginning of the sweep.
  -------------------------------------------------------
  Parameters:
    rng: Random generator used to draw the order of moves (np.random.Generator)
  """

  precision = 4
  min_width = 7

  def __init__(self, rng: Optional[np.random.Generator] = None):
    self.rng = rng if rng is not None else np.random.default_rng()
    self.movers: List[Mover] = []
    self.factors: List[int] = []
    self.column_widths: List[int] = []
    self._sweep: List[Mover] = []
    self._draws = np.zeros(0, dtype=np.int64)

  def __repr__(self):
    return f"<MoversSet: Movers={len(self.movers)}, SweepSize={self.sweep_size()}>"

  def __len__(self):
    return len(self.movers)

  def add_mover(self, mover: Mover, moves_each_step: int):
    self.movers.append(mover)
    self.factors.append(moves_each_step)
    self._sweep.extend([mover] * moves_each_step)
    self._draws = np.zeros(len(self._sweep), dtype=np.int64)
    self.column_widths.append(max(self.min_width, len(mover.name)))
    logger.info(f"added {mover.name} which attempts {moves_each_step} moves at each MC step")

  def sweep_size(self) -> int:
    return len(self._sweep)

  def __iter__(self) -> Iterator[Mover]:
    """Movers of one sweep in random order."""
    if self._sweep:
      self._draws[:] = self.rng.integers(0, len(self._sweep), size=len(self._sweep))
    sweep = self._sweep
    for i in self._draws:
      yield sweep[i]

  def sweep(self, criterion) -> int:
    """Runs one sweep, returns the number of accepted moves."""
    n = 0
    for mover in self:
      n += mover.move(criterion)
    return n

  def header_string(self) -> str:
    return " ".join(f"{m.name:>{w}}" for m, w in zip(self.movers, self.column_widths))

  def row_string(self) -> str:
    """Success rate of every mover since the previous row; clears the counters."""
    return " ".join(f"{m.get_and_clear_success_rate():{w}.{self.precision}f}" for m, w in zip(self.movers, self.column_widths))
