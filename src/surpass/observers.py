"""
Observers write measurements of a running simulation; triggers decide
which ``observe()`` calls produce a row.

Every observer counts all its ``observe()`` calls (``cnt``), whether the
trigger fires or not; the count is the first column of its rows. Rows are
written under :obj:`surpass.log.log_lock`, so that output of concurrent
replicas never interleaves.
"""

import io
import math
import sys
from typing import IO, Dict, List, Optional, Sequence, Union

from surpass.constants import ATOM_TYPE_TO_SS
from surpass.evaluators import Evaluator, Timer
from surpass.forcefield.base import ByResidueEnergy
from surpass.forcefield.hydrogen_bond import SurpassHydrogenBond
from surpass.forcefield.total import TotalEnergyByResidue
from surpass.geometry import get_box
from surpass.log import get_channel, log_lock
from surpass.movers import MoversSet
from surpass.systems import ResidueChain

logger = get_channel("observers")


### CLASSES ###
class ObserverTrigger:
  """Fires on every call."""

  def __call__(self) -> bool:
    return True


class TriggerEveryN(ObserverTrigger):
  """Fires on every n-th call; ``n = 1`` fires always."""

  def __init__(self, n: int):
    if n < 1:
      raise ValueError(f"Trigger period must be positive, got {n}")
    self.n = n
    self.count = 0

  def __repr__(self):
    return f"<TriggerEveryN: N={self.n}, Calls={self.count}>"

  def __call__(self) -> bool:
    self.count += 1
    return self.count % self.n == 0


class TriggerLowEnergy(ObserverTrigger):
  """
  -------------------------------------------------------
  Fires when the energy drops below a cut-off derived from the lowest
  energy seen so far: ``(1 - f) e_min`` for a negative ``e_min`` and
  ``(1 + f) e_min`` otherwise. Whenever the energy beats ``e_min`` the
  minimum is updated, so the bar tightens during the simulation.
  -------------------------------------------------------
  Parameters:
    energy..........: Energy of the observed system (ByResidueEnergy)
    low_energy_value: Initial minimum (float)
    fraction........: Width of the window above the minimum (float)
  """

  def __init__(self, energy: ByResidueEnergy, low_energy_value: float = 0.0, fraction: float = 0.1):
    self.energy = energy
    self.e_min = low_energy_value
    self.fraction = fraction

  def __repr__(self):
    return f"<TriggerLowEnergy: Emin={self.e_min}, Fraction={self.fraction}>"

  def cutoff(self) -> float:
    if self.e_min < 0:
      return (1.0 - self.fraction) * self.e_min
    return (1.0 + self.fraction) * self.e_min

  def __call__(self) -> bool:
    en = self.energy.calculate()
    if en >= self.cutoff():
      return False
    if en < self.e_min:
      logger.debug(f"new lowest energy: {en:.3f}")
      self.e_min = en
    return True


class ObserverInterface:
  """Base of all observers: a trigger and the count of ``observe()`` calls."""

  def __init__(self, trigger: Optional[ObserverTrigger] = None):
    self.trigger = trigger if trigger is not None else ObserverTrigger()
    self.cnt = 0

  def observe(self) -> bool:
    raise NotImplementedError

  def finalize(self):
    pass


class ToStreamObserver(ObserverInterface):
  """
  -------------------------------------------------------
  Observer writing text rows to a stream. A string given as the output is
  a file name: the file is created (truncated) at construction and closed
  by :obj:`finalize`; other streams are only flushed. The stream can be
  rebound at any time, e.g. when replicas swap temperatures.
  -------------------------------------------------------
  Parameters:
    output.: File name or text stream; stdout when not given (str|IO)
    trigger: Decides which calls produce a row (ObserverTrigger)
  """

  def __init__(self, output: Optional[Union[str, IO[str]]] = None, trigger: Optional[ObserverTrigger] = None):
    super().__init__(trigger)
    if isinstance(output, str):
      self._stream = open(output, "w")
      self.is_file = True
      self.fname = output
    else:
      self._stream = output if output is not None else sys.stdout
      self.is_file = False
      self.fname = None

  @property
  def output_stream(self) -> IO[str]:
    return self._stream

  @output_stream.setter
  def output_stream(self, stream: IO[str]):
    self._stream = stream

  def swap_streams(self, other: "ToStreamObserver"):
    """Exchanges output streams (and their ownership) with another observer."""
    self._stream, other._stream = other._stream, self._stream
    self.is_file, other.is_file = other.is_file, self.is_file
    self.fname, other.fname = other.fname, self.fname

  def write(self, text: str):
    with log_lock:
      self._stream.write(text)
      self._stream.flush()

  def header_string(self) -> str:
    return ""

  def row_string(self) -> str:
    raise NotImplementedError

  def observe_header(self):
    """Writes the column names as a ``#`` comment line."""
    self.write("#" + self.header_string() + "\n")

  def observe(self) -> bool:
    self.cnt += 1
    if not self.trigger():
      return False
    self.write(self.row_string() + "\n")
    return True

  def finalize(self):
    with log_lock:
      if self.is_file:
        if not self._stream.closed:
          self._stream.close()
      else:
        self._stream.flush()


class ObserveEnergyComponents(ToStreamObserver):
  """Rows of the unweighted energy components followed by the weighted total."""

  def __init__(self, energy: TotalEnergyByResidue, output=None, trigger: Optional[ObserverTrigger] = None):
    super().__init__(output, trigger)
    self.energy = energy

  def header_string(self) -> str:
    return f"{'step':>4} " + self.energy.header_string()

  def row_string(self) -> str:
    return f"{self.cnt:5d} " + self.energy.row_string()


class ObserveEvaluators(ToStreamObserver):
  """Rows of evaluator values, one column per evaluator."""

  def __init__(self, evaluators: Sequence[Evaluator] = (), output=None, trigger: Optional[ObserverTrigger] = None):
    super().__init__(output, trigger)
    self.evaluators: List[Evaluator] = list(evaluators)

  def add_evaluator(self, evaluator: Evaluator):
    self.evaluators.append(evaluator)

  def header_string(self) -> str:
    return f"{'step':>4} " + " ".join(e.header_string() for e in self.evaluators)

  def row_string(self) -> str:
    return f"{self.cnt:5d} " + " ".join(e.value_string() for e in self.evaluators)


class PdbObserver(ToStreamObserver):
  """
  -------------------------------------------------------
  Appends the current conformation as a ``MODEL cnt`` ... ``ENDMDL`` block.
  The per-atom label lines are prepared once at construction.
  -------------------------------------------------------
  Parameters:
    system......: The observed system (ResidueChain)
    output......: File name or text stream (str|IO)
    trigger.....: Decides which calls produce a model (ObserverTrigger)
    format_lines: printf-style ATOM lines, one per atom (list<str>)
  """

  def __init__(self, system: ResidueChain, output=None, trigger: Optional[ObserverTrigger] = None, format_lines: Optional[Sequence[str]] = None):
    if format_lines is not None and len(format_lines) != system.n_atoms:
      raise ValueError(f"{len(format_lines)} format lines given for {system.n_atoms} atoms")
    super().__init__(output, trigger)
    self.system = system
    self.format_lines = list(format_lines) if format_lines is not None else system.default_format_lines()

  def observe_header(self):
    pass

  def row_string(self) -> str:
    buf = io.StringIO()
    self.system.write_pdb(buf, self.format_lines, self.cnt)
    return buf.getvalue()

  def observe(self) -> bool:
    self.cnt += 1
    if not self.trigger():
      return False
    self.write(self.row_string())
    return True


class TraxObserver(ToStreamObserver):
  """
  -------------------------------------------------------
  Compact trajectory. Every frame starts with a line holding the centroid
  (optionally followed by the energy components and evaluator values),
  then one line per residue with its bead coordinates relative to the
  centroid, padded with zeros to ``max_atoms_in_residue`` beads. Every line
  of a frame ends with the same tag: two digits of the system id followed
  by five digits of the call count.
  -------------------------------------------------------
  Parameters:
    system..............: The observed system (ResidueChain)
    output..............: File name or text stream (str|IO)
    trigger.............: Decides which calls produce a frame (ObserverTrigger)
    energy..............: Energy printed in the frame header (TotalEnergyByResidue)
    evaluators..........: Values printed in the frame header (list<Evaluator>)
    max_atoms_in_residue: Number of beads on every residue line (int)
  """

  def __init__(
    self,
    system: ResidueChain,
    output=None,
    trigger: Optional[ObserverTrigger] = None,
    energy: Optional[TotalEnergyByResidue] = None,
    evaluators: Sequence[Evaluator] = (),
    max_atoms_in_residue: int = 1,
  ):
    super().__init__(output, trigger)
    self.system = system
    self.energy = energy
    self.evaluators = list(evaluators)
    self.max_atoms_in_residue = max(max_atoms_in_residue, max(r.size for r in system.residue_ranges))
    self.n_frames = 0

  def header_string(self) -> str:
    s = " center-x  center-y  center-z "
    if self.energy is not None:
      s += " " + self.energy.header_string()
    if self.evaluators:
      s += " " + " ".join(e.header_string() for e in self.evaluators)
    return s + " tag"

  def row_string(self) -> str:
    xyz = self.system.coordinates
    cx, cy, cz = xyz.mean(axis=0).tolist()
    tag = f"{self.system.system_id:02d}{self.cnt:05d}\n"
    head = f"# {cx:9.3f} {cy:9.3f} {cz:9.3f}"
    if self.energy is not None:
      head += " " + self.energy.row_string()
    if self.evaluators:
      head += " " + " ".join(e.value_string() for e in self.evaluators)
    lines = [head + " " + tag]
    zero = "%7.3f %7.3f %7.3f " % (0.0, 0.0, 0.0)
    for ires, r in enumerate(self.system.residue_ranges):
      code = ATOM_TYPE_TO_SS.get(int(self.system.atom_type[r.first_atom]), "C")
      line = [f"{ires + 1:3d} {code} "]
      for iatom in r:
        x, y, z = xyz[iatom].tolist()
        line.append("%7.3f %7.3f %7.3f " % (x - cx, y - cy, z - cz))
      line.append(zero * (self.max_atoms_in_residue - r.size))
      line.append(tag)
      lines.append("".join(line))
    return "".join(lines)

  def observe(self) -> bool:
    self.cnt += 1
    if not self.trigger():
      return False
    self.n_frames += 1
    self.write(self.row_string())
    return True


class ObserveMoversAcceptance(ToStreamObserver):
  """Success rate of every mover since the previous row; writing a row clears the movers' counters."""

  def __init__(self, movers: MoversSet, output=None, trigger: Optional[ObserverTrigger] = None):
    super().__init__(output, trigger)
    self.movers = movers

  def header_string(self) -> str:
    return f"{'step':>4} " + self.movers.header_string()

  def row_string(self) -> str:
    return f"{self.cnt:5d} " + self.movers.row_string()


class ObserveTopologyMatrix(ToStreamObserver):
  """
  -------------------------------------------------------
  Tracks the beta-sheet topology of a SURPASS model. The topology matrix
  is flattened into a string of digits; every distinct string gets an id
  in the order of first appearance and the number of its occurrences is
  counted. A row holds the step, the fingerprint (``-`` for fewer than two
  strands) and its id.
  -------------------------------------------------------
  Parameters:
    hydrogen_bond: Term holding the topology matrix (SurpassHydrogenBond)
    output.......: File name or text stream (str|IO)
    trigger......: Decides which calls produce a row (ObserverTrigger)
  """

  def __init__(self, hydrogen_bond: SurpassHydrogenBond, output=None, trigger: Optional[ObserverTrigger] = None):
    super().__init__(output, trigger)
    self.hydrogen_bond = hydrogen_bond
    self.observed_topologies: Dict[str, int] = {}
    self.topology_counts: List[int] = []

  def header_string(self) -> str:
    return f"{'step':>5} fingerprint id"

  def row_string(self) -> str:
    # the term may hold the bonds of a rejected trial conformation
    self.hydrogen_bond.find_hydrogen_bonds()
    topo = self.hydrogen_bond.topology_fingerprint() or "-"
    if topo not in self.observed_topologies:
      self.observed_topologies[topo] = len(self.topology_counts)
      self.topology_counts.append(1)
    else:
      self.topology_counts[self.observed_topologies[topo]] += 1
    return f"{self.cnt:6d} {topo} {self.observed_topologies[topo]}"

  def count_topologies(self) -> int:
    return len(self.topology_counts)


class ObserveReplicaFlow(ToStreamObserver):
  """
  -------------------------------------------------------
  Flow of replicas through the temperature ladder. A row holds the wall
  time, the id of the replica in every temperature slot, the boundary
  flag of those replicas (1 coldest slot visited last, 2 hottest) and the
  number of accepted swaps of every slot.
  -------------------------------------------------------
  Parameters:
    replica_exchange: The observed protocol (ReplicaExchangeMC)
    output..........: File name or text stream (str|IO)
    trigger.........: Decides which calls produce a row (ObserverTrigger)
  """

  def __init__(self, replica_exchange, output=None, trigger: Optional[ObserverTrigger] = None):
    super().__init__(output, trigger)
    self.replica_exchange = replica_exchange
    self.timer = Timer()
    self.id_width = int(math.log10(len(replica_exchange.temperatures))) + 1

  def header_string(self) -> str:
    n = len(self.replica_exchange.temperatures)
    ids = " ".join(f"{f'r{i}':>{self.id_width}}" for i in range(n))
    flags = " ".join(f"f{i}" for i in range(n))
    counts = " ".join(f"{f'x{i}':>4}" for i in range(n))
    return f"{'time':>7}   {ids}   {flags}   {counts}"

  def row_string(self) -> str:
    rex = self.replica_exchange
    ids = " ".join(f"{t.replica_index:{self.id_width}d}" for t in rex.replicas)
    flags = " ".join(f"{t.replica_space_flag:2d}" for t in rex.replicas)
    counts = " ".join(f"{c:4d}" for c in rex.n_successful_exchanges)
    return f"{self.timer.evaluate():8.{self.timer.precision}f}   {ids}   {flags}   {counts}"


class EndVectorObserver(ToStreamObserver):
  """Rows of the minimum-image vector from the first to the last atom of the system."""

  def __init__(self, system: ResidueChain, output=None, trigger: Optional[ObserverTrigger] = None):
    super().__init__(output, trigger)
    self.system = system

  def header_string(self) -> str:
    return f"{'step':>5} {'x':>8} {'y':>8} {'z':>8}"

  def row_string(self) -> str:
    xyz = self.system.coordinates
    cx, cy, cz = get_box().closest_delta(xyz[0], xyz[-1])
    return f"{self.cnt:6d} {cx:8.3f} {cy:8.3f} {cz:8.3f}"
