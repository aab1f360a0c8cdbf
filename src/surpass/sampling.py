"""
Monte Carlo protocols: the Metropolis criterion, isothermal sampling,
simulated annealing and replica exchange over worker threads.
"""

import math
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from surpass.forcefield.base import ByResidueEnergy
from surpass.log import get_channel
from surpass.movers import MoversSet

logger = get_channel("sampling")


### CLASSES ###
class MetropolisCriterion:
  """
  -------------------------------------------------------
  Accepts a move that does not raise the energy; otherwise
  accepts it with probability ``exp(-(e_new - e_old) / T)``.
  An exponent too large to represent is a rejection.
  -------------------------------------------------------
  Parameters:
    temperature: Temperature in energy units (float)
    rng........: Source of the uniform random numbers (np.random.Generator)
  """

  def __init__(self, temperature: float = 1.0, rng: Optional[np.random.Generator] = None):
    self.temperature = temperature
    self.rng = rng if rng is not None else np.random.default_rng()

  def __repr__(self):
    return f"<MetropolisCriterion: T={self.temperature}>"

  @property
  def temperature(self) -> float:
    return self._temperature

  @temperature.setter
  def temperature(self, t: float):
    if not t > 0:
      raise ValueError(f"Temperature must be positive, got {t}")
    self._temperature = float(t)

  def test(self, e_old: float, e_new: float) -> bool:
    if e_new <= e_old:
      return True
    try:
      p = math.exp(-(e_new - e_old) / self._temperature)
    except OverflowError:
      return False
    return self.rng.random() <= p


class SamplingProtocolBase:
  """Cycle counts plus the observers and evaluators called after every inner and every outer cycle."""

  def __init__(self):
    self.inner_cycles = 1
    self.outer_cycles = 1
    self.cycle_size = 1
    self.inner_observers: List = []
    self.outer_observers: List = []
    self.inner_evaluators: List = []
    self.outer_evaluators: List = []

  def cycles(self, inner_cycles: int, outer_cycles: int, cycle_size: int = 1):
    """Sets the number of inner cycles per outer cycle, outer cycles and sweeps per inner cycle."""
    self.inner_cycles = inner_cycles
    self.outer_cycles = outer_cycles
    self.cycle_size = cycle_size

  def add_inner_observer(self, observer):
    self.inner_observers.append(observer)

  def add_outer_observer(self, observer):
    self.outer_observers.append(observer)

  def add_inner_evaluator(self, evaluator):
    self.inner_evaluators.append(evaluator)

  def add_outer_evaluator(self, evaluator):
    self.outer_evaluators.append(evaluator)

  def call_inner_cycle_evaluators(self):
    for e in self.inner_evaluators:
      e.evaluate()

  def call_outer_cycle_evaluators(self):
    for e in self.outer_evaluators:
      e.evaluate()

  def call_inner_cycle_observers(self):
    for o in self.inner_observers:
      o.observe()

  def call_outer_cycle_observers(self):
    for o in self.outer_observers:
      o.observe()

  def finalize(self):
    """Flushes and closes the streams of all observers."""
    for o in self.inner_observers + self.outer_observers:
      o.finalize()

  def run(self):
    raise NotImplementedError


class IsothermalMC(SamplingProtocolBase):
  """
  -------------------------------------------------------
  Monte Carlo at a constant temperature. Every inner cycle runs
  ``cycle_size`` sweeps of the movers set, then calls the inner
  evaluators and observers; after ``inner_cycles`` inner cycles the
  outer ones are called. The whole is repeated ``outer_cycles`` times.
  -------------------------------------------------------
  Parameters:
    movers.....: Movers used in every sweep (MoversSet)
    temperature: Sampling temperature (float)
    rng........: Random generator of the Metropolis criterion; the movers set's one when not given (np.random.Generator)
  """

  def __init__(self, movers: MoversSet, temperature: float = 1.0, rng: Optional[np.random.Generator] = None):
    super().__init__()
    self.movers = movers
    self.criterion = MetropolisCriterion(temperature, rng if rng is not None else movers.rng)

  def __repr__(self):
    return f"<{type(self).__name__}: T={self.temperature}, Cycles={self.outer_cycles}x{self.inner_cycles}x{self.cycle_size}>"

  @property
  def temperature(self) -> float:
    return self.criterion.temperature

  @temperature.setter
  def temperature(self, t: float):
    self.criterion.temperature = t

  def run(self, temperature: Optional[float] = None, progress: bool = False):
    if temperature is not None:
      self.temperature = temperature
    for _ in tqdm(range(self.outer_cycles), desc=f"T={self.temperature:.2f}", disable=not progress):
      for _ in range(self.inner_cycles):
        for _ in range(self.cycle_size):
          self.movers.sweep(self.criterion)
        self.call_inner_cycle_evaluators()
        self.call_inner_cycle_observers()
      self.call_outer_cycle_evaluators()
      self.call_outer_cycle_observers()


class SimulatedAnnealing(IsothermalMC):
  """
  -------------------------------------------------------
  Runs one isothermal simulation for every temperature of the schedule, in order.
  -------------------------------------------------------
  Parameters:
    movers......: Movers used in every sweep (MoversSet)
    temperatures: Annealing schedule (list<float>)
    rng.........: Random generator of the Metropolis criterion (np.random.Generator)
  """

  def __init__(self, movers: MoversSet, temperatures: Sequence[float], rng: Optional[np.random.Generator] = None):
    if not temperatures:
      raise ValueError("Simulated annealing needs at least one temperature")
    super().__init__(movers, temperatures[0], rng)
    self.temperatures = list(temperatures)

  def run(self, progress: bool = False):
    for t in self.temperatures:
      logger.info(f"Temperature set to {t}")
      super().run(t, progress)


class ObservationMode(Enum):
  """What a replica's observers follow: a temperature (ISOTHERMAL) or a replica (ISOTEMPORAL)."""

  ISOTHERMAL = "ISOTHERMAL"
  ISOTEMPORAL = "ISOTEMPORAL"


def observation_mode_name(mode: ObservationMode) -> str:
  return mode.value


def observation_mode(name: str) -> ObservationMode:
  """Any name other than ``ISOTHERMAL`` selects ISOTEMPORAL observations."""
  return ObservationMode.ISOTHERMAL if name.upper() == "ISOTHERMAL" else ObservationMode.ISOTEMPORAL


class ReplicaTask:
  """One replica: its sampler and energy, the temperature slot it currently
  occupies and the boundary it hit most recently
  (0 none yet, 1 the coldest slot, 2 the hottest slot)."""

  def __init__(self, replica_index: int, sampler: IsothermalMC, energy: ByResidueEnergy):
    self.replica_index = replica_index
    self.temperature_index = replica_index
    self.replica_space_flag = 0
    self.sampler = sampler
    self.energy = energy

  def __repr__(self):
    return f"<ReplicaTask: Replica={self.replica_index}, Slot={self.temperature_index}, Flag={self.replica_space_flag}>"


class ReplicaExchangeMC:
  """
  -------------------------------------------------------
  Replica exchange Monte Carlo. Every replica is an isothermal sampler
  with its own system, energy, movers and random generator; its outer
  cycle count is the exchange cadence. In every exchange round all the
  replicas run concurrently on a thread pool, then neighbouring
  temperature slots ``(k, k+1)``, starting from a random parity, try to
  swap their replicas with probability
  ``min(1, exp((1/T[k+1] - 1/T[k]) * (E[k+1] - E[k])))``.

  Conformations stay with their replica; a swap moves the replicas between
  temperature slots and sets the temperature of their samplers. With
  isothermal observations the output streams of the swapped samplers'
  observers are exchanged too, so every file follows a single temperature.
  -------------------------------------------------------
  Parameters:
    samplers...............: One sampler per replica, ordered by increasing temperature (list<IsothermalMC>)
    energies...............: Total energy of every replica (list<ByResidueEnergy>)
    isothermal_observations: Swap observers' streams along with temperatures (bool)
    rng....................: Random generator used for exchanges (np.random.Generator)
  Raises:
    ValueError: when fewer than two replicas are given or the lists differ in size
  """

  def __init__(
    self,
    samplers: Sequence[IsothermalMC],
    energies: Sequence[ByResidueEnergy],
    isothermal_observations: bool = True,
    rng: Optional[np.random.Generator] = None,
  ):
    if len(samplers) != len(energies):
      raise ValueError(f"{len(samplers)} samplers given for {len(energies)} energy functions")
    if len(samplers) < 2:
      raise ValueError("Replica exchange needs at least two replicas")
    self.isothermal_observations = isothermal_observations
    self.rng = rng if rng is not None else np.random.default_rng()
    self.replicas = [ReplicaTask(i, s, e) for i, (s, e) in enumerate(zip(samplers, energies))]
    self.temperatures = [s.temperature for s in samplers]
    n = len(self.replicas)
    self.n_attempted_exchanges = [0] * n
    self.n_successful_exchanges = [0] * n
    self.n_attempted_pair = [0] * (n - 1)
    self.n_successful_pair = [0] * (n - 1)
    self.n_exchanges = 1
    self.exchange_observers: List = []
    self.exchange_evaluators: List = []

  def __repr__(self):
    return f"<ReplicaExchangeMC: Replicas={len(self.replicas)}, Exchanges={self.n_exchanges}>"

  def __len__(self):
    return len(self.replicas)

  def replica_exchanges(self, n_exchanges: int):
    self.n_exchanges = n_exchanges

  def add_exchange_observer(self, observer):
    self.exchange_observers.append(observer)

  def add_exchange_evaluator(self, evaluator):
    self.exchange_evaluators.append(evaluator)

  def call_exchange_observers(self):
    for o in self.exchange_observers:
      o.observe()

  def call_exchange_evaluators(self):
    for e in self.exchange_evaluators:
      e.evaluate()

  def replica_in_slot(self, slot: int) -> int:
    return self.replicas[slot].replica_index

  def pair_success_rate(self, k: int) -> float:
    """Fraction of accepted swaps between slots ``k`` and ``k + 1``."""
    if self.n_attempted_pair[k] == 0:
      return 0.0
    return self.n_successful_pair[k] / self.n_attempted_pair[k]

  @staticmethod
  def exchange_exponent(t1: float, t2: float, e1: float, e2: float) -> float:
    """Logarithm of the swap probability of the replicas at ``t1`` (energy ``e1``) and ``t2`` (energy ``e2``)."""
    return (1.0 / t2 - 1.0 / t1) * (e2 - e1)

  def try_exchange(self, l1: int, l2: int) -> bool:
    r1, r2 = self.replicas[l1], self.replicas[l2]
    e1, e2 = r1.energy.calculate(), r2.energy.calculate()
    arg = self.exchange_exponent(self.temperatures[l1], self.temperatures[l2], e1, e2)
    self.n_attempted_exchanges[l1] += 1
    self.n_attempted_exchanges[l2] += 1
    self.n_attempted_pair[min(l1, l2)] += 1
    u = self.rng.random()
    if arg < 0 and u > math.exp(arg):
      logger.debug(f"Replica exchange failed {l1} ({self.temperatures[l1]:.2f} {e1:.2f}) with {l2} ({self.temperatures[l2]:.2f} {e2:.2f})")
      return False
    logger.debug(f"Exchanging replicas {l1} ({self.temperatures[l1]:.2f} {e1:.2f}) with {l2} ({self.temperatures[l2]:.2f} {e2:.2f})")

    self.replicas[l1], self.replicas[l2] = r2, r1
    r1.temperature_index, r2.temperature_index = l2, l1
    r1.sampler.temperature = self.temperatures[l2]
    r2.sampler.temperature = self.temperatures[l1]
    last = len(self.replicas) - 1
    for r, slot in ((r1, l2), (r2, l1)):
      if slot == 0:
        r.replica_space_flag = 1
      elif slot == last:
        r.replica_space_flag = 2
    self.n_successful_exchanges[l1] += 1
    self.n_successful_exchanges[l2] += 1
    self.n_successful_pair[min(l1, l2)] += 1
    if self.isothermal_observations:
      _swap_streams(r1.sampler.inner_observers, r2.sampler.inner_observers)
      _swap_streams(r1.sampler.outer_observers, r2.sampler.outer_observers)
    return True

  def run(self, progress: bool = False):
    n = len(self.replicas)
    with ThreadPoolExecutor(max_workers=n, thread_name_prefix="replica") as pool:
      for _ in tqdm(range(self.n_exchanges), desc="Replica exchange", disable=not progress):
        futures = [pool.submit(task.sampler.run) for task in self.replicas]
        for f in futures:
          f.result()
        start = int(self.rng.integers(0, 2))
        for k in range(start, n - 1, 2):
          self.try_exchange(k, k + 1)
        self.call_exchange_evaluators()
        self.call_exchange_observers()
    logger.info("Swap acceptance between neighbouring temperatures: " + " ".join(f"{self.pair_success_rate(k):.3f}" for k in range(n - 1)))

  def finalize(self):
    for task in self.replicas:
      task.sampler.finalize()
    for o in self.exchange_observers:
      o.finalize()


### FUNCTIONS ###
def _swap_streams(observers1: Sequence, observers2: Sequence):
  for o1, o2 in zip(observers1, observers2):
    if hasattr(o1, "swap_streams") and hasattr(o2, "swap_streams"):
      o1.swap_streams(o2)
