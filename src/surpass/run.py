"""
Command line driver: simulated annealing or replica exchange Monte Carlo
of a SURPASS model built from a PDB structure and an SS2 prediction.

Example::

  surpass-mc --pdb 2gb1.pdb --ss2 2gb1.ss2 --t-start 3.0 --t-end 1.0 --t-steps 5
  surpass-mc --pdb 2gb1.pdb --ss2 2gb1.ss2 --replicas 1.0,1.3,1.7,2.2 --exchanges 50
"""

import argparse
import os
import sys
from typing import List, Optional, Sequence

import numpy as np

from surpass.config import ForceFieldConfig, SamplingConfig, set_db_path
from surpass.constants import DEFAULT_WEIGHTS_FILE
from surpass.evaluators import CrmsdEvaluator, RgSquare, Timer
from surpass.forcefield.factory import create_surpass_energy
from surpass.forcefield.hydrogen_bond import SurpassHydrogenBond
from surpass.forcefield.total import TotalEnergyByResidue
from surpass.log import logger, mute, set_level
from surpass.movers import MoversSet, PerturbChainFragment, PerturbResidue
from surpass.observers import (
  EndVectorObserver,
  ObserveEnergyComponents,
  ObserveEvaluators,
  ObserveMoversAcceptance,
  ObserveReplicaFlow,
  ObserveTopologyMatrix,
  PdbObserver,
  TriggerLowEnergy,
)
from surpass.sampling import IsothermalMC, ObservationMode, ReplicaExchangeMC, SamplingProtocolBase, SimulatedAnnealing, observation_mode
from surpass.statistics import make_rng
from surpass.structure import SecondaryStructure, read_ss2
from surpass.systems import SurpassModel


### FUNCTIONS ###
def annealing_temperatures(t_start: float = 1.0, t_end: Optional[float] = None, t_steps: Optional[int] = None) -> List[float]:
  """Temperatures of an annealing run: ``t_start`` alone, both ends, or ``t_steps`` evenly spaced values."""
  if t_end is None:
    return [t_start]
  if t_steps is None or t_steps < 2:
    return [t_start, t_end]
  return np.linspace(t_start, t_end, t_steps).tolist()


def parse_temperatures(text: str) -> List[float]:
  """Parses a comma separated list such as ``1.0,1.2,1.5``."""
  try:
    return [float(t) for t in text.split(",") if t.strip()]
  except ValueError as e:
    raise ValueError(f"Can't parse temperatures: {text}") from e


def create_movers(system: SurpassModel, energy: TotalEnergyByResidue, cfg: SamplingConfig, which_replica: int = 0, rng=None) -> MoversSet:
  """
  -------------------------------------------------------
  Single residue moves (``n_atoms`` per sweep) and, when a fragment
  length is set, fragment moves (``n_atoms / length`` per sweep). Move
  ranges are taken from the config lists cyclically by replica index.
  -------------------------------------------------------
  Parameters:
    system.......: The sampled system (SurpassModel)
    energy.......: Its energy (TotalEnergyByResidue)
    cfg..........: Move ranges and fragment length (SamplingConfig)
    which_replica: Index of the replica (int)
    rng..........: Random generator shared by the movers (np.random.Generator)
  Returns:
    movers: The movers set (MoversSet)
  """
  movers = MoversSet(rng)
  step = cfg.move_ranges[which_replica % len(cfg.move_ranges)]
  movers.add_mover(PerturbResidue(system, energy, step, rng), system.n_atoms)
  if cfg.fragment_length > 0:
    n = cfg.fragment_length
    step = cfg.fragment_move_ranges[which_replica % len(cfg.fragment_move_ranges)]
    movers.add_mover(PerturbChainFragment(system, n, energy, step, rng), max(1, system.n_atoms // n))
  return movers


def _hydrogen_bond_term(energy: TotalEnergyByResidue) -> Optional[SurpassHydrogenBond]:
  for c in energy.components:
    if isinstance(c, SurpassHydrogenBond):
      return c
  for c in energy.components:
    hb = getattr(c, "hydrogen_bond", None)
    if isinstance(hb, SurpassHydrogenBond):
      return hb
  return None


def attach_observers(
  sampler: SamplingProtocolBase,
  system: SurpassModel,
  energy: TotalEnergyByResidue,
  movers: MoversSet,
  reference: np.ndarray,
  out_dir: str,
  suffix: str = "",
  end_vector: bool = False,
):
  """Registers the standard outer cycle observers; file names get ``suffix`` before the extension."""
  path = lambda name, ext: os.path.join(out_dir, f"{name}{suffix}.{ext}")
  hb = _hydrogen_bond_term(energy)
  if hb is not None:
    sampler.add_outer_observer(ObserveTopologyMatrix(hb, path("topology", "dat")))
  stats = ObserveEvaluators([RgSquare(system), Timer(), CrmsdEvaluator(system, reference)], path("observers", "dat"))
  stats.observe_header()
  sampler.add_outer_observer(stats)
  obs_en = ObserveEnergyComponents(energy, path("energy", "dat"))
  obs_en.observe_header()
  sampler.add_outer_observer(obs_en)
  obs_ms = ObserveMoversAcceptance(movers, path("movers", "dat"))
  obs_ms.observe_header()
  sampler.add_outer_observer(obs_ms)
  if end_vector:
    sampler.add_outer_observer(EndVectorObserver(system, path("r_end", "dat")))
  sampler.add_outer_observer(PdbObserver(system, path("tra", "pdb")))


def _reference(args, ss: SecondaryStructure, model: SurpassModel) -> np.ndarray:
  if args.native is None:
    return model.coordinates.copy()
  return SurpassModel.from_structure(args.native, ss).coordinates


def run_annealing(model: SurpassModel, scoring_cfg: ForceFieldConfig, cfg: SamplingConfig, args, ss: SecondaryStructure):
  rng = make_rng(cfg.seed, 0)
  energy = create_surpass_energy(model, scoring_cfg)
  movers = create_movers(model, energy, cfg, 0, rng)
  sampler = SimulatedAnnealing(movers, cfg.temperatures, rng)
  sampler.cycles(cfg.inner_cycles, cfg.outer_cycles, cfg.cycle_size)
  logger.info(f"Initial energy: {energy.calculate():.3f}")

  attach_observers(sampler, model, energy, movers, _reference(args, ss, model), args.output_dir, end_vector=True)
  if args.out_pdb_min is not None:
    max_en = args.out_pdb_min_value if args.out_pdb_min_value is not None else energy.calculate()
    trigger = TriggerLowEnergy(energy, max_en, args.out_pdb_min_fraction)
    sampler.add_outer_observer(PdbObserver(model, os.path.join(args.output_dir, args.out_pdb_min), trigger))
  sampler.run(progress=args.progress)
  sampler.finalize()
  logger.info(f"Final energy: {energy.calculate():.3f}")
  with open(os.path.join(args.output_dir, "final.pdb"), "w") as fout:
    model.write_pdb(fout, model_id=1)


def run_replicas(model: SurpassModel, scoring_cfg: ForceFieldConfig, cfg: SamplingConfig, args, ss: SecondaryStructure):
  reference = _reference(args, ss, model)
  systems, samplers, energies = [], [], []
  for irepl, t in enumerate(cfg.temperatures):
    rng = make_rng(cfg.seed, irepl)
    rc = SurpassModel(model.coordinates, model.ss, [r.size for r in model.chain_ranges], system_id=irepl, chain_ids=model.chain_ids)
    energy = create_surpass_energy(rc, scoring_cfg)
    movers = create_movers(rc, energy, cfg, irepl, rng)
    sampler = IsothermalMC(movers, t, rng)
    sampler.cycles(cfg.inner_cycles, cfg.outer_cycles, cfg.cycle_size)
    logger.info(f"Initial energy for replica {irepl}: {energy.calculate():.3f} at temperature {t}")
    attach_observers(sampler, rc, energy, movers, reference, args.output_dir, suffix=f"-{t:.3f}")
    systems.append(rc)
    samplers.append(sampler)
    energies.append(energy)

  rex = ReplicaExchangeMC(samplers, energies, cfg.isothermal_observations, make_rng(cfg.seed, len(samplers)))
  rex.replica_exchanges(cfg.replica_exchanges)
  flow = ObserveReplicaFlow(rex, os.path.join(args.output_dir, "replica_flow.dat"))
  flow.observe_header()
  rex.add_exchange_observer(flow)
  rex.run(progress=args.progress)
  rex.finalize()
  with open(os.path.join(args.output_dir, "final.pdb"), "w") as fout:
    for i, rc in enumerate(systems):
      rc.write_pdb(fout, model_id=i + 1)


def build_parser() -> argparse.ArgumentParser:
  p = argparse.ArgumentParser(prog="surpass-mc", description="Monte Carlo sampling of coarse-grained SURPASS protein models")
  io_group = p.add_argument_group("input / output")
  io_group.add_argument("--pdb", required=True, help="Starting conformation: all-atom PDB/mmCIF, a SURPASS model or a 4-letter PDB id")
  io_group.add_argument("--ss2", required=True, help="Secondary structure of the all-atom chain in the PSIPRED SS2 format")
  io_group.add_argument("--native", default=None, help="Reference structure for crmsd; the starting conformation by default")
  io_group.add_argument("--db", default=None, help="SURPASS database directory; overrides SURPASS_DATA_DIR")
  io_group.add_argument("--weights", default=DEFAULT_WEIGHTS_FILE, help="Force field weights file")
  io_group.add_argument("--output-dir", default=".", help="Directory for the output files")
  io_group.add_argument("--out-pdb-min", default=None, help="Trajectory of low energy conformations")
  io_group.add_argument("--out-pdb-min-fraction", type=float, default=0.1, help="Energy window above the lowest energy")
  io_group.add_argument("--out-pdb-min-value", type=float, default=None, help="Initial lowest energy; the starting energy by default")

  s = p.add_argument_group("sampling")
  s.add_argument("--inner", type=int, default=None, help="Inner cycles (200 for annealing, 10 for replicas)")
  s.add_argument("--outer", type=int, default=200, help="Outer cycles (between exchanges for replicas)")
  s.add_argument("--cycle-size", type=int, default=10, help="Sweeps per inner cycle")
  s.add_argument("--t-start", type=float, default=1.0, help="First annealing temperature")
  s.add_argument("--t-end", type=float, default=None, help="Last annealing temperature")
  s.add_argument("--t-steps", type=int, default=None, help="Number of annealing temperatures")
  s.add_argument("--replicas", default=None, help="Comma separated replica temperatures; runs replica exchange")
  s.add_argument("--exchanges", type=int, default=10, help="Number of replica exchange rounds")
  s.add_argument("--observation-mode", default="ISOTHERMAL", help="ISOTHERMAL: files follow temperatures; ISOTEMPORAL: files follow replicas")
  s.add_argument("--jump-range", type=float, nargs="+", default=[0.5], help="Single residue move range(s), one per replica")
  s.add_argument("--fragment-length", type=int, default=0, help="Length of fragment moves; 0 disables them")
  s.add_argument("--fragment-range", type=float, nargs="+", default=[0.5], help="Fragment move range(s), one per replica")
  s.add_argument("--seed", type=int, default=None, help="Random seed")

  p.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING or ERROR")
  p.add_argument("--mute", nargs="+", default=[], metavar="CHANNEL", help="Silence log channels: movers, observers or sampling")
  p.add_argument("--progress", action="store_true", help="Show progress bars")
  return p


def sampling_config(args) -> SamplingConfig:
  replicas = args.replicas is not None
  temperatures = parse_temperatures(args.replicas) if replicas else annealing_temperatures(args.t_start, args.t_end, args.t_steps)
  inner = args.inner if args.inner is not None else (10 if replicas else 200)
  return SamplingConfig(
    inner_cycles=inner,
    outer_cycles=args.outer,
    cycle_size=args.cycle_size,
    temperatures=temperatures,
    replicas=replicas,
    replica_exchanges=args.exchanges,
    isothermal_observations=observation_mode(args.observation_mode) == ObservationMode.ISOTHERMAL,
    move_ranges=args.jump_range,
    fragment_length=args.fragment_length,
    fragment_move_ranges=args.fragment_range,
    seed=args.seed,
  )


def main(argv: Optional[Sequence[str]] = None) -> int:
  args = build_parser().parse_args(argv)
  set_level(args.log_level)
  for channel in args.mute:
    mute(channel)
  if args.db is not None:
    set_db_path(args.db)
  try:
    cfg = sampling_config(args)
    os.makedirs(args.output_dir, exist_ok=True)
    ss = read_ss2(args.ss2)
    scoring_cfg = ForceFieldConfig.from_file(args.weights)
    scoring_cfg.input_ss2(args.ss2)
    if args.native is not None:
      scoring_cfg.native_pdb(args.native)
    model = SurpassModel.from_structure(args.pdb, ss)
    if cfg.replicas:
      logger.info("Replica temperatures " + " ".join(str(t) for t in cfg.temperatures))
      run_replicas(model, scoring_cfg, cfg, args, ss)
    else:
      logger.info("Annealing temperatures " + " ".join(f"{t:.3f}" for t in cfg.temperatures))
      run_annealing(model, scoring_cfg, cfg, args, ss)
  except (FileNotFoundError, ValueError, KeyError, RuntimeError) as e:
    logger.error(str(e))
    return 1
  return 0


if __name__ == "__main__":
  sys.exit(main())
