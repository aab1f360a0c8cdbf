"""
Knowledge-based mean-field potentials stored as text tables.

Table format::

  # R13_surpass
  3.0 3.1 3.2 ...            <- uniform grid of the measured feature
  # HHH                      <- key of the first block
  1.23 1.11 0.95 ...         <- values of the first block
  # HEC 4.5 7.0              <- optional bounds [x_b, x_e] of the second block
  ...
"""

import math
import os
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from surpass.interpolation import BoundedComponent, Interpolate1D, catmull_rom_kernel
from surpass.log import logger


### CLASSES ###
class MissingDistributionError(KeyError):
  """Raised when a table lacks the distribution requested by an energy term."""

  def __init__(self, key: str, known: Iterable[str], table_name: str = ""):
    self.key = key
    self.known = list(known)
    msg = f"Can't find the distribution: {key} in {table_name or 'the table'}. Known distributions: {' '.join(self.known)}"
    super().__init__(msg)

  def __str__(self):
    return self.args[0]


class MeanFieldDistributions:
  """A named set of 1D potentials, each addressed by a string key
  (a secondary structure triple such as ``"HHC"``)."""

  def __init__(self, name: str):
    self.name = name
    self._components: Dict[str, Callable[[float], float]] = {}

  def __repr__(self):
    return f"<MeanFieldDistributions: Name={self.name}, Keys={len(self._components)}>"

  def __len__(self):
    return len(self._components)

  def add_component(self, key: str, fn: Callable[[float], float]):
    self._components[key] = fn

  def at(self, key: str) -> Callable[[float], float]:
    if key not in self._components:
      raise MissingDistributionError(key, self.known_distributions(), self.name)
    return self._components[key]

  def contains_distribution(self, key: str) -> bool:
    return key in self._components

  def known_distributions(self) -> List[str]:
    return sorted(self._components)


### FUNCTIONS ###
def _parse_floats(line: str, fname: str, line_no: int) -> List[float]:
  try:
    return [float(v) for v in line.split()]
  except ValueError as e:
    raise ValueError(f"Malformed numeric line {line_no} in {fname}: {line.strip()[:60]}") from e


def load_1D_distributions(fname: str, pseudocounts: float = -1) -> MeanFieldDistributions:
  """
  -------------------------------------------------------
  Loads a mean-field table of 1D potentials.
  Every block becomes a Catmull-Rom interpolator wrapped with a quadratic
  penalty outside its bounds. Bounds default to the first and the last
  grid point unless the block header provides them.
  -------------------------------------------------------
  Parameters:
    fname.......: Path to the table file (str)
    pseudocounts: When positive, values are treated as probabilities and turned into
                  energies as -log(y + p) + log(p) (float)
  Returns:
    distributions: All the potentials found in the file (MeanFieldDistributions)
  Raises:
    FileNotFoundError: when the file does not exist
    ValueError: when the file is malformed
  """
  if not os.path.exists(fname):
    raise FileNotFoundError(f"Mean-field table not found: {fname}")
  with open(fname) as fin:
    lines = [(i + 1, line) for i, line in enumerate(fin) if line.strip()]
  if len(lines) < 2 or not lines[0][1].startswith("#"):
    raise ValueError(f"{fname} must start with a '# name' header followed by the grid line")

  mf = MeanFieldDistributions(lines[0][1][1:].strip())
  x = _parse_floats(lines[1][1], fname, lines[1][0])
  key, x_b, x_e = None, x[0], x[-1]
  for line_no, line in lines[2:]:
    if line.startswith("#"):
      tokens = line[1:].split()
      if not tokens:
        raise ValueError(f"Empty block header at line {line_no} in {fname}")
      key = tokens[0]
      x_b, x_e = x[0], x[-1]
      if len(tokens) >= 3:
        x_b, x_e = float(tokens[1]), float(tokens[2])
      continue
    if key is None:
      raise ValueError(f"Values at line {line_no} in {fname} are not preceded by a block header")
    y = _parse_floats(line, fname, line_no)
    if pseudocounts > 0:
      y = [-math.log(v + pseudocounts) + math.log(pseudocounts) for v in y]
    if mf.contains_distribution(key):
      logger.warning(f"Distribution {key} defined more than once in {fname}, the last one is used")
    mf.add_component(key, BoundedComponent(Interpolate1D(x, y, catmull_rom_kernel), x_b, x_e))
    key = None

  logger.debug(f"{len(mf)} distributions loaded from {fname} ({mf.name})")
  return mf


def write_1D_distributions(
  fname: str, name: str, x: Sequence[float], blocks: Dict[str, Sequence[float]], bounds: Optional[Dict[str, Tuple[float, float]]] = None
):
  """Writes potentials in the format read by :obj:`load_1D_distributions`.

  Parameters:
    fname: Output file path
    name: Table name stored in the header
    x: Uniform grid shared by all the blocks
    blocks: Values of each block keyed by block key
    bounds: Optional ``(x_b, x_e)`` for selected keys
  """
  bounds = bounds or {}
  with open(fname, "w") as fout:
    fout.write(f"# {name}\n")
    fout.write(" ".join(f"{v:.4f}" for v in x) + "\n")
    for key, y in blocks.items():
      if len(y) != len(x):
        raise ValueError(f"Block {key} has {len(y)} values for a grid of {len(x)} points")
      if key in bounds:
        fout.write(f"# {key} {bounds[key][0]:.4f} {bounds[key][1]:.4f}\n")
      else:
        fout.write(f"# {key}\n")
      fout.write(" ".join(f"{v:.6f}" for v in y) + "\n")
