"""
Run-time configuration: location of the SURPASS database, force field
weight files and sampling parameters.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from surpass.constants import DB_ENV_VAR
from surpass.log import logger

_db_path: Optional[str] = None
_db_env_tested = False

KNOWN_SUBSTITUTIONS = ("${INPUT_PDB}", "${INPUT_SS2}", "${NATIVE_PDB}")


### FUNCTIONS ###
def set_db_path(path: Optional[str]):
  """Overrides the database location taken from the environment."""
  global _db_path, _db_env_tested
  _db_path = path
  _db_env_tested = True


def get_db_path() -> Optional[str]:
  """Returns the database root, reading the ``SURPASS_DATA_DIR`` variable on the first call."""
  global _db_path, _db_env_tested
  if not _db_env_tested:
    _db_env_tested = True
    path = os.environ.get(DB_ENV_VAR, "")
    if len(path) > 1:
      _db_path = path
      logger.info(f"SURPASS DB path extracted from a shell variable: {path}")
  return _db_path


def from_file_or_db(fname: str, db_location: str = "") -> str:
  """
  -------------------------------------------------------
  Locates a data file. The file is looked for as given, then
  inside the database directory (optionally in its ``db_location``
  subdirectory).
  -------------------------------------------------------
  Parameters:
    fname......: File name or path (str)
    db_location: Subdirectory of the database to search (str)
  Returns:
    path: Path to an existing file (str)
  Raises:
    FileNotFoundError: when the file can't be found anywhere
  """
  if os.path.isfile(fname):
    return fname
  searched = [os.path.abspath(fname)]
  db = get_db_path()
  if db:
    candidate = os.path.join(db, db_location, fname)
    searched.append(candidate)
    if os.path.isfile(candidate):
      logger.debug(f"file {fname} found in SURPASS DB location: {candidate}")
      return candidate
  else:
    logger.debug(f"DB path not set; use the {DB_ENV_VAR} environment variable to set it")
  raise FileNotFoundError(f"Can't locate {fname}, searched: {', '.join(searched)}")


def parse_force_field_config(text: str) -> Iterator[Tuple[str, float, List[str]]]:
  """Yields ``(term_name, weight, extra_arguments)`` for every term line of a weights file.

  Lines starting with ``#`` and lines shorter than five characters are skipped.
  """
  for line in text.splitlines():
    if len(line) < 5 or line.startswith("#"):
      continue
    tokens = line.replace("\t", " ").split()
    if len(tokens) < 2:
      logger.warning(f"Skipping a line with less than 2 tokens: {line}")
      continue
    try:
      weight = float(tokens[1])
    except ValueError as e:
      raise ValueError(f"Weight of {tokens[0]} is not a number: {tokens[1]}") from e
    yield tokens[0], weight, tokens[2:]


### CLASSES ###
class ForceFieldConfig:
  """Text of a force field weights file with placeholders for input files.

  Recognized placeholders are ``${INPUT_PDB}``, ``${INPUT_SS2}`` and ``${NATIVE_PDB}``.
  """

  def __init__(self, config_as_txt: str):
    self.template = config_as_txt
    self.substitutions: Dict[str, str] = {}

  @classmethod
  def from_file(cls, fname: str) -> "ForceFieldConfig":
    with open(from_file_or_db(fname, "forcefield")) as fin:
      return cls(fin.read())

  def set(self, key: str, value: str):
    if not value:
      logger.error(f"Substitution string is empty for the keyword: {key}")
    if key not in KNOWN_SUBSTITUTIONS:
      logger.error(f"Unknown substitution keyword: {key}")
      raise ValueError(f"Unknown substitution keyword: {key}")
    self.substitutions[key] = value

  def input_pdb(self, fname: str):
    self.set("${INPUT_PDB}", fname)

  def input_ss2(self, fname: str):
    self.set("${INPUT_SS2}", fname)

  def native_pdb(self, fname: str):
    self.set("${NATIVE_PDB}", fname)

  def substitute(self) -> str:
    cfg = self.template
    for key, value in self.substitutions.items():
      cfg = cfg.replace(key, value)
      logger.debug(f"Substituting {key} with {value}")
    return cfg

  def terms(self) -> List[Tuple[str, float, List[str]]]:
    return list(parse_force_field_config(self.substitute()))


@dataclass
class SamplingConfig:
  """Parameters of a sampling run as used by the command line driver."""

  inner_cycles: int = 10
  outer_cycles: int = 100
  cycle_size: int = 1
  temperatures: List[float] = field(default_factory=lambda: [1.0])
  replicas: bool = False
  replica_exchanges: int = 10
  isothermal_observations: bool = True
  move_ranges: List[float] = field(default_factory=lambda: [0.5])
  fragment_length: int = 0
  fragment_move_ranges: List[float] = field(default_factory=lambda: [0.5])
  seed: Optional[int] = None

  def __post_init__(self):
    if self.inner_cycles < 1 or self.outer_cycles < 1 or self.cycle_size < 1:
      raise ValueError("Cycle counts must be positive")
    if not self.temperatures or min(self.temperatures) <= 0:
      raise ValueError("At least one positive temperature is required")
    if self.replicas and len(self.temperatures) < 2:
      raise ValueError("Replica exchange requires at least two temperatures")
