# tests/conftest.py
import itertools
from pathlib import Path

import numpy as np
import pytest

from surpass.config import set_db_path
from surpass.forcefield.base import ByResidueEnergy
from surpass.geometry import distance, planar_angle, r14x
from surpass.mean_field import write_1D_distributions
from surpass.systems import ideal_helix

HERE = Path(__file__).resolve().parent

HEC_KEYS = ["".join(k) for k in itertools.product("HEC", repeat=3)]
STIFFNESS = 10.0
N_HELIX = 30

CONTACT_TABLE = """# type_i type_j min_distance ave_distance max_distance
0 0 3.0 4.0 6.0
0 1 3.0 4.0 6.0
0 2 3.0 4.0 6.0
1 0 3.0 4.0 6.0
1 1 3.0 4.0 6.0
1 2 3.0 4.0 6.0
2 0 3.0 4.0 6.0
2 1 3.0 4.0 6.0
2 2 3.0 4.0 6.0
"""

WEIGHTS = """# name weight arguments
SurpassR13            1.0  -
SurpassR14            1.0  -
SurpassR15            1.0  -
SurpassHelixStiffness 0.5
"""


# -------------------------
# Toy energy
# -------------------------


class TetherEnergy(ByResidueEnergy):
  """Every bead is tied to its anchor point by a spring: k * |x - anchor|^2."""

  name = "Tether"

  def __init__(self, system, k=1.0, anchor=None):
    self.system = system
    self.k = k
    self.anchor = np.zeros_like(system.coordinates) if anchor is None else np.array(anchor, dtype=float)

  def _atom(self, i):
    d = self.system.coordinates[i] - self.anchor[i]
    return self.k * float(d @ d)

  def calculate_by_residue(self, which_residue):
    return sum(self._atom(i) for i in self.system.atoms_for_residue(which_residue))

  def calculate_by_chunk(self, chunk_from, chunk_to):
    return sum(self.calculate_by_residue(r) for r in range(chunk_from, chunk_to + 1))

  def calculate(self):
    return self.calculate_by_chunk(0, self.system.count_residues() - 1)


# -------------------------
# Helpers
# -------------------------


def _helix_features(xyz):
  return {
    "SurpassR13": distance(xyz[0], xyz[2]),
    "SurpassR14": r14x(xyz[0], xyz[1], xyz[2], xyz[3]),
    "SurpassR15": distance(xyz[0], xyz[4]),
    "SurpassA13": planar_angle(xyz[0], xyz[1], xyz[2]),
  }


def _grids():
  return {
    "SurpassR13": np.arange(2.0, 9.01, 0.25),
    "SurpassR14": np.arange(-9.0, 9.01, 0.25),
    "SurpassR15": np.arange(2.0, 12.01, 0.25),
    "SurpassA13": np.arange(0.0, 180.01, 5.0),
  }


def _write_local_tables(directory: Path):
  """Harmonic potentials with the minimum at the ideal helix geometry, the same for every SS key."""
  directory.mkdir(parents=True, exist_ok=True)
  features = _helix_features(ideal_helix(5))
  paths = {}
  for name, x in _grids().items():
    x0 = features[name]
    k = STIFFNESS if name != "SurpassA13" else 0.01
    y = k * (x - x0) ** 2
    fname = directory / f"{name[len('Surpass'):]}_surpass.dat"
    write_1D_distributions(str(fname), f"{name}_test", x, {key: y for key in HEC_KEYS})
    paths[name] = str(fname)
  return paths


# -------------------------
# Fixtures
# -------------------------


@pytest.fixture
def tether():
  return TetherEnergy


@pytest.fixture
def helix_xyz():
  return ideal_helix(N_HELIX)


@pytest.fixture
def local_tables(tmp_path):
  return _write_local_tables(tmp_path / "tables")


@pytest.fixture
def surpass_db(tmp_path):
  """A database directory with the default tables and weights file."""
  db = tmp_path / "db"
  _write_local_tables(db / "forcefield" / "local")
  (db / "forcefield" / "surpass_contact.dat").write_text(CONTACT_TABLE)
  (db / "forcefield" / "surpass.wghts").write_text(WEIGHTS)
  set_db_path(str(db))
  yield db
  set_db_path(None)
