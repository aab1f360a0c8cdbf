# tests/test_mean_field.py
import math

import numpy as np
import pytest

from surpass.mean_field import MissingDistributionError, load_1D_distributions, write_1D_distributions


def _write_table(path, bounds=None):
  x = np.arange(0.0, 10.01, 0.5)
  blocks = {"HHH": (x - 5.0) ** 2, "CCC": 0.5 * x}
  write_1D_distributions(str(path), "test_table", x, blocks, bounds=bounds)
  return x


def test_load_written_table(tmp_path):
  fname = tmp_path / "table.dat"
  _write_table(fname)
  mf = load_1D_distributions(str(fname))
  assert mf.name == "test_table"
  assert len(mf) == 2
  assert mf.known_distributions() == ["CCC", "HHH"]
  assert mf.contains_distribution("HHH")
  assert mf.at("HHH")(4.25) == pytest.approx(0.5625, abs=1e-4)
  assert mf.at("CCC")(6.0) == pytest.approx(3.0, abs=1e-4)


def test_values_outside_bounds_are_penalized(tmp_path):
  fname = tmp_path / "table.dat"
  _write_table(fname, bounds={"CCC": (2.0, 8.0)})
  mf = load_1D_distributions(str(fname))
  ccc = mf.at("CCC")
  assert ccc(1.0) == pytest.approx(1.0)
  assert ccc(9.5) == pytest.approx(2.25)
  # default bounds are the first and the last grid point
  assert mf.at("HHH")(12.0) == pytest.approx(4.0)


def test_missing_distribution_lists_known_keys(tmp_path):
  fname = tmp_path / "table.dat"
  _write_table(fname)
  mf = load_1D_distributions(str(fname))
  with pytest.raises(MissingDistributionError) as excinfo:
    mf.at("EEE")
  assert "EEE" in str(excinfo.value)
  assert "HHH" in str(excinfo.value)
  assert isinstance(excinfo.value, KeyError)


def test_pseudocounts_turn_probabilities_into_energies(tmp_path):
  fname = tmp_path / "probs.dat"
  x = np.arange(0.0, 5.01, 1.0)
  write_1D_distributions(str(fname), "probs", x, {"HHH": np.full(len(x), 0.2)})
  mf = load_1D_distributions(str(fname), pseudocounts=0.01)
  expected = -math.log(0.21) + math.log(0.01)
  assert mf.at("HHH")(3.0) == pytest.approx(expected, abs=1e-6)


def test_missing_file(tmp_path):
  with pytest.raises(FileNotFoundError):
    load_1D_distributions(str(tmp_path / "nope.dat"))


def test_malformed_tables(tmp_path):
  no_header = tmp_path / "no_header.dat"
  no_header.write_text("1 2 3 4\n1 2 3 4\n")
  with pytest.raises(ValueError):
    load_1D_distributions(str(no_header))

  bad_numbers = tmp_path / "bad.dat"
  bad_numbers.write_text("# bad\n0 1 2 3\n# HHH\n0 x 2 3\n")
  with pytest.raises(ValueError):
    load_1D_distributions(str(bad_numbers))


def test_writer_checks_block_sizes(tmp_path):
  with pytest.raises(ValueError):
    write_1D_distributions(str(tmp_path / "t.dat"), "t", [0, 1, 2, 3], {"HHH": [0, 1]})
