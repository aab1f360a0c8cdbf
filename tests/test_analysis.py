# tests/test_analysis.py
import pytest

from surpass.analysis import plot_observer_log, read_observer_log

LOG = """#step   Rg^2   time
    1  12.50   0.01
    2  12.75   0.02
    3  13.00   0.03
"""


def test_read_observer_log_uses_header(tmp_path):
  fname = tmp_path / "observers.dat"
  fname.write_text(LOG)
  df = read_observer_log(str(fname))
  assert list(df.columns) == ["step", "Rg^2", "time"]
  assert df["Rg^2"].tolist() == [12.5, 12.75, 13.0]


def test_read_observer_log_without_header(tmp_path):
  fname = tmp_path / "topology.dat"
  fname.write_text("     1 2 0\n     2 0 1\n")
  df = read_observer_log(str(fname))
  assert df.shape == (2, 3)
  assert list(df.columns) == [0, 1, 2]


def test_plot_observer_log(tmp_path):
  fname = tmp_path / "observers.dat"
  fname.write_text(LOG)
  out = tmp_path / "plot.png"
  plot_observer_log(str(fname), ["Rg^2"], str(out))
  assert out.exists() and out.stat().st_size > 0
  with pytest.raises(KeyError):
    plot_observer_log(str(fname), ["energy"], str(out))
