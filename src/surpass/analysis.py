"""
Reading and plotting the text logs written by observers.
"""

from typing import List, Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd

from surpass.log import logger


### FUNCTIONS ###
def _header_columns(path: str) -> Optional[List[str]]:
  with open(path) as fin:
    for line in fin:
      if line.startswith("#"):
        return line[1:].split()
      if line.strip():
        return None
  return None


def read_observer_log(path: str) -> pd.DataFrame:
  """
  -------------------------------------------------------
  Reads a table written by an observer (energy, evaluators,
  mover acceptance, replica flow, ...). Column names come from the
  ``#`` header line when the log has one; other ``#`` lines are skipped.
  -------------------------------------------------------
  Parameters:
    path: Path to the log (str)
  Returns:
    df: One row per observation (pandas.DataFrame)
  """
  names = _header_columns(path)
  df = pd.read_csv(path, sep=r"\s+", comment="#", header=None)
  if names is not None and len(names) == df.shape[1]:
    df.columns = names
  elif names is not None:
    logger.warning(f"Header of {path} has {len(names)} columns, the data has {df.shape[1]}; using numbered columns")
  return df


def plot_observer_log(path: str, columns: Optional[Sequence[str]] = None, output_file: str = "observer_log.png", x: Optional[str] = None):
  """
  -------------------------------------------------------
  Plots the selected columns of an observer log against the first column
  (or ``x``) and saves the figure.
  -------------------------------------------------------
  Parameters:
    path.......: Path to the log (str)
    columns....: Columns to plot; all but the x column when not given (list<str>)
    output_file: Image file to write (str)
    x..........: Column used for the x axis (str)
  Raises:
    KeyError: when a requested column is not in the log
  """
  df = read_observer_log(path)
  x = x if x is not None else df.columns[0]
  if columns is None:
    columns = [c for c in df.columns if c != x]
  missing = [c for c in columns if c not in df.columns]
  if missing:
    raise KeyError(f"Columns not found in {path}: {' '.join(map(str, missing))}; available: {' '.join(map(str, df.columns))}")

  fig, ax = plt.subplots(figsize=(10, 6))
  for c in columns:
    ax.plot(df[x], df[c], label=str(c), linewidth=1)
  ax.set_xlabel(str(x))
  ax.legend(bbox_to_anchor=(1.02, 1), loc="upper left", borderaxespad=0.0)
  plt.tight_layout()
  plt.savefig(output_file, dpi=150, bbox_inches="tight")
  plt.close(fig)
  logger.info(f"Plot of {len(columns)} columns of {path} saved to {output_file}")
