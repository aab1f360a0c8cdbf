"""
Provides functions for reading the inputs of a SURPASS simulation: all-atom
protein structures (through BioPython) and secondary structure predictions
in the PSIPRED SS2 format.
"""

import io
import os
import tempfile
from dataclasses import dataclass, field
from typing import List, Optional, Union

import numpy as np
import pandas as pd
import requests
from Bio.PDB import MMCIFParser, PDBParser

from surpass.constants import AA_ABR_TO_CODE, SS_CODES
from surpass.log import logger


### CLASSES ###
@dataclass
class SecondaryStructure:
  """Secondary structure annotation of a sequence.

  Parameters:
    ss: One of H, E, C for every residue
    sequence: Amino acid sequence, one-letter codes (may be empty)
    fractions: Per-residue H, E, C probabilities, shape (n, 3); one-hot from ``ss`` when not given
    first_pos: Residue number of the first position
  """

  ss: str
  sequence: str = ""
  fractions: Optional[np.ndarray] = None
  first_pos: int = 1
  header: str = field(default="", repr=False)

  def __post_init__(self):
    self.ss = self.ss.upper()
    bad = set(self.ss) - set(SS_CODES)
    if bad:
      raise ValueError(f"Unknown secondary structure codes: {''.join(sorted(bad))}")
    if self.sequence and len(self.sequence) != len(self.ss):
      raise ValueError(f"Sequence length {len(self.sequence)} doesn't match the secondary structure length {len(self.ss)}")
    if self.fractions is None:
      self.fractions = np.zeros((len(self.ss), 3))
      for i, s in enumerate(self.ss):
        self.fractions[i, SS_CODES.index(s)] = 1.0
    else:
      self.fractions = np.asarray(self.fractions, dtype=float)
      if self.fractions.shape != (len(self.ss), 3):
        raise ValueError(f"Fractions of shape {self.fractions.shape} don't match {len(self.ss)} residues")

  def __len__(self):
    return len(self.ss)


### FUNCTIONS ###
def load_structure(pdb: Union[str, io.IOBase], format: str = "auto"):
  """
  -------------------------------------------------------
  Reads a protein structure with BioPython. A 4-letter string that is
  not an existing file is treated as a PDB ID and downloaded from RCSB.
  -------------------------------------------------------
  Parameters:
    pdb...: File handle, PDB / mmCIF file path or PDB ID (str|io.IOBase)
    format: "pdb", "mmcif" or "auto" to infer it from the extension (str)
  Returns:
    structure: The parsed structure (Bio.PDB.Structure.Structure)
  """
  if isinstance(pdb, str) and not os.path.exists(pdb):
    if len(pdb) != 4:
      raise FileNotFoundError(f"Structure file not found: {pdb}")
    r = requests.get(f"https://files.rcsb.org/download/{pdb.upper()}.pdb")
    r.raise_for_status()
    with tempfile.NamedTemporaryFile(delete=False, suffix=".pdb") as temp_file:
      temp_file.write(r.content)
      pdb = temp_file.name
      logger.info("Found matching structure in RCSB PDB, downloading and using that.")

  if format == "auto":
    if isinstance(pdb, io.IOBase) or str(pdb).lower().endswith(".pdb"):
      format = "pdb"
    elif str(pdb).lower().endswith(".cif") or str(pdb).lower().endswith(".mmcif"):
      format = "mmcif"
    else:
      raise ValueError("Failed to infer format. Please specify format explicitly as 'pdb' or 'mmcif'.")

  if format == "pdb":
    parser = PDBParser(QUIET=True)
  elif format == "mmcif":
    parser = MMCIFParser(QUIET=True)
  else:
    raise ValueError("Invalid format specified. Supported formats are 'pdb' or 'mmcif'.")
  structure = parser.get_structure("structure", pdb)
  if not len(structure):
    raise ValueError("No models found. Structure appears to be empty.")
  return structure


def structure_to_df(structure) -> pd.DataFrame:
  """Flattens a BioPython structure into a dataframe with one row per atom.

  Columns: model, chain, res_id, res_name, atom, atom_name, bfactor, x, y, z
  """
  df = {
    "model": [],
    "chain": [],
    "res_id": [],
    "res_name": [],
    "atom": [],
    "atom_name": [],
    "bfactor": [],
    "x": [],
    "y": [],
    "z": [],
  }
  for model in structure:
    for chain in model:
      for res in chain:
        if res.id[0] != " ":  # skip heteroatoms and waters
          continue
        for atom in res:
          df["model"].append(model.id)
          df["chain"].append(chain.id)
          df["res_id"].append(res.id[1])
          df["res_name"].append(res.resname)
          df["atom"].append(atom.serial_number)
          df["atom_name"].append(atom.get_id())
          df["bfactor"].append(atom.bfactor)
          df["x"].append(float(atom.coord[0]))
          df["y"].append(float(atom.coord[1]))
          df["z"].append(float(atom.coord[2]))
  return pd.DataFrame(df)


def ca_atoms(df: pd.DataFrame, model: Optional[int] = None) -> pd.DataFrame:
  """Returns the C-alpha rows of the first (or the given) model, in file order."""
  if model is None:
    model = df.model.iloc[0]
  ca = df.loc[(df.model == model) & (df.atom_name == "CA")].reset_index(drop=True)
  if ca.empty:
    raise ValueError("No C-alpha atoms found in the structure")
  return ca


def ca_coordinates(df: pd.DataFrame, model: Optional[int] = None) -> np.ndarray:
  return ca_atoms(df, model)[["x", "y", "z"]].to_numpy(dtype=np.float64)


def sequence_from_df(df: pd.DataFrame) -> str:
  return "".join(AA_ABR_TO_CODE.get(r, "X") for r in ca_atoms(df).res_name)


def read_ss2(fname: str) -> SecondaryStructure:
  """
  -------------------------------------------------------
  Reads a PSIPRED SS2 file.
  Each data line holds: position, amino acid, SS letter
  and the C, H, E probabilities.
  -------------------------------------------------------
  Parameters:
    fname: Path to the SS2 file (str)
  Returns:
    ss: Secondary structure with per-residue fractions (SecondaryStructure)
  """
  if not os.path.exists(fname):
    logger.error(f"Can't find SS2 file: {fname}")
    raise FileNotFoundError(f"Can't find SS2 file: {fname}")
  logger.debug(f"Reading SS2 data from {fname}")
  df = pd.read_csv(fname, sep=r"\s+", comment="#", header=None, names=["pos", "aa", "ss", "C", "H", "E"])
  if df.empty:
    raise ValueError(f"No residues found in SS2 file: {fname}")
  fractions = df[["H", "E", "C"]].to_numpy(dtype=float)
  return SecondaryStructure("".join(df.ss), "".join(df.aa), fractions, int(df.pos.iloc[0]), header=os.path.basename(fname))


def write_ss2(ss: SecondaryStructure, fout):
  fout.write("# PSIPRED VFORMAT\n\n")
  seq = ss.sequence or "X" * len(ss)
  for i, (aa, s) in enumerate(zip(seq, ss.ss)):
    h, e, c = ss.fractions[i]
    fout.write(f"{ss.first_pos + i:4d} {aa} {s}   {c:5.3f}  {h:5.3f}  {e:5.3f}\n")
