"""
The sampled systems: a contiguous coordinate array plus residue and chain
range tables (:obj:`ResidueChain`) and its SURPASS flavour that also knows
the secondary structure elements of the chain (:obj:`SurpassModel`).
"""

from dataclasses import dataclass
from typing import IO, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from surpass.constants import (
  ATOM_TYPE_COIL,
  ATOM_TYPE_HELIX,
  ATOM_TYPE_STRAND,
  CA_PER_BEAD,
  MIN_SS_ELEMENT_LENGTH,
  SS_TO_ATOM_TYPE,
  SURPASS_ATOM_NAMES,
)
from surpass.geometry import get_box
from surpass.log import logger
from surpass.structure import SecondaryStructure, ca_atoms, load_structure, structure_to_df

CHAIN_IDS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
PDB_ATOM_FORMAT = "ATOM  %5d %4s %3s %1s%4d    %%8.3f%%8.3f%%8.3f  1.00 99.99\n"


### CLASSES ###
@dataclass(frozen=True)
class AtomRange:
  """Inclusive range of atom indexes ``[first_atom, last_atom]``."""

  first_atom: int
  last_atom: int

  def __post_init__(self):
    if self.first_atom > self.last_atom:
      raise ValueError(f"Invalid atom range: {self.first_atom} > {self.last_atom}")

  @property
  def size(self) -> int:
    return self.last_atom - self.first_atom + 1

  def __iter__(self) -> Iterator[int]:
    return iter(range(self.first_atom, self.last_atom + 1))

  def __contains__(self, atom: int) -> bool:
    return self.first_atom <= atom <= self.last_atom


class ResidueChain:
  """A system of beads grouped into residues and chains.

  The coordinates are stored in one contiguous ``(n_atoms, 3)`` array;
  residues and chains are inclusive ranges over it. Movers are the only
  objects that write to :obj:`coordinates`; the array is never resized.

  Parameters:
    coordinates: Initial bead positions, array-like of shape (n_atoms, 3), or the number of atoms (placed at the origin)
    residue_ranges: Atom range of every residue; one bead per residue when not given
    chain_ranges: Atom range of every chain; a single chain when not given
    chain_ids: One-letter chain codes, 'A', 'B', ... by default
    system_id: Small integer distinguishing replicas in the output

  Raises:
    ValueError: If the residue and chain tables are inconsistent
  """

  def __init__(
    self,
    coordinates,
    residue_ranges: Optional[Sequence[AtomRange]] = None,
    chain_ranges: Optional[Sequence[AtomRange]] = None,
    chain_ids: Optional[str] = None,
    system_id: int = 0,
  ):
    if isinstance(coordinates, (int, np.integer)):
      coordinates = np.zeros((int(coordinates), 3))
    xyz = np.array(coordinates, dtype=np.float64, order="C")
    if xyz.ndim != 2 or xyz.shape[1] != 3 or xyz.shape[0] == 0:
      raise ValueError(f"Coordinates must be a non-empty (n, 3) array, got shape {xyz.shape}")
    self.coordinates = xyz
    self.n_atoms = xyz.shape[0]
    self.atom_type = np.full(self.n_atoms, ATOM_TYPE_COIL, dtype=np.int8)
    self.system_id = system_id

    if residue_ranges is None:
      residue_ranges = [AtomRange(i, i) for i in range(self.n_atoms)]
    if chain_ranges is None:
      chain_ranges = [AtomRange(0, self.n_atoms - 1)]
    self.residue_ranges: List[AtomRange] = list(residue_ranges)
    self.chain_ranges: List[AtomRange] = list(chain_ranges)
    if chain_ids is None:
      chain_ids = CHAIN_IDS[: len(self.chain_ranges)]
    if len(chain_ids) != len(self.chain_ranges):
      raise ValueError(f"{len(chain_ids)} chain ids given for {len(self.chain_ranges)} chains")
    self.chain_ids = chain_ids

    self._check_ranges(self.residue_ranges, "residue")
    self._check_ranges(self.chain_ranges, "chain")
    self.residue_for_atom = np.empty(self.n_atoms, dtype=np.int64)
    for ir, r in enumerate(self.residue_ranges):
      self.residue_for_atom[r.first_atom : r.last_atom + 1] = ir
    self.chain_for_atom = np.empty(self.n_atoms, dtype=np.int64)
    for ic, r in enumerate(self.chain_ranges):
      self.chain_for_atom[r.first_atom : r.last_atom + 1] = ic
    for ir, r in enumerate(self.residue_ranges):
      if self.chain_for_atom[r.first_atom] != self.chain_for_atom[r.last_atom]:
        raise ValueError(f"Residue {ir} spans two chains")

  def _check_ranges(self, ranges: Sequence[AtomRange], what: str):
    if not ranges:
      raise ValueError(f"At least one {what} is required")
    expected = 0
    for i, r in enumerate(ranges):
      if r.first_atom != expected:
        raise ValueError(f"{what.capitalize()} {i} starts at atom {r.first_atom}, expected {expected}; ranges must be disjoint and contiguous")
      expected = r.last_atom + 1
    if expected != self.n_atoms:
      raise ValueError(f"{what.capitalize()} ranges cover {expected} atoms out of {self.n_atoms}")

  @classmethod
  def from_chain_lengths(cls, chain_lengths: Sequence[int], coordinates=None, **kwargs) -> "ResidueChain":
    """A system of one-bead residues split into chains of the given lengths."""
    n = int(sum(chain_lengths))
    if coordinates is None:
      coordinates = np.zeros((n, 3))
    return cls(coordinates, chain_ranges=chain_ranges_from_lengths(chain_lengths), **kwargs)

  def __repr__(self):
    return f"<{type(self).__name__}: Atoms={self.n_atoms}, Residues={self.count_residues()}, Chains={self.count_chains()}>"

  def __len__(self):
    return self.n_atoms

  def __getitem__(self, atom: int) -> np.ndarray:
    return self.coordinates[atom]

  def count_residues(self) -> int:
    return len(self.residue_ranges)

  def count_chains(self) -> int:
    return len(self.chain_ranges)

  def atoms_for_residue(self, residue: int) -> AtomRange:
    return self.residue_ranges[residue]

  def atoms_for_chain(self, chain: int) -> AtomRange:
    if not 0 <= chain < len(self.chain_ranges):
      raise IndexError(f"Chain index {chain} out of range [0, {len(self.chain_ranges)})")
    return self.chain_ranges[chain]

  def residue_for(self, atom: int) -> int:
    if not 0 <= atom < self.n_atoms:
      raise IndexError(f"Atom index {atom} out of range [0, {self.n_atoms})")
    return int(self.residue_for_atom[atom])

  def chain_for(self, atom: int) -> int:
    if not 0 <= atom < self.n_atoms:
      raise IndexError(f"Atom index {atom} out of range [0, {self.n_atoms})")
    return int(self.chain_for_atom[atom])

  def translate(self, v: Sequence[float]):
    """Rigid translation of the whole system."""
    self.coordinates += np.asarray(v, dtype=np.float64)

  def rotate(self, rotation: np.ndarray, center: Optional[Sequence[float]] = None):
    """Rigid rotation of the whole system around ``center`` (the centroid by default)."""
    c = self.coordinates.mean(axis=0) if center is None else np.asarray(center, dtype=np.float64)
    self.coordinates[:] = (self.coordinates - c) @ np.asarray(rotation).T + c

  def default_format_lines(self) -> List[str]:
    lines = []
    for i in range(self.n_atoms):
      name = SURPASS_ATOM_NAMES.get(int(self.atom_type[i]), " CA ")
      chain = self.chain_ids[self.chain_for_atom[i]]
      lines.append(PDB_ATOM_FORMAT % (i + 1, name, "GLY", chain, self.residue_for_atom[i] + 1))
    return lines

  def write_pdb(self, stream: IO[str], format_lines: Optional[Sequence[str]] = None, model_id: int = 0):
    """Writes the current conformation as one ``MODEL`` ... ``ENDMDL`` block.

    Parameters:
      stream: Text stream to write to
      format_lines: One printf-style line per atom with three ``%8.3f`` fields for x, y, z
      model_id: Number printed in the MODEL record
    """
    if format_lines is None:
      format_lines = self.default_format_lines()
    out = ["MODEL %6d\n" % model_id]
    for i, (x, y, z) in enumerate(self.coordinates.tolist()):
      out.append(format_lines[i] % (x, y, z))
    out.append("ENDMDL\n")
    stream.write("".join(out))


class SurpassModel(ResidueChain):
  """A SURPASS system: one bead per residue, each bead classified as helix,
  strand or coil, with tables of the helix and strand elements.

  Elements shorter than three beads are demoted to coil. Elements never
  cross chain boundaries.

  Parameters:
    coordinates: Bead positions, array-like of shape (n_beads, 3)
    ss: Secondary structure letter (H, E, C) of every bead
    chain_lengths: Number of beads in each chain; a single chain when not given
    system_id: Small integer distinguishing replicas in the output
  """

  def __init__(self, coordinates, ss: str, chain_lengths: Optional[Sequence[int]] = None, system_id: int = 0, chain_ids: Optional[str] = None):
    n = len(coordinates)
    if len(ss) != n:
      raise ValueError(f"Secondary structure of length {len(ss)} given for {n} beads")
    chain_ranges = chain_ranges_from_lengths(chain_lengths) if chain_lengths is not None else None
    super().__init__(coordinates, chain_ranges=chain_ranges, chain_ids=chain_ids, system_id=system_id)
    self.assign_ss_elements(ss)

  @classmethod
  def from_coordinates(cls, coordinates, ss: str, chain_lengths: Optional[Sequence[int]] = None, **kwargs) -> "SurpassModel":
    return cls(coordinates, ss, chain_lengths, **kwargs)

  @classmethod
  def from_dataframe(cls, df: pd.DataFrame, ss: Optional[Union[str, SecondaryStructure]] = None, **kwargs) -> "SurpassModel":
    """
    -------------------------------------------------------
    Builds a SURPASS model from a per-atom dataframe (see
    :obj:`surpass.structure.structure_to_df`). A dataframe that already
    holds a SURPASS model (atoms named H, S, C) is used as is; otherwise
    every four consecutive C-alpha atoms of a chain become one bead.
    -------------------------------------------------------
    Parameters:
      df: Atoms of the structure (pd.DataFrame)
      ss: Per-residue secondary structure of the all-atom chain(s); coil when not given (str|SecondaryStructure)
    Returns:
      model: The SURPASS system (SurpassModel)
    """
    if is_surpass_model(df):
      df = df.loc[df.model == df.model.iloc[0]]
      bead_ss = "".join({"H": "H", "S": "E", "C": "C"}[a] for a in df.atom_name)
      lengths = df.groupby("chain", sort=False).size().tolist()
      chain_ids = "".join(df.chain.drop_duplicates())
      return cls(df[["x", "y", "z"]].to_numpy(), bead_ss, lengths, chain_ids=chain_ids, **kwargs)

    ca = ca_atoms(df)
    if ss is None:
      ss = "C" * len(ca)
    if isinstance(ss, SecondaryStructure):
      ss = ss.ss
    if len(ss) != len(ca):
      raise ValueError(f"Secondary structure of length {len(ss)} given for {len(ca)} residues")
    lengths = ca.groupby("chain", sort=False).size().tolist()
    chain_ids = "".join(ca.chain.drop_duplicates())
    xyz, bead_ss, bead_lengths = surpass_representation(ca[["x", "y", "z"]].to_numpy(), ss, lengths)
    logger.info(f"SURPASS model created: {len(ca)} residues converted into {len(xyz)} beads, SS: {bead_ss}")
    return cls(xyz, bead_ss, bead_lengths, chain_ids=chain_ids, **kwargs)

  @classmethod
  def from_structure(cls, pdb, ss: Optional[Union[str, SecondaryStructure]] = None, **kwargs) -> "SurpassModel":
    return cls.from_dataframe(structure_to_df(load_structure(pdb)), ss, **kwargs)

  def assign_ss_elements(self, ss: str):
    """Derives atom types and the helix / strand element tables from the SS string."""
    ss = list(ss.upper())
    unknown = set(ss) - set(SS_TO_ATOM_TYPE)
    if unknown:
      raise ValueError(f"Unknown secondary structure codes: {''.join(sorted(unknown))}")
    runs = []  # (first, last, letter)
    for chain in self.chain_ranges:
      start = chain.first_atom
      for i in range(chain.first_atom + 1, chain.last_atom + 2):
        if i > chain.last_atom or ss[i] != ss[start]:
          runs.append((start, i - 1, ss[start]))
          start = i
    for first, last, letter in runs:
      if letter != "C" and last - first + 1 < MIN_SS_ELEMENT_LENGTH:
        for i in range(first, last + 1):
          ss[i] = "C"
    self.ss = "".join(ss)
    self.atom_type[:] = [SS_TO_ATOM_TYPE[s] for s in self.ss]

    self.ss_element_for_atoms = np.zeros(self.n_atoms, dtype=np.int64)  # 0 means loop
    self.beta_index_for_atoms = np.full(self.n_atoms, self.n_atoms, dtype=np.int64)
    self.alfa_index_for_atoms = np.full(self.n_atoms, self.n_atoms, dtype=np.int64)
    self.alfa_ranges: List[AtomRange] = []
    self.beta_ranges: List[AtomRange] = []
    self.elements_alfa: List[int] = []
    self.elements_beta: List[int] = []
    n_elements = 0
    for first, last, letter in runs:
      if letter == "C" or last - first + 1 < MIN_SS_ELEMENT_LENGTH:
        continue
      n_elements += 1
      self.ss_element_for_atoms[first : last + 1] = n_elements
      if letter == "H":
        self.alfa_index_for_atoms[first : last + 1] = len(self.alfa_ranges)
        self.alfa_ranges.append(AtomRange(first, last))
        self.elements_alfa.append(n_elements)
      else:
        self.beta_index_for_atoms[first : last + 1] = len(self.beta_ranges)
        self.beta_ranges.append(AtomRange(first, last))
        self.elements_beta.append(n_elements)
    self.atoms_in_alfa = [int(i) for i in np.flatnonzero(self.atom_type == ATOM_TYPE_HELIX)]
    self.atoms_in_beta = [int(i) for i in np.flatnonzero(self.atom_type == ATOM_TYPE_STRAND)]


### FUNCTIONS ###
def chain_ranges_from_lengths(chain_lengths: Sequence[int]) -> List[AtomRange]:
  ranges = []
  first = 0
  for n in chain_lengths:
    if n < 1:
      raise ValueError(f"Chain length must be positive, got {n}")
    ranges.append(AtomRange(first, first + n - 1))
    first += n
  return ranges


def is_surpass_model(df: pd.DataFrame) -> bool:
  """True when every atom of the dataframe is a SURPASS bead (atom named H, S or C, one per residue)."""
  if df.empty or not df.atom_name.isin(["H", "S", "C"]).all():
    return False
  return not df.duplicated(["model", "chain", "res_id"]).any()


def surpass_ss(ss: str) -> str:
  """
  -------------------------------------------------------
  Secondary structure of the beads built from every four
  consecutive residues:
    all four residues equal -> their letter;
    first is C and the next three agree -> their letter;
    last is C and the first three agree -> their letter;
    anything else -> C.
  -------------------------------------------------------
  Parameters:
    ss: Per-residue secondary structure (str)
  Returns:
    bead_ss: Per-bead secondary structure, len(ss) - 3 letters (str)
  """
  out = []
  for i in range(len(ss) - CA_PER_BEAD + 1):
    w = ss[i : i + CA_PER_BEAD]
    if w[0] == w[1] == w[2] == w[3]:
      out.append(w[0])
    elif w[0] == "C" and w[1] == w[2] == w[3]:
      out.append(w[1])
    elif w[3] == "C" and w[0] == w[1] == w[2]:
      out.append(w[0])
    else:
      out.append("C")
  return "".join(out)


def surpass_representation(ca_xyz, ss: str, chain_lengths: Optional[Sequence[int]] = None) -> Tuple[np.ndarray, str, List[int]]:
  """Converts C-alpha coordinates into SURPASS beads, one per four consecutive residues of a chain.

  Parameters:
    ca_xyz: C-alpha coordinates, shape (n, 3)
    ss: Per-residue secondary structure
    chain_lengths: Residues in each chain; a single chain when not given

  Returns:
    bead coordinates (n_beads, 3), bead secondary structure, beads per chain
  """
  ca_xyz = np.asarray(ca_xyz, dtype=np.float64)
  if chain_lengths is None:
    chain_lengths = [len(ca_xyz)]
  if sum(chain_lengths) != len(ca_xyz) or len(ss) != len(ca_xyz):
    raise ValueError("Chain lengths, secondary structure and coordinates disagree in size")
  beads, bead_ss, lengths = [], [], []
  first = 0
  for n in chain_lengths:
    if n < CA_PER_BEAD:
      raise ValueError(f"A chain of {n} residues is too short for the SURPASS representation")
    chain = ca_xyz[first : first + n]
    windows = np.stack([chain[k : n - CA_PER_BEAD + 1 + k] for k in range(CA_PER_BEAD)])
    beads.append(windows.mean(axis=0))
    bead_ss.append(surpass_ss(ss[first : first + n]))
    lengths.append(n - CA_PER_BEAD + 1)
    first += n
  return np.concatenate(beads), "".join(bead_ss), lengths


def surpass_secondary_structure(ss: SecondaryStructure) -> SecondaryStructure:
  """SURPASS counterpart of a per-residue annotation: bead letters from
  :obj:`surpass_ss`, bead fractions averaged over the four residues."""
  n = len(ss) - CA_PER_BEAD + 1
  fractions = np.stack([ss.fractions[k : k + n] for k in range(CA_PER_BEAD)]).mean(axis=0)
  return SecondaryStructure(surpass_ss(ss.ss), "", fractions, ss.first_pos)


def build_polymer_chain(
  n_beads: int,
  bond_length: float,
  cutoff: float,
  rng: Optional[np.random.Generator] = None,
  n_bead_attempts: int = 1000,
  n_chain_attempts: int = 1000,
  periodic: bool = False,
) -> np.ndarray:
  """
  -------------------------------------------------------
  Grows a random self-avoiding chain bead by bead. Each new bead is placed
  at ``bond_length`` from the previous one in a random direction and
  rejected if it is closer than ``cutoff`` to any non-adjacent bead. A chain
  that can't be extended is restarted from scratch.
  -------------------------------------------------------
  Parameters:
    n_beads.........: Number of beads (int)
    bond_length.....: Distance between consecutive beads (float)
    cutoff..........: Excluded volume distance between non-adjacent beads (float)
    rng.............: Random generator (np.random.Generator)
    n_bead_attempts.: Placement attempts per bead (int)
    n_chain_attempts: Chain restarts before giving up (int)
    periodic........: Measure distances through the process-wide periodic box (bool)
  Returns:
    xyz: Bead coordinates, shape (n_beads, 3) (np.ndarray)
  Raises:
    RuntimeError: when no chain could be built
  """
  if rng is None:
    rng = np.random.default_rng()
  box = get_box()
  cutoff2 = cutoff * cutoff
  start = np.full(3, box.half_box_len) if periodic else np.zeros(3)
  for chain_attempt in range(n_chain_attempts):
    xyz = np.zeros((n_beads, 3))
    xyz[0] = start
    ok = True
    for ai in range(1, n_beads):
      placed = False
      for _ in range(n_bead_attempts):
        v = rng.uniform(-1.0, 1.0, 3)
        norm = np.linalg.norm(v)
        if norm == 0.0:
          continue
        p = xyz[ai - 1] + v * (bond_length / norm)
        if ai > 1:
          d = xyz[: ai - 1] - p
          if periodic:
            d -= box.box_len * np.round(d / box.box_len)
          if np.min(np.einsum("ij,ij->i", d, d)) < cutoff2:
            continue
        xyz[ai] = p
        placed = True
        break
      if not placed:
        ok = False
        break
    if ok:
      logger.debug(f"Polymer chain of {n_beads} beads built in {chain_attempt + 1} attempt(s)")
      return xyz
  raise RuntimeError(f"Can't build a chain of {n_beads} beads after {n_chain_attempts} attempts")


def ideal_helix(n_beads: int, radius: float = 2.3, rise: float = 1.5, twist: float = 100.0) -> np.ndarray:
  """Bead positions of an ideal helix running along the z axis (twist in degrees per bead)."""
  t = np.radians(twist) * np.arange(n_beads)
  return np.column_stack([radius * np.cos(t), radius * np.sin(t), rise * np.arange(n_beads)])
