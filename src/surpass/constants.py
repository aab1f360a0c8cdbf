"""
This file contains constants.
"""

from dataclasses import dataclass
from typing import Dict

## Secondary structure
# One-letter secondary structure codes, in the order used by every HEC table
SS_CODES = ("H", "E", "C")
# Bead class (atom_type) for each secondary structure code
SS_TO_ATOM_TYPE = {"H": 0, "E": 1, "C": 2}
ATOM_TYPE_TO_SS = {v: k for k, v in SS_TO_ATOM_TYPE.items()}
ATOM_TYPE_HELIX = 0
ATOM_TYPE_STRAND = 1
ATOM_TYPE_COIL = 2
# Atom names used for SURPASS beads in PDB output
SURPASS_ATOM_NAMES = {0: " H  ", 1: " S  ", 2: " C  "}
# Shortest helix or strand kept as a secondary structure element
MIN_SS_ELEMENT_LENGTH = 3

## SURPASS geometry
# Number of consecutive C-alpha atoms averaged into one bead
CA_PER_BEAD = 4

## Force field constants
LOCAL_REPULSION_CUTOFF = 6.0
# Neighbour count tolerated by the local repulsion term per bead class
LOCAL_REPULSION_CAPS = {ATOM_TYPE_HELIX: 2, ATOM_TYPE_STRAND: 6, ATOM_TYPE_COIL: 4}
# Residues closer along the chain than this are never counted by local repulsion
LOCAL_REPULSION_SEQ_SEPARATION = 4

HBOND_MAX_DISTANCE = 6.0
HBOND_MIN_STRAND_COS = 0.57
HBOND_MIN_PLANAR_ANGLE = 125.0
HBOND_OPTIMAL_DISTANCE = 4.65
HBOND_WELL_OFFSET = 0.57

# Beta-topology matrix entries
TOPOLOGY_NONE = 0
TOPOLOGY_PARALLEL = 1
TOPOLOGY_ANTIPARALLEL = 2

## Database files
DB_ENV_VAR = "SURPASS_DATA_DIR"
DEFAULT_LOCAL_TABLES = {
  "SurpassR13": "forcefield/local/R13_surpass.dat",
  "SurpassR14": "forcefield/local/R14_surpass.dat",
  "SurpassR15": "forcefield/local/R15_surpass.dat",
  "SurpassA13": "forcefield/local/A13_surpass.dat",
}
DEFAULT_CONTACT_TABLE = "forcefield/surpass_contact.dat"
DEFAULT_WEIGHTS_FILE = "surpass.wghts"


# Amino acid Record class
@dataclass(frozen=True)
class AARecord:
  code: str  # 1-letter code
  abr: str  # 3-letter abbreviation
  name: str  # full name (upper-cased)


## Standard amino acids keyed by ABR
AA_RECORDS: Dict[str, AARecord] = {
  "ALA": AARecord("A", "ALA", "ALANINE"),
  "ARG": AARecord("R", "ARG", "ARGININE"),
  "ASN": AARecord("N", "ASN", "ASPARAGINE"),
  "ASP": AARecord("D", "ASP", "ASPARTIC ACID"),
  "CYS": AARecord("C", "CYS", "CYSTEINE"),
  "GLN": AARecord("Q", "GLN", "GLUTAMINE"),
  "GLU": AARecord("E", "GLU", "GLUTAMIC ACID"),
  "GLY": AARecord("G", "GLY", "GLYCINE"),
  "HIS": AARecord("H", "HIS", "HISTIDINE"),
  "ILE": AARecord("I", "ILE", "ISOLEUCINE"),
  "LEU": AARecord("L", "LEU", "LEUCINE"),
  "LYS": AARecord("K", "LYS", "LYSINE"),
  "MET": AARecord("M", "MET", "METHIONINE"),
  "PHE": AARecord("F", "PHE", "PHENYLALANINE"),
  "PRO": AARecord("P", "PRO", "PROLINE"),
  "SER": AARecord("S", "SER", "SERINE"),
  "THR": AARecord("T", "THR", "THREONINE"),
  "TRP": AARecord("W", "TRP", "TRYPTOPHAN"),
  "TYR": AARecord("Y", "TYR", "TYROSINE"),
  "VAL": AARecord("V", "VAL", "VALINE"),
  "MSE": AARecord("M", "MSE", "SELENOMETHIONINE"),
  "UNK": AARecord("X", "UNK", "UNKNOWN"),
}

AA_ABR_TO_CODE = {abr: rec.code for abr, rec in AA_RECORDS.items()}
