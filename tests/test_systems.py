# tests/test_systems.py
import io
import itertools

import numpy as np
import pytest

from surpass.structure import SecondaryStructure, ca_coordinates, load_structure, read_ss2, sequence_from_df, structure_to_df, write_ss2
from surpass.systems import (
  AtomRange,
  ResidueChain,
  SurpassModel,
  build_polymer_chain,
  ideal_helix,
  surpass_representation,
  surpass_secondary_structure,
  surpass_ss,
)


def _ca_pdb(xyz, chain_lengths):
  """PDB text with one C-alpha per residue."""
  lines = []
  serial = 1
  first = 0
  for chain_id, n in zip("ABCD", chain_lengths):
    for k in range(n):
      x, y, z = xyz[first + k]
      lines.append("ATOM  %5d  CA  ALA %1s%4d    %8.3f%8.3f%8.3f  1.00  0.00           C\n" % (serial, chain_id, k + 1, x, y, z))
      serial += 1
    first += n
  lines.append("END\n")
  return "".join(lines)


# -------------------------
# ResidueChain
# -------------------------


def test_residue_chain_from_atom_count():
  rc = ResidueChain(5)
  assert rc.coordinates.shape == (5, 3)
  assert rc.coordinates.dtype == np.float64
  assert rc.count_residues() == 5
  assert rc.count_chains() == 1
  assert rc.chain_ids == "A"


def test_residue_chain_ranges():
  rc = ResidueChain(
    6,
    residue_ranges=[AtomRange(0, 1), AtomRange(2, 2), AtomRange(3, 5)],
    chain_ranges=[AtomRange(0, 2), AtomRange(3, 5)],
  )
  assert rc.residue_for(4) == 2
  assert rc.chain_for(2) == 0
  assert rc.chain_for(3) == 1
  assert list(rc.atoms_for_residue(0)) == [0, 1]
  assert rc.atoms_for_chain(1).size == 3
  with pytest.raises(IndexError):
    rc.atoms_for_chain(2)
  with pytest.raises(IndexError):
    rc.residue_for(6)


@pytest.mark.parametrize(
  "residues,chains",
  [
    ([AtomRange(0, 1), AtomRange(3, 5)], None),  # gap
    ([AtomRange(0, 2), AtomRange(2, 5)], None),  # overlap
    ([AtomRange(0, 3)], None),  # not covering every atom
    ([AtomRange(0, 3), AtomRange(4, 5)], [AtomRange(0, 2), AtomRange(3, 5)]),  # residue across chains
  ],
)
def test_inconsistent_ranges_are_rejected(residues, chains):
  with pytest.raises(ValueError):
    ResidueChain(6, residue_ranges=residues, chain_ranges=chains)


def test_atom_range_must_be_ordered():
  with pytest.raises(ValueError):
    AtomRange(3, 2)


def test_from_chain_lengths():
  rc = ResidueChain.from_chain_lengths([2, 3])
  assert rc.chain_ids == "AB"
  assert [r.size for r in rc.chain_ranges] == [2, 3]


def test_rigid_motions():
  rc = ResidueChain(ideal_helix(6))
  before = rc.coordinates.copy()
  rc.translate((1.0, -2.0, 0.5))
  assert np.allclose(rc.coordinates - before, [1.0, -2.0, 0.5])
  c = rc.coordinates.mean(axis=0)
  rc.rotate(np.diag([-1.0, -1.0, 1.0]))
  assert np.allclose(rc.coordinates.mean(axis=0), c)


def test_write_pdb_is_read_back_by_biopython():
  xyz = ideal_helix(8)
  model = SurpassModel(xyz, "CHHHHHHC")
  out = io.StringIO()
  model.write_pdb(out, model_id=3)
  text = out.getvalue()
  assert text.startswith("MODEL      3\n")
  assert text.endswith("ENDMDL\n")
  df = structure_to_df(load_structure(io.StringIO(text), format="pdb"))
  assert len(df) == 8
  assert list(df.atom_name) == ["C", "H", "H", "H", "H", "H", "H", "C"]
  assert np.allclose(df[["x", "y", "z"]].to_numpy(), xyz, atol=1e-3)


# -------------------------
# Secondary structure and elements
# -------------------------


@pytest.mark.parametrize(
  "ss,expected",
  [("HHHH", "H"), ("CEEE", "E"), ("HHHC", "H"), ("HCHH", "C"), ("CCCC", "C"), ("EEEEEE", "EEE"), ("CHHHHC", "HHH")],
)
def test_surpass_ss(ss, expected):
  assert surpass_ss(ss) == expected


def test_short_elements_are_demoted():
  model = SurpassModel(np.zeros((15, 3)), "HHCEECHHHHCCEEE")
  assert model.ss == "CCCCCCHHHHCCEEE"
  assert model.alfa_ranges == [AtomRange(6, 9)]
  assert model.beta_ranges == [AtomRange(12, 14)]
  assert model.ss_element_for_atoms[7] == 1
  assert model.ss_element_for_atoms[13] == 2
  assert model.ss_element_for_atoms[0] == 0
  assert model.alfa_index_for_atoms[8] == 0
  assert model.alfa_index_for_atoms[0] == model.n_atoms
  assert model.beta_index_for_atoms[14] == 0
  assert model.atoms_in_beta == [12, 13, 14]
  assert list(model.atom_type[:3]) == [2, 2, 2]


def test_elements_never_cross_chains():
  model = SurpassModel(np.zeros((6, 3)), "HHHHHH", chain_lengths=[3, 3])
  assert model.alfa_ranges == [AtomRange(0, 2), AtomRange(3, 5)]
  assert model.ss_element_for_atoms[2] != model.ss_element_for_atoms[3]

  model = SurpassModel(np.zeros((6, 3)), "HHHHHH", chain_lengths=[2, 4])
  assert model.ss == "CCHHHH"
  assert model.alfa_ranges == [AtomRange(2, 5)]


def test_bad_secondary_structure():
  with pytest.raises(ValueError):
    SurpassModel(np.zeros((3, 3)), "HH")
  with pytest.raises(ValueError):
    SurpassModel(np.zeros((3, 3)), "HXH")


def test_surpass_representation_averages_four_ca():
  ca = np.arange(30, dtype=float).reshape(10, 3)
  xyz, ss, lengths = surpass_representation(ca, "CHHHHHHHHC", [6, 4])
  assert lengths == [3, 1]
  assert len(xyz) == 4
  assert np.allclose(xyz[0], ca[0:4].mean(axis=0))
  assert np.allclose(xyz[3], ca[6:10].mean(axis=0))
  assert ss == "HHHH"
  with pytest.raises(ValueError):
    surpass_representation(ca, "C" * 10, [7, 3])


def test_model_from_all_atom_structure(tmp_path):
  ca = ideal_helix(12, radius=2.3, rise=1.5, twist=100.0)
  pdb = tmp_path / "ca.pdb"
  pdb.write_text(_ca_pdb(ca, [12]))
  model = SurpassModel.from_structure(str(pdb), "C" + "H" * 10 + "C")
  assert model.n_atoms == 9
  assert model.ss == "H" * 9
  assert np.allclose(model.coordinates[0], ca[0:4].mean(axis=0), atol=1e-3)


def test_model_from_surpass_pdb_keeps_beads():
  model = SurpassModel(ideal_helix(10), "CCEEEECHHH", chain_lengths=[6, 4])
  out = io.StringIO()
  model.write_pdb(out)
  again = SurpassModel.from_structure(io.StringIO(out.getvalue()))
  assert again.ss == model.ss
  assert again.chain_ids == "AB"
  assert np.allclose(again.coordinates, model.coordinates, atol=1e-3)


def test_ss2_round_trip(tmp_path):
  ss = SecondaryStructure("CHHHE", "ACDEF")
  fname = tmp_path / "x.ss2"
  with open(fname, "w") as fout:
    write_ss2(ss, fout)
  back = read_ss2(str(fname))
  assert back.ss == "CHHHE"
  assert back.sequence == "ACDEF"
  assert np.allclose(back.fractions, ss.fractions)


# -------------------------
# Chain builders
# -------------------------


def test_build_polymer_chain_is_self_avoiding():
  xyz = build_polymer_chain(20, 3.8, 3.5, np.random.default_rng(7))
  assert xyz.shape == (20, 3)
  bonds = np.linalg.norm(np.diff(xyz, axis=0), axis=1)
  assert np.allclose(bonds, 3.8)
  for i, j in itertools.combinations(range(20), 2):
    if j - i > 1:
      assert np.linalg.norm(xyz[i] - xyz[j]) >= 3.5


def test_build_polymer_chain_gives_up():
  with pytest.raises(RuntimeError):
    build_polymer_chain(5, 1.0, 5.0, np.random.default_rng(0), n_bead_attempts=5, n_chain_attempts=2)


def test_all_atom_helpers(tmp_path):
  ca = ideal_helix(6)
  pdb = tmp_path / "ca.pdb"
  pdb.write_text(_ca_pdb(ca, [6]))
  df = structure_to_df(load_structure(str(pdb)))
  assert sequence_from_df(df) == "AAAAAA"
  assert np.allclose(ca_coordinates(df), ca, atol=1e-3)


def test_bead_secondary_structure_fractions():
  ss = SecondaryStructure("CHHHHC")
  beads = surpass_secondary_structure(ss)
  assert beads.ss == "HHH"
  assert np.allclose(beads.fractions[0], [0.75, 0.0, 0.25])
  assert np.allclose(beads.fractions[1], [1.0, 0.0, 0.0])
