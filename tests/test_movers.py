# tests/test_movers.py
import numpy as np
import pytest

from surpass.movers import MoversSet, PerturbChainFragment, PerturbResidue
from surpass.systems import ResidueChain, build_polymer_chain


class _Always:
  def __init__(self, answer):
    self.answer = answer
    self.calls = []

  def test(self, e_old, e_new):
    self.calls.append((e_old, e_new))
    return self.answer


@pytest.fixture
def chain():
  return ResidueChain(build_polymer_chain(12, 3.8, 3.0, np.random.default_rng(5)))


# -------------------------
# Single movers
# -------------------------


def test_rejected_moves_restore_coordinates_exactly(chain, tether):
  before = chain.coordinates.copy()
  mover = PerturbResidue(chain, tether(chain), 0.5, np.random.default_rng(1))
  assert mover.n_moves(200, _Always(False)) == 0
  assert np.array_equal(chain.coordinates, before)
  assert mover.n_attempted == 200
  assert mover.n_successful == 0
  assert mover.get_success_rate() == 0.0


def test_rejected_fragment_moves_restore_coordinates_exactly(chain, tether):
  before = chain.coordinates.copy()
  mover = PerturbChainFragment(chain, 4, tether(chain), 0.5, np.random.default_rng(1))
  mover.n_moves(200, _Always(False))
  assert np.array_equal(chain.coordinates, before)


def test_accepted_moves_are_counted_and_cleared(chain, tether):
  mover = PerturbResidue(chain, tether(chain), 0.5, np.random.default_rng(1))
  assert mover.get_success_rate() == 0.0
  mover.n_moves(10, _Always(True))
  assert mover.get_and_clear_success_rate() == 1.0
  assert mover.n_attempted == 0


def test_residue_move_is_bounded_and_local(chain, tether):
  before = chain.coordinates.copy()
  mover = PerturbResidue(chain, tether(chain), 0.3, np.random.default_rng(2))
  mover.move(_Always(True))
  delta = chain.coordinates - before
  moved = np.flatnonzero(np.any(delta != 0.0, axis=1))
  assert list(moved) == [mover.last_moved]
  assert np.all(np.abs(delta) <= 0.3 + 1e-12)


def test_energy_difference_seen_by_the_criterion(chain, tether):
  energy = tether(chain)
  criterion = _Always(True)
  mover = PerturbResidue(chain, energy, 0.5, np.random.default_rng(3))
  for _ in range(20):
    e0 = energy.calculate()
    mover.move(criterion)
    e_old, e_new = criterion.calls[-1]
    assert energy.calculate() - e0 == pytest.approx(e_new - e_old)


@pytest.mark.parametrize("n_moved,profile", [(5, [1, 2, 3, 2, 1]), (4, [1, 2, 2, 1])])
def test_fragment_moves_as_a_wedge(chain, tether, n_moved, profile):
  before = chain.coordinates.copy()
  mover = PerturbChainFragment(chain, n_moved, tether(chain), 0.5, np.random.default_rng(4))
  mover.move(_Always(True))
  delta = chain.coordinates - before
  start, end = mover.last_moved_from, mover.last_moved_to
  assert end - start + 1 == n_moved
  assert 1 <= start and end <= chain.n_atoms - 2
  assert not delta[:start].any() and not delta[end + 1 :].any()
  unit = delta[start]
  for k, p in enumerate(profile):
    assert np.allclose(delta[start + k], p * unit)


def test_fragment_never_moves_chain_ends(chain, tether):
  mover = PerturbChainFragment(chain, 3, tether(chain), 0.5, np.random.default_rng(6))
  ends = chain.coordinates[[0, -1]].copy()
  mover.n_moves(300, _Always(True))
  assert np.array_equal(chain.coordinates[[0, -1]], ends)


def test_fragment_longer_than_chain_interior(tether):
  rc = ResidueChain(np.zeros((5, 3)))
  with pytest.raises(ValueError):
    PerturbChainFragment(rc, 4, tether(rc))


# -------------------------
# MoversSet
# -------------------------


def test_movers_set_sweep(chain, tether):
  rng = np.random.default_rng(8)
  energy = tether(chain)
  a = PerturbResidue(chain, energy, 0.3, rng)
  b = PerturbChainFragment(chain, 3, energy, 0.3, rng)
  movers = MoversSet(rng)
  movers.add_mover(a, 12)
  movers.add_mover(b, 3)
  assert len(movers) == 2
  assert movers.sweep_size() == 15
  for _ in range(10):
    movers.sweep(_Always(True))
  assert a.n_attempted + b.n_attempted == 150
  assert a.n_attempted > b.n_attempted

  header = movers.header_string().split()
  assert header == ["PerturbResidue", "PerturbChainFragment"]
  row = movers.row_string().split()
  assert [float(v) for v in row] == [1.0, 1.0]
  assert a.n_attempted == 0 and b.n_attempted == 0
