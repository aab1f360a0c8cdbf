# tests/test_evaluators.py
import numpy as np
import pytest

from surpass.evaluators import CM, CrmsdEvaluator, EchoEvaluator, REndSquare, RgSquare, Timer, standard_evaluators
from surpass.geometry import random_rotation
from surpass.systems import ResidueChain, build_polymer_chain


@pytest.fixture
def chain():
  return ResidueChain(build_polymer_chain(15, 3.8, 3.5, np.random.default_rng(1)))


def test_crmsd_ignores_rigid_motions(chain):
  reference = chain.coordinates.copy()
  crmsd = CrmsdEvaluator(chain, reference)
  chain.rotate(random_rotation(np.random.default_rng(2)))
  chain.translate((10.0, -3.0, 4.0))
  assert crmsd.evaluate() == pytest.approx(0.0, abs=1e-6)
  chain.coordinates[7] += (1.0, 0.0, 0.0)
  assert crmsd.evaluate() > 0.0


def test_crmsd_needs_matching_reference(chain):
  with pytest.raises(ValueError):
    CrmsdEvaluator(chain, np.zeros((3, 3)))


def test_geometric_evaluators():
  system = ResidueChain(np.array([[0.0, 0.0, 0.0], [3.0, 0.0, 0.0], [3.0, 4.0, 0.0]]))
  assert REndSquare(system).evaluate() == pytest.approx(25.0)
  assert RgSquare(system).evaluate() == pytest.approx(np.mean(np.sum((system.coordinates - system.coordinates.mean(axis=0)) ** 2, axis=1)))
  assert CM(system).evaluate() == pytest.approx(np.linalg.norm([2.0, 4.0 / 3.0, 0.0]))


def test_columns():
  echo = EchoEvaluator(lambda: 1.23456, "temperature", precision=3)
  assert echo.width == len("temperature")
  assert echo.value_string() == f"{1.23456:11.3f}"
  assert echo.header_string() == "temperature"
  assert Timer().evaluate() >= 0.0
  assert len(Timer().header_string()) == 8


def test_standard_evaluators(chain):
  assert [e.name for e in standard_evaluators(chain)] == ["time", "Rg^2", "REnd^2"]
  assert standard_evaluators(chain, chain.coordinates)[-1].name == "crmsd"
