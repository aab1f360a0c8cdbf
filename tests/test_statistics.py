"""
Tests for random sources and the normal distribution estimator.
"""

import math

import numpy as np
import pytest

from surpass.statistics import NormalDistribution, make_rng


def test_make_rng_is_reproducible_per_replica():
  a = make_rng(42, 0).random(5)
  b = make_rng(42, 0).random(5)
  c = make_rng(42, 1).random(5)
  assert np.array_equal(a, b)
  assert not np.array_equal(a, c)


def test_estimate():
  nd = NormalDistribution()
  mean, sdev = nd.estimate([[1.0], [2.0], [3.0], [4.0]])
  assert mean == pytest.approx(2.5)
  assert sdev == pytest.approx(math.sqrt(1.25))


def test_robust_estimate_trims_outliers_of_the_selected_column():
  rng = np.random.default_rng(0)
  values = np.concatenate([rng.normal(5.0, 1.0, 200), np.full(5, 50.0)])
  # column 0 holds noise that must not affect the estimate
  obs = np.column_stack([rng.normal(-100.0, 30.0, len(values)), values])
  nd = NormalDistribution()
  nd.estimate(obs, col=1)
  assert nd.mean > 5.5
  mean, sdev = nd.robust_estimate(obs, col=1)
  assert mean == pytest.approx(5.0, abs=0.25)
  assert sdev == pytest.approx(1.0, abs=0.25)


def test_robust_estimate_small_sample_keeps_three_quarters():
  obs = [[v] for v in [0.0] * 6 + [100.0] * 2]
  nd = NormalDistribution(0.0, 0.1)
  nd.robust_estimate(obs)
  # eight rows: trimming stops after two rounds
  assert nd.mean == pytest.approx(0.0)
  assert nd.sdev == pytest.approx(0.0)


def test_evaluate_and_cdf():
  nd = NormalDistribution(1.0, 2.0)
  assert nd.evaluate(1.0) == pytest.approx(1.0 / (2.0 * math.sqrt(2.0 * math.pi)))
  assert NormalDistribution.cdf(0.0, 0.0, 1.0) == pytest.approx(0.5)
  assert NormalDistribution.cdf(1.96, 0.0, 1.0) == pytest.approx(0.975, abs=1e-3)
