# tests/test_log.py
import logging

import numpy as np
import pytest

from surpass.log import Colors, SurpassFormatter, get_channel, logger, mute, set_level, unmute
from surpass.movers import MoversSet, PerturbResidue
from surpass.sampling import SimulatedAnnealing
from surpass.systems import ResidueChain


@pytest.fixture(autouse=True)
def restore_level():
  yield
  set_level(logging.DEBUG)


def test_channels_are_children_of_the_package_logger():
  assert get_channel("movers").name == "surpass.movers"
  assert get_channel("movers").parent is logger


def test_set_level_by_name():
  set_level("warning")
  assert logger.level == logging.WARNING
  with pytest.raises(ValueError):
    set_level("LOUD")


def test_mute_and_unmute():
  mute("sampling")
  assert get_channel("sampling").disabled
  unmute("sampling")
  assert not get_channel("sampling").disabled


def test_annealing_reports_temperatures(caplog, tether):
  system = ResidueChain(2)
  rng = np.random.default_rng(0)
  movers = MoversSet(rng)
  movers.add_mover(PerturbResidue(system, tether(system), 0.5, rng), 2)
  with caplog.at_level(logging.INFO, logger="surpass"):
    SimulatedAnnealing(movers, [2.0, 1.0]).run()
  messages = [r.getMessage() for r in caplog.records]
  assert "Temperature set to 2.0" in messages
  assert "Temperature set to 1.0" in messages


def test_formatter_marks_levels():
  fmt = SurpassFormatter()

  def record(level):
    return logging.LogRecord("surpass", level, "movers.py", 12, "rate %d", (3,), None)

  assert fmt.format(record(logging.DEBUG)) == f"{Colors.green}[+]{Colors.reset} rate 3"
  assert fmt.format(record(logging.INFO)) == f"{Colors.blue}[*]{Colors.reset} rate 3"
  warning = fmt.format(record(logging.WARNING))
  assert warning.startswith(f"{Colors.yellow}[-]{Colors.reset} {Colors.grey}")
  assert warning.endswith(f"rate 3 {Colors.pink}(movers.py:12){Colors.reset}")
  assert fmt.format(record(logging.CRITICAL)).startswith(f"{Colors.bold_red}[!]")
