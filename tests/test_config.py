"""
Tests for the surpass.config module.
"""

import pytest

from surpass import config
from surpass.config import (
  ForceFieldConfig,
  SamplingConfig,
  from_file_or_db,
  get_db_path,
  parse_force_field_config,
  set_db_path,
)
from surpass.constants import DB_ENV_VAR


@pytest.fixture
def db_dir(tmp_path):
  db = tmp_path / "db"
  (db / "forcefield").mkdir(parents=True)
  (db / "forcefield" / "my.wghts").write_text("# name weight\nSurpassR13 1.5 ${INPUT_SS2}\n")
  set_db_path(str(db))
  yield db
  set_db_path(None)


def test_file_given_directly_is_returned(tmp_path):
  f = tmp_path / "local.txt"
  f.write_text("x")
  assert from_file_or_db(str(f)) == str(f)


def test_file_found_in_db(db_dir):
  path = from_file_or_db("my.wghts", "forcefield")
  assert path == str(db_dir / "forcefield" / "my.wghts")


def test_missing_file_reports_searched_locations(db_dir):
  with pytest.raises(FileNotFoundError) as excinfo:
    from_file_or_db("absent.wghts", "forcefield")
  assert "absent.wghts" in str(excinfo.value)


def test_db_path_read_from_environment(monkeypatch, tmp_path):
  monkeypatch.setattr(config, "_db_path", None)
  monkeypatch.setattr(config, "_db_env_tested", False)
  monkeypatch.setenv(DB_ENV_VAR, str(tmp_path))
  assert get_db_path() == str(tmp_path)


def test_parse_force_field_config_skips_comments_and_short_lines():
  text = "# comment\n\nabc\nSurpassR13 1.0\nSurpassContact 0.5 3.0 -1.0 0.0\n"
  terms = list(parse_force_field_config(text))
  assert terms == [("SurpassR13", 1.0, []), ("SurpassContact", 0.5, ["3.0", "-1.0", "0.0"])]


def test_parse_force_field_config_bad_weight():
  with pytest.raises(ValueError):
    list(parse_force_field_config("SurpassR13 heavy\n"))


def test_force_field_config_substitutions(db_dir):
  cfg = ForceFieldConfig.from_file("my.wghts")
  cfg.input_ss2("protein.ss2")
  assert cfg.terms() == [("SurpassR13", 1.5, ["protein.ss2"])]
  assert "${INPUT_SS2}" in cfg.template


def test_force_field_config_unknown_keyword():
  cfg = ForceFieldConfig("SurpassR13 1.0\n")
  with pytest.raises(ValueError):
    cfg.set("${UNKNOWN}", "x")


def test_sampling_config_validation():
  cfg = SamplingConfig(inner_cycles=5, outer_cycles=2, temperatures=[1.0, 2.0], replicas=True)
  assert cfg.cycle_size == 1
  with pytest.raises(ValueError):
    SamplingConfig(inner_cycles=0)
  with pytest.raises(ValueError):
    SamplingConfig(temperatures=[1.0, -1.0])
  with pytest.raises(ValueError):
    SamplingConfig(temperatures=[1.0], replicas=True)
