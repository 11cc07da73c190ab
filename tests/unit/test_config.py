"""Tests for configuration loading."""

from mdsflow.config import deep_merge, load_config, load_config_hierarchy
from mdsflow.persistence import SQLiteStateStore, get_store


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
project_id: atlas
store:
  url: sqlite://runs.db
engine:
  checkpoint_interval: 2
  allow_halted_resume: true
"""
    )
    monkeypatch.setenv("MDSFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("MDSFLOW_STORE_URL", raising=False)

    config = load_config()
    assert config.project_id == "atlas"
    assert config.store.url == "sqlite://runs.db"
    assert config.engine.checkpoint_interval == 2
    assert config.engine.allow_halted_resume is True
    assert config.engine.loop_limit_factor == 10


def test_missing_config_file_gives_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("MDSFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("MDSFLOW_STORE_URL", raising=False)

    config = load_config()
    assert config.store.url is None
    assert config.log_level == "INFO"


def test_store_url_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("store:\n  url: sqlite://file.db\n")
    monkeypatch.setenv("MDSFLOW_STORE_URL", "redis://localhost:6379/0")

    assert load_config(str(config_path)).store.url == "redis://localhost:6379/0"


def test_get_store_uses_config(tmp_path, monkeypatch):
    db_path = tmp_path / "configured.db"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"store:\n  url: sqlite://{db_path}\n")
    monkeypatch.setenv("MDSFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("MDSFLOW_STORE_URL", raising=False)

    store = get_store()
    assert isinstance(store, SQLiteStateStore)
    assert store.db_path == str(db_path)


def test_config_hierarchy_later_files_win(tmp_path, monkeypatch):
    monkeypatch.delenv("MDSFLOW_STORE_URL", raising=False)
    core = tmp_path / "core.yaml"
    core.write_text(
        """
output_folder: docs
variables:
  user_name: Core
  language: en
engine:
  checkpoint_interval: 1
"""
    )
    project = tmp_path / "project.yaml"
    project.write_text(
        """
variables:
  user_name: Ada
engine:
  checkpoint_interval: 3
"""
    )

    config = load_config_hierarchy([str(core), str(tmp_path / "module.yaml"), str(project)])

    assert config.output_folder == "docs"
    assert config.variables == {"user_name": "Ada", "language": "en"}
    assert config.engine.checkpoint_interval == 3


def test_deep_merge_does_not_mutate_inputs():
    base = {"a": {"b": 1, "c": 2}}
    merged = deep_merge(base, {"a": {"c": 3}, "d": 4})

    assert merged == {"a": {"b": 1, "c": 3}, "d": 4}
    assert base == {"a": {"b": 1, "c": 2}}
