"""
Tests for YAML configuration loading and environment overrides.
"""
import pytest

from taskboard.config import BoardConfig
from taskboard.schema import DEFAULT_COLORS


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("TASKBOARD_CACHE", raising=False)
    monkeypatch.delenv("TASKBOARD_API_SECRET", raising=False)


def test_defaults():
    cfg = BoardConfig()
    assert cfg.cache_key == "managementBoardData"
    assert cfg.autosave_interval_secs == 60.0
    assert cfg.top_limit == 10
    assert cfg.palette == list(DEFAULT_COLORS)
    assert cfg.port == 3000


def test_load_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "cache_path: ~/boards/main.db\n"
        "autosave_interval_secs: 15\n"
        "top_limit: 5\n"
        "palette: ['#000000', '#FFFFFF']\n"
        "unknown_key: ignored\n"
    )
    cfg = BoardConfig.load(str(path))
    assert cfg.autosave_interval_secs == 15
    assert cfg.top_limit == 5
    assert cfg.palette == ["#000000", "#FFFFFF"]
    assert not cfg.cache_path.startswith("~")
    assert cfg.cache_path.endswith("boards/main.db")


def test_missing_file_uses_defaults(tmp_path):
    cfg = BoardConfig.load(str(tmp_path / "absent.yaml"))
    assert cfg.top_limit == 10


def test_broken_yaml_uses_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("top_limit: [unclosed\n")
    assert BoardConfig.load(str(path)).top_limit == 10


def test_non_mapping_yaml_uses_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    assert BoardConfig.load(str(path)).port == 3000


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("cache_path: /from/file.db\napi_secret: file-secret\n")
    monkeypatch.setenv("TASKBOARD_CACHE", str(tmp_path / "env.db"))
    monkeypatch.setenv("TASKBOARD_API_SECRET", "env-secret")
    cfg = BoardConfig.load(str(path))
    assert cfg.cache_path == str(tmp_path / "env.db")
    assert cfg.api_secret == "env-secret"
