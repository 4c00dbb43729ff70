from __future__ import annotations

from pathlib import Path

import pytest

from scripts.lib.engine_config import CONFIG_ENV, ConfigError, EngineConfig, load_config


def _write(tmp_path: Path, body: str) -> Path:
    p = tmp_path / "engine.yaml"
    p.write_text(body, encoding="utf-8")
    return p


def test_missing_default_file_gives_defaults(monkeypatch, tmp_path):
    monkeypatch.delenv(CONFIG_ENV, raising=False)
    monkeypatch.setattr("scripts.lib.engine_config.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")
    assert load_config() == EngineConfig()


def test_repo_config_matches_defaults(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV, raising=False)
    assert load_config() == EngineConfig()


def test_values_are_read_and_coerced(tmp_path):
    cfg = load_config(_write(tmp_path, "batch_size: '250'\nbbox_degrees: 0.1\nsite_name: Example\n"))
    assert cfg.batch_size == 250
    assert cfg.bbox_degrees == 0.1
    assert cfg.site_name == "Example"
    assert cfg.seo_ratio == 0.9


def test_env_var_points_at_file(monkeypatch, tmp_path):
    monkeypatch.setenv(CONFIG_ENV, str(_write(tmp_path, "batch_size: 7\n")))
    assert load_config().batch_size == 7


def test_empty_file_is_defaults(tmp_path):
    assert load_config(_write(tmp_path, "")) == EngineConfig()


@pytest.mark.parametrize("body", [
    "batch_size: 0\n",
    "bbox_degrees: -1\n",
    "batch_size: lots\n",
    "unknown_key: 1\n",
    "- just\n- a list\n",
    "batch_size: [unclosed\n",
])
def test_bad_config_raises(tmp_path, body):
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, body))


def test_explicit_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")
