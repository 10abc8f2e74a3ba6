"""Tests for :mod:`fluxgraph.config`."""

from __future__ import annotations

import pytest

from fluxgraph import config


@pytest.fixture
def env_file(tmp_path, monkeypatch):
    path = tmp_path / ".env"
    monkeypatch.setattr(config, "ENV_FILE", path)
    config._load_environment.cache_clear()
    yield path
    config._load_environment.cache_clear()


def test_get_env_reads_from_project_dotenv(env_file, monkeypatch):
    """The helper should pull values from the project ``.env`` file."""

    monkeypatch.delenv("FLUXGRAPH_TEST_VALUE", raising=False)
    env_file.write_text("FLUXGRAPH_TEST_VALUE=from-file\n")

    assert config.get_env("FLUXGRAPH_TEST_VALUE") == "from-file"
    monkeypatch.delenv("FLUXGRAPH_TEST_VALUE", raising=False)


def test_get_env_prefers_process_environment(env_file, monkeypatch):
    """Explicit environment variables should win over the file contents."""

    env_file.write_text("FLUXGRAPH_TEST_VALUE=from-file\n")
    monkeypatch.setenv("FLUXGRAPH_TEST_VALUE", "in-memory")

    assert config.get_env("FLUXGRAPH_TEST_VALUE") == "in-memory"


def test_get_env_reads_file_once_until_cache_clear(env_file, monkeypatch):
    """Clearing the cache allows the loader to pick up updated ``.env`` values."""

    key = "FLUXGRAPH_TEST_TEMP"
    monkeypatch.delenv(key, raising=False)
    env_file.write_text(f"{key}=first\n")
    assert config.get_env(key) == "first"

    env_file.write_text(f"{key}=second\n")
    monkeypatch.delenv(key, raising=False)
    assert config.get_env(key) is None

    config._load_environment.cache_clear()
    assert config.get_env(key) == "second"
    monkeypatch.delenv(key, raising=False)


def test_get_env_returns_default_when_missing(env_file, monkeypatch):
    monkeypatch.delenv("FLUXGRAPH_DOES_NOT_EXIST", raising=False)
    assert config.get_env("FLUXGRAPH_DOES_NOT_EXIST", default="fallback") == "fallback"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1", True), ("TRUE", True), ("on", True), ("0", False), ("no", False), ("", False)],
)
def test_get_bool_env_parses_flags(env_file, monkeypatch, raw, expected):
    monkeypatch.setenv("FLUXGRAPH_STRICT_LOAD", raw)
    assert config.get_bool_env("FLUXGRAPH_STRICT_LOAD") is expected


def test_get_bool_env_default_and_invalid(env_file, monkeypatch):
    monkeypatch.delenv("FLUXGRAPH_STRICT_LOAD", raising=False)
    assert config.get_bool_env("FLUXGRAPH_STRICT_LOAD", default=True) is True

    monkeypatch.setenv("FLUXGRAPH_STRICT_LOAD", "maybe")
    with pytest.raises(ValueError):
        config.get_bool_env("FLUXGRAPH_STRICT_LOAD")
