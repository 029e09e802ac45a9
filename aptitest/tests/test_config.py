"""
Tests for configuration loading.
"""

import os
import logging
import json

import pytest

from aptitest.common.config import AppConfig, ConfigLoader, EngineConfig, configure_logging, reload_config
from aptitest.common.logger import configure_logger
from aptitest.common.error_handling import ConfigurationError


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep a developer's .env and APTITEST_* variables out of the tests."""
    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("APTITEST_"):
            monkeypatch.delenv(name)


def test_defaults():
    config = ConfigLoader().load()

    assert config.engine.tick_interval_seconds == 1.0
    assert config.engine.autosave_every_ticks == 30
    assert config.engine.numeric_tolerance == pytest.approx(1e-3)
    assert config.engine.submit_max_retries == 5
    assert config.database.is_sqlite
    assert config.logging.level == "INFO"
    assert config.is_development


def test_yaml_file(tmp_path):
    path = tmp_path / "aptitest.yaml"
    path.write_text(
        "engine:\n"
        "  autosave_every_ticks: 10\n"
        "  allow_pause: false\n"
        "logging:\n"
        "  level: debug\n"
        "  json: true\n"
        "environment:\n"
        "  env: Testing\n"
    )

    config = ConfigLoader(str(path)).load()

    assert config.engine.autosave_every_ticks == 10
    assert config.engine.allow_pause is False
    assert config.logging.level == "DEBUG"
    assert config.logging.json_output is True
    assert config.is_testing


def test_json_file(tmp_path):
    path = tmp_path / "aptitest.json"
    path.write_text(json.dumps({"database": {"url": "postgresql+asyncpg://db/aptitest", "pool_size": 20}}))

    config = ConfigLoader(str(path)).load()

    assert config.database.pool_size == 20
    assert not config.database.is_sqlite


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "aptitest.yaml"
    path.write_text("engine:\n  autosave_every_ticks: 10\n  submit_max_retries: 2\n")
    monkeypatch.setenv("APTITEST_ENGINE__AUTOSAVE_EVERY_TICKS", "5")

    config = ConfigLoader(str(path)).load()

    assert config.engine.autosave_every_ticks == 5
    assert config.engine.submit_max_retries == 2


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "custom.yml"
    path.write_text("engine:\n  numeric_tolerance: 0.01\n")
    monkeypatch.setenv("APTITEST_CONFIG_PATH", str(path))

    assert reload_config().engine.numeric_tolerance == pytest.approx(0.01)


def test_missing_file_falls_back_to_defaults(tmp_path):
    config = ConfigLoader(str(tmp_path / "absent.yaml")).load()
    assert config.engine.autosave_every_ticks == 30


@pytest.mark.parametrize("content", [
    "engine: [unclosed",
    "- just\n- a list\n",
    "engine:\n  tick_interval_seconds: 0\n",
    "logging:\n  level: LOUD\n",
    "environment:\n  env: moon\n",
])
def test_invalid_configuration(tmp_path, content):
    path = tmp_path / "bad.yaml"
    path.write_text(content)

    with pytest.raises(ConfigurationError):
        ConfigLoader(str(path)).load()


def test_engine_config_validation():
    with pytest.raises(ValueError):
        EngineConfig(submit_backoff_factor=0.5)
    with pytest.raises(ValueError):
        EngineConfig(autosave_every_ticks=-1)


def test_configure_logging_applies_level():
    config = AppConfig(logging={"level": "warning"})

    logger = configure_logging(config)

    try:
        assert logger.name == "aptitest"
        assert logger.level == logging.WARNING
    finally:
        configure_logger()
