#!/usr/bin/env python
"""Tests for Config and setup_logging.

Run with: pytest tests/test_config.py -v
"""

import importlib
import logging
import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import utils.config
from utils.logging_setup import setup_logging


@pytest.fixture
def reload_config(monkeypatch):
    def _reload(**env):
        for name, value in env.items():
            monkeypatch.setenv(name, value)
        return importlib.reload(utils.config).Config

    yield _reload
    monkeypatch.undo()
    importlib.reload(utils.config)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_environment_overrides(reload_config, tmp_path):
    config = reload_config(
        RESILIENT_DATA_DIR=str(tmp_path / "data"),
        RESILIENT_DB_NAME="test.db",
        MEMORY_CACHE_MAX_ENTRIES="7",
        DEBUG="true",
    )

    assert config.db_path() == tmp_path / "data" / "test.db"
    assert config.MEMORY_CACHE_MAX_ENTRIES == 7
    assert config.DEBUG is True

    config.ensure_directories()
    assert (tmp_path / "data").is_dir()


def test_summary_is_nested(reload_config):
    summary = reload_config().get_summary()
    assert "db_path" in summary
    assert isinstance(summary["api"], dict)


def test_setup_logging_writes_file(tmp_path, restore_root_logger):
    log_file = setup_logging(log_dir=tmp_path, log_file_name="run.log", console_level="warning")

    logging.getLogger("resilient.test").debug("debug goes to file only")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_file == tmp_path / "run.log"
    assert "debug goes to file only" in log_file.read_text(encoding="utf-8")
    console = [h for h in logging.getLogger().handlers if not isinstance(h, logging.FileHandler)]
    assert console[0].level == logging.WARNING


def test_verbose_overrides_console_level(tmp_path, restore_root_logger):
    setup_logging(log_dir=tmp_path, verbose=True, console_level="ERROR")
    console = [h for h in logging.getLogger().handlers if not isinstance(h, logging.FileHandler)]
    assert console[0].level == logging.DEBUG
