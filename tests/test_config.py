"""Tests for application configuration."""
import logging

import pytest
from pydantic import ValidationError

from paramarena.config import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    LoggingConfig,
    configure_logging,
    load_app_config,
)


def test_default_config_loads():
    """Test that the bundled base config is valid."""
    cfg = load_app_config()

    assert DEFAULT_CONFIG_PATH.exists()
    assert cfg.elo.initial_rating == 1500
    assert cfg.elo.k_factor == 32
    assert cfg.storage.history_limit == 1000
    assert cfg.runner.max_concurrency == 5
    assert cfg.evolution.population_size == 20
    assert cfg.evolution.max_generations == 10


def test_partial_config_uses_defaults(tmp_path):
    """Test that omitted sections fall back to defaults."""
    path = tmp_path / "app.yaml"
    path.write_text("storage:\n  duckdb_path: data/test.duckdb\nelo:\n  k_factor: 16\n", encoding="utf-8")

    cfg = AppConfig.from_yaml(path)

    assert cfg.storage.duckdb_path == "data/test.duckdb"
    assert cfg.elo.k_factor == 16
    assert cfg.elo.initial_rating == 1500
    assert cfg.reporting.top_n == 5


def test_storage_section_required(tmp_path):
    """Test that a config without storage is rejected."""
    path = tmp_path / "app.yaml"
    path.write_text("elo:\n  k_factor: 16\n", encoding="utf-8")

    with pytest.raises(ValidationError):
        AppConfig.from_yaml(path)


def test_invalid_concurrency_rejected():
    """Test that max_concurrency must be positive."""
    with pytest.raises(ValidationError):
        AppConfig(storage={"duckdb_path": "x.duckdb"}, runner={"max_concurrency": 0})


def test_invalid_mutation_rate_rejected():
    """Test that evolution rates are probabilities."""
    with pytest.raises(ValidationError):
        AppConfig(storage={"duckdb_path": "x.duckdb"}, evolution={"mutation_rate": 1.5})


def test_configure_logging():
    """Test that the configured level is applied to the root logger."""
    root = logging.getLogger()
    previous_level, previous_handlers = root.level, list(root.handlers)
    try:
        configure_logging(LoggingConfig(level="warning"))
        assert root.level == logging.WARNING
    finally:
        root.handlers[:] = previous_handlers
        root.setLevel(previous_level)
