"""Configuration loading and validation utilities."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class StorageConfig(BaseModel):
    duckdb_path: str = Field(..., description="Path to DuckDB ratings database file")
    history_limit: int = Field(
        default=1000, ge=1, description="Maximum number of experiment history entries kept"
    )


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class EloDefaults(BaseModel):
    initial_rating: float = Field(default=1500.0, description="Rating assigned to unseen players")
    k_factor: float = Field(default=32.0, gt=0, description="Maximum points exchanged per match")


class RunnerDefaults(BaseModel):
    max_concurrency: int = Field(
        default=5, ge=1, description="Maximum number of target invocations in flight"
    )


class ReportingDefaults(BaseModel):
    top_n: int = Field(default=5, ge=1, description="Number of top performers in summaries")


class EvolutionDefaults(BaseModel):
    population_size: int = Field(default=20, ge=1, description="Configurations per generation")
    mutation_rate: float = Field(default=0.1, ge=0, le=1, description="Chance to swap each parameter value")
    crossover_rate: float = Field(default=0.7, ge=0, le=1, description="Share of children bred by crossover")
    elite_count: int = Field(default=5, ge=0, description="Best configurations carried over unchanged")
    max_generations: int = Field(default=10, ge=1, description="Upper bound on generations")


class AppConfig(BaseModel):
    storage: StorageConfig
    logging: LoggingConfig = LoggingConfig()
    elo: EloDefaults = EloDefaults()
    runner: RunnerDefaults = RunnerDefaults()
    reporting: ReportingDefaults = ReportingDefaults()
    evolution: EvolutionDefaults = EvolutionDefaults()

    @staticmethod
    def from_yaml(path: str | Path) -> "AppConfig":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return AppConfig(**data)

    def model_dump_json(self, **kwargs: Any) -> str:  # pragma: no cover - passthrough
        return json.dumps(self.model_dump(), **kwargs)


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "base.yaml"


def load_app_config(path: str | Path | None = None) -> AppConfig:
    """Load application config from YAML.

    Args:
        path: Optional path to YAML config. If None, defaults to config/base.yaml.
    """
    resolved = Path(path) if path else DEFAULT_CONFIG_PATH
    return AppConfig.from_yaml(resolved)


def configure_logging(config: LoggingConfig) -> None:
    """Apply the logging section of the app config to the root logger."""
    logging.basicConfig(level=config.level.upper(), format=config.format, force=True)
