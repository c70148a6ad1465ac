"""Shared fixtures for paramarena tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from paramarena.config import AppConfig, StorageConfig
from paramarena.data_access import DuckDBRatingStore, InMemoryRatingStore, RatingStore
from paramarena.experiments.runner import ExperimentResult


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(storage=StorageConfig(duckdb_path=str(tmp_path / "engine.duckdb")))


@pytest.fixture
def memory_store() -> InMemoryRatingStore:
    return InMemoryRatingStore()


@pytest.fixture
def duckdb_store(tmp_path: Path):
    store = DuckDBRatingStore(tmp_path / "ratings.duckdb")
    yield store
    store.close()


@pytest.fixture(params=["memory", "duckdb"])
def make_store(request, tmp_path: Path):
    """Factory building either store implementation with a given history limit."""
    created = []

    def _make(history_limit: int = 1000) -> RatingStore:
        if request.param == "memory":
            store = InMemoryRatingStore(history_limit=history_limit)
        else:
            store = DuckDBRatingStore(
                tmp_path / f"store_{len(created)}.duckdb", history_limit=history_limit
            )
        created.append(store)
        return store

    yield _make
    for store in created:
        store.close()


def ok(value, **combination) -> ExperimentResult:
    return ExperimentResult(combination=combination, value=value)


def failed(message: str = "ValueError: boom", **combination) -> ExperimentResult:
    return ExperimentResult(combination=combination, error=message)
