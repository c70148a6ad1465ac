"""Experiment execution engine: sweep, evaluate, rate and report."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

from paramarena.config import AppConfig
from paramarena.data_access.base import HistoryEntry, RatingStore, StorageError
from paramarena.ratings.elo import EloRatingEngine
from paramarena.ratings.keys import RatingKey

from .comparison import ExperimentReport, build_report
from .evaluation import PairwiseEvaluator
from .runner import InvocationRunner, TargetFunction
from .schema import EvaluationPolicy, ExperimentConfig, ParameterGrid

logger = logging.getLogger(__name__)


class ExperimentStorageError(StorageError):
    """Storage failed during an experiment; ``report`` holds the computed results."""

    def __init__(self, message: str, report: ExperimentReport) -> None:
        super().__init__(message)
        self.report = report


class ExperimentEngine:
    """Engine for orchestrating experiment execution."""

    def __init__(
        self,
        config: AppConfig,
        storage: RatingStore,
        runner: Optional[InvocationRunner] = None,
        evaluator: Optional[PairwiseEvaluator] = None,
        rating_engine: Optional[EloRatingEngine] = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.runner = runner or InvocationRunner(config.runner.max_concurrency)
        self.evaluator = evaluator or PairwiseEvaluator()
        self.rating_engine = rating_engine or EloRatingEngine(
            initial_rating=config.elo.initial_rating,
            k_factor=config.elo.k_factor,
        )

    async def run_experiment(
        self,
        description: str,
        grid: ParameterGrid | Mapping[str, Any],
        target_fn: TargetFunction,
        policy: Optional[EvaluationPolicy] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExperimentReport:
        """Execute a complete experiment.

        Args:
            description: Human-readable description, recorded in the history
            grid: Parameter grid (or plain mapping of name -> values)
            target_fn: Function invoked once per combination
            policy: Evaluation policy; without it results are not rated
            cancel_event: Optional event that stops not-yet-started invocations

        Returns:
            ExperimentReport for every combination

        Raises:
            ValueError: If the grid expands to no combinations
            ExperimentStorageError: If ratings or history cannot be persisted
        """
        if not isinstance(grid, ParameterGrid):
            grid = ParameterGrid.from_mapping(grid)
        combinations = grid.generate_combinations()
        if not combinations:
            raise ValueError(
                "No parameter combinations found. Every parameter needs at least one value."
            )

        logger.info("Starting experiment: %s (%d combinations)", description, len(combinations))
        results = await self.runner.run(combinations, target_fn, cancel_event)

        if policy is None:
            report = build_report(description, combinations, results)
        else:
            evaluated = [r for r in results if not r.cancelled]
            comparisons = self.evaluator.evaluate(evaluated, policy)
            try:
                rating_update = self.rating_engine.apply_ratings(
                    comparisons,
                    self.storage,
                    extra_keys=[RatingKey.for_combination(c) for c in combinations],
                )
            except StorageError as exc:
                logger.error("Rating update failed for %s: %s", description, exc)
                raise ExperimentStorageError(
                    f"Failed to persist ratings: {exc}",
                    build_report(description, combinations, results),
                ) from exc
            report = build_report(
                description,
                combinations,
                results,
                comparisons,
                rating_update,
                top_n=self.config.reporting.top_n,
            )

        self._append_history(description, report)
        logger.info("Experiment complete: %s", description)
        return report

    def run_config(
        self,
        experiment_config: ExperimentConfig,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExperimentReport:
        """Run an experiment described by a YAML config (blocking)."""
        experiment_config.validate()
        if experiment_config.max_concurrency:
            self.runner = InvocationRunner(experiment_config.max_concurrency)
        return asyncio.run(
            self.run_experiment(
                experiment_config.description,
                experiment_config.grid,
                experiment_config.resolve_target(),
                experiment_config.to_policy(),
                cancel_event,
            )
        )

    def _append_history(self, description: str, report: ExperimentReport) -> None:
        entry = HistoryEntry(description=description, result_summary=report.result_summary())
        try:
            self.storage.append_history(entry)
        except StorageError as exc:
            logger.error("History append failed for %s: %s", description, exc)
            raise ExperimentStorageError(f"Failed to append experiment history: {exc}", report) from exc
