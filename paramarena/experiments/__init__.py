"""Experiment orchestration: parameter sweeps with pairwise evaluation."""
from .schema import (
    EvaluationPolicy,
    EvaluationSpec,
    ExperimentConfig,
    ParameterGrid,
    generate_combinations,
)
from .runner import ExperimentResult, InvocationRunner
from .evaluation import Comparison, PairwiseEvaluator
from .comparison import (
    EvaluationSummary,
    ExperimentComparison,
    ExperimentReport,
    ScoredResult,
    build_report,
)
from .engine import ExperimentEngine, ExperimentStorageError

__all__ = [
    "Comparison",
    "EvaluationPolicy",
    "EvaluationSpec",
    "EvaluationSummary",
    "ExperimentComparison",
    "ExperimentConfig",
    "ExperimentEngine",
    "ExperimentReport",
    "ExperimentResult",
    "ExperimentStorageError",
    "InvocationRunner",
    "PairwiseEvaluator",
    "ParameterGrid",
    "ScoredResult",
    "build_report",
    "generate_combinations",
]
