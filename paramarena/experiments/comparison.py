"""Report assembly, ranking and leaderboard utilities for experiments."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from paramarena.ratings.elo import RatingRecord, RatingUpdate
from paramarena.ratings.keys import COMBINATION, PARAMETER, Combination, combination_key

from .evaluation import Comparison
from .runner import ExperimentResult

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 5


@dataclass
class ScoredResult(ExperimentResult):
    """ExperimentResult with its post-update rating and rank."""

    score: float = 0.0
    rank: int = 0


@dataclass
class TopPerformer:
    key: str
    combination: Combination
    rating: float
    matches: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "combination": self.combination,
            "rating": self.rating,
            "matches": self.matches,
        }


@dataclass
class EvaluationSummary:
    total_comparisons: int
    average_confidence: float
    top_performers: List[TopPerformer] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_comparisons": self.total_comparisons,
            "average_confidence": self.average_confidence,
            "top_performers": [p.to_dict() for p in self.top_performers],
        }


@dataclass
class RatingSnapshot:
    """Ratings keyed by discriminator (``name:value`` or combination key)."""

    parameters: Dict[str, RatingRecord]
    combinations: Dict[str, RatingRecord]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameters": {k: r.to_dict() for k, r in self.parameters.items()},
            "combinations": {k: r.to_dict() for k, r in self.combinations.items()},
        }


@dataclass
class ExperimentReport:
    """Complete results of one experiment call."""

    description: str
    combinations: List[Combination]
    results: List[ExperimentResult]
    ratings: Optional[RatingSnapshot] = None
    evaluation_summary: Optional[EvaluationSummary] = None

    @property
    def evaluated(self) -> bool:
        return self.evaluation_summary is not None

    def to_dict(self) -> Dict[str, Any]:
        results = []
        for r in self.results:
            row: Dict[str, Any] = {"combination": r.combination}
            if r.success:
                row["value"] = r.value
            else:
                row["error"] = r.error
            if isinstance(r, ScoredResult):
                row["score"] = r.score
                row["rank"] = r.rank
            results.append(row)

        data: Dict[str, Any] = {
            "description": self.description,
            "combinations": self.combinations,
            "results": results,
        }
        if self.ratings is not None:
            data["ratings"] = self.ratings.to_dict()
        if self.evaluation_summary is not None:
            data["evaluation_summary"] = self.evaluation_summary.to_dict()
        return data

    def to_frame(self) -> pd.DataFrame:
        """One row per result, in combination order."""
        rows = []
        for r in self.results:
            row: Dict[str, Any] = {"name": combination_key(r.combination), **r.combination}
            if isinstance(r, ScoredResult):
                row["rank"] = r.rank
                row["score"] = r.score
            row["status"] = "cancelled" if r.cancelled else ("ok" if r.success else "error")
            row["value"] = r.value if r.success else None
            row["error"] = r.error
            rows.append(row)
        return pd.DataFrame(rows)

    def result_summary(self) -> Dict[str, Any]:
        """Compact summary stored in the experiment history."""
        summary: Dict[str, Any] = {
            "combinations": len(self.combinations),
            "failures": sum(1 for r in self.results if not r.success and not r.cancelled),
            "cancelled": sum(1 for r in self.results if r.cancelled),
            "evaluated": self.evaluated,
        }
        if self.evaluation_summary is not None:
            summary["total_comparisons"] = self.evaluation_summary.total_comparisons
            summary["average_confidence"] = self.evaluation_summary.average_confidence
            summary["top_performers"] = [p.key for p in self.evaluation_summary.top_performers]
        return summary


def _status_order(result: ExperimentResult) -> int:
    if result.cancelled:
        return 2
    return 0 if result.success else 1


def score_results(
    results: Sequence[ExperimentResult], rating_update: RatingUpdate
) -> List[ScoredResult]:
    """Attach post-update ratings as scores and assign ranks.

    Ranks follow score descending with ties in grid order. Failed results always
    rank after successful ones, and cancelled results after both.
    """
    scored = []
    for r in results:
        record = rating_update.rating_for(r.combination)
        scored.append(
            ScoredResult(
                combination=r.combination,
                value=r.value,
                error=r.error,
                cancelled=r.cancelled,
                score=record.rating if record is not None else 0.0,
            )
        )

    order = sorted(range(len(scored)), key=lambda i: (_status_order(scored[i]), -scored[i].score, i))
    for rank, idx in enumerate(order, 1):
        scored[idx].rank = rank
    return scored


def top_performers(
    results: Sequence[ExperimentResult], rating_update: RatingUpdate, n: int = DEFAULT_TOP_N
) -> List[TopPerformer]:
    """Highest-rated combinations of this run, from the just-updated ratings."""
    performers: Dict[str, TopPerformer] = {}
    for r in results:
        record = rating_update.rating_for(r.combination)
        if record is None or r.cancelled:
            continue
        key = combination_key(r.combination)
        performers[key] = TopPerformer(key, dict(r.combination), record.rating, record.matches)
    ranked = sorted(performers.values(), key=lambda p: p.rating, reverse=True)
    return ranked[:n]


def build_report(
    description: str,
    combinations: Sequence[Combination],
    results: Sequence[ExperimentResult],
    comparisons: Optional[Sequence[Comparison]] = None,
    rating_update: Optional[RatingUpdate] = None,
    top_n: int = DEFAULT_TOP_N,
) -> ExperimentReport:
    """Assemble the experiment report.

    Without a rating update the results are returned unscored and the report has
    neither ratings nor an evaluation summary.
    """
    if rating_update is None:
        return ExperimentReport(
            description=description,
            combinations=list(combinations),
            results=list(results),
        )

    comparisons = list(comparisons or [])
    average_confidence = (
        sum(c.confidence for c in comparisons) / len(comparisons) if comparisons else 0.0
    )
    summary = EvaluationSummary(
        total_comparisons=len(comparisons),
        average_confidence=average_confidence,
        top_performers=top_performers(results, rating_update, top_n),
    )
    snapshot = RatingSnapshot(
        parameters={k.discriminator: r for k, r in rating_update.by_dimension(PARAMETER).items()},
        combinations={k.discriminator: r for k, r in rating_update.by_dimension(COMBINATION).items()},
    )
    return ExperimentReport(
        description=description,
        combinations=list(combinations),
        results=score_results(results, rating_update),
        ratings=snapshot,
        evaluation_summary=summary,
    )


class ExperimentComparison:
    """Utilities for comparing and analyzing experiment reports."""

    @staticmethod
    def generate_leaderboard(report: ExperimentReport, top_n: Optional[int] = None) -> pd.DataFrame:
        """Leaderboard of a report: by rank when evaluated, else in grid order.

        Args:
            report: Report returned by the experiment engine
            top_n: Keep only the first N rows; all rows when None
        """
        df = report.to_frame()
        if df.empty:
            return df
        if "rank" in df.columns:
            df = df.sort_values("rank")
            columns = ["rank", "name", "score", "status", "error"]
        else:
            columns = ["name", "status", "value", "error"]
        df = df[[col for col in columns if col in df.columns]]
        if top_n is not None:
            df = df.head(top_n)
        return df.reset_index(drop=True)

    @staticmethod
    def create_performance_report(
        report: ExperimentReport,
        output_path: Optional[str | Path] = None,
        top_n: Optional[int] = None,
    ) -> str:
        """Create a text performance report.

        Args:
            report: Report returned by the experiment engine
            output_path: Optional path to save the report
            top_n: Number of leaderboard rows; all rows when None

        Returns:
            Report text
        """
        lines = []
        lines.append("=" * 80)
        lines.append(f"EXPERIMENT REPORT: {report.description}")
        lines.append("=" * 80)
        lines.append("")

        lines.append("LEADERBOARD")
        lines.append("-" * 80)
        lines.append(ExperimentComparison.generate_leaderboard(report, top_n).to_string(index=False))
        lines.append("")

        summary = report.evaluation_summary
        if summary is not None:
            lines.append("EVALUATION SUMMARY")
            lines.append("-" * 80)
            lines.append(f"Comparisons: {summary.total_comparisons}")
            lines.append(f"Average confidence: {summary.average_confidence:.3f}")
            for idx, performer in enumerate(summary.top_performers, 1):
                lines.append(
                    f"{idx}. {performer.key} rating={performer.rating:.1f} matches={performer.matches}"
                )
            lines.append("")

        text = "\n".join(lines)

        if output_path:
            Path(output_path).write_text(text, encoding="utf-8")
            logger.info("Performance report saved to %s", output_path)

        return text
