"""Round-robin pairwise evaluation of experiment results."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence, Tuple

from paramarena.ratings.elo import Outcome

from .runner import ExperimentResult, describe_error
from .schema import EvaluationPolicy

logger = logging.getLogger(__name__)


@dataclass
class Comparison:
    """Outcome of one unordered pair of results."""

    index_a: int
    index_b: int
    result_a: ExperimentResult
    result_b: ExperimentResult
    outcome: Outcome
    confidence: float
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "index_a": self.index_a,
            "index_b": self.index_b,
            "outcome": self.outcome.value,
            "confidence": self.confidence,
            "reason": self.reason,
        }


class EvaluationError(ValueError):
    """Raised when a single pair cannot be judged."""


def _clamp_confidence(magnitude: float) -> float:
    return max(0.0, min(1.0, magnitude))


def decisive_confidence(quality_a: float, quality_b: float) -> float:
    """Confidence of a decisive magnitude verdict, in [0.5, 1].

    A decisive verdict never counts for less than half a win, however close
    the two values are.
    """
    scale = max(abs(quality_a), abs(quality_b))
    return 0.5 + 0.5 * _clamp_confidence(abs(quality_a - quality_b) / scale)


def _by_magnitude(
    quality_a: float, quality_b: float, higher_is_better: bool, label: str
) -> Tuple[Outcome, float, str]:
    if quality_a == quality_b:
        return Outcome.DRAW, 0.0, f"Equal {label}"
    confidence = decisive_confidence(quality_a, quality_b)
    a_is_higher = quality_a > quality_b
    outcome = Outcome.A_WINS if a_is_higher == higher_is_better else Outcome.B_WINS
    return outcome, confidence, f"{label} {quality_a:g} vs {quality_b:g}"


def _to_number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise EvaluationError(f"Value {value!r} is not numeric") from exc
    if number != number:
        raise EvaluationError("Value is NaN")
    return number


def extract_metric(value: Any, path: str) -> Any:
    """Follow a dot-separated path (e.g. ``usage.total_tokens``) into a result."""
    current = value
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                raise EvaluationError(f"Metric '{path}' not found in result")
            current = current[part]
        elif hasattr(current, part):
            current = getattr(current, part)
        else:
            raise EvaluationError(f"Metric '{path}' not found in result")
    return current


def _string_length(value: Any) -> int:
    return len(value) if isinstance(value, str) else len(str(value))


class PairwiseEvaluator:
    """Builds the full set of pairwise comparisons for a policy.

    Pairs are produced with the outer loop over result index ``i`` and the inner
    loop over ``j > i``, so identical inputs always yield identical comparisons.
    """

    def evaluate(
        self, results: Sequence[ExperimentResult], policy: EvaluationPolicy
    ) -> List[Comparison]:
        comparisons: List[Comparison] = []
        for i in range(len(results)):
            for j in range(i + 1, len(results)):
                outcome, confidence, reason = self.compare(results[i], results[j], policy)
                comparisons.append(
                    Comparison(
                        index_a=i,
                        index_b=j,
                        result_a=results[i],
                        result_b=results[j],
                        outcome=outcome,
                        confidence=confidence,
                        reason=reason,
                    )
                )
        logger.info("Evaluated %d pairwise comparisons (%s policy)", len(comparisons), policy.type)
        return comparisons

    def compare(
        self, a: ExperimentResult, b: ExperimentResult, policy: EvaluationPolicy
    ) -> Tuple[Outcome, float, str]:
        """Judge one pair. Returns (outcome, confidence, reason)."""
        if not a.success and not b.success:
            return Outcome.DRAW, 0.0, "Both results have errors"
        if not a.success:
            return Outcome.B_WINS, policy.error_penalty, "Result A has error"
        if not b.success:
            return Outcome.A_WINS, policy.error_penalty, "Result B has error"

        try:
            if policy.type == "custom":
                return self._compare_custom(a, b, policy)
            value_a, value_b = a.value, b.value
            if policy.metric:
                value_a = extract_metric(value_a, policy.metric)
                value_b = extract_metric(value_b, policy.metric)
            if policy.type == "string":
                return _by_magnitude(
                    _string_length(value_a),
                    _string_length(value_b),
                    policy.higher_is_better,
                    "length",
                )
            return _by_magnitude(
                _to_number(value_a), _to_number(value_b), policy.higher_is_better, "value"
            )
        except Exception as exc:
            logger.warning(
                "Evaluation failed for %s vs %s, recording a draw: %s", a.key, b.key, exc
            )
            return Outcome.DRAW, 0.0, f"Evaluation failed: {describe_error(exc)}"

    @staticmethod
    def _compare_custom(
        a: ExperimentResult, b: ExperimentResult, policy: EvaluationPolicy
    ) -> Tuple[Outcome, float, str]:
        verdict = policy.custom_comparator(a.value, b.value)
        try:
            outcome = Outcome(verdict)
        except ValueError as exc:
            raise EvaluationError(f"Comparator returned unknown verdict {verdict!r}") from exc
        return outcome, 1.0, "Custom comparator result"
