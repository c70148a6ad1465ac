"""Elo rating system for parameter values and full combinations."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

from .keys import COMBINATION, PARAMETER, Combination, RatingKey

if TYPE_CHECKING:
    from paramarena.data_access.base import RatingStore
    from paramarena.experiments.evaluation import Comparison

logger = logging.getLogger(__name__)

DEFAULT_ELO_RATING = 1500.0
ELO_K_FACTOR = 32.0


class Outcome(str, Enum):
    A_WINS = "A"
    B_WINS = "B"
    DRAW = "draw"

    @property
    def score_a(self) -> float:
        """Actual score of side A (1, 0.5 or 0)."""
        if self is Outcome.A_WINS:
            return 1.0
        if self is Outcome.B_WINS:
            return 0.0
        return 0.5


@dataclass
class RatingRecord:
    rating: float = DEFAULT_ELO_RATING
    matches: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rating": self.rating,
            "matches": self.matches,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
        }


@dataclass
class ParameterRating:
    parameter_name: str
    parameter_value: Any
    rating: RatingRecord


@dataclass
class CombinationRating:
    combination: Combination
    rating: RatingRecord


def expected_score(rating_a: float, rating_b: float) -> float:
    """Expected score of player A against player B."""
    return 1.0 / (1.0 + 10 ** ((rating_b - rating_a) / 400.0))


def update_pair(
    record_a: RatingRecord,
    record_b: RatingRecord,
    outcome: Outcome,
    confidence: float = 1.0,
    k_factor: float = ELO_K_FACTOR,
) -> Tuple[RatingRecord, RatingRecord]:
    """Apply one match to two records and return the updated copies.

    The actual score is pulled towards 0.5 by ``confidence`` so that weak
    verdicts move ratings only slightly.
    """
    expected_a = expected_score(record_a.rating, record_b.rating)
    score_a = 0.5 + confidence * (outcome.score_a - 0.5)
    delta = k_factor * (score_a - expected_a)

    updated_a = replace(
        record_a,
        rating=record_a.rating + delta,
        matches=record_a.matches + 1,
        wins=record_a.wins + int(outcome is Outcome.A_WINS),
        losses=record_a.losses + int(outcome is Outcome.B_WINS),
        draws=record_a.draws + int(outcome is Outcome.DRAW),
    )
    updated_b = replace(
        record_b,
        rating=record_b.rating - delta,
        matches=record_b.matches + 1,
        wins=record_b.wins + int(outcome is Outcome.B_WINS),
        losses=record_b.losses + int(outcome is Outcome.A_WINS),
        draws=record_b.draws + int(outcome is Outcome.DRAW),
    )
    return updated_a, updated_b


@dataclass
class RatingUpdate:
    """Result of applying one experiment's comparisons."""

    parameter_deltas: Dict[RatingKey, float]
    combination_deltas: Dict[RatingKey, float]
    records: Dict[RatingKey, RatingRecord]
    match_count: int = 0

    def rating_for(self, combination: Combination) -> Optional[RatingRecord]:
        return self.records.get(RatingKey.for_combination(combination))

    def by_dimension(self, dimension: str) -> Dict[RatingKey, RatingRecord]:
        return {key: record for key, record in self.records.items() if key.dimension == dimension}


class EloRatingEngine:
    """Reduces ordered comparisons into persisted rating updates.

    Each comparison is one combination-level match plus one parameter-level
    match per parameter whose values differ between the two combinations.
    Comparisons are processed strictly in order; storage is read once up front
    and written once at the end.
    """

    def __init__(
        self, initial_rating: float = DEFAULT_ELO_RATING, k_factor: float = ELO_K_FACTOR
    ) -> None:
        self.initial_rating = initial_rating
        self.k_factor = k_factor

    @staticmethod
    def matches_for(comparison: "Comparison") -> List[Tuple[RatingKey, RatingKey]]:
        """Players involved in a comparison, combination level first."""
        combo_a = comparison.result_a.combination
        combo_b = comparison.result_b.combination
        pairs = []
        combo_key_a = RatingKey.for_combination(combo_a)
        combo_key_b = RatingKey.for_combination(combo_b)
        # a player cannot play itself
        if combo_key_a != combo_key_b:
            pairs.append((combo_key_a, combo_key_b))
        for name in combo_a:
            if name not in combo_b:
                continue
            key_a = RatingKey.for_parameter(name, combo_a[name])
            key_b = RatingKey.for_parameter(name, combo_b[name])
            if key_a != key_b:
                pairs.append((key_a, key_b))
        return pairs

    def apply_ratings(
        self,
        comparisons: Iterable["Comparison"],
        storage: "RatingStore",
        extra_keys: Iterable[RatingKey] = (),
    ) -> RatingUpdate:
        """Update ratings for every comparison and persist them.

        Args:
            comparisons: Comparisons in evaluator order
            storage: Rating store to read prior ratings from and write back to
            extra_keys: Additional keys whose current records should be included
                in the returned snapshot without being updated

        Returns:
            RatingUpdate with per-key deltas and post-update records
        """
        schedule = [(comparison, self.matches_for(comparison)) for comparison in comparisons]

        players: Dict[RatingKey, None] = {}
        for _, pairs in schedule:
            for key_a, key_b in pairs:
                players.setdefault(key_a)
                players.setdefault(key_b)
        snapshot_keys = dict(players)
        for key in extra_keys:
            snapshot_keys.setdefault(key)

        records: Dict[RatingKey, RatingRecord] = {}
        for key in snapshot_keys:
            stored = storage.get_rating(key)
            records[key] = stored if stored is not None else RatingRecord(rating=self.initial_rating)
        starting = {key: record.rating for key, record in records.items()}
        logger.debug("Loaded %d rating records", len(records))

        match_count = 0
        for comparison, pairs in schedule:
            for key_a, key_b in pairs:
                records[key_a], records[key_b] = update_pair(
                    records[key_a],
                    records[key_b],
                    comparison.outcome,
                    comparison.confidence,
                    self.k_factor,
                )
                match_count += 1

        updated = {key: records[key] for key in players}
        if updated:
            storage.put_ratings(updated)
        logger.info(
            "Applied %d Elo matches from %d comparisons (%d records written)",
            match_count,
            len(schedule),
            len(updated),
        )

        deltas = {key: records[key].rating - starting[key] for key in players}
        return RatingUpdate(
            parameter_deltas={k: d for k, d in deltas.items() if k.dimension == PARAMETER},
            combination_deltas={k: d for k, d in deltas.items() if k.dimension == COMBINATION},
            records=records,
            match_count=match_count,
        )
