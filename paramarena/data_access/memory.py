"""In-process rating store."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from paramarena.ratings.elo import CombinationRating, ParameterRating, RatingRecord
from paramarena.ratings.keys import COMBINATION, PARAMETER, RatingKey

from .base import HistoryEntry, RatingStore

logger = logging.getLogger(__name__)


class InMemoryRatingStore(RatingStore):
    """Keeps ratings and history in dictionaries for the lifetime of the object."""

    def __init__(self, history_limit: int = 1000) -> None:
        self.history_limit = history_limit
        self._ratings: Dict[RatingKey, RatingRecord] = {}
        self._history: List[HistoryEntry] = []

    def get_rating(self, key: RatingKey) -> Optional[RatingRecord]:
        record = self._ratings.get(key)
        return replace(record) if record is not None else None

    def put_rating(self, key: RatingKey, record: RatingRecord) -> None:
        # re-insert so the stored key carries the latest subject values
        self._ratings.pop(key, None)
        self._ratings[key] = replace(record)

    def get_top_parameters_by_type(self, parameter_name: str, limit: int = 10) -> List[ParameterRating]:
        matching = [
            ParameterRating(key.parameter_name, key.parameter_value, replace(record))
            for key, record in self._ratings.items()
            if key.dimension == PARAMETER and key.parameter_name == parameter_name
        ]
        matching.sort(key=lambda item: item.rating.rating, reverse=True)
        return matching[:limit]

    def get_top_combinations(self, limit: int = 10) -> List[CombinationRating]:
        matching = [
            CombinationRating(dict(key.combination or {}), replace(record))
            for key, record in self._ratings.items()
            if key.dimension == COMBINATION
        ]
        matching.sort(key=lambda item: item.rating.rating, reverse=True)
        return matching[:limit]

    def list_ratings(self, dimension: Optional[str] = None) -> List[Tuple[RatingKey, RatingRecord]]:
        return [
            (key, replace(record))
            for key, record in self._ratings.items()
            if dimension is None or key.dimension == dimension
        ]

    def append_history(self, entry: HistoryEntry) -> None:
        self._history.append(entry)
        if len(self._history) > self.history_limit:
            self._history = self._history[-self.history_limit:]

    def get_history(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        if limit:
            return list(self._history[-limit:])
        return list(self._history)

    def clear(self) -> None:
        logger.info("Clearing %d ratings and %d history entries", len(self._ratings), len(self._history))
        self._ratings.clear()
        self._history.clear()
