"""Persistence contract for ratings and experiment history."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from paramarena.ratings.elo import CombinationRating, ParameterRating, RatingRecord
from paramarena.ratings.keys import RatingKey


class StorageError(RuntimeError):
    """Raised when the persistence backend cannot be read or written."""


@dataclass
class HistoryEntry:
    description: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    result_summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
            "result_summary": self.result_summary,
        }


class RatingStore(ABC):
    """Owner of long-lived rating records and the experiment history log."""

    @abstractmethod
    def get_rating(self, key: RatingKey) -> Optional[RatingRecord]:
        """Return the stored record for ``key`` or None if it was never rated."""

    @abstractmethod
    def put_rating(self, key: RatingKey, record: RatingRecord) -> None:
        """Insert or replace a single record."""

    def put_ratings(self, records: Mapping[RatingKey, RatingRecord]) -> None:
        """Insert or replace a batch of records."""
        for key, record in records.items():
            self.put_rating(key, record)

    @abstractmethod
    def get_top_parameters_by_type(self, parameter_name: str, limit: int = 10) -> List[ParameterRating]:
        """Highest-rated values of one parameter, rating descending."""

    @abstractmethod
    def get_top_combinations(self, limit: int = 10) -> List[CombinationRating]:
        """Highest-rated combinations, rating descending."""

    @abstractmethod
    def list_ratings(self, dimension: Optional[str] = None) -> List[Tuple[RatingKey, RatingRecord]]:
        """All records, optionally restricted to one dimension."""

    @abstractmethod
    def append_history(self, entry: HistoryEntry) -> None:
        """Append an experiment to the history log."""

    @abstractmethod
    def get_history(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        """History in append order; with ``limit`` only the newest entries."""

    @abstractmethod
    def clear(self) -> None:
        """Remove all ratings and history."""

    def close(self) -> None:  # pragma: no cover - nothing to release by default
        pass
