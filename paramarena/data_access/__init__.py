"""Rating and history persistence."""
from .base import HistoryEntry, RatingStore, StorageError
from .duckdb_adapter import DuckDBRatingStore, create_schema
from .export import export_ratings, ratings_frame
from .memory import InMemoryRatingStore

__all__ = [
    "DuckDBRatingStore",
    "HistoryEntry",
    "InMemoryRatingStore",
    "RatingStore",
    "StorageError",
    "create_schema",
    "export_ratings",
    "ratings_frame",
]
