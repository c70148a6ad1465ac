"""DuckDB rating store."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import duckdb

from paramarena.ratings.elo import CombinationRating, ParameterRating, RatingRecord
from paramarena.ratings.keys import COMBINATION, PARAMETER, RatingKey

from .base import HistoryEntry, RatingStore, StorageError

logger = logging.getLogger(__name__)

DDL = [
    """
    CREATE TABLE IF NOT EXISTS ratings (
        dimension VARCHAR,
        discriminator VARCHAR,
        parameter_name VARCHAR,
        subject_json VARCHAR,
        rating DOUBLE,
        matches BIGINT,
        wins BIGINT,
        losses BIGINT,
        draws BIGINT,
        updated_at TIMESTAMP,
        PRIMARY KEY (dimension, discriminator)
    );
    """,
    """
    CREATE SEQUENCE IF NOT EXISTS history_id_seq START 1;
    """,
    """
    CREATE TABLE IF NOT EXISTS experiment_history (
        entry_id BIGINT DEFAULT nextval('history_id_seq') PRIMARY KEY,
        description VARCHAR,
        recorded_at TIMESTAMP,
        result_summary_json VARCHAR
    );
    """,
]

_RATING_COLUMNS = "dimension, discriminator, parameter_name, subject_json, rating, matches, wins, losses, draws"


def create_schema(db_path: str | Path) -> None:
    """Create the ratings schema in a DuckDB file."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    con = duckdb.connect(str(db_path))
    try:
        for stmt in DDL:
            con.execute(stmt)
    finally:
        con.close()


def _to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _encode_subject(key: RatingKey) -> str:
    subject = key.combination if key.dimension == COMBINATION else key.parameter_value
    return json.dumps(subject, default=str)


def _decode_key(dimension: str, discriminator: str, parameter_name: Optional[str], subject_json: str) -> RatingKey:
    subject = json.loads(subject_json) if subject_json is not None else None
    if dimension == COMBINATION:
        return RatingKey(dimension, discriminator, combination=subject or {})
    return RatingKey(dimension, discriminator, parameter_name=parameter_name, parameter_value=subject)


def _decode_record(row: Sequence[Any]) -> RatingRecord:
    rating, matches, wins, losses, draws = row
    return RatingRecord(
        rating=float(rating),
        matches=int(matches),
        wins=int(wins),
        losses=int(losses),
        draws=int(draws),
    )


class DuckDBRatingStore(RatingStore):
    """Ratings and history persisted in a DuckDB database file."""

    def __init__(self, db_path: str | Path, read_only: bool = False, history_limit: int = 1000) -> None:
        self.db_path = Path(db_path)
        self.read_only = read_only
        self.history_limit = history_limit
        in_memory = str(db_path) == ":memory:"
        try:
            if not in_memory and not read_only:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.connection = duckdb.connect(":memory:" if in_memory else str(self.db_path), read_only=read_only)
            if not read_only:
                for stmt in DDL:
                    self.connection.execute(stmt)
        except (duckdb.Error, OSError) as exc:
            raise StorageError(f"Cannot open ratings database {self.db_path}: {exc}") from exc
        logger.debug("Connected to DuckDB at %s (read_only=%s)", self.db_path, read_only)

    def _ensure_writable(self) -> None:
        if self.read_only:
            raise StorageError("Cannot write to read-only ratings database")

    def _fetchall(self, query: str, params: Sequence[Any] = ()) -> List[Tuple[Any, ...]]:
        try:
            return self.connection.execute(query, list(params)).fetchall()
        except duckdb.Error as exc:
            raise StorageError(f"Ratings query failed: {exc}") from exc

    @staticmethod
    def _rating_row(key: RatingKey, record: RatingRecord, now: datetime) -> list:
        return [
            key.dimension,
            key.discriminator,
            key.parameter_name,
            _encode_subject(key),
            float(record.rating),
            record.matches,
            record.wins,
            record.losses,
            record.draws,
            now,
        ]

    def get_rating(self, key: RatingKey) -> Optional[RatingRecord]:
        rows = self._fetchall(
            """
            SELECT rating, matches, wins, losses, draws
            FROM ratings
            WHERE dimension = ? AND discriminator = ?
            """,
            [key.dimension, key.discriminator],
        )
        return _decode_record(rows[0]) if rows else None

    def put_rating(self, key: RatingKey, record: RatingRecord) -> None:
        self.put_ratings({key: record})

    def put_ratings(self, records: Mapping[RatingKey, RatingRecord]) -> None:
        """Write all records in a single transaction."""
        self._ensure_writable()
        if not records:
            return
        now = _to_utc_naive(datetime.now(timezone.utc))
        rows = [self._rating_row(key, record, now) for key, record in records.items()]
        logger.debug("Writing %d rating records", len(rows))
        try:
            self.connection.begin()
            self.connection.executemany(
                f"INSERT OR REPLACE INTO ratings ({_RATING_COLUMNS}, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
            self.connection.commit()
        except duckdb.Error as exc:
            try:
                self.connection.rollback()
            except duckdb.Error:
                logger.debug("Rollback after failed rating write also failed", exc_info=True)
            raise StorageError(f"Failed to write {len(rows)} rating records: {exc}") from exc

    def get_top_parameters_by_type(self, parameter_name: str, limit: int = 10) -> List[ParameterRating]:
        rows = self._fetchall(
            f"""
            SELECT {_RATING_COLUMNS}
            FROM ratings
            WHERE dimension = ? AND parameter_name = ?
            ORDER BY rating DESC, discriminator
            LIMIT {int(limit)}
            """,
            [PARAMETER, parameter_name],
        )
        result = []
        for row in rows:
            key = _decode_key(*row[:4])
            result.append(ParameterRating(parameter_name, key.parameter_value, _decode_record(row[4:])))
        return result

    def get_top_combinations(self, limit: int = 10) -> List[CombinationRating]:
        rows = self._fetchall(
            f"""
            SELECT {_RATING_COLUMNS}
            FROM ratings
            WHERE dimension = ?
            ORDER BY rating DESC, discriminator
            LIMIT {int(limit)}
            """,
            [COMBINATION],
        )
        return [
            CombinationRating(_decode_key(*row[:4]).combination, _decode_record(row[4:]))
            for row in rows
        ]

    def list_ratings(self, dimension: Optional[str] = None) -> List[Tuple[RatingKey, RatingRecord]]:
        query = f"SELECT {_RATING_COLUMNS} FROM ratings"
        params: List[Any] = []
        if dimension is not None:
            query += " WHERE dimension = ?"
            params.append(dimension)
        query += " ORDER BY dimension, rating DESC, discriminator"
        return [(_decode_key(*row[:4]), _decode_record(row[4:])) for row in self._fetchall(query, params)]

    def append_history(self, entry: HistoryEntry) -> None:
        self._ensure_writable()
        try:
            self.connection.execute(
                """
                INSERT INTO experiment_history (description, recorded_at, result_summary_json)
                VALUES (?, ?, ?)
                """,
                [
                    entry.description,
                    _to_utc_naive(entry.timestamp),
                    json.dumps(entry.result_summary, default=str),
                ],
            )
            self.connection.execute(
                f"""
                DELETE FROM experiment_history
                WHERE entry_id NOT IN (
                    SELECT entry_id FROM experiment_history ORDER BY entry_id DESC LIMIT {int(self.history_limit)}
                )
                """
            )
        except duckdb.Error as exc:
            raise StorageError(f"Failed to append experiment history: {exc}") from exc
        logger.debug("Appended history entry: %s", entry.description)

    def get_history(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        rows = self._fetchall(
            """
            SELECT description, recorded_at, result_summary_json
            FROM experiment_history
            ORDER BY entry_id
            """
        )
        entries = [
            HistoryEntry(
                description=description,
                timestamp=recorded_at.replace(tzinfo=timezone.utc),
                result_summary=json.loads(summary) if summary else {},
            )
            for description, recorded_at, summary in rows
        ]
        if limit:
            return entries[-limit:]
        return entries

    def clear(self) -> None:
        self._ensure_writable()
        try:
            self.connection.execute("DELETE FROM ratings")
            self.connection.execute("DELETE FROM experiment_history")
        except duckdb.Error as exc:
            raise StorageError(f"Failed to clear ratings database: {exc}") from exc
        logger.info("Cleared ratings database at %s", self.db_path)

    def close(self) -> None:  # pragma: no cover - passthrough
        self.connection.close()
