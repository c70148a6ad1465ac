"""Tabular export of stored ratings."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from .base import RatingStore

logger = logging.getLogger(__name__)

RATING_COLUMNS = ["dimension", "name", "value", "rating", "matches", "wins", "losses", "draws"]


def ratings_frame(store: RatingStore, dimension: Optional[str] = None) -> pd.DataFrame:
    """All stored ratings as a DataFrame sorted by dimension and rating."""
    rows = []
    for key, record in store.list_ratings(dimension):
        if key.dimension == "parameter":
            name, value = key.parameter_name, key.parameter_value
        else:
            name, value = None, key.discriminator
        rows.append({"dimension": key.dimension, "name": name, "value": value, **record.to_dict()})

    if not rows:
        return pd.DataFrame(columns=RATING_COLUMNS)
    df = pd.DataFrame(rows, columns=RATING_COLUMNS)
    return df.sort_values(["dimension", "rating"], ascending=[True, False]).reset_index(drop=True)


def export_ratings(
    store: RatingStore,
    format: str = "json",
    output_path: Optional[str | Path] = None,
) -> str:
    """Export ratings as JSON or CSV.

    Args:
        store: Rating store to export
        format: 'json' or 'csv'
        output_path: Optional path to save the export

    Returns:
        Exported text
    """
    df = ratings_frame(store)
    if format == "json":
        payload = {
            "ratings": json.loads(df.to_json(orient="records")),
            "history": [entry.to_dict() for entry in store.get_history()],
        }
        text = json.dumps(payload, indent=2, default=str)
    elif format == "csv":
        text = df.to_csv(index=False)
    else:
        raise ValueError(f"Unsupported export format: {format}")

    if output_path:
        Path(output_path).write_text(text, encoding="utf-8")
        logger.info("Ratings exported to %s", output_path)
    return text
