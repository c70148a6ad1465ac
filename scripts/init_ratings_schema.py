"""Create the ratings schema in a DuckDB file."""
from __future__ import annotations

import sys

from paramarena.data_access.duckdb_adapter import create_schema


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python init_ratings_schema.py <db_path>")
        sys.exit(1)
    create_schema(sys.argv[1])
    print(f"Created ratings schema at {sys.argv[1]}")
