"""Convert DuckDB query results to dictionaries."""

from __future__ import annotations

import duckdb


def _rows_to_dicts(
    result: duckdb.DuckDBPyConnection | duckdb.DuckDBPyRelation,
) -> list[dict[str, object]]:
    """Return rows as a list of dictionaries."""
    columns = [desc[0] for desc in result.description]
    return [dict(zip(columns, row, strict=True)) for row in result.fetchall()]


def _row_to_dict(
    result: duckdb.DuckDBPyConnection | duckdb.DuckDBPyRelation,
) -> dict[str, object] | None:
    """Return the first row as a dictionary, or None when the result is empty."""
    rows = _rows_to_dicts(result)
    return rows[0] if rows else None
