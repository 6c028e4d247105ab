"""Collections and tags that export filters can select on."""

from __future__ import annotations

import duckdb

from chessdb.db._rows_to_dicts import _rows_to_dicts


class DuckDbCollectionRepository:
    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self._conn = conn

    def create_collection(self, user_id: int, name: str) -> int:
        row = self._conn.execute(
            "INSERT INTO collections (user_id, name) VALUES (?, ?) RETURNING id",
            [user_id, name],
        ).fetchone()
        return int(row[0])

    def add_game(self, user_id: int, collection_id: int, game_id: int) -> None:
        self._conn.execute(
            """
            INSERT INTO collection_games (collection_id, game_id, user_id)
            VALUES (?, ?, ?)
            ON CONFLICT DO NOTHING
            """,
            [collection_id, game_id, user_id],
        )

    def create_tag(self, user_id: int, name: str) -> int:
        row = self._conn.execute(
            "INSERT INTO tags (user_id, name) VALUES (?, ?) RETURNING id",
            [user_id, name],
        ).fetchone()
        return int(row[0])

    def tag_game(self, user_id: int, tag_id: int, game_id: int) -> None:
        self._conn.execute(
            """
            INSERT INTO game_tags (tag_id, game_id, user_id)
            VALUES (?, ?, ?)
            ON CONFLICT DO NOTHING
            """,
            [tag_id, game_id, user_id],
        )

    def fetch_collections(self, user_id: int) -> list[dict[str, object]]:
        return _rows_to_dicts(
            self._conn.execute(
                "SELECT id, name FROM collections WHERE user_id = ? ORDER BY id",
                [user_id],
            )
        )
