from chessdb.db.duckdb_store import SCHEMA_VERSION, get_connection, get_schema_version, init_schema

EXPECTED_TABLES = {
    "games",
    "game_pgn",
    "game_moves",
    "game_positions",
    "opening_stats",
    "import_jobs",
    "import_errors",
    "export_jobs",
    "user_annotations",
    "collections",
    "collection_games",
    "tags",
    "game_tags",
    "engine_requests",
    "engine_lines",
    "queue_dead_letters",
    "schema_version",
}


def _tables(conn) -> set[str]:
    return {row[0] for row in conn.execute("SELECT table_name FROM information_schema.tables").fetchall()}


def test_init_schema_creates_every_table(conn):
    assert EXPECTED_TABLES <= _tables(conn)
    assert get_schema_version(conn) == SCHEMA_VERSION == 4


def test_init_schema_is_idempotent(conn):
    init_schema(conn)
    init_schema(conn)

    assert conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0] == 1
    assert get_schema_version(conn) == SCHEMA_VERSION


def test_get_connection_creates_parent_directory(tmp_path):
    path = tmp_path / "nested" / "dir" / "chessdb.duckdb"

    connection = get_connection(path)
    try:
        init_schema(connection)
        assert path.exists()
    finally:
        connection.close()


def test_schema_survives_reopen(tmp_path):
    path = tmp_path / "chessdb.duckdb"
    first = get_connection(path)
    init_schema(first)
    first.execute("INSERT INTO import_jobs (user_id, status) VALUES (1, 'queued')")
    first.close()

    second = get_connection(path)
    try:
        init_schema(second)
        assert second.execute("SELECT COUNT(*) FROM import_jobs").fetchone()[0] == 1
        assert get_schema_version(second) == SCHEMA_VERSION
    finally:
        second.close()
