from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import duckdb

from chessdb.utils.logger import get_logger

logger = get_logger(__name__)


GAMES_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS games_id_seq START 1;
CREATE TABLE IF NOT EXISTS games (
    id BIGINT PRIMARY KEY DEFAULT nextval('games_id_seq'),
    user_id BIGINT NOT NULL,
    white TEXT NOT NULL,
    white_norm TEXT NOT NULL,
    black TEXT NOT NULL,
    black_norm TEXT NOT NULL,
    result TEXT NOT NULL,
    event TEXT,
    event_norm TEXT,
    site TEXT,
    eco TEXT,
    time_control TEXT,
    rated BOOLEAN,
    played_on DATE,
    played_year INTEGER,
    white_elo INTEGER,
    black_elo INTEGER,
    ply_count INTEGER,
    starting_fen TEXT,
    source TEXT,
    license TEXT,
    moves_hash TEXT NOT NULL,
    canonical_pgn_hash TEXT,
    import_job_id BIGINT,
    import_offset INTEGER,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (user_id, moves_hash)
);
"""

GAME_PGN_SCHEMA = """
CREATE TABLE IF NOT EXISTS game_pgn (
    game_id BIGINT PRIMARY KEY,
    user_id BIGINT NOT NULL,
    pgn_text TEXT NOT NULL
);
"""

GAME_MOVES_SCHEMA = """
CREATE TABLE IF NOT EXISTS game_moves (
    game_id BIGINT PRIMARY KEY,
    user_id BIGINT NOT NULL,
    move_tree TEXT NOT NULL
);
"""

GAME_POSITIONS_SCHEMA = """
CREATE TABLE IF NOT EXISTS game_positions (
    user_id BIGINT NOT NULL,
    game_id BIGINT NOT NULL,
    ply INTEGER NOT NULL,
    fen_norm TEXT NOT NULL,
    stm TEXT NOT NULL,
    castling TEXT NOT NULL,
    ep_square TEXT,
    halfmove INTEGER NOT NULL,
    fullmove INTEGER NOT NULL,
    material_key TEXT NOT NULL,
    next_move_uci TEXT,
    next_fen_norm TEXT,
    PRIMARY KEY (user_id, game_id, ply)
);
"""

# (user_id, fen_norm, move_uci) is unique but enforced by the aggregator
# rather than an index so the rebuild can delete and re-insert keys inside
# one transaction.
OPENING_STATS_SCHEMA = """
CREATE TABLE IF NOT EXISTS opening_stats (
    user_id BIGINT NOT NULL,
    fen_norm TEXT NOT NULL,
    move_uci TEXT NOT NULL,
    next_fen_norm TEXT,
    games INTEGER NOT NULL,
    white_wins INTEGER NOT NULL,
    black_wins INTEGER NOT NULL,
    draws INTEGER NOT NULL,
    avg_elo DOUBLE,
    performance DOUBLE,
    transpositions INTEGER NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

IMPORT_JOBS_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS import_jobs_id_seq START 1;
CREATE TABLE IF NOT EXISTS import_jobs (
    id BIGINT PRIMARY KEY DEFAULT nextval('import_jobs_id_seq'),
    user_id BIGINT NOT NULL,
    status TEXT NOT NULL,
    source_object_key TEXT,
    strict_duplicate_mode BOOLEAN NOT NULL DEFAULT FALSE,
    max_games INTEGER,
    parsed_games INTEGER NOT NULL DEFAULT 0,
    inserted_games INTEGER NOT NULL DEFAULT 0,
    duplicate_games INTEGER NOT NULL DEFAULT 0,
    duplicate_by_moves INTEGER NOT NULL DEFAULT 0,
    duplicate_by_canonical INTEGER NOT NULL DEFAULT 0,
    parse_errors INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

IMPORT_ERRORS_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS import_errors_id_seq START 1;
CREATE TABLE IF NOT EXISTS import_errors (
    id BIGINT PRIMARY KEY DEFAULT nextval('import_errors_id_seq'),
    import_job_id BIGINT NOT NULL,
    game_offset INTEGER,
    error_message TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

EXPORT_JOBS_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS export_jobs_id_seq START 1;
CREATE TABLE IF NOT EXISTS export_jobs (
    id BIGINT PRIMARY KEY DEFAULT nextval('export_jobs_id_seq'),
    user_id BIGINT NOT NULL,
    status TEXT NOT NULL,
    mode TEXT NOT NULL,
    game_ids TEXT,
    filter_query TEXT,
    include_annotations BOOLEAN NOT NULL DEFAULT FALSE,
    output_object_key TEXT,
    exported_games INTEGER,
    error_message TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

USER_ANNOTATIONS_SCHEMA = """
CREATE TABLE IF NOT EXISTS user_annotations (
    user_id BIGINT NOT NULL,
    game_id BIGINT NOT NULL,
    annotations TEXT,
    move_notes TEXT,
    schema_version INTEGER NOT NULL DEFAULT 2,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (user_id, game_id)
);
"""

COLLECTIONS_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS collections_id_seq START 1;
CREATE TABLE IF NOT EXISTS collections (
    id BIGINT PRIMARY KEY DEFAULT nextval('collections_id_seq'),
    user_id BIGINT NOT NULL,
    name TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS collection_games (
    collection_id BIGINT NOT NULL,
    game_id BIGINT NOT NULL,
    user_id BIGINT NOT NULL,
    PRIMARY KEY (collection_id, game_id)
);
"""

TAGS_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS tags_id_seq START 1;
CREATE TABLE IF NOT EXISTS tags (
    id BIGINT PRIMARY KEY DEFAULT nextval('tags_id_seq'),
    user_id BIGINT NOT NULL,
    name TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS game_tags (
    tag_id BIGINT NOT NULL,
    game_id BIGINT NOT NULL,
    user_id BIGINT NOT NULL,
    PRIMARY KEY (tag_id, game_id)
);
"""

ENGINE_REQUESTS_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS engine_requests_id_seq START 1;
CREATE TABLE IF NOT EXISTS engine_requests (
    id BIGINT PRIMARY KEY DEFAULT nextval('engine_requests_id_seq'),
    user_id BIGINT NOT NULL,
    fen TEXT NOT NULL,
    fen_norm TEXT NOT NULL,
    engine TEXT NOT NULL,
    depth INTEGER,
    nodes BIGINT,
    time_ms INTEGER,
    status TEXT NOT NULL,
    cancel_requested BOOLEAN NOT NULL DEFAULT FALSE,
    best_move TEXT,
    principal_variation TEXT,
    eval_cp INTEGER,
    eval_mate INTEGER,
    result_depth INTEGER,
    from_cache BOOLEAN NOT NULL DEFAULT FALSE,
    error_message TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

ENGINE_LINES_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS engine_lines_id_seq START 1;
CREATE TABLE IF NOT EXISTS engine_lines (
    id BIGINT PRIMARY KEY DEFAULT nextval('engine_lines_id_seq'),
    user_id BIGINT NOT NULL,
    fen_norm TEXT NOT NULL,
    engine TEXT NOT NULL,
    depth INTEGER NOT NULL,
    best_move TEXT,
    principal_variation TEXT,
    eval_cp INTEGER,
    eval_mate INTEGER,
    nodes BIGINT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

QUEUE_DEAD_LETTERS_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS queue_dead_letters_id_seq START 1;
CREATE TABLE IF NOT EXISTS queue_dead_letters (
    id BIGINT PRIMARY KEY DEFAULT nextval('queue_dead_letters_id_seq'),
    queue_name TEXT NOT NULL,
    payload TEXT NOT NULL,
    error_message TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

SCHEMA_VERSION_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER,
    updated_at TIMESTAMP
);
"""

SCHEMA_VERSION = 4


def get_connection(db_path: Path | str) -> duckdb.DuckDBPyConnection:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug("Opening DuckDB at %s", path)
    try:
        return duckdb.connect(str(path))
    except duckdb.InternalException as exc:
        if not _should_attempt_wal_recovery(exc):
            raise
        wal_path = path.with_name(f"{path.name}.wal")
        if not wal_path.exists():
            raise
        logger.warning("Removing DuckDB WAL after replay error: %s", wal_path)
        wal_path.unlink()
        return duckdb.connect(str(path))


def init_schema(conn: duckdb.DuckDBPyConnection) -> None:
    migrate_schema(conn)


def migrate_schema(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(SCHEMA_VERSION_SCHEMA)
    version = _get_schema_version(conn)
    for target_version, migration in _SCHEMA_MIGRATIONS:
        if version >= target_version:
            continue
        logger.info("Applying DuckDB schema migration v%s", target_version)
        migration(conn)
        _set_schema_version(conn, target_version)
        version = target_version


def get_schema_version(conn: duckdb.DuckDBPyConnection) -> int:
    return _get_schema_version(conn)


def _should_attempt_wal_recovery(exc: Exception) -> bool:
    message = str(exc).lower()
    if "wal" not in message:
        return False
    if os.getenv("PYTEST_CURRENT_TEST"):
        return True
    allow = os.getenv("CHESSDB_ALLOW_WAL_RECOVERY", "").lower()
    return allow in {"1", "true", "yes"}


def _get_schema_version(conn: duckdb.DuckDBPyConnection) -> int:
    row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
    if not row:
        return 0
    return int(row[0] or 0)


def _set_schema_version(conn: duckdb.DuckDBPyConnection, version: int) -> None:
    conn.execute("DELETE FROM schema_version")
    conn.execute("INSERT INTO schema_version VALUES (?, CURRENT_TIMESTAMP)", [version])


def _migration_base_tables(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(GAMES_SCHEMA)
    conn.execute(GAME_PGN_SCHEMA)
    conn.execute(GAME_MOVES_SCHEMA)
    conn.execute(GAME_POSITIONS_SCHEMA)
    conn.execute(OPENING_STATS_SCHEMA)
    conn.execute(IMPORT_JOBS_SCHEMA)
    conn.execute(IMPORT_ERRORS_SCHEMA)


def _migration_exports(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(EXPORT_JOBS_SCHEMA)
    conn.execute(USER_ANNOTATIONS_SCHEMA)
    conn.execute(COLLECTIONS_SCHEMA)
    conn.execute(TAGS_SCHEMA)


def _migration_engine_requests(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(ENGINE_REQUESTS_SCHEMA)
    conn.execute(ENGINE_LINES_SCHEMA)


def _migration_dead_letters(conn: duckdb.DuckDBPyConnection) -> None:
    conn.execute(QUEUE_DEAD_LETTERS_SCHEMA)


_SCHEMA_MIGRATIONS: list[tuple[int, Callable[[duckdb.DuckDBPyConnection], None]]] = [
    (1, _migration_base_tables),
    (2, _migration_exports),
    (3, _migration_engine_requests),
    (4, _migration_dead_letters),
]
