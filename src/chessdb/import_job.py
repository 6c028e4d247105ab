"""Process an uploaded PGN archive into games, positions and opening stats."""

from __future__ import annotations

import duckdb

from chessdb.config import get_settings
from chessdb.db.duckdb_game_repository import DuckDbGameRepository
from chessdb.db.duckdb_import_job_repository import DuckDbImportJobRepository
from chessdb.db.duckdb_position_repository import DuckDbPositionRepository
from chessdb.db.duckdb_unit_of_work import DuckDbUnitOfWork
from chessdb.errors import JobNotFoundError, JobOwnershipError, RecordError, ValidationError
from chessdb.import_outcome import ImportCounters, ImportJobStatus, InsertOutcome
from chessdb.normalize_game import NormalizedGame, normalize_game
from chessdb.opening_stats import upsert_game_opening_stats
from chessdb.pgn_parser import parse_pgn
from chessdb.pgn_stream import PgnGameText, is_zstd_key, iter_archive_games
from chessdb.ports.blob_storage import BlobStorage
from chessdb.ports.unit_of_work import UnitOfWork, transaction
from chessdb.position_indexer import IndexedPosition, index_positions
from chessdb.user_locks import user_write_lock
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)

# Failures confined to one game. Anything else (storage, database) is fatal.
PER_GAME_ERRORS: tuple[type[Exception], ...] = (RecordError, ValueError)


def _insert_indexed_game(
    conn: duckdb.DuckDBPyConnection,
    *,
    user_id: int,
    import_job_id: int,
    game: PgnGameText,
    normalized: NormalizedGame,
    positions: list[IndexedPosition],
    strict_duplicate_mode: bool,
) -> InsertOutcome:
    games = DuckDbGameRepository(conn)
    existing = games.find_by_moves_hash(user_id, normalized.moves_hash)
    if existing is not None:
        if existing.import_job_id == import_job_id and existing.import_offset == game.offset:
            # Same job re-delivered after this game was already committed.
            return InsertOutcome.INSERTED
        return InsertOutcome.DUPLICATE_BY_MOVES
    if strict_duplicate_mode and games.find_by_canonical_hash(user_id, normalized.canonical_hash):
        return InsertOutcome.DUPLICATE_BY_CANONICAL
    game_id = games.insert_game(
        user_id,
        normalized,
        import_job_id=import_job_id,
        import_offset=game.offset,
    )
    games.insert_pgn(user_id, game_id, game.pgn_text)
    games.insert_move_tree(user_id, game_id, normalized.move_tree)
    DuckDbPositionRepository(conn).upsert_positions(user_id, game_id, positions)
    upsert_game_opening_stats(
        conn,
        user_id=user_id,
        positions=positions,
        result=normalized.result,
        avg_elo=normalized.avg_elo,
    )
    return InsertOutcome.INSERTED


def import_game(
    uow: UnitOfWork[duckdb.DuckDBPyConnection],
    *,
    user_id: int,
    import_job_id: int,
    game: PgnGameText,
    strict_duplicate_mode: bool = False,
) -> InsertOutcome:
    """Parse, normalize, index and store one game in a single transaction.

    Parse and normalization errors surface before the transaction opens; the
    caller records them against the game's offset. The transaction runs under
    the user's write lock so concurrent jobs for one user never collide on
    opening_stats rows.
    """
    normalized = normalize_game(parse_pgn(game.pgn_text))
    positions = index_positions(normalized.mainline_san, normalized.starting_fen)
    try:
        with user_write_lock(user_id), transaction(uow) as conn:
            return _insert_indexed_game(
                conn,
                user_id=user_id,
                import_job_id=import_job_id,
                game=game,
                normalized=normalized,
                positions=positions,
                strict_duplicate_mode=strict_duplicate_mode,
            )
    except duckdb.ConstraintException:
        # A concurrent import committed the same moves between lookup and insert.
        return InsertOutcome.DUPLICATE_BY_MOVES


def _load_job(jobs: DuckDbImportJobRepository, import_job_id: int, user_id: int) -> dict[str, object]:
    job = jobs.fetch_job(import_job_id)
    if job is None:
        raise JobNotFoundError(f"Import job {import_job_id} not found")
    if int(job["user_id"]) != user_id:
        raise JobOwnershipError(f"Import job user mismatch for {import_job_id}")
    return job


def process_import_job(
    conn: duckdb.DuckDBPyConnection,
    storage: BlobStorage,
    import_job_id: int,
    user_id: int,
    *,
    progress_interval: int | None = None,
) -> ImportCounters:
    """
    Run an import job to a terminal status.

    Parameters
    ----------
    conn : duckdb.DuckDBPyConnection
        Process-wide root connection; the job works on its own cursors.
    storage : BlobStorage
        Source of the uploaded archive.
    import_job_id : int
        The job to run.
    user_id : int
        Owner named in the queue payload; must match the job row.
    progress_interval : int, optional
        Persist counters every this many parsed games.

    Returns
    -------
    ImportCounters
        Final counters, also persisted on the job row.

    Raises
    ------
    JobNotFoundError, JobOwnershipError
        Before the job is touched.
    Exception
        Any fatal error, after the job has been marked failed.
    """
    interval = progress_interval or get_settings().import_progress_interval
    status_conn = conn.cursor()
    uow = DuckDbUnitOfWork(conn)
    try:
        jobs = DuckDbImportJobRepository(status_conn)
        job = _load_job(jobs, import_job_id, user_id)
        if ImportJobStatus(str(job["status"])).is_terminal:
            logger.info("Import job %s already %s; skipping", import_job_id, job["status"])
            return ImportCounters.from_job_row(job)
        source_key = job.get("source_object_key")
        if not source_key:
            jobs.insert_error(import_job_id, None, "Import job has no source object key")
            jobs.update_progress(import_job_id, ImportJobStatus.FAILED, ImportCounters())
            raise ValidationError(f"Import job {import_job_id} has no source object key")
        return _run_import(
            jobs,
            uow,
            storage,
            import_job_id=import_job_id,
            user_id=user_id,
            source_key=str(source_key),
            strict_duplicate_mode=bool(job.get("strict_duplicate_mode")),
            max_games=job.get("max_games"),
            progress_interval=interval,
        )
    finally:
        uow.close()
        status_conn.close()


def _run_import(  # pylint: disable=too-many-arguments
    jobs: DuckDbImportJobRepository,
    uow: DuckDbUnitOfWork,
    storage: BlobStorage,
    *,
    import_job_id: int,
    user_id: int,
    source_key: str,
    strict_duplicate_mode: bool,
    max_games: object,
    progress_interval: int,
) -> ImportCounters:
    counters = ImportCounters()
    jobs.delete_errors(import_job_id)
    jobs.update_progress(import_job_id, ImportJobStatus.RUNNING, counters)
    logger.info("Import job %s started for user %s from %s", import_job_id, user_id, source_key)
    try:
        chunks = storage.get_object_stream(source_key)
        for game in iter_archive_games(chunks, compressed=is_zstd_key(source_key)):
            counters.parsed += 1
            try:
                outcome = import_game(
                    uow,
                    user_id=user_id,
                    import_job_id=import_job_id,
                    game=game,
                    strict_duplicate_mode=strict_duplicate_mode,
                )
            except PER_GAME_ERRORS as exc:
                counters.parse_errors += 1
                jobs.insert_error(import_job_id, game.offset, exc)
                logger.warning("Import job %s game %s failed: %s", import_job_id, game.offset, exc)
            else:
                counters.record(outcome)
            if counters.parsed % progress_interval == 0:
                jobs.update_progress(import_job_id, ImportJobStatus.RUNNING, counters)
            if max_games and counters.parsed >= int(max_games):
                break
    except Exception as exc:
        # Keep parsed == inserted + duplicates + parse_errors when a game was cut off.
        counters.parse_errors += counters.unresolved
        jobs.insert_error(import_job_id, None, f"Fatal import error: {exc}")
        jobs.update_progress(import_job_id, ImportJobStatus.FAILED, counters)
        logger.exception("Import job %s failed", import_job_id)
        raise
    status = counters.final_status()
    jobs.update_progress(import_job_id, status, counters)
    logger.info("Import job %s finished %s: %s", import_job_id, status, counters.as_dict())
    return counters
