import pytest

from chessdb.analysis_requests import (
    ENQUEUE_FAILED_MESSAGE,
    AnalysisLimits,
    cancel_analysis_request,
    create_analysis_request,
    get_analysis_request,
    is_terminal_status,
    iter_analysis_status,
    store_engine_line,
)
from chessdb.db.duckdb_analysis_repository import DuckDbAnalysisRepository
from chessdb.errors import (
    AnalysisRequestNotFoundError,
    EnqueueError,
    InvalidFenError,
    TooManyInFlightRequestsError,
    ValidationError,
)
from chessdb.ports.job_queue import QueueName
from tests.fakes import RecordingJobQueue

USER = 3
AFTER_E4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1"
START = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def _store_line(conn, depth=20, user_id=USER):
    return store_engine_line(
        conn,
        user_id=user_id,
        fen=AFTER_E4,
        depth=depth,
        best_move="e7e5",
        principal_variation=["e7e5", "g1f3"],
        eval_cp=-25,
        nodes=1_200_000,
    )


def test_cached_line_completes_request_without_queueing(conn, queue):
    _store_line(conn, depth=20)

    first = create_analysis_request(conn, queue, user_id=USER, fen=AFTER_E4, limits=AnalysisLimits(depth=18))
    second = create_analysis_request(conn, queue, user_id=USER, fen=AFTER_E4, limits=AnalysisLimits(depth=20))

    for row in (first, second):
        assert row["status"] == "completed"
        assert row["from_cache"] is True
        assert row["best_move"] == "e7e5"
        assert row["principal_variation"] == "e7e5 g1f3"
        assert row["eval_cp"] == -25
        assert row["result_depth"] == 20
    assert first["id"] != second["id"]
    assert queue.jobs == []


def test_deeper_request_than_cached_is_queued(conn, queue):
    _store_line(conn, depth=20)

    row = create_analysis_request(conn, queue, user_id=USER, fen=AFTER_E4, limits=AnalysisLimits(depth=24))

    assert row["status"] == "queued"
    assert row["from_cache"] is False
    assert queue.payloads(QueueName.ANALYSIS) == [{"analysisRequestId": row["id"], "userId": USER}]


def test_requests_without_depth_skip_the_cache(conn, queue):
    _store_line(conn, depth=30)

    row = create_analysis_request(conn, queue, user_id=USER, fen=AFTER_E4, limits=AnalysisLimits(nodes=100_000))

    assert row["status"] == "queued"
    assert row["nodes"] == 100_000
    assert row["depth"] is None


def test_cached_lines_are_private_to_their_user(conn, queue):
    _store_line(conn, depth=20, user_id=USER + 1)

    row = create_analysis_request(conn, queue, user_id=USER, fen=AFTER_E4, limits=AnalysisLimits(depth=10))

    assert row["status"] == "queued"


def test_fourth_in_flight_request_is_rejected(conn, queue):
    for _ in range(3):
        create_analysis_request(conn, queue, user_id=USER, fen=START, limits=AnalysisLimits(depth=12))

    with pytest.raises(TooManyInFlightRequestsError):
        create_analysis_request(conn, queue, user_id=USER, fen=START, limits=AnalysisLimits(depth=12))

    count = conn.execute("SELECT COUNT(*) FROM engine_requests WHERE user_id = ?", [USER]).fetchone()[0]
    assert count == 3
    other = create_analysis_request(conn, queue, user_id=USER + 1, fen=START, limits=AnalysisLimits(depth=12))
    assert other["status"] == "queued"


def test_finished_requests_free_an_in_flight_slot(conn, queue):
    rows = [
        create_analysis_request(conn, queue, user_id=USER, fen=START, limits=AnalysisLimits(depth=12))
        for _ in range(3)
    ]
    cancel_analysis_request(conn, user_id=USER, request_id=rows[0]["id"])

    row = create_analysis_request(conn, queue, user_id=USER, fen=START, limits=AnalysisLimits(depth=12))

    assert row["status"] == "queued"


def test_enqueue_failure_marks_request_failed(conn):
    with pytest.raises(EnqueueError):
        create_analysis_request(
            conn,
            RecordingJobQueue(fail=True),
            user_id=USER,
            fen=START,
            limits=AnalysisLimits(depth=12),
        )

    status, message = conn.execute(
        "SELECT status, error_message FROM engine_requests WHERE user_id = ?", [USER]
    ).fetchone()
    assert status == "failed"
    assert message == ENQUEUE_FAILED_MESSAGE


@pytest.mark.parametrize(
    "limits",
    [AnalysisLimits(), AnalysisLimits(depth=0), AnalysisLimits(depth=10, time_ms=-5)],
)
def test_invalid_limits_are_rejected(conn, queue, limits):
    with pytest.raises(ValidationError):
        create_analysis_request(conn, queue, user_id=USER, fen=START, limits=limits)
    assert queue.jobs == []


def test_invalid_fen_is_rejected(conn, queue):
    with pytest.raises(InvalidFenError):
        create_analysis_request(conn, queue, user_id=USER, fen="not a fen", limits=AnalysisLimits(depth=5))


def test_cancel_queued_request_is_immediate(conn, queue):
    row = create_analysis_request(conn, queue, user_id=USER, fen=START, limits=AnalysisLimits(depth=12))

    cancelled = cancel_analysis_request(conn, user_id=USER, request_id=row["id"])

    assert cancelled["status"] == "cancelled"
    assert cancelled["cancel_requested"] is True


def test_cancel_running_request_only_sets_flag(conn, queue):
    row = create_analysis_request(conn, queue, user_id=USER, fen=START, limits=AnalysisLimits(depth=12))
    DuckDbAnalysisRepository(conn).mark_running(row["id"])

    flagged = cancel_analysis_request(conn, user_id=USER, request_id=row["id"])

    assert flagged["status"] == "running"
    assert flagged["cancel_requested"] is True


def test_cancel_and_get_hide_other_users_requests(conn, queue):
    row = create_analysis_request(conn, queue, user_id=USER, fen=START, limits=AnalysisLimits(depth=12))

    with pytest.raises(AnalysisRequestNotFoundError):
        cancel_analysis_request(conn, user_id=USER + 1, request_id=row["id"])
    with pytest.raises(AnalysisRequestNotFoundError):
        get_analysis_request(conn, user_id=USER + 1, request_id=row["id"])
    with pytest.raises(AnalysisRequestNotFoundError):
        get_analysis_request(conn, user_id=USER, request_id=row["id"] + 100)
    assert get_analysis_request(conn, user_id=USER, request_id=row["id"])["status"] == "queued"


def test_store_engine_line_requires_positive_depth(conn):
    with pytest.raises(ValidationError):
        _store_line(conn, depth=0)


def test_status_iteration_stops_at_terminal_status():
    statuses = iter(["queued", "running", "running", "completed", "queued"])
    sleeps: list[float] = []

    rows = list(
        iter_analysis_status(
            lambda: {"status": next(statuses)},
            interval_s=0.25,
            sleep=sleeps.append,
        )
    )

    assert [row["status"] for row in rows] == ["queued", "running", "running", "completed"]
    assert sleeps == [0.25, 0.25, 0.25]


def test_status_iteration_stops_when_client_leaves():
    checks = iter([False, True])

    rows = list(
        iter_analysis_status(
            lambda: {"status": "running"},
            interval_s=1.0,
            should_stop=lambda: next(checks),
            sleep=lambda _: None,
        )
    )

    assert rows == [{"status": "running"}]


def test_terminal_statuses():
    assert is_terminal_status("completed")
    assert is_terminal_status("failed")
    assert is_terminal_status("cancelled")
    assert not is_terminal_status("running")
    assert not is_terminal_status(None)
