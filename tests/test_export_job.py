import unittest

import pydantic
import pytest

from chessdb.db.duckdb_collection_repository import DuckDbCollectionRepository
from chessdb.db.duckdb_export_job_repository import DuckDbExportJobRepository
from chessdb.db.duckdb_import_job_repository import DuckDbImportJobRepository
from chessdb.errors import JobNotFoundError, JobOwnershipError
from chessdb.export_filters import ExportFilter, build_export_predicate
from chessdb.export_job import EXPORT_CONTENT_TYPE, export_object_key, process_export_job
from chessdb.import_job import process_import_job
from chessdb.pgn_annotations import extract_annotation_payload
from chessdb.pgn_parser import parse_pgn
from tests.fakes import make_archive, make_pgn

USER = 11

GAMES = [
    make_pgn(
        "1. e4 e5 2. Nf3 Nc6 3. Bb5",
        "1-0",
        White="Magnus Carlsen",
        Black="Bob",
        ECO="C65",
        Date="2023.01.10",
        WhiteElo="2800",
        BlackElo="2600",
        Rated="true",
        TimeControl="180+2",
        Event="Titled Tuesday",
        Site="https://lichess.org/abc",
    ),
    make_pgn(
        "1. e4 c5 2. Nf3 d6",
        "0-1",
        White="Alice",
        Black="Carlsen, M",
        ECO="B90",
        Date="2022.06.01",
        WhiteElo="1500",
        BlackElo="1600",
        Rated="false",
    ),
    make_pgn("1. e4 e5 2. Nc3", "1/2-1/2", White="Alice", Black="Bob", ECO="C20"),
]


@pytest.fixture
def game_ids(conn, storage):
    storage.put_object("imports/user-11/a.pgn", make_archive(GAMES), "application/x-chess-pgn")
    job_id = DuckDbImportJobRepository(conn).create_job(USER, "imports/user-11/a.pgn")
    process_import_job(conn, storage, job_id, USER)
    return [row[0] for row in conn.execute("SELECT id FROM games ORDER BY id").fetchall()]


def _run_query_export(conn, storage, filter_query, include_annotations=False):
    job_id = DuckDbExportJobRepository(conn).create_job(
        USER,
        mode="query",
        game_ids=None,
        filter_query=filter_query,
        include_annotations=include_annotations,
    )
    key = process_export_job(conn, storage, job_id, USER)
    return DuckDbExportJobRepository(conn).fetch_job(job_id), storage.objects[key].decode("utf-8")


def test_empty_filter_exports_every_game(conn, storage, game_ids):
    job, artifact = _run_query_export(conn, storage, {})

    assert job["status"] == "completed"
    assert job["exported_games"] == 3
    assert job["output_object_key"] == export_object_key(USER, job["id"])
    assert storage.content_types[job["output_object_key"]] == EXPORT_CONTENT_TYPE
    chunks = artifact.split("\n\n[Event")
    assert len(chunks) == 3
    assert artifact.startswith('[Event "Titled Tuesday"]')


@pytest.mark.parametrize(
    ("filter_query", "expected_positions"),
    [
        ({"player": "carlsen"}, [0, 1]),
        ({"eco": "c65"}, [0]),
        ({"opening_prefix": "C"}, [0, 2]),
        ({"result": "1/2-1/2"}, [2]),
        ({"from_date": "2023-01-01"}, [0]),
        ({"to_date": "2022-12-31"}, [1]),
        ({"white_elo_min": 2000}, [0]),
        ({"black_elo_max": 1600}, [1]),
        ({"avg_elo_min": 2000}, [0]),
        ({"rated": False}, [1]),
        ({"event": "titled"}, [0]),
        ({"site": "LICHESS"}, [0]),
        ({"time_control": "180+2"}, [0]),
        ({"player": "carlsen", "result": "0-1"}, [1]),
        ({"player": "   "}, [0, 1, 2]),
    ],
)
def test_filters_select_expected_games(conn, game_ids, filter_query, expected_positions):
    where_sql, params = build_export_predicate(USER, ExportFilter.model_validate(filter_query))
    rows = DuckDbExportJobRepository(conn).fetch_export_rows(
        USER, where_sql, params, include_annotations=False
    )
    assert [row["game_id"] for row in rows] == [game_ids[i] for i in expected_positions]


def test_collection_and_tag_membership(conn, storage, game_ids):
    collections = DuckDbCollectionRepository(conn)
    collection_id = collections.create_collection(USER, "Sicilians")
    collections.add_game(USER, collection_id, game_ids[1])
    tag_id = collections.create_tag(USER, "blunders")
    collections.tag_game(USER, tag_id, game_ids[2])
    collections.add_game(USER, collection_id, game_ids[1])
    assert collections.fetch_collections(USER) == [{"id": collection_id, "name": "Sicilians"}]

    job, _ = _run_query_export(conn, storage, {"collection_id": collection_id})
    assert job["exported_games"] == 1
    job, _ = _run_query_export(conn, storage, {"tag_id": tag_id})
    assert job["exported_games"] == 1


def test_id_export_ignores_other_users_games(conn, storage, game_ids):
    jobs = DuckDbExportJobRepository(conn)
    job_id = jobs.create_job(
        USER + 1,
        mode="ids",
        game_ids=game_ids[:2],
        filter_query=None,
        include_annotations=False,
    )

    process_export_job(conn, storage, job_id, USER + 1)

    assert jobs.fetch_job(job_id)["exported_games"] == 0


def test_id_export_selects_listed_games(conn, storage, game_ids):
    jobs = DuckDbExportJobRepository(conn)
    job_id = jobs.create_job(
        USER, mode="ids", game_ids=[game_ids[2]], filter_query=None, include_annotations=False
    )

    key = process_export_job(conn, storage, job_id, USER)

    assert jobs.fetch_job(job_id)["exported_games"] == 1
    assert "2. Nc3" in storage.objects[key].decode("utf-8")


def test_annotations_are_embedded_and_round_trip(conn, storage, game_ids):
    annotations = {"comment": "Model game", "highlights": ["e4"], "arrows": ["g1f3"]}
    move_notes = {"1": {"nags": [1], "comment": "Best by test"}}
    DuckDbExportJobRepository(conn).save_annotations(USER, game_ids[0], annotations, move_notes)

    _, artifact = _run_query_export(conn, storage, {"eco": "C65"}, include_annotations=True)

    assert "{ Model game [%csl Ye4] [%cal Gg1f3] } 1. e4 $1 { Best by test } 1... e5" in artifact
    assert extract_annotation_payload(artifact) == {
        "schema": 2,
        "annotations": annotations,
        "move_notes": move_notes,
    }
    assert parse_pgn(artifact).moves == ["e4", "e5", "Nf3", "Nc6", "Bb5"]
    assert artifact.rstrip().endswith("1-0")


def test_saving_annotations_again_replaces_them(conn, storage, game_ids):
    exports = DuckDbExportJobRepository(conn)
    exports.save_annotations(USER, game_ids[0], {"comment": "first"}, {})
    exports.save_annotations(USER, game_ids[0], {"comment": "second"}, {"1": {"nags": [2]}})

    stored = conn.execute("SELECT COUNT(*) FROM user_annotations WHERE game_id = ?", [game_ids[0]]).fetchone()
    assert stored == (1,)
    _, artifact = _run_query_export(conn, storage, {"eco": "C65"}, include_annotations=True)
    assert "{ second } 1. e4 $2 " in artifact
    assert "first" not in artifact


def test_annotations_are_left_out_unless_requested(conn, storage, game_ids):
    DuckDbExportJobRepository(conn).save_annotations(USER, game_ids[0], {"comment": "x"}, {})

    _, artifact = _run_query_export(conn, storage, {"eco": "C65"})

    assert "chessdb-annotations" not in artifact


def test_upload_failure_marks_job_failed(conn, storage, game_ids):
    class FullStorage:
        def put_object(self, key, body, content_type):
            raise OSError("disk full")

    jobs = DuckDbExportJobRepository(conn)
    job_id = jobs.create_job(USER, mode="query", game_ids=None, filter_query={}, include_annotations=False)

    with pytest.raises(OSError):
        process_export_job(conn, FullStorage(), job_id, USER)

    job = jobs.fetch_job(job_id)
    assert job["status"] == "failed"
    assert job["error_message"] == "disk full"


def test_export_rejects_unknown_and_foreign_jobs(conn, storage):
    jobs = DuckDbExportJobRepository(conn)
    job_id = jobs.create_job(USER, mode="query", game_ids=None, filter_query={}, include_annotations=False)

    with pytest.raises(JobNotFoundError):
        process_export_job(conn, storage, job_id + 1, USER)
    with pytest.raises(JobOwnershipError):
        process_export_job(conn, storage, job_id, USER + 1)
    assert jobs.fetch_job(job_id)["status"] == "queued"


class ExportFilterTests(unittest.TestCase):
    def test_empty_filter_adds_only_the_user_condition(self) -> None:
        where_sql, params = build_export_predicate(5, ExportFilter())
        self.assertEqual(where_sql, "g.user_id = ?")
        self.assertEqual(params, [5])

    def test_each_field_adds_one_condition(self) -> None:
        query = ExportFilter(eco="B90", rated=True, white_elo_min=1000)
        where_sql, params = build_export_predicate(5, query)
        self.assertEqual(where_sql.count(" AND "), 3)
        self.assertEqual(params, [5, "B90", True, 1000])

    def test_unknown_fields_are_rejected(self) -> None:
        with self.assertRaises(pydantic.ValidationError):
            ExportFilter.model_validate({"colour": "white"})

    def test_inverted_ranges_are_rejected(self) -> None:
        with self.assertRaises(pydantic.ValidationError):
            ExportFilter.model_validate({"white_elo_min": 2000, "white_elo_max": 1000})
        with self.assertRaises(pydantic.ValidationError):
            ExportFilter.model_validate({"from_date": "2024-01-02", "to_date": "2024-01-01"})
