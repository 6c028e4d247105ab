import sys
from pathlib import Path

import pytest

project_root = Path(__file__).resolve().parents[1]
src_path = project_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from chessdb.db.duckdb_store import get_connection, init_schema  # noqa: E402
from tests.fakes import InMemoryBlobStorage, RecordingJobQueue  # noqa: E402


@pytest.fixture
def conn(tmp_path):
    connection = get_connection(tmp_path / "chessdb.duckdb")
    init_schema(connection)
    yield connection
    connection.close()


@pytest.fixture
def storage():
    return InMemoryBlobStorage()


@pytest.fixture
def queue():
    return RecordingJobQueue()
