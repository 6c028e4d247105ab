from __future__ import annotations

from collections.abc import Callable, Iterator

from chessdb.engine_runner import EngineAnalysis
from chessdb.errors import BlobNotFoundError, EnqueueError
from chessdb.ports.job_queue import QueueName


class InMemoryBlobStorage:
    def __init__(self, chunk_size: int = 37) -> None:
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.chunk_size = chunk_size

    def ensure_bucket(self) -> None:
        return None

    def put_object(self, key: str, body: bytes, content_type: str) -> None:
        self.objects[key] = bytes(body)
        self.content_types[key] = content_type

    def get_object_stream(self, key: str) -> Iterator[bytes]:
        if key not in self.objects:
            raise BlobNotFoundError(key)
        data = self.objects[key]
        return iter([data[i : i + self.chunk_size] for i in range(0, len(data), self.chunk_size)])


class RecordingJobQueue:
    def __init__(self, fail: bool = False) -> None:
        self.jobs: list[tuple[QueueName, dict[str, object]]] = []
        self.fail = fail

    def enqueue(self, queue_name: QueueName, payload: dict[str, object]) -> None:
        if self.fail:
            raise EnqueueError("queue unavailable")
        self.jobs.append((queue_name, dict(payload)))

    def payloads(self, queue_name: QueueName) -> list[dict[str, object]]:
        return [payload for name, payload in self.jobs if name == queue_name]


class FakeEngineRunner:
    def __init__(
        self,
        result: EngineAnalysis | None = None,
        *,
        error: Exception | None = None,
        on_analyse: Callable[[], None] | None = None,
    ) -> None:
        self.result = result or EngineAnalysis(
            best_move="e2e4",
            pv=["e2e4", "e7e5", "g1f3"],
            eval_cp=31,
            depth=12,
            nodes=50_000,
        )
        self.error = error
        self.on_analyse = on_analyse
        self.calls: list[dict[str, object]] = []

    def analyse(self, fen, *, depth, nodes, time_ms, should_cancel):
        self.calls.append({"fen": fen, "depth": depth, "nodes": nodes, "time_ms": time_ms})
        if self.on_analyse is not None:
            self.on_analyse()
        if self.error is not None:
            raise self.error
        self.result.cancelled = bool(should_cancel())
        return self.result


def make_pgn(moves: str, result: str = "*", **tags: str) -> str:
    headers = {"Event": "Test", "White": "Alice", "Black": "Bob", "Result": result, **tags}
    tag_lines = "\n".join(f'[{name} "{value}"]' for name, value in headers.items())
    return f"{tag_lines}\n\n{moves} {result}\n"


def make_archive(games: list[str]) -> bytes:
    return "\n".join(games).encode("utf-8")
