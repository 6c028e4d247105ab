"""Thread-pool job queue running handlers inside the API process."""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from queue import Queue

from chessdb.config import Settings
from chessdb.errors import EnqueueError
from chessdb.ports.job_queue import QueueName
from chessdb.utils.logger import get_logger

logger = get_logger(__name__)

JobHandler = Callable[[dict[str, object]], object]
DeadLetterSink = Callable[[QueueName, dict[str, object], BaseException], None]

_SENTINEL = object()


def pool_sizes(settings: Settings) -> dict[QueueName, int]:
    """Worker threads per queue; imports get the full concurrency."""
    return {
        QueueName.IMPORTS: max(1, settings.worker_concurrency),
        QueueName.ANALYSIS: settings.analysis_concurrency,
        QueueName.EXPORTS: settings.export_concurrency,
        QueueName.POSITION_BACKFILL: 1,
        QueueName.OPENING_BACKFILL: 1,
    }


class InProcessJobQueue:
    """
    One FIFO and one pool of daemon threads per queue name.

    Handlers are not retried; a handler that raises has its payload written
    to the dead-letter sink. Jobs enqueued before ``start`` are buffered.
    """

    def __init__(
        self,
        sizes: Mapping[QueueName, int],
        *,
        dead_letter: DeadLetterSink | None = None,
    ) -> None:
        self._sizes = dict(sizes)
        self._queues: dict[QueueName, Queue[object]] = {name: Queue() for name in self._sizes}
        self._handlers: dict[QueueName, JobHandler] = {}
        self._threads: list[threading.Thread] = []
        self._dead_letter = dead_letter
        self._lock = threading.Lock()
        self._closed = False

    def register(self, queue_name: QueueName, handler: JobHandler) -> None:
        if queue_name not in self._queues:
            raise ValueError(f"Unknown queue: {queue_name}")
        self._handlers[queue_name] = handler

    def start(self) -> None:
        with self._lock:
            if self._threads or self._closed:
                return
            for name, size in self._sizes.items():
                for index in range(size):
                    thread = threading.Thread(
                        target=self._work,
                        args=(name,),
                        name=f"{name}-worker-{index}",
                        daemon=True,
                    )
                    thread.start()
                    self._threads.append(thread)
        logger.info("Started job queue workers: %s", {str(k): v for k, v in self._sizes.items()})

    def enqueue(self, queue_name: QueueName, payload: dict[str, object]) -> None:
        with self._lock:
            if self._closed:
                raise EnqueueError("Job queue is closed")
            queue = self._queues.get(queue_name)
            if queue is None:
                raise EnqueueError(f"Unknown queue: {queue_name}")
            queue.put(dict(payload))

    def join(self) -> None:
        """Block until every job enqueued so far has been handled."""
        for queue in self._queues.values():
            queue.join()

    def stop(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for name, queue in self._queues.items():
                for _ in range(self._sizes[name] if self._threads else 0):
                    queue.put(_SENTINEL)
            threads = list(self._threads)
        for thread in threads:
            thread.join()
        logger.info("Stopped job queue workers")

    def _work(self, queue_name: QueueName) -> None:
        queue = self._queues[queue_name]
        while True:
            item = queue.get()
            try:
                if item is _SENTINEL:
                    return
                self._handle(queue_name, item)  # type: ignore[arg-type]
            finally:
                queue.task_done()

    def _handle(self, queue_name: QueueName, payload: dict[str, object]) -> None:
        handler = self._handlers.get(queue_name)
        try:
            if handler is None:
                raise LookupError(f"No handler registered for queue {queue_name}")
            handler(payload)
        except Exception as exc:
            logger.exception("Job on %s failed: %s", queue_name, payload)
            self._record_dead_letter(queue_name, payload, exc)

    def _record_dead_letter(
        self,
        queue_name: QueueName,
        payload: dict[str, object],
        exc: BaseException,
    ) -> None:
        if self._dead_letter is None:
            return
        try:
            self._dead_letter(queue_name, payload, exc)
        except Exception:
            logger.exception("Failed to record dead letter for %s", queue_name)
