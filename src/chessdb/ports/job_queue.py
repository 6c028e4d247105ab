"""Job queue port."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol


class QueueName(StrEnum):
    """Queues consumed by the worker pools."""

    IMPORTS = "imports"
    ANALYSIS = "analysis"
    EXPORTS = "exports"
    POSITION_BACKFILL = "position_backfill"
    OPENING_BACKFILL = "opening_aggregate_backfill"


class JobQueue(Protocol):
    """At-least-once job delivery."""

    def enqueue(self, queue_name: QueueName, payload: dict[str, object]) -> None:
        """Accept a job payload or raise EnqueueError."""
