"""Ports consumed by the job processors."""

from chessdb.ports.blob_storage import BlobStorage
from chessdb.ports.job_queue import JobQueue, QueueName
from chessdb.ports.unit_of_work import UnitOfWork, transaction

__all__ = [
    "BlobStorage",
    "JobQueue",
    "QueueName",
    "UnitOfWork",
    "transaction",
]
