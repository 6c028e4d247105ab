"""Per-game import outcomes and job counters."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import StrEnum


class InsertOutcome(StrEnum):
    """Result of the de-duplication pipeline for one game."""

    INSERTED = "inserted"
    DUPLICATE_BY_MOVES = "duplicate_by_moves"
    DUPLICATE_BY_CANONICAL = "duplicate_by_canonical"


class ImportJobStatus(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_IMPORT_STATUSES


_TERMINAL_IMPORT_STATUSES = frozenset(
    {ImportJobStatus.COMPLETED, ImportJobStatus.PARTIAL, ImportJobStatus.FAILED}
)


@dataclass(slots=True)
class ImportCounters:
    """Running totals; ``parsed == inserted + duplicates + parse_errors`` between games."""

    parsed: int = 0
    inserted: int = 0
    duplicates: int = 0
    duplicate_by_moves: int = 0
    duplicate_by_canonical: int = 0
    parse_errors: int = 0

    def record(self, outcome: InsertOutcome) -> None:
        if outcome is InsertOutcome.INSERTED:
            self.inserted += 1
            return
        self.duplicates += 1
        if outcome is InsertOutcome.DUPLICATE_BY_MOVES:
            self.duplicate_by_moves += 1
        else:
            self.duplicate_by_canonical += 1

    @property
    def unresolved(self) -> int:
        """Games counted as parsed whose outcome is not yet recorded."""
        return self.parsed - self.inserted - self.duplicates - self.parse_errors

    def final_status(self) -> ImportJobStatus:
        if self.parse_errors == 0:
            return ImportJobStatus.COMPLETED
        if self.inserted > 0:
            return ImportJobStatus.PARTIAL
        return ImportJobStatus.FAILED

    def as_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_job_row(cls, row: dict[str, object]) -> ImportCounters:
        return cls(
            parsed=int(row.get("parsed_games") or 0),
            inserted=int(row.get("inserted_games") or 0),
            duplicates=int(row.get("duplicate_games") or 0),
            duplicate_by_moves=int(row.get("duplicate_by_moves") or 0),
            duplicate_by_canonical=int(row.get("duplicate_by_canonical") or 0),
            parse_errors=int(row.get("parse_errors") or 0),
        )
