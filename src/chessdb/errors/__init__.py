"""Custom error types used in chessdb."""


class ChessDbError(Exception):
    """Base class for chessdb errors."""


class RecordError(ChessDbError):
    """A single archive record could not be processed; the batch continues."""


class PgnParseError(RecordError):
    """PGN text could not be parsed into tags and moves."""


class GameNormalizationError(RecordError):
    """A parsed game carries tag values that cannot be normalized."""


class InvalidFenError(RecordError, ValueError):
    """A FEN string does not describe a usable position."""


class ValidationError(ChessDbError):
    """Caller input was rejected before any job was created or run."""


class InvalidExportFilterError(ValidationError):
    """An export filter or id list failed validation."""


class JobNotFoundError(ValidationError):
    """The referenced job record does not exist."""


class JobOwnershipError(ValidationError):
    """The referenced job belongs to a different user."""


class AnalysisRequestNotFoundError(ValidationError):
    """The referenced analysis request does not exist for the user."""


class TooManyInFlightRequestsError(ValidationError):
    """The user already has the maximum number of queued or running analyses."""

    def __init__(self, in_flight: int, limit: int) -> None:
        super().__init__(f"{in_flight} analysis requests in flight (limit {limit})")
        self.in_flight = in_flight
        self.limit = limit


class EnqueueError(ChessDbError):
    """The queue collaborator refused or failed to accept a job."""


class BlobNotFoundError(ChessDbError):
    """The requested blob key does not exist in storage."""


class EngineUnavailableError(ChessDbError):
    """The analysis engine could not be started."""
