"""chessdb: chess archive ingestion and job pipeline."""

__version__ = "0.1.0"
