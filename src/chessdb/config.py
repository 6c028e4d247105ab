from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DATA_DIR = Path(os.getenv("CHESSDB_DATA_DIR", "data"))
DEFAULT_ANALYSIS_ENGINE = "stockfish"
MAX_IN_FLIGHT_ANALYSIS_REQUESTS = 3


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


@dataclass(slots=True)
class AnalysisSettings:
    """Engine invocation settings for analysis workers."""

    stockfish_path: Path = Path(os.getenv("STOCKFISH_PATH", "stockfish"))
    default_depth: int = _env_int("ANALYSIS_DEFAULT_DEPTH", 18)
    cancel_poll_ms: int = _env_int("ANALYSIS_CANCEL_POLL_MS", 500)
    timeout_ms: int = _env_int("ANALYSIS_TIMEOUT_MS", 45_000)
    stream_interval_ms: int = _env_int("ANALYSIS_STREAM_INTERVAL_MS", 1_000)


@dataclass(slots=True)
class Settings:
    """Runtime settings for the chessdb services."""

    api_token: str = os.getenv("CHESSDB_API_TOKEN", "local-dev-token")
    data_dir: Path = DEFAULT_DATA_DIR
    duckdb_path: Path = Path(os.getenv("CHESSDB_DUCKDB_PATH", DEFAULT_DATA_DIR / "chessdb.duckdb"))
    blob_root: Path = Path(os.getenv("CHESSDB_BLOB_ROOT", DEFAULT_DATA_DIR / "blobs"))
    worker_concurrency: int = _env_int("CHESSDB_WORKER_CONCURRENCY", 2)
    import_progress_interval: int = _env_int("CHESSDB_IMPORT_PROGRESS_INTERVAL", 100)
    analysis: AnalysisSettings = field(default_factory=AnalysisSettings)

    @property
    def analysis_concurrency(self) -> int:
        return max(1, self.worker_concurrency // 2)

    @property
    def export_concurrency(self) -> int:
        return max(1, self.worker_concurrency // 2)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
