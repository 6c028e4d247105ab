"""Utility exports for the chessdb package."""

from .hasher import Hasher
from .logger import get_logger, set_level
from .normalize_string import collapse_whitespace, normalize_string
from .to_int import to_int
from .truncate import MAX_ERROR_MESSAGE_LENGTH, truncate_message

__all__ = [
    "MAX_ERROR_MESSAGE_LENGTH",
    "Hasher",
    "collapse_whitespace",
    "get_logger",
    "normalize_string",
    "set_level",
    "to_int",
    "truncate_message",
]
