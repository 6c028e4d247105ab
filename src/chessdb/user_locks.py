"""Per-user serialization of aggregate writes within one process."""

from __future__ import annotations

import threading

_GUARD = threading.Lock()
_USER_LOCKS: dict[int, threading.Lock] = {}


def user_write_lock(user_id: int) -> threading.Lock:
    """Return the lock held around every transaction that touches the user's aggregates.

    Import, position backfill and opening backfill transactions for one user
    update the same ``opening_stats`` rows. DuckDB aborts the second of two
    concurrent transactions that update a row (``TransactionException``), so
    these transactions must not overlap.

    Examples
    --------
    >>> user_write_lock(1) is user_write_lock(1)
    True
    >>> user_write_lock(1) is user_write_lock(2)
    False
    """
    with _GUARD:
        return _USER_LOCKS.setdefault(user_id, threading.Lock())
