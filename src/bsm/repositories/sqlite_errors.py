from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator

from bsm.domain.errors import CommitError, ConcurrencyConflictError

_TRANSIENT_MARKERS = ("database is locked", "database is busy", "database table is locked")


def translate_sqlite_error(exc: sqlite3.Error) -> CommitError:
    message = str(exc).lower()
    if isinstance(exc, sqlite3.OperationalError) and any(m in message for m in _TRANSIENT_MARKERS):
        return ConcurrencyConflictError(str(exc))
    return CommitError(str(exc))


@contextmanager
def sqlite_errors() -> Iterator[None]:
    """Re-raises sqlite3 errors as CommitError, lock contention as ConcurrencyConflictError."""
    try:
        yield
    except sqlite3.Error as e:
        raise translate_sqlite_error(e) from e
