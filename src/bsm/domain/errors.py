from __future__ import annotations

from typing import Iterable, Sequence


class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    def __init__(self, message: str, ids: Sequence[str] = ()):
        super().__init__(message)
        self.ids = list(ids)


class InsufficientStockError(AppError):
    """Raised with every line that cannot be served, not only the first one."""

    def __init__(self, shortages: Iterable):
        self.shortages = list(shortages)
        detail = "; ".join(
            f"{s.product_name}: {s.requested} requested, {s.available} available" for s in self.shortages
        )
        super().__init__(f"Insufficient stock: {detail}")


class CommitError(AppError):
    pass


class ConcurrencyConflictError(CommitError):
    """Transient storage conflict; the commit can be attempted again."""


class RateLimitExceededError(AppError):
    def __init__(self, key: str, limit: int, window_seconds: float):
        super().__init__(f"Too many requests for {key}: limit is {limit} per {window_seconds:g}s.")
        self.key = key
        self.limit = limit
        self.window_seconds = window_seconds
