from .models import Client, Product, Sale, SaleItem, SaleLineItemRequest, SalePage, SalesSummary, StockShortage
from .errors import (
    CommitError,
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
)

__all__ = [
    "Client",
    "Product",
    "Sale",
    "SaleItem",
    "SaleLineItemRequest",
    "SalePage",
    "SalesSummary",
    "StockShortage",
    "CommitError",
    "ConcurrencyConflictError",
    "InsufficientStockError",
    "NotFoundError",
    "RateLimitExceededError",
    "ValidationError",
]
