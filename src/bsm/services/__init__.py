from .client_service import ClientService
from .inventory_service import InventoryService
from .rate_limiter import RateLimiter
from .sales_service import SalesService

__all__ = [
    "ClientService",
    "InventoryService",
    "RateLimiter",
    "SalesService",
]
