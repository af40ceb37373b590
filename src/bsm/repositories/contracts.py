from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Protocol

from bsm.domain.models import Client, Product, Sale, SaleDraft, SalePage


class ClientRepository(Protocol):
    def find_client_by_id(self, client_id: str) -> Optional[Client]: ...


class ProductRepository(Protocol):
    def find_products_by_ids(self, product_ids: Iterable[str]) -> list[Product]:
        """Returns only products that exist; callers infer missing ids by set difference."""
        ...


class SaleRepository(Protocol):
    def get_sale(self, sale_id: str) -> Optional[Sale]: ...

    def list_sales(self, page: int, limit: int, sort_by: str, sort_order: str) -> SalePage: ...

    def filter_sales(
        self,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        client_id: Optional[str],
        min_amount: Optional[int],
        max_amount: Optional[int],
        page: int,
        limit: int,
    ) -> SalePage: ...

    def sales_totals_between(self, start_date: datetime, end_date: datetime) -> tuple[int, int, int]: ...


class UnitOfWork(Protocol):
    """Mutations applied between __enter__ and a clean __exit__ take effect together or not at all."""

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def decrement_product_stock(self, product_id: str, amount: int) -> bool: ...
    def stock_of(self, product_id: str) -> Optional[int]: ...
    def persist_sale(self, draft: SaleDraft) -> Sale: ...


class StockStore(Protocol):
    """Non-transactional store: each call is atomic on its own, nothing spans calls."""

    def decrement_product_stock(self, product_id: str, amount: int) -> bool: ...
    def increment_product_stock(self, product_id: str, amount: int) -> None: ...
    def stock_of(self, product_id: str) -> Optional[int]: ...
    def persist_sale(self, draft: SaleDraft) -> Sale: ...


class SalesBackend(ClientRepository, ProductRepository, SaleRepository, Protocol):
    """Everything the sales service reads outside of a unit of work."""
