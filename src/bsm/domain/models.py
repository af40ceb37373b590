from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price_in_cents: int
    stock_qty: int


@dataclass(frozen=True)
class Client:
    id: str
    first_name: str
    last_name: str
    email: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class SaleLineItemRequest:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class StockShortage:
    product_id: str
    product_name: str
    requested: int
    available: int


@dataclass(frozen=True)
class SaleItem:
    product_id: str
    product_name: str
    quantity: int
    price_in_cents: int

    @property
    def subtotal_in_cents(self) -> int:
        return self.quantity * self.price_in_cents


@dataclass(frozen=True)
class SaleDraft:
    """Fully priced sale waiting to be persisted by a unit of work."""

    client_id: str
    sale_date: datetime
    items: tuple[SaleItem, ...]
    total_amount_in_cents: int


@dataclass(frozen=True)
class Sale:
    id: str
    client_id: str
    client_name: str
    sale_date: datetime
    total_amount_in_cents: int
    items: tuple[SaleItem, ...]
    created_at: datetime


@dataclass(frozen=True)
class SalePage:
    sales: list[Sale]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit)


@dataclass(frozen=True)
class SalesSummary:
    start_date: datetime
    end_date: datetime
    total_sales: int
    total_revenue_in_cents: int
    average_sale_in_cents: int
    total_items_sold: int
