from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, time
from typing import Callable, Iterable, Mapping, Optional

from bsm.config import Settings
from bsm.domain.errors import (
    AppError,
    CommitError,
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from bsm.domain.models import (
    Product,
    Sale,
    SaleDraft,
    SaleItem,
    SaleLineItemRequest,
    SalePage,
    SalesSummary,
    StockShortage,
)
from bsm.domain.time import as_utc, utc_now
from bsm.repositories.contracts import SalesBackend, UnitOfWork
from bsm.repositories.sqlite_errors import sqlite_errors
from bsm.repositories.unit_of_work import SqliteUnitOfWork

log = logging.getLogger("bsm.sales")

SORT_FIELDS = ("sale_date", "total_amount", "created_at")
SORT_ORDERS = ("asc", "desc")
MAX_PAGE_SIZE = 100


class SalesService:
    def __init__(
        self,
        repo: SalesBackend,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        settings: Settings | None = None,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))
        self.settings = settings or Settings()

    def create_sale(
        self,
        client_id: str,
        items: Iterable[SaleLineItemRequest | Mapping],
        sale_date: Optional[datetime] = None,
    ) -> Sale:
        """
        Validates, prices and commits a sale in one unit of work.

        items: [SaleLineItemRequest | {product_id, quantity}]

        Either the sale is persisted and every line's stock is decremented, or an
        error is raised and nothing changed. Unit prices are captured from the
        products read during validation; later price changes never reach the sale.
        """
        lines = self._normalize_lines(items)
        if not isinstance(client_id, str) or not client_id.strip():
            raise ValidationError("Client id is required.")
        when = self._normalize_sale_date(sale_date)

        with sqlite_errors():
            client = self.repo.find_client_by_id(client_id)
        if client is None:
            log.info("sale_rejected reason=client_not_found client_id=%s", client_id)
            raise NotFoundError("Client not found.", ids=[client_id])

        products = self._resolve_products(lines)
        self._raise_on_shortage(lines, products)

        items_snapshot = tuple(
            SaleItem(
                product_id=line.product_id,
                product_name=products[line.product_id].name,
                quantity=line.quantity,
                price_in_cents=products[line.product_id].price_in_cents,
            )
            for line in lines
        )
        total = sum(it.subtotal_in_cents for it in items_snapshot)

        sale = self._commit(client_id, lines, items_snapshot, total, when)
        log.info(
            "sale_created sale_id=%s client_id=%s items=%s total_cents=%s",
            sale.id,
            client_id,
            len(sale.items),
            sale.total_amount_in_cents,
        )
        return sale

    # ---------- validation ----------
    @staticmethod
    def _normalize_lines(items) -> list[SaleLineItemRequest]:
        raw = list(items or [])
        if not raw:
            raise ValidationError("At least one item required.")

        lines: list[SaleLineItemRequest] = []
        for it in raw:
            if isinstance(it, SaleLineItemRequest):
                product_id, qty = it.product_id, it.quantity
            elif isinstance(it, Mapping):
                product_id, qty = it.get("product_id"), it.get("quantity")
            else:
                raise ValidationError("Each item needs a product_id and a quantity.")

            if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
                raise ValidationError("Quantity must be a positive integer.")
            if not isinstance(product_id, str) or not product_id.strip():
                raise ValidationError("Product id is required.")
            lines.append(SaleLineItemRequest(product_id=product_id, quantity=qty))
        return lines

    @staticmethod
    def _normalize_sale_date(value) -> Optional[datetime]:
        if value is None:
            return None
        if isinstance(value, datetime):
            return as_utc(value)
        if isinstance(value, date):
            return as_utc(datetime.combine(value, time.min))
        raise ValidationError("Sale date must be a date or datetime.")

    def _resolve_products(self, lines: list[SaleLineItemRequest]) -> dict[str, Product]:
        wanted = list(dict.fromkeys(line.product_id for line in lines))
        with sqlite_errors():
            found = {p.id: p for p in self.repo.find_products_by_ids(wanted)}
        if len(found) < len(wanted):
            missing = [pid for pid in wanted if pid not in found]
            log.info("sale_rejected reason=product_not_found product_ids=%s", ",".join(missing))
            raise NotFoundError("One or more products not found.", ids=missing)
        return found

    def _find_shortages(self, lines: list[SaleLineItemRequest], products: dict[str, Product]) -> list[StockShortage]:
        shortages: list[StockShortage] = []
        demand: Counter[str] = Counter()
        cumulative = self.settings.stock_check_mode == "cumulative"
        for line in lines:
            product = products[line.product_id]
            demand[line.product_id] += line.quantity
            requested = demand[line.product_id] if cumulative else line.quantity
            if requested > product.stock_qty:
                shortages.append(
                    StockShortage(
                        product_id=product.id,
                        product_name=product.name,
                        requested=requested,
                        available=product.stock_qty,
                    )
                )
        return shortages

    def _raise_on_shortage(self, lines: list[SaleLineItemRequest], products: dict[str, Product]) -> None:
        shortages = self._find_shortages(lines, products)
        if shortages:
            err = InsufficientStockError(shortages)
            log.info("sale_rejected reason=insufficient_stock detail=%s", err)
            raise err

    # ---------- commit ----------
    def _commit(
        self,
        client_id: str,
        lines: list[SaleLineItemRequest],
        items: tuple[SaleItem, ...],
        total: int,
        sale_date: Optional[datetime],
    ) -> Sale:
        attempts = self.settings.commit_retries
        last_conflict: ConcurrencyConflictError | None = None

        for attempt in range(1, attempts + 1):
            try:
                if attempt > 1:
                    # another commit may have taken the stock meanwhile
                    self._raise_on_shortage(lines, self._resolve_products(lines))
                return self._apply(client_id, lines, items, total, sale_date)
            except ConcurrencyConflictError as e:
                last_conflict = e
                log.warning(
                    "sale_commit_retry attempt=%s/%s client_id=%s error=%s", attempt, attempts, client_id, e
                )
            except (InsufficientStockError, NotFoundError):
                raise
            except AppError as e:
                log.error("sale_commit_failed client_id=%s error=%s", client_id, e)
                raise
            except Exception as e:
                log.exception("sale_commit_failed client_id=%s", client_id)
                raise CommitError("Sale could not be committed.") from e

        log.error("sale_commit_failed client_id=%s reason=retries_exhausted attempts=%s", client_id, attempts)
        raise CommitError(f"Sale could not be committed after {attempts} attempts.") from last_conflict

    def _apply(
        self,
        client_id: str,
        lines: list[SaleLineItemRequest],
        items: tuple[SaleItem, ...],
        total: int,
        sale_date: Optional[datetime],
    ) -> Sale:
        with self.uow_factory() as uow:
            shortages: list[StockShortage] = []
            for line, item in zip(lines, items):
                if uow.decrement_product_stock(line.product_id, line.quantity):
                    continue
                available = uow.stock_of(line.product_id)
                if available is None:
                    raise NotFoundError("One or more products not found.", ids=[line.product_id])
                shortages.append(
                    StockShortage(
                        product_id=line.product_id,
                        product_name=item.product_name,
                        requested=line.quantity,
                        available=available,
                    )
                )
            if shortages:
                err = InsufficientStockError(shortages)
                log.info("sale_rejected reason=insufficient_stock_at_commit detail=%s", err)
                raise err

            draft = SaleDraft(
                client_id=client_id,
                sale_date=sale_date or utc_now(),
                items=items,
                total_amount_in_cents=total,
            )
            return uow.persist_sale(draft)

    # ---------- reads ----------
    def get_sale(self, sale_id: str) -> Sale:
        with sqlite_errors():
            sale = self.repo.get_sale(sale_id)
        if sale is None:
            raise NotFoundError("Sale not found.", ids=[sale_id])
        return sale

    def list_sales(
        self, page: int = 1, limit: int = 20, sort_by: str = "sale_date", sort_order: str = "desc"
    ) -> SalePage:
        self._validate_paging(page, limit)
        if sort_by not in SORT_FIELDS:
            raise ValidationError(f"sort_by must be one of {', '.join(SORT_FIELDS)}.")
        if sort_order not in SORT_ORDERS:
            raise ValidationError("sort_order must be 'asc' or 'desc'.")
        with sqlite_errors():
            return self.repo.list_sales(page, limit, sort_by, sort_order)

    def filter_sales(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        client_id: Optional[str] = None,
        min_amount: Optional[int] = None,
        max_amount: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> SalePage:
        self._validate_paging(page, limit)
        for name, amount in (("min_amount", min_amount), ("max_amount", max_amount)):
            if amount is not None and (isinstance(amount, bool) or not isinstance(amount, int) or amount < 0):
                raise ValidationError(f"{name} must be a non-negative integer amount of cents.")
        start = self._normalize_sale_date(start_date)
        end = self._normalize_sale_date(end_date)
        with sqlite_errors():
            return self.repo.filter_sales(start, end, client_id, min_amount, max_amount, page, limit)

    def sales_summary(self, start_date: datetime, end_date: datetime) -> SalesSummary:
        start = self._normalize_sale_date(start_date)
        end = self._normalize_sale_date(end_date)
        if start is None or end is None:
            raise ValidationError("start_date and end_date are required.")
        with sqlite_errors():
            count, revenue, items_sold = self.repo.sales_totals_between(start, end)
        # half-up rounding, integer only
        average = (2 * revenue + count) // (2 * count) if count else 0
        return SalesSummary(
            start_date=start,
            end_date=end,
            total_sales=count,
            total_revenue_in_cents=revenue,
            average_sale_in_cents=average,
            total_items_sold=items_sold,
        )

    @staticmethod
    def _validate_paging(page: int, limit: int) -> None:
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise ValidationError("page must be >= 1.")
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}.")
