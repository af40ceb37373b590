from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from bsm.domain.errors import CommitError
from bsm.domain.models import Sale, SaleDraft
from bsm.repositories.contracts import StockStore
from bsm.repositories.sqlite_errors import sqlite_errors
from bsm.repositories.sqlite_repo import SqliteRepository

log = logging.getLogger("bsm.sales")


class SqliteUnitOfWork:
    """One sqlite transaction per `with` block.

    BEGIN IMMEDIATE takes the write lock up front, so concurrent sales touching the
    same products are serialised and the conditional decrements below always see
    committed stock.
    """

    def __init__(self, repo: SqliteRepository):
        self.repo = repo
        self._conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> "SqliteUnitOfWork":
        conn = self.repo._conn()
        try:
            with sqlite_errors():
                conn.execute("BEGIN IMMEDIATE")
        except CommitError:
            conn.close()
            raise
        self._conn = conn
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        conn = self._conn
        self._conn = None
        if conn is None:
            return None
        try:
            if exc_type is None:
                try:
                    with sqlite_errors():
                        conn.commit()
                except CommitError:
                    conn.rollback()
                    raise
            else:
                conn.rollback()
        finally:
            conn.close()
        return None

    def _cursor(self) -> sqlite3.Cursor:
        if self._conn is None:
            raise RuntimeError("Unit of work used outside of its `with` block.")
        return self._conn.cursor()

    def decrement_product_stock(self, product_id: str, amount: int) -> bool:
        with sqlite_errors():
            return self.repo.apply_stock_decrement(self._cursor(), product_id, amount)

    def stock_of(self, product_id: str) -> Optional[int]:
        with sqlite_errors():
            return self.repo.read_stock(self._cursor(), product_id)

    def persist_sale(self, draft: SaleDraft) -> Sale:
        cur = self._cursor()
        with sqlite_errors():
            sale_id = self.repo.insert_sale(cur, draft)
            sale = self.repo.load_sale(cur, sale_id)
        if sale is None:
            raise CommitError(f"Sale {sale_id} vanished before commit.")
        return sale


class CompensatingUnitOfWork:
    """Unit of work over a store that cannot span a transaction across calls.

    Applied decrements are remembered and given back if the block fails, so a
    rejected or failed sale leaves stock as it found it.
    """

    def __init__(self, store: StockStore):
        self.store = store
        self._applied: list[tuple[str, int]] = []

    def __enter__(self) -> "CompensatingUnitOfWork":
        self._applied = []
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        applied, self._applied = self._applied, []
        if exc_type is None:
            return None

        failed: list[str] = []
        for product_id, amount in reversed(applied):
            try:
                self.store.increment_product_stock(product_id, amount)
            except Exception:
                log.exception("stock_compensation_failed product_id=%s amount=%s", product_id, amount)
                failed.append(product_id)
        if failed:
            raise CommitError(f"Stock compensation failed for products: {', '.join(failed)}") from exc
        return None

    def decrement_product_stock(self, product_id: str, amount: int) -> bool:
        ok = self.store.decrement_product_stock(product_id, amount)
        if ok:
            self._applied.append((product_id, int(amount)))
        return ok

    def stock_of(self, product_id: str) -> Optional[int]:
        return self.store.stock_of(product_id)

    def persist_sale(self, draft: SaleDraft) -> Sale:
        return self.store.persist_sale(draft)
