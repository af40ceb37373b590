from __future__ import annotations

import shutil
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from bsm.domain.errors import CommitError
from bsm.domain.models import Client, Product, Sale, SaleDraft, SaleItem, SalePage
from bsm.domain.time import from_iso, to_iso, utc_now
from bsm.repositories.sqlite_errors import sqlite_errors

SALE_SORT_COLUMNS = {
    "sale_date": "s.sale_date",
    "total_amount": "s.total_amount",
    "created_at": "s.created_at",
}


def new_id() -> str:
    return uuid.uuid4().hex


class SqliteRepository:
    _SALE_COLUMNS = "s.id, s.client_id, c.first_name, c.last_name, s.sale_date, s.total_amount, s.created_at"

    def __init__(self, db_path: Path | str, busy_timeout: float = 5.0):
        self.db_path = str(db_path)
        self.busy_timeout = float(busy_timeout)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        migrations = [
            (1, self._migration_v1_base),
            (2, self._migration_v2_indexes_and_immutability),
        ]

        conn = self._conn()
        try:
            current_version = self._current_version(conn.cursor())
            if current_version >= migrations[-1][0]:
                return

            backup_path = self._create_pre_migration_backup()
            try:
                cur = conn.cursor()
                cur.execute("BEGIN")
                cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
                for version, migration in migrations:
                    if version <= current_version:
                        continue
                    migration(cur)
                    cur.execute(
                        "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                        (version,),
                    )
                conn.commit()
            except Exception as exc:
                conn.rollback()
                self._restore_pre_migration_backup(backup_path)
                raise RuntimeError(
                    "Database migration failed. Original database restored from automatic backup."
                ) from exc
        finally:
            conn.close()

    @staticmethod
    def _current_version(cur: sqlite3.Cursor) -> int:
        cur.execute("SELECT 1 FROM sqlite_master WHERE type='table' AND name='schema_migrations'")
        if cur.fetchone() is None:
            return 0
        cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
        return int(cur.fetchone()[0])

    def schema_version(self) -> int:
        conn = self._conn()
        try:
            return self._current_version(conn.cursor())
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS clients (
            id TEXT PRIMARY KEY,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            email TEXT,
            created_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            price_in_cents INTEGER NOT NULL CHECK(price_in_cents >= 0),
            stock_qty INTEGER NOT NULL DEFAULT 0 CHECK(stock_qty >= 0),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sales (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            sale_date TEXT NOT NULL,
            total_amount INTEGER NOT NULL CHECK(total_amount >= 0),
            created_at TEXT NOT NULL,
            FOREIGN KEY(client_id) REFERENCES clients(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sale_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sale_id TEXT NOT NULL,
            position INTEGER NOT NULL,
            product_id TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            price_in_cents INTEGER NOT NULL CHECK(price_in_cents >= 0),
            subtotal_in_cents INTEGER NOT NULL CHECK(subtotal_in_cents = quantity * price_in_cents),
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE,
            FOREIGN KEY(product_id) REFERENCES products(id),
            UNIQUE(sale_id, position)
        )
        """
        )

    def _migration_v2_indexes_and_immutability(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_sale_date ON sales(sale_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_client_id ON sales(client_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sale_items_sale_id ON sale_items(sale_id)")

        # Captured prices and totals never change once a sale is written.
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS sales_immutable
            BEFORE UPDATE ON sales
            BEGIN
                SELECT RAISE(ABORT, 'sales are immutable');
            END
            """
        )
        cur.execute(
            """
            CREATE TRIGGER IF NOT EXISTS sale_items_immutable
            BEFORE UPDATE ON sale_items
            BEGIN
                SELECT RAISE(ABORT, 'sale items are immutable');
            END
            """
        )

    # ---------- Clients ----------
    def add_client(self, first_name: str, last_name: str, email: Optional[str] = None, client_id: Optional[str] = None) -> str:
        cid = client_id or new_id()
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO clients (id, first_name, last_name, email, created_at)
            VALUES (?, ?, ?, ?, ?)
        """,
            (cid, first_name, last_name, email, to_iso(utc_now())),
        )
        conn.commit()
        conn.close()
        return cid

    def find_client_by_id(self, client_id: str) -> Optional[Client]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, first_name, last_name, email FROM clients WHERE id=?", (str(client_id),))
        r = cur.fetchone()
        conn.close()
        if not r:
            return None
        return Client(id=str(r[0]), first_name=str(r[1]), last_name=str(r[2]), email=(r[3] if r[3] is not None else None))

    # ---------- Products ----------
    def add_product(self, name: str, price_in_cents: int, stock_qty: int, product_id: Optional[str] = None) -> str:
        pid = product_id or new_id()
        now_iso = to_iso(utc_now())
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO products (id, name, price_in_cents, stock_qty, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """,
            (pid, name, int(price_in_cents), int(stock_qty), now_iso, now_iso),
        )
        conn.commit()
        conn.close()
        return pid

    def get_product_by_id(self, product_id: str) -> Optional[Product]:
        found = self.find_products_by_ids([product_id])
        return found[0] if found else None

    def find_products_by_ids(self, product_ids: Iterable[str]) -> list[Product]:
        ids = list(dict.fromkeys(str(p) for p in product_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT id, name, price_in_cents, stock_qty
            FROM products
            WHERE id IN ({placeholders})
        """,
            ids,
        )
        rows = cur.fetchall()
        conn.close()
        return [Product(id=str(r[0]), name=str(r[1]), price_in_cents=int(r[2]), stock_qty=int(r[3])) for r in rows]

    def update_product_price(self, product_id: str, price_in_cents: int) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "UPDATE products SET price_in_cents=?, updated_at=? WHERE id=?",
            (int(price_in_cents), to_iso(utc_now()), str(product_id)),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    # ---------- Stock & sale writes (cursor-scoped, used by units of work) ----------
    def apply_stock_decrement(self, cur: sqlite3.Cursor, product_id: str, amount: int) -> bool:
        cur.execute(
            """
            UPDATE products
            SET stock_qty = stock_qty - ?, updated_at = ?
            WHERE id = ? AND stock_qty >= ?
        """,
            (int(amount), to_iso(utc_now()), str(product_id), int(amount)),
        )
        return cur.rowcount == 1

    def apply_stock_increment(self, cur: sqlite3.Cursor, product_id: str, amount: int) -> None:
        cur.execute(
            "UPDATE products SET stock_qty = stock_qty + ?, updated_at = ? WHERE id = ?",
            (int(amount), to_iso(utc_now()), str(product_id)),
        )

    def read_stock(self, cur: sqlite3.Cursor, product_id: str) -> Optional[int]:
        cur.execute("SELECT stock_qty FROM products WHERE id=?", (str(product_id),))
        row = cur.fetchone()
        return int(row[0]) if row else None

    def insert_sale(self, cur: sqlite3.Cursor, draft: SaleDraft) -> str:
        sale_id = new_id()
        cur.execute(
            """
            INSERT INTO sales (id, client_id, sale_date, total_amount, created_at)
            VALUES (?, ?, ?, ?, ?)
        """,
            (sale_id, draft.client_id, to_iso(draft.sale_date), int(draft.total_amount_in_cents), to_iso(utc_now())),
        )
        for position, it in enumerate(draft.items):
            cur.execute(
                """
                INSERT INTO sale_items (sale_id, position, product_id, quantity, price_in_cents, subtotal_in_cents)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
                (sale_id, position, it.product_id, int(it.quantity), int(it.price_in_cents), int(it.subtotal_in_cents)),
            )
        return sale_id

    def load_sale(self, cur: sqlite3.Cursor, sale_id: str) -> Optional[Sale]:
        cur.execute(
            f"""
            SELECT {self._SALE_COLUMNS}
            FROM sales s
            JOIN clients c ON c.id = s.client_id
            WHERE s.id = ?
        """,
            (str(sale_id),),
        )
        row = cur.fetchone()
        if not row:
            return None
        return self._hydrate_sales(cur, [row])[0]

    # Per-call atomic variants of the writes above, for stores without a shared transaction.
    def decrement_product_stock(self, product_id: str, amount: int) -> bool:
        conn = self._conn()
        try:
            with sqlite_errors():
                ok = self.apply_stock_decrement(conn.cursor(), product_id, amount)
                conn.commit()
            return ok
        finally:
            conn.close()

    def increment_product_stock(self, product_id: str, amount: int) -> None:
        conn = self._conn()
        try:
            with sqlite_errors():
                self.apply_stock_increment(conn.cursor(), product_id, amount)
                conn.commit()
        finally:
            conn.close()

    def stock_of(self, product_id: str) -> Optional[int]:
        conn = self._conn()
        try:
            with sqlite_errors():
                return self.read_stock(conn.cursor(), product_id)
        finally:
            conn.close()

    def persist_sale(self, draft: SaleDraft) -> Sale:
        conn = self._conn()
        cur = conn.cursor()
        try:
            with sqlite_errors():
                sale_id = self.insert_sale(cur, draft)
                # read back inside the transaction; nothing is committed if it fails
                sale = self.load_sale(cur, sale_id)
                if sale is None:
                    raise CommitError(f"Sale {sale_id} vanished before commit.")
                conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return sale

    # ---------- Sales (reads) ----------

    def _hydrate_sales(self, cur: sqlite3.Cursor, rows: list[tuple]) -> list[Sale]:
        if not rows:
            return []
        ids = [str(r[0]) for r in rows]
        placeholders = ",".join("?" for _ in ids)
        cur.execute(
            f"""
            SELECT si.sale_id, si.product_id, p.name, si.quantity, si.price_in_cents
            FROM sale_items si
            JOIN products p ON p.id = si.product_id
            WHERE si.sale_id IN ({placeholders})
            ORDER BY si.sale_id, si.position
        """,
            ids,
        )
        items_by_sale: dict[str, list[SaleItem]] = {sid: [] for sid in ids}
        for r in cur.fetchall():
            items_by_sale[str(r[0])].append(
                SaleItem(product_id=str(r[1]), product_name=str(r[2]), quantity=int(r[3]), price_in_cents=int(r[4]))
            )
        return [
            Sale(
                id=str(r[0]),
                client_id=str(r[1]),
                client_name=f"{r[2]} {r[3]}".strip(),
                sale_date=from_iso(r[4]),
                total_amount_in_cents=int(r[5]),
                items=tuple(items_by_sale[str(r[0])]),
                created_at=from_iso(r[6]),
            )
            for r in rows
        ]

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        conn = self._conn()
        try:
            return self.load_sale(conn.cursor(), sale_id)
        finally:
            conn.close()

    def list_sales(self, page: int, limit: int, sort_by: str, sort_order: str) -> SalePage:
        column = SALE_SORT_COLUMNS[sort_by]
        direction = "ASC" if sort_order == "asc" else "DESC"
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("SELECT COUNT(*) FROM sales")
            total = int(cur.fetchone()[0])
            cur.execute(
                f"""
                SELECT {self._SALE_COLUMNS}
                FROM sales s
                JOIN clients c ON c.id = s.client_id
                ORDER BY {column} {direction}, s.created_at {direction}, s.id
                LIMIT ? OFFSET ?
            """,
                (int(limit), (int(page) - 1) * int(limit)),
            )
            sales = self._hydrate_sales(cur, cur.fetchall())
        finally:
            conn.close()
        return SalePage(sales=sales, total=total, page=int(page), limit=int(limit))

    def filter_sales(
        self,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        client_id: Optional[str],
        min_amount: Optional[int],
        max_amount: Optional[int],
        page: int,
        limit: int,
    ) -> SalePage:
        clauses: list[str] = []
        params: list = []
        if start_date is not None:
            clauses.append("s.sale_date >= ?")
            params.append(to_iso(start_date))
        if end_date is not None:
            clauses.append("s.sale_date <= ?")
            params.append(to_iso(end_date))
        if client_id:
            clauses.append("s.client_id = ?")
            params.append(str(client_id))
        if min_amount is not None:
            clauses.append("s.total_amount >= ?")
            params.append(int(min_amount))
        if max_amount is not None:
            clauses.append("s.total_amount <= ?")
            params.append(int(max_amount))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute(f"SELECT COUNT(*) FROM sales s {where}", params)
            total = int(cur.fetchone()[0])
            cur.execute(
                f"""
                SELECT {self._SALE_COLUMNS}
                FROM sales s
                JOIN clients c ON c.id = s.client_id
                {where}
                ORDER BY s.sale_date DESC, s.created_at DESC, s.id
                LIMIT ? OFFSET ?
            """,
                [*params, int(limit), (int(page) - 1) * int(limit)],
            )
            sales = self._hydrate_sales(cur, cur.fetchall())
        finally:
            conn.close()
        return SalePage(sales=sales, total=total, page=int(page), limit=int(limit))

    def sales_totals_between(self, start_date: datetime, end_date: datetime) -> tuple[int, int, int]:
        """(sales count, revenue in cents, items sold) for sale dates within [start, end]."""
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT COUNT(*), COALESCE(SUM(total_amount), 0)
            FROM sales
            WHERE sale_date >= ? AND sale_date <= ?
        """,
            (to_iso(start_date), to_iso(end_date)),
        )
        count, revenue = cur.fetchone()
        cur.execute(
            """
            SELECT COALESCE(SUM(si.quantity), 0)
            FROM sale_items si
            JOIN sales s ON s.id = si.sale_id
            WHERE s.sale_date >= ? AND s.sale_date <= ?
        """,
            (to_iso(start_date), to_iso(end_date)),
        )
        items_sold = cur.fetchone()[0]
        conn.close()
        return int(count), int(revenue), int(items_sold)
