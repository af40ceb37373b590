import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def build_services(tmp_path: Path, name: str = "sales.db", **settings):
    from bsm.config import Settings
    from bsm.repositories.sqlite_repo import SqliteRepository
    from bsm.services.client_service import ClientService
    from bsm.services.inventory_service import InventoryService
    from bsm.services.sales_service import SalesService

    config = Settings(**settings)
    repo = SqliteRepository(tmp_path / name, busy_timeout=config.busy_timeout_seconds)
    repo.init_db()
    sales = SalesService(repo, settings=config)
    return repo, ClientService(repo), InventoryService(repo), sales


def stock_of(repo, product_id: str) -> int:
    product = repo.get_product_by_id(product_id)
    assert product is not None
    return product.stock_qty


def sale_count(repo) -> int:
    conn = repo._conn()
    cur = conn.cursor()
    cur.execute("SELECT COUNT(*) FROM sales")
    count = int(cur.fetchone()[0])
    conn.close()
    return count
