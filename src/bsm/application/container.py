from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from bsm.config import Settings
from bsm.repositories.sqlite_repo import SqliteRepository
from bsm.repositories.unit_of_work import CompensatingUnitOfWork, SqliteUnitOfWork
from bsm.services.client_service import ClientService
from bsm.services.inventory_service import InventoryService
from bsm.services.rate_limiter import RateLimiter
from bsm.services.sales_service import SalesService


@dataclass(frozen=True)
class AppContainer:
    settings: Settings
    repo: SqliteRepository
    clients: ClientService
    inventory: InventoryService
    sales: SalesService
    rate_limiter: RateLimiter


def build_container(db_path: Path | str, settings: Settings | None = None) -> AppContainer:
    settings = settings or Settings()
    repo = SqliteRepository(db_path, busy_timeout=settings.busy_timeout_seconds)
    repo.init_db()

    if settings.unit_of_work == "compensating":
        uow_factory = lambda: CompensatingUnitOfWork(repo)  # noqa: E731
    else:
        uow_factory = lambda: SqliteUnitOfWork(repo)  # noqa: E731

    clients = ClientService(repo)
    inventory = InventoryService(repo)
    sales = SalesService(repo, uow_factory=uow_factory, settings=settings)
    rate_limiter = RateLimiter(
        limit=settings.rate_limit_per_minute,
        window_seconds=60.0,
        sweep_interval_seconds=settings.rate_limit_sweep_seconds,
    )

    return AppContainer(
        settings=settings,
        repo=repo,
        clients=clients,
        inventory=inventory,
        sales=sales,
        rate_limiter=rate_limiter,
    )
