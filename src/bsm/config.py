from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
import os
import sys

STOCK_CHECK_MODES = ("per_line", "cumulative")
UNIT_OF_WORK_KINDS = ("transactional", "compensating")


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class Settings:
    commit_retries: int = 3
    busy_timeout_seconds: float = 5.0
    stock_check_mode: str = "per_line"
    unit_of_work: str = "transactional"
    rate_limit_per_minute: int = 30
    rate_limit_sweep_seconds: float = 120.0

    def __post_init__(self) -> None:
        if self.commit_retries < 1:
            raise ValueError("commit_retries must be >= 1")
        if self.busy_timeout_seconds < 0:
            raise ValueError("busy_timeout_seconds must be >= 0")
        if self.stock_check_mode not in STOCK_CHECK_MODES:
            raise ValueError(f"stock_check_mode must be one of {STOCK_CHECK_MODES}")
        if self.unit_of_work not in UNIT_OF_WORK_KINDS:
            raise ValueError(f"unit_of_work must be one of {UNIT_OF_WORK_KINDS}")
        if self.rate_limit_per_minute < 1:
            raise ValueError("rate_limit_per_minute must be >= 1")
        if self.rate_limit_sweep_seconds <= 0:
            raise ValueError("rate_limit_sweep_seconds must be > 0")


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ

    def _get(name: str) -> str | None:
        value = env.get(name, "").strip()
        return value or None

    defaults = Settings()
    return Settings(
        commit_retries=int(_get("BSM_COMMIT_RETRIES") or defaults.commit_retries),
        busy_timeout_seconds=float(_get("BSM_BUSY_TIMEOUT_SECONDS") or defaults.busy_timeout_seconds),
        stock_check_mode=(_get("BSM_STOCK_CHECK_MODE") or defaults.stock_check_mode).lower(),
        unit_of_work=(_get("BSM_UNIT_OF_WORK") or defaults.unit_of_work).lower(),
        rate_limit_per_minute=int(_get("BSM_RATE_LIMIT_PER_MINUTE") or defaults.rate_limit_per_minute),
        rate_limit_sweep_seconds=float(_get("BSM_RATE_LIMIT_SWEEP_SECONDS") or defaults.rate_limit_sweep_seconds),
    )


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "BusinessSalesManager") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "business.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)
