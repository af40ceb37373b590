from __future__ import annotations

import logging
from typing import Mapping, Optional

from bsm.application.container import AppContainer, build_container
from bsm.config import AppPaths, get_app_paths, load_settings
from bsm.logging_config import setup_logging


def bootstrap(paths: Optional[AppPaths] = None, environ: Optional[Mapping[str, str]] = None) -> AppContainer:
    """Entry point for the hosting application: logging, settings, migrated database, services."""
    paths = paths or get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    settings = load_settings(environ)
    container = build_container(paths.db_path, settings)
    logging.getLogger(__name__).info(
        "bootstrap_done db=%s unit_of_work=%s stock_check_mode=%s",
        paths.db_path,
        settings.unit_of_work,
        settings.stock_check_mode,
    )
    return container
