# app/db/base.py
from __future__ import annotations

import importlib
import logging
from typing import Iterable, List, Set

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("replenish.models")


class Base(DeclarativeBase):
    """Single ORM Base for every table of the engine."""

    pass


_INITIALIZED: bool = False

# Import order matters only for FK targets: items / warehouses first.
MODEL_MODULES = [
    "app.models.item",
    "app.models.warehouse",
    "app.models.batch",
    "app.models.batch_transaction",
    "app.models.stock_level",
    "app.models.stock_ledger",
    "app.models.reorder_setting",
    "app.models.reorder_alert",
    "app.models.purchase_order",
    "app.models.purchase_order_line",
]


def init_models(
    *,
    extra_modules: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
    force: bool = False,
) -> None:
    """
    Import every model module and configure mappers once, so that
    Base.metadata is complete before create_all / alembic autogenerate.
    """
    global _INITIALIZED
    if _INITIALIZED and not force:
        log.debug("init_models() called again; already initialized, skipping.")
        return

    ex: Set[str] = set(exclude or [])
    loaded: List[str] = []

    for mod in [*MODEL_MODULES, *(extra_modules or [])]:
        if mod in ex or mod in loaded:
            continue
        importlib.import_module(mod)
        loaded.append(mod)

    configure_mappers()
    _INITIALIZED = True
    log.info("ORM models initialized & mappers configured (loaded %d modules)", len(loaded))
