"""Composition root wiring every component to one store bundle."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Callable, Optional, Union

from . import config
from .alerts import AlertGenerator
from .analytics import FinanceAnalytics
from .budgets import BudgetEngine
from .categories import CategoryRegistry
from .goals import GoalEngine
from .ledger import Ledger
from .notifications import NotificationCenter
from .reports import Reports
from .store import StoreBundle, open_memory_store, open_sqlite_store

logger = logging.getLogger(__name__)


class FinanceEngine:
    """All engine components sharing one :class:`StoreBundle`.

    ``today`` decides what "the current month" is for defaults, trends and
    the dashboard; tests pin it to a fixed date.
    """

    def __init__(self, stores: StoreBundle, today: Callable[[], date] = date.today, seed: bool = True):
        self.stores = stores
        self.today = today
        self.categories = CategoryRegistry(stores.categories)
        self.notifications = NotificationCenter(stores.notifications)
        self.budgets = BudgetEngine(stores, self.categories, today)
        self.goals = GoalEngine(stores, self.notifications)
        self.alerts = AlertGenerator(stores, self.budgets, self.categories, self.notifications)
        self.ledger = Ledger(stores, self.categories, self.alerts)
        self.analytics = FinanceAnalytics(stores, self.categories, self.budgets, self.goals, today)
        self.reports = Reports(stores, self.categories)
        if seed:
            self.categories.seed_defaults()

    @classmethod
    def sqlite(cls, path: Optional[Union[str, Path]] = None, **kwargs) -> 'FinanceEngine':
        """Open (creating if needed) a SQLite database, by default at ``config.DB_PATH``."""
        if path is None:
            config.ensure_data_directories()
            path = config.get_db_path()
        logger.info("Opening SQLite store at %s", path)
        return cls(open_sqlite_store(path), **kwargs)

    @classmethod
    def in_memory(cls, **kwargs) -> 'FinanceEngine':
        return cls(open_memory_store(), **kwargs)
