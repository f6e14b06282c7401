"""Persistence layer: the store contracts and their two adapters.

* ``base`` – abstract repositories, the :class:`Database` unit of work and the :class:`StoreBundle`
* ``sqlite`` – SQL-side filtering on a SQLite file
* ``memory`` – document collections filtered client-side with pandas
"""

from .base import (
    BudgetStore,
    CategoryStore,
    Database,
    GoalStore,
    LedgerStore,
    NotificationStore,
    StoreBundle,
)
from .memory import open_memory_store
from .sqlite import SqliteDatabase, open_sqlite_store

__all__ = [
    'BudgetStore',
    'CategoryStore',
    'Database',
    'GoalStore',
    'LedgerStore',
    'NotificationStore',
    'StoreBundle',
    'SqliteDatabase',
    'open_memory_store',
    'open_sqlite_store',
]
