"""In-memory document adapter: fetch everything, filter client-side.

This mirrors a document database without server-side query support. Each
``query`` pulls every transaction of the owner into a DataFrame and applies
the filter, sort and page with pandas. The engines cannot tell the
difference from the SQLite adapter.

Writes are serialized with a single re-entrant lock; goal writes honour the
same ``expected_version`` check as the SQLite adapter. ``atomic`` holds the
lock and puts every collection back if the block raises.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterator, List, Optional, Tuple

import pandas as pd

from ..exceptions import ConflictError, NotFoundError
from ..models import (
    Budget,
    BudgetPatch,
    Category,
    CategoryPatch,
    Goal,
    GoalPatch,
    Notification,
    Page,
    Sort,
    Transaction,
    TransactionFilter,
    TransactionPatch,
    iso_timestamp,
    to_money,
    utcnow,
)
from .base import (
    BudgetStore,
    CategoryStore,
    Database,
    GoalStore,
    LedgerStore,
    NotificationStore,
    StoreBundle,
    sort_key_columns,
)

logger = logging.getLogger(__name__)


class MemoryDatabase(Database):
    """Document collections keyed by record id.

    Stored documents are never mutated in place, so a shallow copy of each
    collection is a complete snapshot.
    """

    COLLECTIONS = ('transactions', 'categories', 'budgets', 'goals', 'notifications')

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.transactions: Dict[str, Transaction] = {}
        self.categories: Dict[str, Category] = {}
        self.budgets: Dict[str, Budget] = {}
        self.goals: Dict[str, Goal] = {}
        self.notifications: Dict[str, Notification] = {}

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self.lock:
            snapshot = {name: dict(getattr(self, name)) for name in self.COLLECTIONS}
            try:
                yield
            except BaseException:
                for name, documents in snapshot.items():
                    collection = getattr(self, name)
                    collection.clear()
                    collection.update(documents)
                raise

    def add(self, collection: Dict, document, label: str) -> None:
        with self.lock:
            if document.id in collection:
                raise ConflictError(f"{label} id {document.id} already exists")
            collection[document.id] = replace(document)


def _transactions_frame(documents: List[Transaction]) -> pd.DataFrame:
    return pd.DataFrame({
        'position': range(len(documents)),
        'id': [doc.id for doc in documents],
        'type': [doc.type for doc in documents],
        'category_id': [doc.category_id for doc in documents],
        'payment_method': [doc.payment_method for doc in documents],
        'date': [doc.date.isoformat() for doc in documents],
        'amount': [float(doc.amount) for doc in documents],
        'description': [doc.description for doc in documents],
        'notes': [doc.notes or '' for doc in documents],
        'created_at': [iso_timestamp(doc.created_at) or '' for doc in documents],
    })


class MemoryLedgerStore(LedgerStore):

    def __init__(self, database: MemoryDatabase):
        self.database = database

    def insert(self, transaction: Transaction) -> Transaction:
        self.database.add(self.database.transactions, transaction, 'transactions')
        return transaction

    def _owned(self, transaction_id: str, owner_id: str) -> Transaction:
        doc = self.database.transactions.get(transaction_id)
        if doc is None or doc.owner_id != owner_id:
            raise NotFoundError('Transaction', transaction_id)
        return doc

    def get(self, transaction_id: str, owner_id: str) -> Transaction:
        with self.database.lock:
            return replace(self._owned(transaction_id, owner_id))

    def exists(self, transaction_id: str) -> bool:
        with self.database.lock:
            return transaction_id in self.database.transactions

    def update(self, transaction_id: str, owner_id: str, patch: TransactionPatch) -> Transaction:
        with self.database.lock:
            doc = self._owned(transaction_id, owner_id)
            changes = patch.changes()
            if 'amount' in changes:
                changes['amount'] = to_money(changes['amount'])
            if 'tags' in changes:
                changes['tags'] = tuple(changes['tags'] or ())
            updated = replace(doc, updated_at=utcnow(), **changes)
            self.database.transactions[transaction_id] = updated
            return replace(updated)

    def delete(self, transaction_id: str, owner_id: str) -> None:
        with self.database.lock:
            self._owned(transaction_id, owner_id)
            del self.database.transactions[transaction_id]

    def query(
        self,
        owner_id: str,
        filter: Optional[TransactionFilter] = None,
        sort: Optional[Sort] = None,
        page: Optional[Page] = None,
    ) -> Tuple[List[Transaction], int]:
        filter = filter or TransactionFilter()
        sort = sort or Sort()
        page = page or Page()

        with self.database.lock:
            documents = [doc for doc in self.database.transactions.values() if doc.owner_id == owner_id]
        if not documents:
            return [], 0

        df = _transactions_frame(documents)
        mask = pd.Series(True, index=df.index)
        if filter.type:
            mask &= df['type'] == filter.type
        if filter.category_id:
            mask &= df['category_id'] == filter.category_id
        if filter.start_date:
            mask &= df['date'] >= filter.start_date.isoformat()
        if filter.end_date:
            mask &= df['date'] <= filter.end_date.isoformat()
        if filter.payment_method:
            mask &= df['payment_method'] == filter.payment_method
        if filter.search:
            needle = filter.search.casefold()
            in_description = df['description'].str.casefold().str.contains(needle, regex=False)
            in_notes = df['notes'].str.casefold().str.contains(needle, regex=False)
            mask &= in_description | in_notes

        matched = df[mask]
        total = len(matched)
        if total == 0:
            return [], 0

        ordered = matched.sort_values(
            list(sort_key_columns(sort)),
            ascending=not sort.descending,
            kind='mergesort',
        )
        window = ordered.iloc[page.offset:page.offset + page.size]
        return [replace(documents[position]) for position in window['position']], total


class MemoryCategoryStore(CategoryStore):

    def __init__(self, database: MemoryDatabase):
        self.database = database

    def insert(self, category: Category) -> Category:
        self.database.add(self.database.categories, category, 'categories')
        return category

    def get(self, category_id: str) -> Optional[Category]:
        with self.database.lock:
            doc = self.database.categories.get(category_id)
            return replace(doc) if doc is not None else None

    def list_visible(self, owner_id: str, type: Optional[str] = None) -> List[Category]:
        with self.database.lock:
            docs = [
                replace(doc) for doc in self.database.categories.values()
                if (doc.owner_id == owner_id or doc.is_default) and (not type or doc.type == type)
            ]
        return sorted(docs, key=lambda doc: (not doc.is_default, doc.name))

    def list_owned(self, owner_id: str) -> List[Category]:
        with self.database.lock:
            docs = [replace(doc) for doc in self.database.categories.values() if doc.owner_id == owner_id]
        return sorted(docs, key=lambda doc: doc.name)

    def update(self, category_id: str, owner_id: str, patch: CategoryPatch) -> Category:
        with self.database.lock:
            doc = self.database.categories.get(category_id)
            if doc is None or doc.owner_id != owner_id:
                raise NotFoundError('Category', category_id)
            updated = patch.apply(doc)
            self.database.categories[category_id] = updated
            return replace(updated)

    def delete(self, category_id: str, owner_id: str) -> None:
        with self.database.lock:
            doc = self.database.categories.get(category_id)
            if doc is None or doc.owner_id != owner_id:
                raise NotFoundError('Category', category_id)
            del self.database.categories[category_id]

    def count_defaults(self) -> int:
        with self.database.lock:
            return sum(1 for doc in self.database.categories.values() if doc.is_default)


class MemoryBudgetStore(BudgetStore):

    def __init__(self, database: MemoryDatabase):
        self.database = database

    def insert(self, budget: Budget) -> Budget:
        self.database.add(self.database.budgets, budget, 'budgets')
        return budget

    def _owned(self, budget_id: str, owner_id: str) -> Budget:
        doc = self.database.budgets.get(budget_id)
        if doc is None or doc.owner_id != owner_id:
            raise NotFoundError('Budget', budget_id)
        return doc

    def get(self, budget_id: str, owner_id: str) -> Budget:
        with self.database.lock:
            return replace(self._owned(budget_id, owner_id))

    def exists(self, budget_id: str) -> bool:
        with self.database.lock:
            return budget_id in self.database.budgets

    def list(
        self,
        owner_id: str,
        year: Optional[int] = None,
        month: Optional[int] = None,
        active_only: bool = False,
    ) -> List[Budget]:
        with self.database.lock:
            docs = [
                replace(doc) for doc in self.database.budgets.values()
                if doc.owner_id == owner_id
                and (year is None or doc.year == int(year))
                and (month is None or doc.month == int(month))
                and (not active_only or doc.is_active)
            ]
        return sorted(docs, key=lambda doc: (iso_timestamp(doc.created_at) or '', doc.id))

    def find_active(self, owner_id: str, category_id: str, year: int, month: int) -> List[Budget]:
        return [
            doc for doc in self.list(owner_id, year, month, active_only=True)
            if doc.category_id == category_id and doc.period == 'monthly'
        ]

    def update(self, budget_id: str, owner_id: str, patch: BudgetPatch) -> Budget:
        with self.database.lock:
            doc = self._owned(budget_id, owner_id)
            updated = replace(patch.apply(doc), updated_at=utcnow())
            self.database.budgets[budget_id] = updated
            return replace(updated)

    def delete(self, budget_id: str, owner_id: str) -> None:
        with self.database.lock:
            self._owned(budget_id, owner_id)
            del self.database.budgets[budget_id]


class MemoryGoalStore(GoalStore):

    def __init__(self, database: MemoryDatabase):
        self.database = database

    def insert(self, goal: Goal) -> Goal:
        self.database.add(self.database.goals, goal, 'goals')
        return goal

    def _owned(self, goal_id: str, owner_id: str) -> Goal:
        doc = self.database.goals.get(goal_id)
        if doc is None or doc.owner_id != owner_id:
            raise NotFoundError('Goal', goal_id)
        return doc

    def get(self, goal_id: str, owner_id: str) -> Goal:
        with self.database.lock:
            return replace(self._owned(goal_id, owner_id))

    def exists(self, goal_id: str) -> bool:
        with self.database.lock:
            return goal_id in self.database.goals

    def list(self, owner_id: str, status: Optional[str] = None, limit: Optional[int] = None) -> List[Goal]:
        with self.database.lock:
            docs = [
                replace(doc) for doc in self.database.goals.values()
                if doc.owner_id == owner_id and (not status or doc.status == status)
            ]
        docs.sort(key=lambda doc: (iso_timestamp(doc.created_at) or '', doc.id), reverse=True)
        return docs[:limit] if limit is not None else docs

    def update(self, goal_id: str, owner_id: str, patch: GoalPatch, expected_version: Optional[int] = None) -> Goal:
        with self.database.lock:
            doc = self._owned(goal_id, owner_id)
            if expected_version is not None and doc.version != expected_version:
                logger.warning("Goal %s changed concurrently (expected version %s)", goal_id, expected_version)
                raise ConflictError(f"Goal {goal_id} was modified concurrently; retry the operation")
            updated = replace(patch.apply(doc), version=doc.version + 1, updated_at=utcnow())
            self.database.goals[goal_id] = updated
            return replace(updated)

    def delete(self, goal_id: str, owner_id: str) -> None:
        with self.database.lock:
            self._owned(goal_id, owner_id)
            del self.database.goals[goal_id]


class MemoryNotificationStore(NotificationStore):

    def __init__(self, database: MemoryDatabase):
        self.database = database

    def insert(self, notification: Notification) -> Notification:
        self.database.add(self.database.notifications, notification, 'notifications')
        return notification

    def list(self, owner_id: str, limit: Optional[int] = None) -> List[Notification]:
        with self.database.lock:
            # dict order is insertion order, which breaks created_at ties
            docs = [replace(doc) for doc in self.database.notifications.values() if doc.owner_id == owner_id]
        docs = [doc for _, doc in sorted(
            enumerate(docs),
            key=lambda item: (iso_timestamp(item[1].created_at) or '', item[0]),
            reverse=True,
        )]
        return docs[:limit] if limit is not None else docs

    def unread_count(self, owner_id: str) -> int:
        with self.database.lock:
            return sum(
                1 for doc in self.database.notifications.values()
                if doc.owner_id == owner_id and not doc.is_read
            )

    def has_unread(self, owner_id: str, dedup_key: str) -> bool:
        with self.database.lock:
            return any(
                doc.owner_id == owner_id and doc.dedup_key == dedup_key and not doc.is_read
                for doc in self.database.notifications.values()
            )

    def mark_read(self, notification_id: str, owner_id: str) -> None:
        with self.database.lock:
            doc = self.database.notifications.get(notification_id)
            if doc is None or doc.owner_id != owner_id:
                raise NotFoundError('Notification', notification_id)
            self.database.notifications[notification_id] = replace(doc, is_read=True)

    def mark_all_read(self, owner_id: str) -> int:
        changed = 0
        with self.database.lock:
            for notification_id, doc in list(self.database.notifications.items()):
                if doc.owner_id == owner_id and not doc.is_read:
                    self.database.notifications[notification_id] = replace(doc, is_read=True)
                    changed += 1
        return changed


def open_memory_store() -> StoreBundle:
    database = MemoryDatabase()
    return StoreBundle(
        ledger=MemoryLedgerStore(database),
        categories=MemoryCategoryStore(database),
        budgets=MemoryBudgetStore(database),
        goals=MemoryGoalStore(database),
        notifications=MemoryNotificationStore(database),
        database=database,
    )
