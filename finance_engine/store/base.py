"""Persistence contracts consumed by the engines.

The engines only ever talk to these interfaces. Whether an adapter filters
in SQL or fetches every document and filters client-side is its own
business: ``LedgerStore.query`` must return the filtered, sorted and paged
result either way.

Every read and write is scoped to an owner. A record owned by somebody else
behaves exactly like a missing one (``NotFoundError``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ContextManager, Iterator, List, Optional, Sequence, Tuple

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
)


class Database(ABC):
    """Connection owner shared by the repositories of one bundle."""

    @abstractmethod
    def atomic(self) -> ContextManager[None]:
        """Group writes so that either all of them land or none do.

        Nested calls join the outer unit of work.
        """


class LedgerStore(ABC):
    """Transactions of every owner; owns no business logic."""

    @abstractmethod
    def insert(self, transaction: Transaction) -> Transaction:
        """Persist a new transaction and return it as stored."""

    @abstractmethod
    def get(self, transaction_id: str, owner_id: str) -> Transaction:
        """Return one transaction or raise ``NotFoundError``."""

    @abstractmethod
    def exists(self, transaction_id: str) -> bool:
        """True when any owner holds ``transaction_id``."""

    @abstractmethod
    def update(self, transaction_id: str, owner_id: str, patch: TransactionPatch) -> Transaction:
        """Apply ``patch`` and return the updated transaction."""

    @abstractmethod
    def delete(self, transaction_id: str, owner_id: str) -> None:
        """Remove a transaction or raise ``NotFoundError``."""

    @abstractmethod
    def query(
        self,
        owner_id: str,
        filter: Optional[TransactionFilter] = None,
        sort: Optional[Sort] = None,
        page: Optional[Page] = None,
    ) -> Tuple[List[Transaction], int]:
        """Return ``(items, total_count)`` for the owner.

        Text search matches description or notes, case-insensitive substring.
        Ties on the sort field are broken by ``created_at`` then ``id`` in the
        same direction.
        """

    def iter_all(
        self,
        owner_id: str,
        filter: Optional[TransactionFilter] = None,
        sort: Optional[Sort] = None,
        page_size: int = 500,
    ) -> Iterator[Transaction]:
        """Walk every matching transaction, one bounded page at a time."""
        offset = 0
        while True:
            items, total = self.query(owner_id, filter, sort or Sort('date', 'asc'), Page(page_size, offset))
            yield from items
            offset += len(items)
            if not items or offset >= total:
                return


class CategoryStore(ABC):

    @abstractmethod
    def insert(self, category: Category) -> Category:
        ...

    @abstractmethod
    def get(self, category_id: str) -> Optional[Category]:
        """Return a category regardless of owner, or ``None``."""

    @abstractmethod
    def list_visible(self, owner_id: str, type: Optional[str] = None) -> List[Category]:
        """Defaults plus the owner's categories, defaults first then by name."""

    @abstractmethod
    def list_owned(self, owner_id: str) -> List[Category]:
        ...

    @abstractmethod
    def update(self, category_id: str, owner_id: str, patch: CategoryPatch) -> Category:
        ...

    @abstractmethod
    def delete(self, category_id: str, owner_id: str) -> None:
        ...

    @abstractmethod
    def count_defaults(self) -> int:
        ...


class BudgetStore(ABC):

    @abstractmethod
    def insert(self, budget: Budget) -> Budget:
        ...

    @abstractmethod
    def get(self, budget_id: str, owner_id: str) -> Budget:
        ...

    @abstractmethod
    def exists(self, budget_id: str) -> bool:
        ...

    @abstractmethod
    def list(
        self,
        owner_id: str,
        year: Optional[int] = None,
        month: Optional[int] = None,
        active_only: bool = False,
    ) -> List[Budget]:
        ...

    @abstractmethod
    def find_active(self, owner_id: str, category_id: str, year: int, month: int) -> List[Budget]:
        """Active monthly budgets for one (category, year, month) window."""

    @abstractmethod
    def update(self, budget_id: str, owner_id: str, patch: BudgetPatch) -> Budget:
        ...

    @abstractmethod
    def delete(self, budget_id: str, owner_id: str) -> None:
        ...


class GoalStore(ABC):

    @abstractmethod
    def insert(self, goal: Goal) -> Goal:
        ...

    @abstractmethod
    def get(self, goal_id: str, owner_id: str) -> Goal:
        ...

    @abstractmethod
    def exists(self, goal_id: str) -> bool:
        ...

    @abstractmethod
    def list(self, owner_id: str, status: Optional[str] = None, limit: Optional[int] = None) -> List[Goal]:
        """Goals ordered by ``created_at`` descending."""

    @abstractmethod
    def update(self, goal_id: str, owner_id: str, patch: GoalPatch, expected_version: Optional[int] = None) -> Goal:
        """Apply ``patch`` and bump ``version``.

        When ``expected_version`` is given the write only succeeds if the
        stored version still matches; otherwise ``ConflictError`` is raised.
        """

    @abstractmethod
    def delete(self, goal_id: str, owner_id: str) -> None:
        ...


class NotificationStore(ABC):

    @abstractmethod
    def insert(self, notification: Notification) -> Notification:
        ...

    @abstractmethod
    def list(self, owner_id: str, limit: Optional[int] = None) -> List[Notification]:
        """Newest first."""

    @abstractmethod
    def unread_count(self, owner_id: str) -> int:
        ...

    @abstractmethod
    def has_unread(self, owner_id: str, dedup_key: str) -> bool:
        ...

    @abstractmethod
    def mark_read(self, notification_id: str, owner_id: str) -> None:
        ...

    @abstractmethod
    def mark_all_read(self, owner_id: str) -> int:
        ...


@dataclass
class StoreBundle:
    """The repositories an engine instance works against."""

    ledger: LedgerStore
    categories: CategoryStore
    budgets: BudgetStore
    goals: GoalStore
    notifications: NotificationStore
    database: Database

    def atomic(self) -> ContextManager[None]:
        return self.database.atomic()


def sort_key_columns(sort: Sort) -> Sequence[str]:
    return (sort.field, 'created_at', 'id')
