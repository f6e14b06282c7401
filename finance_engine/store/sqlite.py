"""SQLite adapter: filtering, sorting and paging happen in SQL.

Amounts are stored as decimal TEXT so no precision is lost on the way in or
out; ``ORDER BY amount`` casts to REAL, which is exact enough for ordering.
Each unit of work opens its own connection (see :meth:`SqliteDatabase.connect`),
so instances are safe to share between threads. Inside :meth:`SqliteDatabase.atomic`
the calling thread reuses one connection and commits once at the end.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

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
    parse_date,
    parse_timestamp,
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

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    name TEXT NOT NULL,
    type TEXT NOT NULL CHECK(type IN ('income', 'expense')),
    color TEXT DEFAULT '#6366f1',
    icon TEXT DEFAULT 'tag',
    is_default INTEGER DEFAULT 0,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    category_id TEXT,
    type TEXT NOT NULL CHECK(type IN ('income', 'expense')),
    amount TEXT NOT NULL,
    currency TEXT DEFAULT 'EUR',
    description TEXT NOT NULL,
    notes TEXT,
    date TEXT NOT NULL,
    payment_method TEXT DEFAULT 'card',
    receipt_url TEXT,
    is_recurring INTEGER DEFAULT 0,
    recurring_interval TEXT,
    tags TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS budgets (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    category_id TEXT,
    name TEXT NOT NULL,
    amount TEXT NOT NULL,
    period TEXT DEFAULT 'monthly' CHECK(period IN ('monthly', 'weekly', 'yearly')),
    month INTEGER,
    year INTEGER,
    alert_threshold TEXT DEFAULT '80',
    is_active INTEGER DEFAULT 1,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS goals (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    target_amount TEXT NOT NULL,
    current_amount TEXT DEFAULT '0',
    currency TEXT DEFAULT 'EUR',
    target_date TEXT,
    color TEXT DEFAULT '#6366f1',
    icon TEXT DEFAULT 'target',
    status TEXT DEFAULT 'active' CHECK(status IN ('active', 'completed', 'paused', 'cancelled')),
    version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    type TEXT DEFAULT 'info' CHECK(type IN ('info', 'warning', 'success', 'error')),
    is_read INTEGER DEFAULT 0,
    dedup_key TEXT,
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS ix_txn_user ON transactions (user_id);
CREATE INDEX IF NOT EXISTS ix_txn_date ON transactions (date);
CREATE INDEX IF NOT EXISTS ix_txn_type ON transactions (type);
CREATE INDEX IF NOT EXISTS ix_txn_category ON transactions (category_id);
CREATE INDEX IF NOT EXISTS ix_budget_window ON budgets (user_id, category_id, year, month);
CREATE INDEX IF NOT EXISTS ix_goal_user ON goals (user_id);
CREATE INDEX IF NOT EXISTS ix_category_user ON categories (user_id);
CREATE INDEX IF NOT EXISTS ix_notification_user ON notifications (user_id, is_read);
"""


def _casefold(value: Optional[str]) -> str:
    return (value or '').casefold()


def _like_pattern(text: str) -> str:
    escaped = text.casefold().replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return f"%{escaped}%"


def _clean(value: Any) -> Any:
    """Convert pandas NA/NaN to None."""
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    return value


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    return [{key: _clean(value) for key, value in row.items()} for row in df.to_dict('records')]


class SqliteDatabase(Database):
    """Owns the database path and hands out short-lived connections."""

    def __init__(self, path: Union[str, Path]):
        # A file path is required: every unit of work reconnects, so ':memory:'
        # would hand out a fresh empty database each time.
        self.path = str(path)
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()

    def _shared(self) -> Optional[sqlite3.Connection]:
        return getattr(self._local, 'conn', None)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        shared = self._shared()
        if shared is not None:
            yield shared
            return
        conn = sqlite3.connect(self.path)
        conn.create_function('casefold', 1, _casefold, deterministic=True)
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if self._shared() is not None:
            yield
            return
        with self.connect() as conn:
            self._local.conn = conn
            try:
                yield
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
            finally:
                self._local.conn = None

    def commit(self, conn: sqlite3.Connection) -> None:
        # Inside atomic() the outermost block commits
        if self._shared() is None:
            conn.commit()

    def init_db(self) -> None:
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        logger.info("Initialized SQLite store at %s", self.path)

    def read_frame(self, sql: str, params: Tuple[Any, ...] = ()) -> pd.DataFrame:
        with self.connect() as conn:
            return pd.read_sql_query(sql, conn, params=params)

    def fetch_one(self, sql: str, params: Tuple[Any, ...] = ()) -> Optional[Dict[str, Any]]:
        with self.connect() as conn:
            cursor = conn.execute(sql, params)
            row = cursor.fetchone()
            if row is None:
                return None
            return dict(zip([column[0] for column in cursor.description], row))

    def execute(self, sql: str, params: Tuple[Any, ...] = ()) -> int:
        """Run one write statement and return the affected row count."""
        with self.connect() as conn:
            cursor = conn.execute(sql, params)
            self.commit(conn)
            return cursor.rowcount

    def insert(self, table: str, record_id: str, sql: str, params: Tuple[Any, ...]) -> None:
        """Run an INSERT, reporting a taken primary key as ``ConflictError``."""
        try:
            self.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            if self.exists(table, record_id):
                raise ConflictError(f"{table} id {record_id} already exists") from exc
            raise

    def exists(self, table: str, record_id: str) -> bool:
        return self.fetch_one(f"SELECT 1 FROM {table} WHERE id = ?", (record_id,)) is not None


def _set_clause(changes: Dict[str, Any], columns: Dict[str, str]) -> Tuple[List[str], List[Any]]:
    updates: List[str] = []
    params: List[Any] = []
    for name, value in changes.items():
        updates.append(f"{columns.get(name, name)} = ?")
        params.append(value)
    return updates, params


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

_TXN_COLUMNS = (
    "id, user_id, category_id, type, amount, currency, description, notes, date, "
    "payment_method, receipt_url, is_recurring, recurring_interval, tags, created_at, updated_at"
)


def _txn_from_row(row: Dict[str, Any]) -> Transaction:
    tags = row.get('tags')
    return Transaction(
        id=row['id'],
        owner_id=row['user_id'],
        type=row['type'],
        amount=to_money(row['amount']),
        description=row['description'],
        date=parse_date(row['date']),
        currency=row.get('currency') or 'EUR',
        notes=row.get('notes'),
        category_id=row.get('category_id'),
        payment_method=row.get('payment_method') or 'card',
        is_recurring=bool(row.get('is_recurring')),
        recurring_interval=row.get('recurring_interval'),
        tags=tuple(json.loads(tags)) if tags else (),
        receipt_url=row.get('receipt_url'),
        created_at=parse_timestamp(row.get('created_at')),
        updated_at=parse_timestamp(row.get('updated_at')),
    )


def _txn_db_value(name: str, value: Any) -> Any:
    if name == 'amount':
        return str(to_money(value))
    if name == 'date':
        return value.isoformat()
    if name == 'tags':
        return json.dumps(list(value)) if value else None
    if name == 'is_recurring':
        return 1 if value else 0
    return value


class SqliteLedgerStore(LedgerStore):

    def __init__(self, database: SqliteDatabase):
        self.database = database

    def insert(self, transaction: Transaction) -> Transaction:
        self.database.insert(
            "transactions",
            transaction.id,
            f"INSERT INTO transactions ({_TXN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                transaction.id,
                transaction.owner_id,
                transaction.category_id,
                transaction.type,
                _txn_db_value('amount', transaction.amount),
                transaction.currency,
                transaction.description,
                transaction.notes,
                _txn_db_value('date', transaction.date),
                transaction.payment_method,
                transaction.receipt_url,
                _txn_db_value('is_recurring', transaction.is_recurring),
                transaction.recurring_interval,
                _txn_db_value('tags', transaction.tags),
                iso_timestamp(transaction.created_at),
                iso_timestamp(transaction.updated_at),
            ),
        )
        return transaction

    def get(self, transaction_id: str, owner_id: str) -> Transaction:
        row = self.database.fetch_one(
            f"SELECT {_TXN_COLUMNS} FROM transactions WHERE id = ? AND user_id = ?",
            (transaction_id, owner_id),
        )
        if row is None:
            raise NotFoundError('Transaction', transaction_id)
        return _txn_from_row(dict(row))

    def exists(self, transaction_id: str) -> bool:
        return self.database.exists("transactions", transaction_id)

    def update(self, transaction_id: str, owner_id: str, patch: TransactionPatch) -> Transaction:
        changes = {name: _txn_db_value(name, value) for name, value in patch.changes().items()}
        changes['updated_at'] = iso_timestamp(utcnow())
        updates, params = _set_clause(changes, {})
        params.extend([transaction_id, owner_id])
        sql = f"UPDATE transactions SET {', '.join(updates)} WHERE id = ? AND user_id = ?"
        if self.database.execute(sql, tuple(params)) == 0:
            raise NotFoundError('Transaction', transaction_id)
        return self.get(transaction_id, owner_id)

    def delete(self, transaction_id: str, owner_id: str) -> None:
        removed = self.database.execute(
            "DELETE FROM transactions WHERE id = ? AND user_id = ?", (transaction_id, owner_id)
        )
        if removed == 0:
            raise NotFoundError('Transaction', transaction_id)

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

        where: List[str] = ["user_id = ?"]
        params: List[Any] = [owner_id]
        if filter.type:
            where.append("type = ?")
            params.append(filter.type)
        if filter.category_id:
            where.append("category_id = ?")
            params.append(filter.category_id)
        if filter.start_date:
            where.append("date >= ?")
            params.append(filter.start_date.isoformat())
        if filter.end_date:
            where.append("date <= ?")
            params.append(filter.end_date.isoformat())
        if filter.payment_method:
            where.append("payment_method = ?")
            params.append(filter.payment_method)
        if filter.search:
            where.append(
                "(casefold(description) LIKE ? ESCAPE '\\' OR casefold(notes) LIKE ? ESCAPE '\\')"
            )
            pattern = _like_pattern(filter.search)
            params.extend([pattern, pattern])

        where_sql = " WHERE " + " AND ".join(where)
        direction = 'DESC' if sort.descending else 'ASC'
        order = []
        for column in sort_key_columns(sort):
            expression = "CAST(amount AS REAL)" if column == 'amount' else column
            order.append(f"{expression} {direction}")

        sql = f"SELECT {_TXN_COLUMNS} FROM transactions{where_sql} ORDER BY {', '.join(order)} LIMIT ? OFFSET ?"
        df = self.database.read_frame(sql, tuple(params + [page.size, page.offset]))
        total_row = self.database.fetch_one(f"SELECT COUNT(*) AS total FROM transactions{where_sql}", tuple(params))
        total = int(total_row['total']) if total_row is not None else 0
        return [_txn_from_row(row) for row in _records(df)], total


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def _category_from_row(row: Dict[str, Any]) -> Category:
    return Category(
        id=row['id'],
        owner_id=row.get('user_id'),
        name=row['name'],
        type=row['type'],
        color=row.get('color') or '#6366f1',
        icon=row.get('icon') or 'tag',
        is_default=bool(row.get('is_default')),
        created_at=parse_timestamp(row.get('created_at')),
    )


class SqliteCategoryStore(CategoryStore):

    def __init__(self, database: SqliteDatabase):
        self.database = database

    def insert(self, category: Category) -> Category:
        self.database.insert(
            "categories",
            category.id,
            "INSERT INTO categories (id, user_id, name, type, color, icon, is_default, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                category.id,
                category.owner_id,
                category.name,
                category.type,
                category.color,
                category.icon,
                1 if category.is_default else 0,
                iso_timestamp(category.created_at),
            ),
        )
        return category

    def get(self, category_id: str) -> Optional[Category]:
        row = self.database.fetch_one("SELECT * FROM categories WHERE id = ?", (category_id,))
        return _category_from_row(dict(row)) if row is not None else None

    def list_visible(self, owner_id: str, type: Optional[str] = None) -> List[Category]:
        sql = "SELECT * FROM categories WHERE (user_id = ? OR is_default = 1)"
        params: List[Any] = [owner_id]
        if type:
            sql += " AND type = ?"
            params.append(type)
        sql += " ORDER BY is_default DESC, name ASC"
        return [_category_from_row(row) for row in _records(self.database.read_frame(sql, tuple(params)))]

    def list_owned(self, owner_id: str) -> List[Category]:
        df = self.database.read_frame(
            "SELECT * FROM categories WHERE user_id = ? ORDER BY name ASC", (owner_id,)
        )
        return [_category_from_row(row) for row in _records(df)]

    def update(self, category_id: str, owner_id: str, patch: CategoryPatch) -> Category:
        changes = patch.changes()
        if changes:
            updates, params = _set_clause(changes, {})
            params.extend([category_id, owner_id])
            sql = f"UPDATE categories SET {', '.join(updates)} WHERE id = ? AND user_id = ?"
            if self.database.execute(sql, tuple(params)) == 0:
                raise NotFoundError('Category', category_id)
        category = self.get(category_id)
        if category is None or category.owner_id != owner_id:
            raise NotFoundError('Category', category_id)
        return category

    def delete(self, category_id: str, owner_id: str) -> None:
        removed = self.database.execute(
            "DELETE FROM categories WHERE id = ? AND user_id = ?", (category_id, owner_id)
        )
        if removed == 0:
            raise NotFoundError('Category', category_id)

    def count_defaults(self) -> int:
        row = self.database.fetch_one("SELECT COUNT(*) AS count FROM categories WHERE is_default = 1")
        return int(row['count']) if row is not None else 0


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------


def _budget_from_row(row: Dict[str, Any]) -> Budget:
    return Budget(
        id=row['id'],
        owner_id=row['user_id'],
        category_id=row.get('category_id'),
        name=row['name'],
        amount=to_money(row['amount']),
        month=int(row['month']),
        year=int(row['year']),
        period=row.get('period') or 'monthly',
        alert_threshold=to_money(row.get('alert_threshold') or '80'),
        is_active=bool(row.get('is_active')),
        created_at=parse_timestamp(row.get('created_at')),
        updated_at=parse_timestamp(row.get('updated_at')),
    )


def _budget_db_value(name: str, value: Any) -> Any:
    if name in ('amount', 'alert_threshold'):
        return str(value)
    if name == 'is_active':
        return 1 if value else 0
    return value


class SqliteBudgetStore(BudgetStore):

    def __init__(self, database: SqliteDatabase):
        self.database = database

    def insert(self, budget: Budget) -> Budget:
        self.database.insert(
            "budgets",
            budget.id,
            "INSERT INTO budgets (id, user_id, category_id, name, amount, period, month, year, "
            "alert_threshold, is_active, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                budget.id,
                budget.owner_id,
                budget.category_id,
                budget.name,
                str(budget.amount),
                budget.period,
                budget.month,
                budget.year,
                str(budget.alert_threshold),
                1 if budget.is_active else 0,
                iso_timestamp(budget.created_at),
                iso_timestamp(budget.updated_at),
            ),
        )
        return budget

    def get(self, budget_id: str, owner_id: str) -> Budget:
        row = self.database.fetch_one(
            "SELECT * FROM budgets WHERE id = ? AND user_id = ?", (budget_id, owner_id)
        )
        if row is None:
            raise NotFoundError('Budget', budget_id)
        return _budget_from_row(dict(row))

    def exists(self, budget_id: str) -> bool:
        return self.database.exists("budgets", budget_id)

    def list(
        self,
        owner_id: str,
        year: Optional[int] = None,
        month: Optional[int] = None,
        active_only: bool = False,
    ) -> List[Budget]:
        sql = "SELECT * FROM budgets WHERE user_id = ?"
        params: List[Any] = [owner_id]
        if year is not None:
            sql += " AND year = ?"
            params.append(int(year))
        if month is not None:
            sql += " AND month = ?"
            params.append(int(month))
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY created_at ASC, id ASC"
        return [_budget_from_row(row) for row in _records(self.database.read_frame(sql, tuple(params)))]

    def find_active(self, owner_id: str, category_id: str, year: int, month: int) -> List[Budget]:
        df = self.database.read_frame(
            "SELECT * FROM budgets WHERE user_id = ? AND category_id = ? AND year = ? AND month = ? "
            "AND is_active = 1 AND period = 'monthly' ORDER BY created_at ASC, id ASC",
            (owner_id, category_id, int(year), int(month)),
        )
        return [_budget_from_row(row) for row in _records(df)]

    def update(self, budget_id: str, owner_id: str, patch: BudgetPatch) -> Budget:
        changes = {name: _budget_db_value(name, value) for name, value in patch.changes().items()}
        changes['updated_at'] = iso_timestamp(utcnow())
        updates, params = _set_clause(changes, {})
        params.extend([budget_id, owner_id])
        sql = f"UPDATE budgets SET {', '.join(updates)} WHERE id = ? AND user_id = ?"
        if self.database.execute(sql, tuple(params)) == 0:
            raise NotFoundError('Budget', budget_id)
        return self.get(budget_id, owner_id)

    def delete(self, budget_id: str, owner_id: str) -> None:
        if self.database.execute("DELETE FROM budgets WHERE id = ? AND user_id = ?", (budget_id, owner_id)) == 0:
            raise NotFoundError('Budget', budget_id)


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------


def _goal_from_row(row: Dict[str, Any]) -> Goal:
    return Goal(
        id=row['id'],
        owner_id=row['user_id'],
        name=row['name'],
        target_amount=to_money(row['target_amount']),
        current_amount=to_money(row.get('current_amount') or '0'),
        description=row.get('description'),
        currency=row.get('currency') or 'EUR',
        target_date=parse_date(row.get('target_date')),
        color=row.get('color') or '#6366f1',
        icon=row.get('icon') or 'target',
        status=row.get('status') or 'active',
        version=int(row.get('version') or 1),
        created_at=parse_timestamp(row.get('created_at')),
        updated_at=parse_timestamp(row.get('updated_at')),
    )


def _goal_db_value(name: str, value: Any) -> Any:
    if name in ('target_amount', 'current_amount'):
        return str(to_money(value))
    if name == 'target_date':
        return value.isoformat() if value is not None else None
    return value


class SqliteGoalStore(GoalStore):

    def __init__(self, database: SqliteDatabase):
        self.database = database

    def insert(self, goal: Goal) -> Goal:
        self.database.insert(
            "goals",
            goal.id,
            "INSERT INTO goals (id, user_id, name, description, target_amount, current_amount, currency, "
            "target_date, color, icon, status, version, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                goal.id,
                goal.owner_id,
                goal.name,
                goal.description,
                _goal_db_value('target_amount', goal.target_amount),
                _goal_db_value('current_amount', goal.current_amount),
                goal.currency,
                _goal_db_value('target_date', goal.target_date),
                goal.color,
                goal.icon,
                goal.status,
                goal.version,
                iso_timestamp(goal.created_at),
                iso_timestamp(goal.updated_at),
            ),
        )
        return goal

    def get(self, goal_id: str, owner_id: str) -> Goal:
        row = self.database.fetch_one("SELECT * FROM goals WHERE id = ? AND user_id = ?", (goal_id, owner_id))
        if row is None:
            raise NotFoundError('Goal', goal_id)
        return _goal_from_row(dict(row))

    def exists(self, goal_id: str) -> bool:
        return self.database.exists("goals", goal_id)

    def list(self, owner_id: str, status: Optional[str] = None, limit: Optional[int] = None) -> List[Goal]:
        sql = "SELECT * FROM goals WHERE user_id = ?"
        params: List[Any] = [owner_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        sql += " ORDER BY created_at DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return [_goal_from_row(row) for row in _records(self.database.read_frame(sql, tuple(params)))]

    def update(self, goal_id: str, owner_id: str, patch: GoalPatch, expected_version: Optional[int] = None) -> Goal:
        changes = {name: _goal_db_value(name, value) for name, value in patch.changes().items()}
        changes['updated_at'] = iso_timestamp(utcnow())
        updates, params = _set_clause(changes, {})
        updates.append("version = version + 1")
        sql = f"UPDATE goals SET {', '.join(updates)} WHERE id = ? AND user_id = ?"
        params.extend([goal_id, owner_id])
        if expected_version is not None:
            sql += " AND version = ?"
            params.append(int(expected_version))
        if self.database.execute(sql, tuple(params)) == 0:
            # Distinguish a lost race from a missing goal
            self.get(goal_id, owner_id)
            logger.warning("Goal %s changed concurrently (expected version %s)", goal_id, expected_version)
            raise ConflictError(f"Goal {goal_id} was modified concurrently; retry the operation")
        return self.get(goal_id, owner_id)

    def delete(self, goal_id: str, owner_id: str) -> None:
        if self.database.execute("DELETE FROM goals WHERE id = ? AND user_id = ?", (goal_id, owner_id)) == 0:
            raise NotFoundError('Goal', goal_id)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def _notification_from_row(row: Dict[str, Any]) -> Notification:
    return Notification(
        id=row['id'],
        owner_id=row['user_id'],
        title=row['title'],
        message=row['message'],
        type=row.get('type') or 'info',
        is_read=bool(row.get('is_read')),
        dedup_key=row.get('dedup_key'),
        created_at=parse_timestamp(row.get('created_at')),
    )


class SqliteNotificationStore(NotificationStore):

    def __init__(self, database: SqliteDatabase):
        self.database = database

    def insert(self, notification: Notification) -> Notification:
        self.database.insert(
            "notifications",
            notification.id,
            "INSERT INTO notifications (id, user_id, title, message, type, is_read, dedup_key, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                notification.id,
                notification.owner_id,
                notification.title,
                notification.message,
                notification.type,
                1 if notification.is_read else 0,
                notification.dedup_key,
                iso_timestamp(notification.created_at),
            ),
        )
        return notification

    def list(self, owner_id: str, limit: Optional[int] = None) -> List[Notification]:
        sql = "SELECT * FROM notifications WHERE user_id = ? ORDER BY created_at DESC, rowid DESC"
        params: List[Any] = [owner_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return [_notification_from_row(row) for row in _records(self.database.read_frame(sql, tuple(params)))]

    def unread_count(self, owner_id: str) -> int:
        row = self.database.fetch_one(
            "SELECT COUNT(*) AS count FROM notifications WHERE user_id = ? AND is_read = 0", (owner_id,)
        )
        return int(row['count']) if row is not None else 0

    def has_unread(self, owner_id: str, dedup_key: str) -> bool:
        row = self.database.fetch_one(
            "SELECT 1 FROM notifications WHERE user_id = ? AND dedup_key = ? AND is_read = 0 LIMIT 1",
            (owner_id, dedup_key),
        )
        return row is not None

    def mark_read(self, notification_id: str, owner_id: str) -> None:
        updated = self.database.execute(
            "UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?", (notification_id, owner_id)
        )
        if updated == 0:
            raise NotFoundError('Notification', notification_id)

    def mark_all_read(self, owner_id: str) -> int:
        return self.database.execute(
            "UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0", (owner_id,)
        )


def open_sqlite_store(path: Union[str, Path]) -> StoreBundle:
    """Create (if needed) the schema at ``path`` and return its repositories."""
    database = SqliteDatabase(path)
    database.init_db()
    return StoreBundle(
        ledger=SqliteLedgerStore(database),
        categories=SqliteCategoryStore(database),
        budgets=SqliteBudgetStore(database),
        goals=SqliteGoalStore(database),
        notifications=SqliteNotificationStore(database),
        database=database,
    )
