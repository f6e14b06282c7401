"""Exports and JSON backups of one owner's data.

File formatting (PDF, spreadsheets) is left to callers: ``export_frame``
hands them a DataFrame and ``backup`` a JSON-ready dict.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pandas as pd

from . import config
from .categories import CategoryRegistry
from .exceptions import NotFoundError, ValidationError
from .models import (
    BUDGET_PERIODS,
    EXPENSE,
    GOAL_COMPLETED,
    GOAL_STATUSES,
    INCOME,
    TRANSACTION_TYPES,
    ZERO,
    Budget,
    Category,
    Goal,
    Sort,
    Transaction,
    TransactionFilter,
    iso_timestamp,
    parse_amount,
    parse_date,
    parse_timestamp,
    to_money,
    utcnow,
)
from .store.base import StoreBundle

logger = logging.getLogger(__name__)

BACKUP_VERSION = '1.0'

EXPORT_COLUMNS = [
    'date', 'type', 'amount', 'currency', 'description', 'notes',
    'category', 'payment_method', 'is_recurring', 'recurring_interval', 'tags',
]


@dataclass
class ExportData:
    transactions: List[Transaction]
    category_names: Dict[str, str]
    total_income: Decimal
    total_expenses: Decimal
    generated_at: datetime

    @property
    def count(self) -> int:
        return len(self.transactions)

    def category_name(self, transaction: Transaction) -> str:
        return self.category_names.get(transaction.category_id or '', config.UNCATEGORIZED_NAME)

    def to_dict(self) -> Dict[str, Any]:
        rows = []
        for txn in self.transactions:
            row = txn.to_dict()
            row['categoryName'] = self.category_name(txn)
            rows.append(row)
        return {
            'transactions': rows,
            'summary': {
                'totalIncome': float(self.total_income),
                'totalExpenses': float(self.total_expenses),
                'count': self.count,
            },
            'generatedAt': iso_timestamp(self.generated_at),
        }


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return iso_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, tuple):
        return list(value)
    return value


def _record(obj: Any) -> Dict[str, Any]:
    return {key: _json_value(value) for key, value in asdict(obj).items()}


class Reports:

    def __init__(self, stores: StoreBundle, categories: CategoryRegistry):
        self.stores = stores
        self.categories = categories

    # -- exports ------------------------------------------------------------

    def export_data(
        self,
        owner_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        type: Optional[str] = None,
    ) -> ExportData:
        """Matching transactions, newest first, with income and expense totals."""
        if type is not None and type not in TRANSACTION_TYPES:
            raise ValidationError('Invalid export', {'type': "Type must be 'income' or 'expense'"})
        criteria = TransactionFilter(type=type, start_date=start_date, end_date=end_date)
        transactions = list(
            self.stores.ledger.iter_all(owner_id, criteria, Sort('date', 'desc'), page_size=config.QUERY_PAGE_SIZE)
        )
        names = {category.id: category.name for category in self.categories.list_categories(owner_id)}
        return ExportData(
            transactions=transactions,
            category_names=names,
            total_income=to_money(sum((t.amount for t in transactions if t.type == INCOME), ZERO)),
            total_expenses=to_money(sum((t.amount for t in transactions if t.type == EXPENSE), ZERO)),
            generated_at=utcnow(),
        )

    def export_frame(
        self,
        owner_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        type: Optional[str] = None,
    ) -> pd.DataFrame:
        data = self.export_data(owner_id, start_date, end_date, type)
        rows = [
            {
                'date': txn.date.isoformat(),
                'type': txn.type,
                'amount': float(txn.amount),
                'currency': txn.currency,
                'description': txn.description,
                'notes': txn.notes or '',
                'category': data.category_name(txn),
                'payment_method': txn.payment_method,
                'is_recurring': txn.is_recurring,
                'recurring_interval': txn.recurring_interval or '',
                'tags': ', '.join(txn.tags),
            }
            for txn in data.transactions
        ]
        return pd.DataFrame(rows, columns=EXPORT_COLUMNS)

    # -- backup -------------------------------------------------------------

    def backup(self, owner_id: str) -> Dict[str, Any]:
        transactions = list(self.stores.ledger.iter_all(owner_id, page_size=config.QUERY_PAGE_SIZE))
        payload = {
            'version': BACKUP_VERSION,
            'exportedAt': iso_timestamp(utcnow()),
            'transactions': [_record(txn) for txn in transactions],
            'budgets': [_record(budget) for budget in self.stores.budgets.list(owner_id)],
            'goals': [_record(goal) for goal in self.stores.goals.list(owner_id)],
            'categories': [_record(category) for category in self.stores.categories.list_owned(owner_id)],
        }
        logger.info(
            "Backup for owner %s: %d transactions, %d budgets, %d goals, %d categories",
            owner_id,
            len(payload['transactions']),
            len(payload['budgets']),
            len(payload['goals']),
            len(payload['categories']),
        )
        return payload

    def restore(self, owner_id: str, payload: Dict[str, Any]) -> Dict[str, int]:
        """Insert records from a backup that the owner does not have yet.

        Everything is written in one unit of work: if any insert fails, none
        of the backup is kept. Records whose id the owner already has are
        left untouched. Ids held by another owner and records that cannot be
        read are skipped and logged. Returns inserted counts per collection
        plus ``skipped``.
        """
        counts = {'categories': 0, 'transactions': 0, 'budgets': 0, 'goals': 0, 'skipped': 0}
        now = utcnow()

        with self.stores.atomic():
            for item in payload.get('categories') or []:
                if self._category_stored(item, owner_id, counts):
                    continue
                if not item.get('id') or not item.get('name') or item.get('type') not in TRANSACTION_TYPES:
                    logger.warning("Skipping unreadable category in backup: %r", item.get('id'))
                    counts['skipped'] += 1
                    continue
                self.stores.categories.insert(
                    Category(
                        id=item['id'],
                        owner_id=owner_id,
                        name=item['name'],
                        type=item['type'],
                        color=item.get('color') or config.DEFAULT_CATEGORY_COLOR,
                        icon=item.get('icon') or config.DEFAULT_CATEGORY_ICON,
                        is_default=False,
                        created_at=parse_timestamp(item.get('created_at')) or now,
                    )
                )
                counts['categories'] += 1

            for item in payload.get('transactions') or []:
                if self._already_stored(self.stores.ledger, 'transaction', item, owner_id, counts):
                    continue
                amount = parse_amount(item.get('amount'))
                txn_date = parse_date(item.get('date'))
                if (
                    not item.get('id')
                    or item.get('type') not in TRANSACTION_TYPES
                    or amount is None
                    or amount <= 0
                    or txn_date is None
                    or not item.get('description')
                ):
                    logger.warning("Skipping unreadable transaction in backup: %r", item.get('id'))
                    counts['skipped'] += 1
                    continue
                self.stores.ledger.insert(
                    Transaction(
                        id=item['id'],
                        owner_id=owner_id,
                        type=item['type'],
                        amount=amount,
                        description=item['description'],
                        date=txn_date,
                        currency=item.get('currency') or config.DEFAULT_CURRENCY,
                        notes=item.get('notes'),
                        category_id=item.get('category_id'),
                        payment_method=item.get('payment_method') or 'card',
                        is_recurring=bool(item.get('is_recurring')),
                        recurring_interval=item.get('recurring_interval'),
                        tags=tuple(item.get('tags') or ()),
                        receipt_url=item.get('receipt_url'),
                        created_at=parse_timestamp(item.get('created_at')) or now,
                        updated_at=parse_timestamp(item.get('updated_at')) or now,
                    )
                )
                counts['transactions'] += 1

            for item in payload.get('budgets') or []:
                if self._already_stored(self.stores.budgets, 'budget', item, owner_id, counts):
                    continue
                amount = parse_amount(item.get('amount'))
                threshold = parse_amount(item.get('alert_threshold', config.DEFAULT_ALERT_THRESHOLD))
                try:
                    month, year = int(item['month']), int(item['year'])
                except (KeyError, TypeError, ValueError):
                    month = year = 0
                if (
                    not item.get('id')
                    or amount is None
                    or amount <= 0
                    or threshold is None
                    or not 1 <= month <= 12
                    or year < 1
                    or item.get('period', 'monthly') not in BUDGET_PERIODS
                ):
                    logger.warning("Skipping unreadable budget in backup: %r", item.get('id'))
                    counts['skipped'] += 1
                    continue
                self.stores.budgets.insert(
                    Budget(
                        id=item['id'],
                        owner_id=owner_id,
                        category_id=item.get('category_id'),
                        name=item.get('name') or '',
                        amount=amount,
                        month=month,
                        year=year,
                        period=item.get('period', 'monthly'),
                        alert_threshold=threshold,
                        is_active=bool(item.get('is_active', True)),
                        created_at=parse_timestamp(item.get('created_at')) or now,
                        updated_at=parse_timestamp(item.get('updated_at')) or now,
                    )
                )
                counts['budgets'] += 1

            for item in payload.get('goals') or []:
                if self._already_stored(self.stores.goals, 'goal', item, owner_id, counts):
                    continue
                target = parse_amount(item.get('target_amount'))
                current = parse_amount(item.get('current_amount', 0))
                if (
                    not item.get('id')
                    or not item.get('name')
                    or target is None
                    or target <= 0
                    or current is None
                    or current < 0
                ):
                    logger.warning("Skipping unreadable goal in backup: %r", item.get('id'))
                    counts['skipped'] += 1
                    continue
                status = item.get('status') if item.get('status') in GOAL_STATUSES else 'active'
                if current >= target:
                    status = GOAL_COMPLETED
                self.stores.goals.insert(
                    Goal(
                        id=item['id'],
                        owner_id=owner_id,
                        name=item['name'],
                        target_amount=target,
                        current_amount=current,
                        description=item.get('description'),
                        currency=item.get('currency') or config.DEFAULT_CURRENCY,
                        target_date=parse_date(item.get('target_date')),
                        color=item.get('color') or config.DEFAULT_CATEGORY_COLOR,
                        icon=item.get('icon') or config.DEFAULT_GOAL_ICON,
                        status=status,
                        created_at=parse_timestamp(item.get('created_at')) or now,
                        updated_at=parse_timestamp(item.get('updated_at')) or now,
                    )
                )
                counts['goals'] += 1

        logger.info("Restore for owner %s: %s", owner_id, counts)
        return counts

    def _category_stored(self, item: Dict[str, Any], owner_id: str, counts: Dict[str, int]) -> bool:
        if not item.get('id'):
            return False
        existing = self.stores.categories.get(item['id'])
        if existing is None:
            return False
        if existing.owner_id != owner_id and not existing.is_default:
            logger.warning("Skipping category %s from backup: id belongs to another owner", item['id'])
            counts['skipped'] += 1
        return True

    @staticmethod
    def _already_stored(store, label: str, item: Dict[str, Any], owner_id: str, counts: Dict[str, int]) -> bool:
        """True when the id is taken; ids taken by another owner count as skipped."""
        record_id = item.get('id')
        if not record_id or not store.exists(record_id):
            return False
        try:
            store.get(record_id, owner_id)
        except NotFoundError:
            logger.warning("Skipping %s %s from backup: id belongs to another owner", label, record_id)
            counts['skipped'] += 1
        return True
