"""Validated transaction writes and reads.

All ingestion of raw user input happens here: amounts arrive as text or
numbers and leave as quantized Decimals, dates as ``datetime.date``.
Every field is checked before anything is raised so callers get the full
list of problems at once.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Tuple

from . import config
from .alerts import AlertGenerator
from .categories import CategoryRegistry
from .exceptions import ValidationError
from .models import (
    MAX_DESCRIPTION_LENGTH,
    RECURRING_INTERVALS,
    TRANSACTION_TYPES,
    Page,
    Sort,
    Transaction,
    TransactionFilter,
    TransactionInput,
    TransactionPatch,
    parse_amount,
    parse_date,
    utcnow,
)
from .store.base import StoreBundle

logger = logging.getLogger(__name__)


@dataclass
class TransactionView:
    transaction: Transaction
    category: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.transaction.to_dict()
        data['category'] = self.category
        return data


def _normalize_tags(value: Any, errors: Dict[str, str]) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.split(',')
    try:
        tags = tuple(str(tag).strip() for tag in value if str(tag).strip())
    except TypeError:
        errors['tags'] = 'Tags must be a list of strings'
        return ()
    return tags


class Ledger:
    """Front door for transaction writes; runs budget alerts after expenses."""

    def __init__(self, stores: StoreBundle, categories: CategoryRegistry, alerts: AlertGenerator):
        self.stores = stores
        self.categories = categories
        self.alerts = alerts

    # -- validation ---------------------------------------------------------

    def _clean(self, owner_id: str, values: Dict[str, Any], check_category: bool = True) -> Dict[str, Any]:
        """Validate a full set of transaction fields and return normalized values."""
        errors: Dict[str, str] = {}
        cleaned = dict(values)

        if values.get('type') not in TRANSACTION_TYPES:
            errors['type'] = "Type must be 'income' or 'expense'"

        amount = parse_amount(values.get('amount'))
        if amount is None or amount <= 0:
            errors['amount'] = 'Amount must be a number greater than 0'
        cleaned['amount'] = amount

        description = values.get('description')
        description = str(description).strip() if description is not None else ''
        if not description:
            errors['description'] = 'Description is required'
        elif len(description) > MAX_DESCRIPTION_LENGTH:
            errors['description'] = f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters"
        cleaned['description'] = description

        txn_date = parse_date(values.get('date'))
        if txn_date is None:
            errors['date'] = 'A valid date (YYYY-MM-DD) is required'
        cleaned['date'] = txn_date

        category_id = values.get('category_id') or None
        if category_id is not None and check_category:
            category = self.categories.find(owner_id, category_id)
            if category is None:
                errors['category_id'] = 'Unknown category'
            elif 'type' not in errors and category.type != values.get('type'):
                errors['category_id'] = f"Category is for {category.type} transactions"
        cleaned['category_id'] = category_id

        cleaned['payment_method'] = values.get('payment_method') or 'card'
        cleaned['currency'] = values.get('currency') or config.DEFAULT_CURRENCY
        cleaned['notes'] = values.get('notes') or None

        is_recurring = bool(values.get('is_recurring'))
        interval = values.get('recurring_interval') or None
        if is_recurring and interval not in RECURRING_INTERVALS:
            errors['recurring_interval'] = f"Interval must be one of {', '.join(sorted(RECURRING_INTERVALS))}"
        elif interval is not None and interval not in RECURRING_INTERVALS:
            errors['recurring_interval'] = f"Unknown interval {interval!r}"
        cleaned['is_recurring'] = is_recurring
        cleaned['recurring_interval'] = interval if is_recurring else None

        cleaned['tags'] = _normalize_tags(values.get('tags'), errors)

        if errors:
            raise ValidationError('Invalid transaction', errors)
        return cleaned

    # -- writes -------------------------------------------------------------

    def record(self, owner_id: str, data: TransactionInput) -> Transaction:
        values = {f.name: getattr(data, f.name) for f in fields(data)}
        cleaned = self._clean(owner_id, values)
        now = utcnow()
        transaction = Transaction(id=str(uuid.uuid4()), owner_id=owner_id, created_at=now, updated_at=now, **cleaned)
        self.stores.ledger.insert(transaction)
        logger.info("Recorded %s %s for owner %s", transaction.type, transaction.id, owner_id)
        self.alerts.on_transaction_written(transaction)
        return transaction

    def edit(self, owner_id: str, transaction_id: str, patch: TransactionPatch) -> Transaction:
        existing = self.stores.ledger.get(transaction_id, owner_id)
        changes = patch.changes()
        if not changes:
            return existing

        merged = {f.name: getattr(existing, f.name) for f in fields(TransactionInput)}
        merged.update(changes)
        # A dangling category only blocks the edit when the caller touches it
        cleaned = self._clean(owner_id, merged, check_category=bool({'category_id', 'type'} & set(changes)))
        # Only persist the fields the caller touched, plus recurrence which is normalized as a pair
        touched = set(changes)
        if 'is_recurring' in touched:
            touched.add('recurring_interval')
        updated = self.stores.ledger.update(
            transaction_id,
            owner_id,
            TransactionPatch(**{name: cleaned[name] for name in touched}),
        )
        logger.info("Edited transaction %s for owner %s", transaction_id, owner_id)
        self.alerts.on_transaction_written(updated)
        return updated

    def remove(self, owner_id: str, transaction_id: str) -> None:
        self.stores.ledger.delete(transaction_id, owner_id)
        logger.info("Removed transaction %s for owner %s", transaction_id, owner_id)

    # -- reads --------------------------------------------------------------

    def view(self, transaction: Transaction) -> TransactionView:
        return TransactionView(transaction, self.categories.display(transaction.owner_id, transaction.category_id))

    def get(self, owner_id: str, transaction_id: str) -> TransactionView:
        return self.view(self.stores.ledger.get(transaction_id, owner_id))

    def search(
        self,
        owner_id: str,
        filter: Optional[TransactionFilter] = None,
        sort: Optional[Sort] = None,
        page: Optional[Page] = None,
    ) -> Tuple[List[TransactionView], int]:
        items, total = self.stores.ledger.query(owner_id, filter, sort, page)
        return [self.view(item) for item in items], total

