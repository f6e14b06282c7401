"""Budget threshold alerts raised after expense writes."""

from __future__ import annotations

import logging
from typing import List

from .budgets import BudgetEngine, BudgetStatus
from .categories import CategoryRegistry
from .models import EXPENSE, Budget, Notification, Transaction, floor_percent
from .notifications import NotificationCenter
from .store.base import StoreBundle

logger = logging.getLogger(__name__)


def dedup_key(budget: Budget) -> str:
    """Identify one budget's threshold alert for one month."""
    return f"budget:{budget.id}:{budget.year:04d}-{budget.month:02d}"


class AlertGenerator:
    """Re-evaluates the budgets touched by a transaction write.

    At most one unread alert exists per budget and month: while the owner
    has not read the previous one, further crossings are suppressed.
    Marking it read re-arms the alert. Two writers racing past the check
    can still both emit.
    """

    def __init__(
        self,
        stores: StoreBundle,
        budgets: BudgetEngine,
        categories: CategoryRegistry,
        notifications: NotificationCenter,
    ):
        self.stores = stores
        self.budgets = budgets
        self.categories = categories
        self.notifications = notifications

    def on_transaction_written(self, transaction: Transaction) -> List[Notification]:
        if transaction.type != EXPENSE or not transaction.category_id:
            return []

        owner_id = transaction.owner_id
        emitted: List[Notification] = []
        candidates = self.stores.budgets.find_active(
            owner_id, transaction.category_id, transaction.date.year, transaction.date.month
        )
        for budget in candidates:
            status = self.budgets.status(budget)
            if not status.is_warning:
                continue
            key = dedup_key(budget)
            if self.notifications.has_unread(owner_id, key):
                logger.debug("Alert %s already pending for owner %s", key, owner_id)
                continue
            emitted.append(self._emit(owner_id, status, key))
        return emitted

    def _emit(self, owner_id: str, status: BudgetStatus, key: str) -> Notification:
        budget = status.budget
        category = self.categories.find(owner_id, budget.category_id)
        name = category.name if category is not None else budget.name
        title = f'Budget "{name}" at {floor_percent(status.raw_percentage)}%'
        message = f"You have spent {status.spent:.2f} of a {budget.amount:.2f} budget."
        logger.info("Budget alert %s for owner %s", key, owner_id)
        return self.notifications.notify(owner_id, title, message, type='warning', dedup_key=key)
