"""Budget evaluation and maintenance.

A budget caps expense spending for one category over one calendar month.
Consumption is never stored: :func:`evaluate` recomputes it from the ledger
window on every call, so edits and deletions of transactions are reflected
immediately.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

from . import config
from .categories import CategoryRegistry
from .exceptions import ConflictError, ValidationError
from .models import (
    BUDGET_PERIODS,
    EXPENSE,
    HUNDRED,
    ZERO,
    Budget,
    BudgetPatch,
    Transaction,
    TransactionFilter,
    iso_timestamp,
    parse_amount,
    ratio_percent,
    round1,
    to_money,
    utcnow,
)
from .periods import month_bounds, resolve_month
from .store.base import StoreBundle

logger = logging.getLogger(__name__)


@dataclass
class BudgetStatus:
    """A budget joined with its consumption for the evaluated month."""

    budget: Budget
    spent: Decimal
    remaining: Decimal
    percentage: Decimal
    raw_percentage: Decimal
    is_exceeded: bool
    is_warning: bool
    category: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        budget = self.budget
        return {
            'id': budget.id,
            'name': budget.name,
            'amount': float(budget.amount),
            'period': budget.period,
            'month': budget.month,
            'year': budget.year,
            'alertThreshold': float(budget.alert_threshold),
            'category': self.category,
            'spent': float(self.spent),
            'remaining': float(self.remaining),
            'percentage': float(self.percentage),
            'isExceeded': self.is_exceeded,
            'isWarning': self.is_warning,
            'createdAt': iso_timestamp(budget.created_at),
        }


def evaluate(budget: Budget, window: Iterable[Transaction]) -> BudgetStatus:
    """Compute consumption of ``budget`` from its ledger window.

    ``window`` holds the owner's expense transactions for the budget's
    category and month. The displayed percentage is capped at 100 while
    ``is_exceeded`` and ``is_warning`` use the exact, uncapped figures.
    """
    spent = to_money(sum((txn.amount for txn in window), ZERO))
    amount = budget.amount
    if amount > 0:
        raw = ratio_percent(spent, amount)
        percentage = min(HUNDRED, round1(raw))
    else:
        raw = ZERO
        percentage = round1(ZERO)
    return BudgetStatus(
        budget=budget,
        spent=spent,
        remaining=to_money(max(ZERO, amount - spent)),
        percentage=percentage,
        raw_percentage=raw,
        is_exceeded=spent > amount,
        is_warning=amount > 0 and raw >= budget.alert_threshold,
    )


def _validate_threshold(value: Any, errors: Dict[str, str]) -> Optional[Decimal]:
    threshold = parse_amount(value)
    if threshold is None or threshold < 0 or threshold > HUNDRED:
        errors['alert_threshold'] = 'Alert threshold must be between 0 and 100'
        return None
    return threshold


class BudgetEngine:
    """Budget CRUD plus on-demand evaluation against the ledger."""

    def __init__(
        self,
        stores: StoreBundle,
        categories: CategoryRegistry,
        today: Callable[[], date] = date.today,
    ):
        self.stores = stores
        self.categories = categories
        self.today = today

    # -- evaluation ---------------------------------------------------------

    def ledger_window(self, budget: Budget) -> List[Transaction]:
        first, last = month_bounds(budget.year, budget.month)
        window_filter = TransactionFilter(
            type=EXPENSE,
            category_id=budget.category_id,
            start_date=first,
            end_date=last,
        )
        return list(self.stores.ledger.iter_all(budget.owner_id, window_filter, page_size=config.QUERY_PAGE_SIZE))

    def status(self, budget: Budget) -> BudgetStatus:
        result = evaluate(budget, self.ledger_window(budget))
        result.category = self.categories.display(budget.owner_id, budget.category_id)
        return result

    def evaluate_budget(self, owner_id: str, budget_id: str) -> BudgetStatus:
        return self.status(self.stores.budgets.get(budget_id, owner_id))

    def list_budgets(self, owner_id: str, year: Optional[int] = None, month: Optional[int] = None) -> List[BudgetStatus]:
        """Active budgets for a month, evaluated and ordered by category name."""
        year, month = resolve_month(self.today(), year, month)
        statuses = [self.status(budget) for budget in self.stores.budgets.list(owner_id, year, month, active_only=True)]

        def sort_key(item: BudgetStatus):
            name = item.category['name'] if item.category else config.UNCATEGORIZED_NAME
            return name.casefold()

        return sorted(statuses, key=sort_key)

    def warnings(self, owner_id: str, year: Optional[int] = None, month: Optional[int] = None) -> List[BudgetStatus]:
        return [item for item in self.list_budgets(owner_id, year, month) if item.is_warning]

    # -- maintenance --------------------------------------------------------

    def get_budget(self, owner_id: str, budget_id: str) -> Budget:
        return self.stores.budgets.get(budget_id, owner_id)

    def _check_unique(self, budget: Budget) -> None:
        if budget.period != 'monthly' or not budget.is_active:
            return
        clashes = [
            other for other in self.stores.budgets.find_active(
                budget.owner_id, budget.category_id, budget.year, budget.month
            )
            if other.id != budget.id
        ]
        if clashes:
            raise ConflictError(
                f"An active budget already exists for category {budget.category_id} "
                f"in {budget.year}-{budget.month:02d}"
            )

    def create_budget(
        self,
        owner_id: str,
        name: str,
        amount: Any,
        category_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
        period: str = 'monthly',
        alert_threshold: Any = None,
    ) -> Budget:
        errors: Dict[str, str] = {}
        if not name or not str(name).strip():
            errors['name'] = 'Name is required'
        parsed = parse_amount(amount)
        if parsed is None or parsed <= 0:
            errors['amount'] = 'Amount must be greater than 0'
        if period not in BUDGET_PERIODS:
            errors['period'] = f"Period must be one of {', '.join(sorted(BUDGET_PERIODS))}"
        threshold = config.DEFAULT_ALERT_THRESHOLD
        if alert_threshold is not None:
            threshold = _validate_threshold(alert_threshold, errors)

        today = self.today()
        try:
            year, month = resolve_month(today, year, month)
        except ValidationError as exc:
            errors.update(exc.details)
            year, month = today.year, today.month

        if not category_id:
            errors['category_id'] = 'Category is required'
        else:
            category = self.categories.find(owner_id, category_id)
            if category is None:
                errors['category_id'] = 'Unknown category'
            elif category.type != EXPENSE:
                errors['category_id'] = 'Budgets can only track expense categories'
        if errors:
            raise ValidationError('Invalid budget', errors)

        now = utcnow()
        budget = Budget(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            category_id=category_id,
            name=str(name).strip(),
            amount=parsed,
            month=month,
            year=year,
            period=period,
            alert_threshold=threshold,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self._check_unique(budget)
        self.stores.budgets.insert(budget)
        logger.info("Created budget %s (%s %s-%02d) for owner %s", budget.id, category_id, year, month, owner_id)
        return budget

    def update_budget(self, owner_id: str, budget_id: str, patch: BudgetPatch) -> Budget:
        existing = self.stores.budgets.get(budget_id, owner_id)
        changes = patch.changes()
        errors: Dict[str, str] = {}
        if 'name' in changes:
            if not changes['name'] or not str(changes['name']).strip():
                errors['name'] = 'Name cannot be empty'
            else:
                changes['name'] = str(changes['name']).strip()
        if 'amount' in changes:
            parsed = parse_amount(changes['amount'])
            if parsed is None or parsed <= 0:
                errors['amount'] = 'Amount must be greater than 0'
            changes['amount'] = parsed
        if 'alert_threshold' in changes:
            changes['alert_threshold'] = _validate_threshold(changes['alert_threshold'], errors)
        if 'is_active' in changes:
            changes['is_active'] = bool(changes['is_active'])
        if errors:
            raise ValidationError('Invalid budget', errors)
        if not changes:
            return existing

        cleaned = BudgetPatch(**changes)
        if changes.get('is_active') and not existing.is_active:
            self._check_unique(cleaned.apply(existing))
        updated = self.stores.budgets.update(budget_id, owner_id, cleaned)
        logger.info("Updated budget %s for owner %s", budget_id, owner_id)
        return updated

    def delete_budget(self, owner_id: str, budget_id: str) -> None:
        self.stores.budgets.delete(budget_id, owner_id)
        logger.info("Deleted budget %s for owner %s", budget_id, owner_id)
