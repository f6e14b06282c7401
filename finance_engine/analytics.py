"""Derived views over the ledger: summaries, breakdowns, trends and the dashboard.

Everything here is a pure read recomputed from current store state. The
ledger is pulled through :meth:`LedgerStore.iter_all` in bounded pages and
grouped with pandas; sums stay in ``Decimal`` so totals are exact.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from . import config
from .budgets import BudgetEngine, BudgetStatus
from .categories import CategoryRegistry, uncategorized_display
from .goals import GoalEngine, GoalView
from .ledger import TransactionView
from .models import (
    EXPENSE,
    GOAL_ACTIVE,
    INCOME,
    ZERO,
    Category,
    CategoryTotal,
    MonthTotals,
    Page,
    Sort,
    Transaction,
    TransactionFilter,
    ratio_percent,
    round1,
    to_money,
)
from .periods import month_bounds, resolve_month, resolve_year, trailing_months, year_bounds
from .store.base import StoreBundle

logger = logging.getLogger(__name__)

UNCATEGORIZED_KEY = ''

_FRAME_COLUMNS = ['type', 'bucket', 'amount', 'year', 'month']


def _decimal_sum(values: Iterable[Decimal]) -> Decimal:
    return to_money(sum(values, ZERO))


def health_score(savings_rate: Decimal, warning_count: int) -> int:
    """Score 0-100 from the unrounded savings rate and open budget warnings."""
    bonus = Decimal(25) if warning_count == 0 else ZERO
    value = Decimal(savings_rate) * Decimal('1.5') + bonus
    score = int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return max(0, min(100, score))


@dataclass
class MonthlySummary:
    year: int
    month: int
    income: Decimal
    expenses: Decimal
    savings_rate: Decimal
    transaction_count: int

    @property
    def balance(self) -> Decimal:
        return self.income - self.expenses

    def to_dict(self) -> Dict[str, Any]:
        return {
            'income': float(self.income),
            'expenses': float(self.expenses),
            'balance': float(self.balance),
            'savingsRate': float(round1(self.savings_rate)),
        }


@dataclass
class CategoryBreakdown:
    items: List[CategoryTotal]
    total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {'breakdown': [item.to_dict() for item in self.items], 'total': float(self.total)}


@dataclass
class YearlyRollup:
    year: int
    months: List[MonthTotals]
    breakdown: List[CategoryTotal]

    @property
    def income(self) -> Decimal:
        return _decimal_sum(item.income for item in self.months)

    @property
    def expenses(self) -> Decimal:
        return _decimal_sum(item.expenses for item in self.months)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'year': self.year,
            'monthlyData': [item.to_dict() for item in self.months],
            'yearTotals': {
                'income': float(self.income),
                'expenses': float(self.expenses),
                'balance': float(self.income - self.expenses),
            },
            'categoryBreakdown': [item.to_dict() for item in self.breakdown],
        }


@dataclass
class Dashboard:
    monthly: MonthlySummary
    total_income: Decimal
    total_expenses: Decimal
    health_score: int
    monthly_trend: List[MonthTotals]
    top_categories: List[CategoryTotal]
    budget_alerts: List[BudgetStatus]
    recent_transactions: List[TransactionView]
    goals: List[GoalView] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        top = []
        for item in self.top_categories:
            entry = item.to_dict()
            entry.pop('percentage', None)
            top.append(entry)
        return {
            'monthly': self.monthly.to_dict(),
            'total': {
                'income': float(self.total_income),
                'expenses': float(self.total_expenses),
                'balance': float(self.total_income - self.total_expenses),
            },
            'healthScore': self.health_score,
            'monthlyTrend': [item.to_dict() for item in self.monthly_trend],
            'topCategories': top,
            'budgetAlerts': [item.to_dict() for item in self.budget_alerts],
            'recentTransactions': [item.to_dict() for item in self.recent_transactions],
            'goals': [item.to_dict() for item in self.goals],
        }


class FinanceAnalytics:
    """Aggregations for one store bundle."""

    def __init__(
        self,
        stores: StoreBundle,
        categories: CategoryRegistry,
        budgets: BudgetEngine,
        goals: GoalEngine,
        today: Callable[[], date] = date.today,
    ):
        self.stores = stores
        self.categories = categories
        self.budgets = budgets
        self.goals = goals
        self.today = today

    # -- helpers ------------------------------------------------------------

    def _transactions(self, owner_id: str, filter: Optional[TransactionFilter] = None) -> List[Transaction]:
        return list(self.stores.ledger.iter_all(owner_id, filter, page_size=config.QUERY_PAGE_SIZE))

    def _visible_categories(self, owner_id: str) -> Dict[str, Category]:
        return {category.id: category for category in self.categories.list_categories(owner_id)}

    def _frame(self, transactions: List[Transaction], visible: Dict[str, Category]) -> pd.DataFrame:
        """Tabulate transactions; ``bucket`` is the category id, or '' when unresolvable."""
        rows = [
            {
                'type': txn.type,
                'bucket': txn.category_id if txn.category_id in visible else UNCATEGORIZED_KEY,
                'amount': txn.amount,
                'year': txn.date.year,
                'month': txn.date.month,
            }
            for txn in transactions
        ]
        return pd.DataFrame(rows, columns=_FRAME_COLUMNS)

    def _bucket_display(self, bucket: str, visible: Dict[str, Category]) -> Dict[str, Any]:
        category = visible.get(bucket)
        return category.display() if category is not None else uncategorized_display()

    def _category_totals(self, df: pd.DataFrame, keys: List[str]) -> List[Tuple[Any, Decimal, int]]:
        if df.empty:
            return []
        grouped = df.groupby(keys, sort=False)['amount'].agg(total=_decimal_sum, count='size').reset_index()
        grouped = grouped.sort_values('total', ascending=False, kind='mergesort', key=lambda col: col.map(float))
        return [
            (tuple(row[key] for key in keys), to_money(row['total']), int(row['count']))
            for _, row in grouped.iterrows()
        ]

    # -- reads --------------------------------------------------------------

    def monthly_summary(self, owner_id: str, year: Optional[int] = None, month: Optional[int] = None) -> MonthlySummary:
        year, month = resolve_month(self.today(), year, month)
        first, last = month_bounds(year, month)
        transactions = self._transactions(owner_id, TransactionFilter(start_date=first, end_date=last))
        income = _decimal_sum(txn.amount for txn in transactions if txn.type == INCOME)
        expenses = _decimal_sum(txn.amount for txn in transactions if txn.type == EXPENSE)
        return MonthlySummary(
            year=year,
            month=month,
            income=income,
            expenses=expenses,
            savings_rate=ratio_percent(income - expenses, income),
            transaction_count=len(transactions),
        )

    def category_breakdown(
        self,
        owner_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        type: str = EXPENSE,
    ) -> CategoryBreakdown:
        """Totals per category for one transaction type, largest first."""
        visible = self._visible_categories(owner_id)
        transactions = self._transactions(
            owner_id, TransactionFilter(type=type, start_date=start_date, end_date=end_date)
        )
        df = self._frame(transactions, visible)
        rows = self._category_totals(df, ['bucket'])
        grand_total = _decimal_sum(total for _, total, _ in rows)

        items = []
        for (bucket,), total, count in rows:
            display = self._bucket_display(bucket, visible)
            items.append(
                CategoryTotal(
                    category_id=display['id'],
                    name=display['name'],
                    color=display['color'],
                    icon=display['icon'],
                    total=total,
                    count=count,
                    percentage=round1(ratio_percent(total, grand_total)),
                )
            )
        return CategoryBreakdown(items, grand_total)

    def _month_series(self, owner_id: str, months: List[Tuple[int, int]]) -> List[MonthTotals]:
        if not months:
            return []
        first, _ = month_bounds(*months[0])
        _, last = month_bounds(*months[-1])
        transactions = self._transactions(owner_id, TransactionFilter(start_date=first, end_date=last))
        df = self._frame(transactions, {})

        totals: Dict[Tuple[int, int, str], Decimal] = {}
        counts: Dict[Tuple[int, int], int] = {}
        if not df.empty:
            grouped = df.groupby(['year', 'month', 'type'])['amount'].agg(total=_decimal_sum, count='size')
            for (year, month, kind), row in grouped.iterrows():
                totals[(int(year), int(month), kind)] = to_money(row['total'])
                counts[(int(year), int(month))] = counts.get((int(year), int(month)), 0) + int(row['count'])

        return [
            MonthTotals(
                year=year,
                month=month,
                income=totals.get((year, month, INCOME), to_money(ZERO)),
                expenses=totals.get((year, month, EXPENSE), to_money(ZERO)),
                transaction_count=counts.get((year, month), 0),
            )
            for year, month in months
        ]

    def monthly_trend(self, owner_id: str, months: Optional[int] = None) -> List[MonthTotals]:
        """Contiguous months ending with the current one, oldest first."""
        count = config.TREND_MONTHS if months is None else int(months)
        return self._month_series(owner_id, trailing_months(self.today(), count))

    def trend_frame(self, owner_id: str, months: Optional[int] = None) -> pd.DataFrame:
        trend = self.monthly_trend(owner_id, months)
        df = pd.DataFrame(
            [
                {
                    'label': f"{item.year:04d}-{item.month:02d}",
                    'year': item.year,
                    'month': item.month,
                    'income': float(item.income),
                    'expenses': float(item.expenses),
                    'balance': float(item.balance),
                    'transaction_count': item.transaction_count,
                }
                for item in trend
            ],
            columns=['label', 'year', 'month', 'income', 'expenses', 'balance', 'transaction_count'],
        )
        return df

    def yearly_rollup(self, owner_id: str, year: Optional[int] = None) -> YearlyRollup:
        year = resolve_year(self.today(), year)
        months = self._month_series(owner_id, [(year, month) for month in range(1, 13)])

        visible = self._visible_categories(owner_id)
        first, last = year_bounds(year)
        df = self._frame(self._transactions(owner_id, TransactionFilter(start_date=first, end_date=last)), visible)
        breakdown = []
        for (bucket, kind), total, count in self._category_totals(df, ['bucket', 'type']):
            display = self._bucket_display(bucket, visible)
            breakdown.append(
                CategoryTotal(
                    category_id=display['id'],
                    name=display['name'],
                    color=display['color'],
                    icon=display['icon'],
                    total=total,
                    count=count,
                    percentage=ZERO,
                    type=kind,
                )
            )
        return YearlyRollup(year, months, breakdown)

    def recent_transactions(self, owner_id: str, limit: int = config.RECENT_TRANSACTION_COUNT) -> List[TransactionView]:
        if limit <= 0:
            return []
        items, _ = self.stores.ledger.query(owner_id, sort=Sort('date', 'desc'), page=Page(limit, 0))
        return [TransactionView(txn, self.categories.display(owner_id, txn.category_id)) for txn in items]

    def dashboard(self, owner_id: str) -> Dashboard:
        today = self.today()
        monthly = self.monthly_summary(owner_id, today.year, today.month)

        total_income = ZERO
        total_expenses = ZERO
        for txn in self.stores.ledger.iter_all(owner_id, page_size=config.QUERY_PAGE_SIZE):
            if txn.type == INCOME:
                total_income += txn.amount
            else:
                total_expenses += txn.amount

        first, last = month_bounds(today.year, today.month)
        top = self.category_breakdown(owner_id, first, last, EXPENSE).items[: config.TOP_CATEGORY_COUNT]
        alerts = self.budgets.warnings(owner_id, today.year, today.month)
        score = health_score(monthly.savings_rate, len(alerts))
        logger.debug("Dashboard for %s: savings rate %s, %d warnings, score %d",
                     owner_id, monthly.savings_rate, len(alerts), score)

        return Dashboard(
            monthly=monthly,
            total_income=to_money(total_income),
            total_expenses=to_money(total_expenses),
            health_score=score,
            monthly_trend=self.monthly_trend(owner_id),
            top_categories=top,
            budget_alerts=alerts,
            recent_transactions=self.recent_transactions(owner_id),
            goals=self.goals.list_goals(owner_id, status=GOAL_ACTIVE, limit=config.DASHBOARD_GOAL_COUNT),
        )
