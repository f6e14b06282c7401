"""Domain records, partial-update patches and money helpers.

Every monetary value inside the engine is a ``decimal.Decimal`` quantized to
currency minor units. Text amounts are parsed once, at ingestion, by
:func:`parse_amount`; nothing downstream does arithmetic on strings.

Patches (``*Patch`` classes) model partial updates: a field left at
:data:`UNSET` is not touched, while ``None`` is a real value that clears a
nullable field.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from datetime import date, datetime, timezone
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

INCOME = 'income'
EXPENSE = 'expense'
TRANSACTION_TYPES = (INCOME, EXPENSE)

PAYMENT_METHODS = {'card', 'cash', 'transfer', 'check', 'direct_debit', 'other'}
RECURRING_INTERVALS = {'daily', 'weekly', 'monthly', 'yearly'}
BUDGET_PERIODS = {'monthly', 'weekly', 'yearly'}

GOAL_ACTIVE = 'active'
GOAL_COMPLETED = 'completed'
GOAL_STATUSES = {GOAL_ACTIVE, GOAL_COMPLETED, 'paused', 'cancelled'}

NOTIFICATION_TYPES = {'info', 'warning', 'success', 'error'}

SORT_FIELDS = ('date', 'amount', 'description', 'created_at')
MAX_DESCRIPTION_LENGTH = 255

CENTS = Decimal('0.01')
TENTHS = Decimal('0.1')
ZERO = Decimal('0')
HUNDRED = Decimal('100')

_THOUSANDS_RE = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d*)?$")


class _Unset:
    """Marker for patch fields the caller did not provide."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'UNSET'

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


# ---------------------------------------------------------------------------
# Money and dates
# ---------------------------------------------------------------------------


def parse_amount(value: Any) -> Optional[Decimal]:
    """Convert different textual amount representations into a Decimal.

    Returns ``None`` when the value cannot be read as a number. Accepts
    ints, Decimals and strings such as ``"1,250.50"``, ``"€ 42"`` or
    ``"(12.00)"``. Floats go through ``str`` so ``0.1`` stays ``0.10``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        # Handle accounting negatives e.g. (123.45)
        if cleaned.startswith('(') and cleaned.endswith(')'):
            cleaned = f"-{cleaned[1:-1]}"
        cleaned = re.sub(r"[\s$€£]", '', cleaned)
        if ',' in cleaned:
            # Commas only as thousands separators; "12,50" could be a decimal comma
            if not _THOUSANDS_RE.match(cleaned):
                return None
            cleaned = cleaned.replace(',', '')
        try:
            parsed = Decimal(cleaned)
        except InvalidOperation:
            return None
    else:
        return None
    if not parsed.is_finite():
        return None
    return parsed.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_money(value: Any) -> Decimal:
    """Coerce trusted numeric values (store rows, aggregates) to a Decimal."""
    if value is None:
        return ZERO.quantize(CENTS)
    if isinstance(value, Decimal):
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def round1(value: Decimal) -> Decimal:
    """Round half-up to one decimal place, the display precision for percentages."""
    return Decimal(value).quantize(TENTHS, rounding=ROUND_HALF_UP)


def ratio_percent(part: Decimal, whole: Decimal) -> Decimal:
    """Unrounded ``part / whole * 100``; ``0`` when ``whole`` is not positive."""
    if whole <= 0:
        return ZERO
    return Decimal(part) / Decimal(whole) * HUNDRED


def floor_percent(value: Decimal) -> int:
    return int(Decimal(value).to_integral_value(rounding=ROUND_DOWN))


def parse_date(value: Any) -> Optional[date]:
    """Accept ``date``, ``datetime`` or an ISO ``YYYY-MM-DD`` string."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec='microseconds')


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _money_out(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else float(value)


def _date_out(value: Optional[date]) -> Optional[str]:
    return None if value is None else value.isoformat()


# ---------------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------------


class _Patch:
    """Mixin giving dataclass patches ``changes()`` and ``apply()``."""

    def changes(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.changes()

    def apply(self, record):
        return replace(record, **self.changes())


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class Category:
    id: str
    name: str
    type: str
    owner_id: Optional[str] = None
    color: str = '#6366f1'
    icon: str = 'tag'
    is_default: bool = False
    created_at: Optional[datetime] = None

    def display(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'color': self.color, 'icon': self.icon}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'userId': self.owner_id,
            'name': self.name,
            'type': self.type,
            'color': self.color,
            'icon': self.icon,
            'isDefault': self.is_default,
            'createdAt': iso_timestamp(self.created_at),
        }


@dataclass
class CategoryPatch(_Patch):
    name: Any = UNSET
    color: Any = UNSET
    icon: Any = UNSET


@dataclass
class Transaction:
    id: str
    owner_id: str
    type: str
    amount: Decimal
    description: str
    date: date
    currency: str = 'EUR'
    notes: Optional[str] = None
    category_id: Optional[str] = None
    payment_method: str = 'card'
    is_recurring: bool = False
    recurring_interval: Optional[str] = None
    tags: Tuple[str, ...] = ()
    receipt_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self, category: Optional[Category] = None) -> Dict[str, Any]:
        return {
            'id': self.id,
            'userId': self.owner_id,
            'type': self.type,
            'amount': _money_out(self.amount),
            'currency': self.currency,
            'description': self.description,
            'notes': self.notes,
            'date': _date_out(self.date),
            'paymentMethod': self.payment_method,
            'receiptUrl': self.receipt_url,
            'isRecurring': self.is_recurring,
            'recurringInterval': self.recurring_interval,
            'tags': list(self.tags),
            'category': category.display() if category is not None else None,
            'createdAt': iso_timestamp(self.created_at),
            'updatedAt': iso_timestamp(self.updated_at),
        }


@dataclass
class TransactionInput:
    """Raw creation input; ``amount`` and ``date`` may still be text."""

    type: Any
    amount: Any
    description: Any
    date: Any
    currency: Optional[str] = None
    notes: Optional[str] = None
    category_id: Optional[str] = None
    payment_method: Optional[str] = None
    is_recurring: bool = False
    recurring_interval: Optional[str] = None
    tags: Tuple[str, ...] = ()
    receipt_url: Optional[str] = None


@dataclass
class TransactionPatch(_Patch):
    type: Any = UNSET
    amount: Any = UNSET
    currency: Any = UNSET
    description: Any = UNSET
    notes: Any = UNSET
    date: Any = UNSET
    category_id: Any = UNSET
    payment_method: Any = UNSET
    is_recurring: Any = UNSET
    recurring_interval: Any = UNSET
    tags: Any = UNSET
    receipt_url: Any = UNSET


@dataclass
class TransactionFilter:
    type: Optional[str] = None
    category_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    payment_method: Optional[str] = None
    search: Optional[str] = None


@dataclass
class Sort:
    field: str = 'date'
    direction: str = 'desc'

    def __post_init__(self) -> None:
        if self.field not in SORT_FIELDS:
            self.field = 'date'
        self.direction = 'asc' if str(self.direction).lower() == 'asc' else 'desc'

    @property
    def descending(self) -> bool:
        return self.direction == 'desc'


@dataclass
class Page:
    size: int = 50
    offset: int = 0

    def __post_init__(self) -> None:
        self.size = max(1, int(self.size))
        self.offset = max(0, int(self.offset))

    @classmethod
    def number(cls, page: int, limit: int = 50) -> 'Page':
        """Build a page from a 1-based page number."""
        return cls(size=limit, offset=(max(1, int(page)) - 1) * max(1, int(limit)))


@dataclass
class Budget:
    id: str
    owner_id: str
    category_id: Optional[str]
    name: str
    amount: Decimal
    month: int
    year: int
    period: str = 'monthly'
    alert_threshold: Decimal = Decimal('80')
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class BudgetPatch(_Patch):
    name: Any = UNSET
    amount: Any = UNSET
    alert_threshold: Any = UNSET
    is_active: Any = UNSET


@dataclass
class Goal:
    id: str
    owner_id: str
    name: str
    target_amount: Decimal
    current_amount: Decimal = ZERO
    description: Optional[str] = None
    currency: str = 'EUR'
    target_date: Optional[date] = None
    color: str = '#6366f1'
    icon: str = 'target'
    status: str = GOAL_ACTIVE
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class GoalPatch(_Patch):
    name: Any = UNSET
    description: Any = UNSET
    target_amount: Any = UNSET
    current_amount: Any = UNSET
    currency: Any = UNSET
    target_date: Any = UNSET
    color: Any = UNSET
    icon: Any = UNSET
    status: Any = UNSET


@dataclass
class Notification:
    id: str
    owner_id: str
    title: str
    message: str
    type: str = 'info'
    is_read: bool = False
    dedup_key: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'userId': self.owner_id,
            'title': self.title,
            'message': self.message,
            'type': self.type,
            'isRead': self.is_read,
            'createdAt': iso_timestamp(self.created_at),
        }



@dataclass
class CategoryTotal:
    """One bucket of a category breakdown."""

    category_id: Optional[str]
    name: str
    color: str
    icon: str
    total: Decimal
    count: int
    percentage: Decimal = ZERO
    type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'name': self.name,
            'color': self.color,
            'icon': self.icon,
            'total': float(self.total),
            'count': self.count,
            'percentage': float(self.percentage),
        }
        if self.type is not None:
            data['type'] = self.type
        return data


@dataclass
class MonthTotals:
    year: int
    month: int
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    transaction_count: int = 0

    @property
    def balance(self) -> Decimal:
        return self.income - self.expenses

    def to_dict(self) -> Dict[str, Any]:
        return {
            'month': self.month,
            'year': self.year,
            'income': float(self.income),
            'expenses': float(self.expenses),
            'balance': float(self.balance),
        }
