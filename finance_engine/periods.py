"""Calendar helpers for month windows."""

from __future__ import annotations

import calendar
from datetime import date
from typing import Any, Dict, List, Tuple

from .exceptions import ValidationError


def validate_month(year: int, month: int) -> None:
    if not 1 <= int(month) <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    if not 1 <= int(year) <= 9999:
        raise ValueError(f"Year out of range: {year}")


def _whole_number(name: str, value: Any, default: int, errors: Dict[str, str]) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        errors[name] = f"{name.capitalize()} must be a whole number, got {value!r}"
        return default
    if isinstance(value, float) and value != number:
        errors[name] = f"{name.capitalize()} must be a whole number, got {value!r}"
    return number


def resolve_month(today: date, year: Any = None, month: Any = None) -> Tuple[int, int]:
    """Fill in ``today``'s year and month and check the result.

    Raises ``ValidationError`` with ``year``/``month`` details, the way the
    write paths report bad fields.
    """
    errors: Dict[str, str] = {}
    resolved_year = _whole_number('year', year, today.year, errors)
    resolved_month = _whole_number('month', month, today.month, errors)
    if 'month' not in errors and not 1 <= resolved_month <= 12:
        errors['month'] = f"Month must be between 1 and 12, got {resolved_month}"
    if 'year' not in errors and not 1 <= resolved_year <= 9999:
        errors['year'] = f"Year out of range: {resolved_year}"
    if errors:
        raise ValidationError('Invalid period', errors)
    return resolved_year, resolved_month


def resolve_year(today: date, year: Any = None) -> int:
    resolved, _ = resolve_month(today, year, today.month)
    return resolved


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """Return the first and last calendar day of ``year``-``month``.

    Both bounds are inclusive, so a window query uses ``date >= first`` and
    ``date <= last``.
    """
    validate_month(year, month)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def year_bounds(year: int) -> Tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    """Move ``delta`` months forward (negative for backwards)."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def trailing_months(today: date, count: int) -> List[Tuple[int, int]]:
    """Contiguous (year, month) pairs ending at ``today``'s month, oldest first."""
    if count < 1:
        return []
    return [shift_month(today.year, today.month, -offset) for offset in range(count - 1, -1, -1)]


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"
