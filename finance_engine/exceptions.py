"""Error taxonomy shared by every engine component.

Arithmetic edge cases (zero budgets, zero income, zero targets) are not
errors and never raise; they resolve to ``0`` where they are computed.
Storage failures (``sqlite3.Error`` and friends) are not wrapped here and
propagate to the caller unchanged. The one exception is inserting an id that
is already taken, which both adapters report as ``ConflictError``.
"""

from __future__ import annotations

from typing import Dict, Optional


class FinanceError(Exception):
    """Base class for errors raised by the finance engine."""


class ValidationError(FinanceError):
    """Invalid input, with a field -> message mapping in ``details``."""

    def __init__(self, message: str, details: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, str] = dict(details or {})

    def __str__(self) -> str:
        if not self.details:
            return self.message
        fields = ', '.join(f"{key}: {value}" for key, value in sorted(self.details.items()))
        return f"{self.message} ({fields})"


class InvalidAmount(ValidationError):
    """A deposit or monetary input that is not a positive amount."""

    def __init__(self, message: str = 'Amount must be greater than 0', field: str = 'amount'):
        super().__init__(message, {field: message})


class NotFoundError(FinanceError):
    """The record does not exist or is not owned by the caller."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class ConflictError(FinanceError):
    """A write lost a race or would break a uniqueness rule.

    Callers may retry the read-modify-write once; the engine never retries
    on their behalf.
    """


class PermissionDeniedError(FinanceError):
    """The record is visible to the caller but may not be changed."""
