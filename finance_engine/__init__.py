"""Top-level package for the finance aggregation and alerting engine.

The primary modules are:

* ``ledger`` – validated transaction writes and searches
* ``budgets`` – budget consumption for a calendar month
* ``goals`` – savings goal deposits and progress
* ``alerts`` – budget threshold notifications after expense writes
* ``analytics`` – summaries, breakdowns, trends and the dashboard
* ``reports`` – exports and JSON backup/restore
* ``store`` – the store contracts with SQLite and in-memory adapters

``FinanceEngine`` wires them together:

```python
from finance_engine import FinanceEngine

engine = FinanceEngine.sqlite("data/finance.db")
print(engine.analytics.dashboard("user-1").to_dict())
```
"""

from .engine import FinanceEngine
from .exceptions import (
    ConflictError,
    FinanceError,
    InvalidAmount,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

__all__ = [
    "FinanceEngine",
    "FinanceError",
    "ValidationError",
    "InvalidAmount",
    "NotFoundError",
    "ConflictError",
    "PermissionDeniedError",
]
