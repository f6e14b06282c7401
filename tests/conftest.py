"""Shared fixtures: every store-backed test runs against both adapters."""

from __future__ import annotations

from datetime import date

import pytest

from finance_engine import FinanceEngine
from finance_engine.models import TransactionInput
from finance_engine.store import open_memory_store, open_sqlite_store

TODAY = date(2024, 3, 15)
OWNER = "user-1"
OTHER = "user-2"


@pytest.fixture(params=["memory", "sqlite"])
def stores(request, tmp_path):
    if request.param == "sqlite":
        return open_sqlite_store(tmp_path / "finance.db")
    return open_memory_store()


@pytest.fixture
def engine(stores):
    return FinanceEngine(stores, today=lambda: TODAY)


@pytest.fixture
def record(engine):
    """Record a transaction for ``OWNER`` with sensible defaults."""

    def _record(amount, type="expense", category_id="cat_food", on=TODAY, description="Groceries", owner=OWNER, **extra):
        data = TransactionInput(
            type=type,
            amount=amount,
            description=description,
            date=on,
            category_id=category_id,
            **extra,
        )
        return engine.ledger.record(owner, data)

    return _record
