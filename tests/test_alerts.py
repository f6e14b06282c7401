from __future__ import annotations

from datetime import date

from conftest import OWNER
from finance_engine.models import BudgetPatch, TransactionPatch


def warnings_for(engine):
    notifications, _ = engine.notifications.list_notifications(OWNER)
    return [item for item in notifications if item.type == "warning"]


def test_crossing_threshold_emits_one_warning(engine, record):
    budget = engine.budgets.create_budget(OWNER, "Food", "500", "cat_food")
    record("300")
    assert warnings_for(engine) == []

    record("120")
    alerts = warnings_for(engine)
    assert len(alerts) == 1
    assert alerts[0].title == 'Budget "Food" at 84%'
    assert alerts[0].message == "You have spent 420.00 of a 500.00 budget."
    assert alerts[0].dedup_key == f"budget:{budget.id}:2024-03"


def test_unread_alert_suppresses_repeats_until_read(engine, record):
    engine.budgets.create_budget(OWNER, "Food", "500", "cat_food")
    record("450")
    record("10")
    record("10")
    assert len(warnings_for(engine)) == 1

    engine.notifications.mark_all_read(OWNER)
    record("10")
    alerts = warnings_for(engine)
    assert len(alerts) == 2
    assert sum(1 for item in alerts if not item.is_read) == 1


def test_title_uses_floor_of_raw_percentage(engine, record):
    engine.budgets.create_budget(OWNER, "Food", "300", "cat_food")
    record("299.99")
    assert warnings_for(engine)[0].title == 'Budget "Food" at 99%'


def test_income_and_uncategorized_writes_do_not_alert(engine, record):
    engine.budgets.create_budget(OWNER, "Food", "100", "cat_food")
    record("500", type="income", category_id="cat_salary")
    record("500", category_id=None)
    assert warnings_for(engine) == []


def test_expense_in_other_month_does_not_alert(engine, record):
    engine.budgets.create_budget(OWNER, "Food", "100", "cat_food")
    record("500", on=date(2024, 2, 28))
    assert warnings_for(engine) == []


def test_inactive_budget_does_not_alert(engine, record):
    budget = engine.budgets.create_budget(OWNER, "Food", "100", "cat_food")
    engine.budgets.update_budget(OWNER, budget.id, BudgetPatch(is_active=False))
    record("500")
    assert warnings_for(engine) == []


def test_editing_into_budgeted_category_alerts(engine, record):
    engine.budgets.create_budget(OWNER, "Food", "100", "cat_food")
    txn = record("90", category_id="cat_transport", description="Fuel")
    assert warnings_for(engine) == []

    engine.ledger.edit(OWNER, txn.id, TransactionPatch(category_id="cat_food"))
    assert len(warnings_for(engine)) == 1


def test_generator_returns_emitted_notifications(engine, record):
    engine.budgets.create_budget(OWNER, "Food", "100", "cat_food")
    txn = record("10")
    assert engine.alerts.on_transaction_written(txn) == []

    engine.ledger.edit(OWNER, txn.id, TransactionPatch(amount="95"))
    assert len(warnings_for(engine)) == 1
    # Already pending: a direct re-run emits nothing new
    updated = engine.ledger.get(OWNER, txn.id).transaction
    assert engine.alerts.on_transaction_written(updated) == []
