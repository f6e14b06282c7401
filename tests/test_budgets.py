from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from conftest import OTHER, OWNER, TODAY
from finance_engine.budgets import evaluate
from finance_engine.exceptions import ConflictError, NotFoundError, ValidationError
from finance_engine.models import Budget, BudgetPatch, Transaction


def make_budget(amount, threshold="80"):
    return Budget(
        id="b1",
        owner_id=OWNER,
        category_id="cat_food",
        name="Food",
        amount=Decimal(amount),
        month=3,
        year=2024,
        alert_threshold=Decimal(threshold),
    )


def make_expense(amount, day=10):
    return Transaction(
        id=f"t-{amount}-{day}",
        owner_id=OWNER,
        type="expense",
        amount=Decimal(amount),
        description="Groceries",
        date=date(2024, 3, day),
        category_id="cat_food",
    )


def test_evaluate_warning_below_limit():
    status = evaluate(make_budget("500"), [make_expense("400"), make_expense("20", day=11)])
    assert status.spent == Decimal("420.00")
    assert status.percentage == Decimal("84.0")
    assert status.remaining == Decimal("80.00")
    assert status.is_warning
    assert not status.is_exceeded


def test_evaluate_exceeded_caps_percentage():
    status = evaluate(make_budget("500"), [make_expense("650")])
    assert status.percentage == Decimal("100.0")
    assert status.remaining == Decimal("0.00")
    assert status.is_exceeded
    assert status.is_warning


def test_evaluate_exactly_at_limit_is_not_exceeded():
    status = evaluate(make_budget("500"), [make_expense("500")])
    assert status.percentage == Decimal("100.0")
    assert not status.is_exceeded


def test_evaluate_tiny_overspend_is_exceeded_even_if_display_rounds():
    status = evaluate(make_budget("1000"), [make_expense("1000.01")])
    assert status.percentage == Decimal("100.0")
    assert status.is_exceeded


def test_evaluate_zero_amount_budget():
    status = evaluate(make_budget("0"), [make_expense("50")])
    assert status.percentage == 0
    assert not status.is_warning
    assert status.is_exceeded


def test_evaluate_empty_window():
    status = evaluate(make_budget("500"), [])
    assert status.spent == 0
    assert status.percentage == 0
    assert status.remaining == Decimal("500.00")
    assert not status.is_warning


def test_warning_uses_uncapped_ratio_against_threshold():
    status = evaluate(make_budget("500", threshold="100"), [make_expense("499.99")])
    assert status.percentage == Decimal("100.0")
    assert not status.is_warning


def test_to_dict_shape():
    status = evaluate(make_budget("500"), [make_expense("420")])
    data = status.to_dict()
    assert set(data) == {
        "id", "name", "amount", "period", "month", "year", "alertThreshold", "category",
        "spent", "remaining", "percentage", "isExceeded", "isWarning", "createdAt",
    }
    assert data["percentage"] == 84.0
    assert data["spent"] == 420.0


def test_window_is_calendar_month_inclusive(engine, record):
    budget = engine.budgets.create_budget(OWNER, "Food", "500", "cat_food", month=2, year=2024)
    record("100", on=date(2024, 2, 1))
    record("100", on=date(2024, 2, 29))
    record("100", on=date(2024, 3, 1))
    record("100", on=date(2024, 1, 31))
    record("100", type="income", category_id="cat_salary", on=date(2024, 2, 10))

    status = engine.budgets.evaluate_budget(OWNER, budget.id)
    assert status.spent == Decimal("200.00")
    assert status.category["name"] == "Food"


def test_evaluation_reflects_edits_and_deletes(engine, record):
    budget = engine.budgets.create_budget(OWNER, "Food", "500", "cat_food")
    first = record("300")
    record("100")
    assert engine.budgets.evaluate_budget(OWNER, budget.id).spent == Decimal("400.00")

    engine.ledger.remove(OWNER, first.id)
    assert engine.budgets.evaluate_budget(OWNER, budget.id).spent == Decimal("100.00")


def test_evaluate_other_owner_is_not_found(engine):
    budget = engine.budgets.create_budget(OWNER, "Food", "500", "cat_food")
    with pytest.raises(NotFoundError):
        engine.budgets.evaluate_budget(OTHER, budget.id)
    with pytest.raises(NotFoundError):
        engine.budgets.evaluate_budget(OWNER, "missing")


def test_create_defaults_to_current_month(engine):
    budget = engine.budgets.create_budget(OWNER, "Food", 250, "cat_food")
    assert (budget.year, budget.month) == (TODAY.year, TODAY.month)
    assert budget.alert_threshold == Decimal("80")
    assert budget.period == "monthly"


def test_create_validates_fields(engine):
    with pytest.raises(ValidationError) as excinfo:
        engine.budgets.create_budget(OWNER, "", "-5", "cat_salary", alert_threshold=150)
    details = excinfo.value.details
    assert {"name", "amount", "category_id", "alert_threshold"} <= set(details)


def test_second_active_budget_for_same_window_conflicts(engine):
    engine.budgets.create_budget(OWNER, "Food", "500", "cat_food")
    with pytest.raises(ConflictError):
        engine.budgets.create_budget(OWNER, "Food again", "300", "cat_food")
    # Another month or another owner is fine
    engine.budgets.create_budget(OWNER, "Food April", "300", "cat_food", month=4, year=2024)
    engine.budgets.create_budget(OTHER, "Food", "300", "cat_food")


def test_reactivating_duplicate_conflicts(engine):
    first = engine.budgets.create_budget(OWNER, "Food", "500", "cat_food")
    engine.budgets.update_budget(OWNER, first.id, BudgetPatch(is_active=False))
    engine.budgets.create_budget(OWNER, "Food v2", "400", "cat_food")
    with pytest.raises(ConflictError):
        engine.budgets.update_budget(OWNER, first.id, BudgetPatch(is_active=True))


def test_update_and_list_order_by_category_name(engine, record):
    transport = engine.budgets.create_budget(OWNER, "Car", "200", "cat_transport")
    engine.budgets.create_budget(OWNER, "Groceries", "500", "cat_food")
    engine.budgets.create_budget(OWNER, "Bills", "150", "cat_utilities")
    engine.budgets.update_budget(OWNER, transport.id, BudgetPatch(amount="250.50", alert_threshold=90))

    listed = engine.budgets.list_budgets(OWNER)
    assert [item.category["name"] for item in listed] == ["Bills", "Food", "Transport"]
    updated = [item for item in listed if item.budget.id == transport.id][0]
    assert updated.budget.amount == Decimal("250.50")
    assert updated.budget.alert_threshold == Decimal("90")


def test_delete_budget(engine):
    budget = engine.budgets.create_budget(OWNER, "Food", "500", "cat_food")
    engine.budgets.delete_budget(OWNER, budget.id)
    assert engine.budgets.list_budgets(OWNER) == []
    with pytest.raises(NotFoundError):
        engine.budgets.delete_budget(OWNER, budget.id)


def test_list_budgets_rejects_bad_period(engine):
    with pytest.raises(ValidationError) as excinfo:
        engine.budgets.list_budgets(OWNER, 2024, 13)
    assert set(excinfo.value.details) == {"month"}


def test_create_reports_bad_month_with_other_fields(engine):
    with pytest.raises(ValidationError) as excinfo:
        engine.budgets.create_budget(OWNER, "", "50", "cat_food", month="13")
    assert {"name", "month"} <= set(excinfo.value.details)
