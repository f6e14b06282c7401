from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from conftest import OTHER, OWNER, TODAY
from finance_engine.analytics import health_score
from finance_engine.exceptions import ValidationError
from finance_engine.models import CategoryTotal, MonthTotals, Transaction


def test_health_score_formula():
    assert health_score(Decimal("20"), 0) == 55
    assert health_score(Decimal("20"), 2) == 30
    assert health_score(Decimal("100"), 0) == 100
    assert health_score(Decimal("-80"), 0) == 0
    # 16.99999 * 1.5 + 25 = 50.4999... rounds down, 17 * 1.5 + 25 = 50.5 rounds up
    assert health_score(Decimal("16.99999"), 0) == 50
    assert health_score(Decimal("17"), 0) == 51


def test_monthly_summary_and_score_scenario(engine, record):
    record("3000", type="income", category_id="cat_salary", description="Salary")
    record("2400", description="Rent", category_id="cat_housing")

    summary = engine.analytics.monthly_summary(OWNER)
    assert summary.income == Decimal("3000.00")
    assert summary.expenses == Decimal("2400.00")
    assert summary.balance == Decimal("600.00")
    assert summary.to_dict()["savingsRate"] == 20.0
    assert summary.transaction_count == 2

    dashboard = engine.analytics.dashboard(OWNER)
    assert dashboard.health_score == 55


def test_savings_rate_zero_without_income(engine, record):
    record("50")
    summary = engine.analytics.monthly_summary(OWNER)
    assert summary.savings_rate == 0


def test_empty_ledger(engine):
    breakdown = engine.analytics.category_breakdown(OWNER)
    assert breakdown.to_dict() == {"breakdown": [], "total": 0.0}

    dashboard = engine.analytics.dashboard(OWNER).to_dict()
    assert dashboard["monthly"] == {"income": 0.0, "expenses": 0.0, "balance": 0.0, "savingsRate": 0.0}
    assert dashboard["total"] == {"income": 0.0, "expenses": 0.0, "balance": 0.0}
    assert dashboard["healthScore"] == 25
    assert dashboard["topCategories"] == []
    assert dashboard["budgetAlerts"] == []
    assert dashboard["recentTransactions"] == []
    assert dashboard["goals"] == []
    assert len(dashboard["monthlyTrend"]) == 6


def test_trend_is_contiguous_and_ends_this_month(engine, record):
    record("100", on=date(2023, 12, 31))
    record("40", on=date(2024, 1, 1))
    record("1000", type="income", category_id="cat_salary", on=date(2024, 3, 1))
    record("999", on=date(2023, 9, 30))

    trend = engine.analytics.monthly_trend(OWNER)
    assert [(item.year, item.month) for item in trend] == [
        (2023, 10), (2023, 11), (2023, 12), (2024, 1), (2024, 2), (2024, 3),
    ]
    assert trend[2].expenses == Decimal("100.00")
    assert trend[3].expenses == Decimal("40.00")
    assert trend[5].income == Decimal("1000.00")
    assert trend[5].balance == Decimal("1000.00")
    assert trend[0].expenses == 0


def test_trend_frame(engine, record):
    record("40", on=date(2024, 2, 10))
    df = engine.analytics.trend_frame(OWNER, months=3)
    assert list(df["label"]) == ["2024-01", "2024-02", "2024-03"]
    assert list(df.columns) == ["label", "year", "month", "income", "expenses", "balance", "transaction_count"]
    assert df.loc[1, "expenses"] == pytest.approx(40.0)
    assert df.loc[1, "balance"] == pytest.approx(-40.0)


def test_category_breakdown_groups_and_percentages(engine, record):
    record("60", category_id="cat_food")
    record("15", category_id="cat_food")
    record("25", category_id="cat_transport", description="Bus")
    record("999", type="income", category_id="cat_salary", description="Salary")
    record("10", category_id="cat_food", owner=OTHER)

    breakdown = engine.analytics.category_breakdown(OWNER)
    assert breakdown.total == Decimal("100.00")
    data = breakdown.to_dict()["breakdown"]
    assert [item["name"] for item in data] == ["Food", "Transport"]
    assert data[0] == {"name": "Food", "color": "#f97316", "icon": "shopping-cart", "total": 75.0, "count": 2, "percentage": 75.0}
    assert data[1]["percentage"] == 25.0


def test_breakdown_date_range_and_type(engine, record):
    record("60", on=date(2024, 1, 5))
    record("30", on=date(2024, 2, 5))
    record("500", type="income", category_id="cat_salary", on=date(2024, 2, 1))

    expenses = engine.analytics.category_breakdown(OWNER, date(2024, 2, 1), date(2024, 2, 29))
    assert expenses.total == Decimal("30.00")
    income = engine.analytics.category_breakdown(OWNER, type="income")
    assert [item.name for item in income.items] == ["Salary"]


def test_uncategorized_and_dangling_share_one_bucket(engine, record):
    custom = engine.categories.create_category(OWNER, "Pets", "expense")
    record("20", category_id=custom.id, description="Vet")
    record("10", category_id=None, description="Cash")
    engine.categories.delete_category(OWNER, custom.id)

    breakdown = engine.analytics.category_breakdown(OWNER)
    assert len(breakdown.items) == 1
    bucket = breakdown.items[0]
    assert bucket.name == "Uncategorized"
    assert bucket.color == "#9ca3af"
    assert bucket.icon == "tag"
    assert bucket.total == Decimal("30.00")
    assert bucket.count == 2
    assert bucket.percentage == Decimal("100.0")


def test_yearly_rollup(engine, record):
    record("1000", type="income", category_id="cat_salary", on=date(2024, 1, 31))
    record("200", on=date(2024, 1, 2))
    record("300", category_id="cat_transport", on=date(2024, 6, 30))
    record("50", on=date(2023, 12, 31))

    rollup = engine.analytics.yearly_rollup(OWNER, 2024)
    assert [item.month for item in rollup.months] == list(range(1, 13))
    assert rollup.income == Decimal("1000.00")
    assert rollup.expenses == Decimal("500.00")
    assert rollup.months[5].expenses == Decimal("300.00")

    data = rollup.to_dict()
    assert data["yearTotals"] == {"income": 1000.0, "expenses": 500.0, "balance": 500.0}
    assert [(item["name"], item["type"], item["total"]) for item in data["categoryBreakdown"]] == [
        ("Salary", "income", 1000.0),
        ("Transport", "expense", 300.0),
        ("Food", "expense", 200.0),
    ]


def test_recent_transactions_order_and_limit(engine, stores):
    base = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    for index in range(12):
        stores.ledger.insert(
            Transaction(
                id=f"t{index:02d}",
                owner_id=OWNER,
                type="expense",
                amount=Decimal("1"),
                description=f"Item {index}",
                date=date(2024, 3, 1 + index // 2),
                category_id="cat_food",
                created_at=base.replace(minute=index),
            )
        )

    recent = engine.analytics.recent_transactions(OWNER)
    assert len(recent) == 10
    assert [view.transaction.id for view in recent[:4]] == ["t11", "t10", "t09", "t08"]
    assert recent[0].to_dict()["category"]["name"] == "Food"
    assert engine.analytics.recent_transactions(OWNER, 0) == []
    assert engine.analytics.recent_transactions(OWNER, -3) == []


def test_dashboard_composition(engine, record):
    record("3000", type="income", category_id="cat_salary", description="Salary")
    for category_id in ["cat_food", "cat_transport", "cat_health", "cat_education", "cat_clothing", "cat_tech"]:
        record("100", category_id=category_id, description=category_id)
    record("450", category_id="cat_food")
    engine.budgets.create_budget(OWNER, "Food", "500", "cat_food")
    engine.budgets.create_budget(OWNER, "Health", "1000", "cat_health")
    for name in ["A", "B", "C", "D"]:
        engine.goals.create_goal(OWNER, name, "100")
    done = engine.goals.create_goal(OWNER, "Done", "100")
    engine.goals.deposit(OWNER, done.id, 100)

    dashboard = engine.analytics.dashboard(OWNER)
    data = dashboard.to_dict()

    assert data["topCategories"][0]["name"] == "Food"
    assert data["topCategories"][0]["total"] == 550.0
    assert len(data["topCategories"]) == 5
    assert set(data["topCategories"][0]) == {"name", "color", "icon", "total", "count"}

    assert [item["category"]["name"] for item in data["budgetAlerts"]] == ["Food"]
    assert data["budgetAlerts"][0]["percentage"] == 100.0
    assert data["budgetAlerts"][0]["isExceeded"] is True

    assert len(data["goals"]) == 3
    assert all(goal["status"] == "active" for goal in data["goals"])

    # savings = (3000 - 1050) / 3000 = 65%, one warning so no bonus
    assert data["monthly"]["savingsRate"] == 65.0
    assert data["healthScore"] == 98
    assert data["total"]["balance"] == 1950.0
    assert len(data["recentTransactions"]) == 8


@pytest.mark.parametrize(
    "year, month, field",
    [
        (2024, 13, "month"),
        (2024, 0, "month"),
        (0, 3, "year"),
        ("twenty", 3, "year"),
        (2024, "march", "month"),
    ],
)
def test_monthly_summary_rejects_bad_period(engine, year, month, field):
    with pytest.raises(ValidationError) as excinfo:
        engine.analytics.monthly_summary(OWNER, year, month)
    assert set(excinfo.value.details) == {field}


def test_yearly_rollup_rejects_bad_year(engine):
    with pytest.raises(ValidationError) as excinfo:
        engine.analytics.yearly_rollup(OWNER, 10000)
    assert set(excinfo.value.details) == {"year"}


def test_result_rows_to_dict():
    bucket = CategoryTotal(
        category_id="cat_food", name="Food", color="#f97316", icon="shopping-cart",
        total=Decimal("12.50"), count=2, percentage=Decimal("25.0"),
    )
    assert bucket.to_dict() == {
        "name": "Food", "color": "#f97316", "icon": "shopping-cart", "total": 12.5, "count": 2, "percentage": 25.0,
    }
    assert CategoryTotal(None, "Uncategorized", "#9ca3af", "tag", Decimal("1"), 1, type="expense").to_dict()["type"] == "expense"

    month = MonthTotals(year=2024, month=3, income=Decimal("100"), expenses=Decimal("40"), transaction_count=3)
    assert month.balance == Decimal("60")
    assert month.to_dict() == {"month": 3, "year": 2024, "income": 100.0, "expenses": 40.0, "balance": 60.0}
