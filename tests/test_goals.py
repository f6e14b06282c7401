from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from conftest import OTHER, OWNER
from finance_engine.exceptions import ConflictError, InvalidAmount, NotFoundError, ValidationError
from finance_engine.goals import apply_deposit, progress_percent, remaining_amount
from finance_engine.models import Goal, GoalPatch


def test_apply_deposit_truncates_at_target():
    assert apply_deposit(Decimal("800"), Decimal("1000"), "active", Decimal("500")) == (Decimal("1000.00"), "completed")
    assert apply_deposit(Decimal("200"), Decimal("1000"), "active", Decimal("300")) == (Decimal("500.00"), "active")


def test_progress_helpers():
    assert progress_percent(Decimal("1"), Decimal("3")) == Decimal("33.3")
    assert progress_percent(Decimal("5"), Decimal("0")) == 0
    assert remaining_amount(Decimal("1200"), Decimal("1000")) == Decimal("0.00")


def test_deposit_completes_goal_and_notifies_once(engine):
    goal = engine.goals.create_goal(OWNER, "Holiday", "1000", current_amount="800")
    result = engine.goals.deposit(OWNER, goal.id, "500")

    assert result.new_amount == Decimal("1000.00")
    assert result.status == "completed"
    assert result.to_dict() == {"newAmount": 1000.0, "status": "completed"}

    # Further deposits keep the goal clamped and do not notify again
    again = engine.goals.deposit(OWNER, goal.id, 10)
    assert again.new_amount == Decimal("1000.00")
    assert not again.completed_now

    notifications, unread = engine.notifications.list_notifications(OWNER)
    successes = [item for item in notifications if item.type == "success"]
    assert len(successes) == 1
    assert "Holiday" in successes[0].title
    assert unread == 1


def test_partial_deposit_stays_active(engine):
    goal = engine.goals.create_goal(OWNER, "Bike", "1000", current_amount="200")
    result = engine.goals.deposit(OWNER, goal.id, "300")
    assert result.new_amount == Decimal("500.00")
    assert result.status == "active"

    view = engine.goals.progress(OWNER, goal.id)
    assert view.progress == Decimal("50.0")
    assert view.remaining == Decimal("500.00")
    assert engine.notifications.list_notifications(OWNER) == ([], 0)


@pytest.mark.parametrize("amount", [0, "-5", "abc", None])
def test_deposit_rejects_non_positive_amounts(engine, amount):
    goal = engine.goals.create_goal(OWNER, "Bike", "1000")
    with pytest.raises(InvalidAmount):
        engine.goals.deposit(OWNER, goal.id, amount)
    assert engine.goals.get_goal(OWNER, goal.id).current_amount == 0


def test_invalid_amount_is_a_validation_error():
    assert issubclass(InvalidAmount, ValidationError)


def test_deposit_on_other_owner_is_not_found(engine):
    goal = engine.goals.create_goal(OWNER, "Bike", "1000")
    with pytest.raises(NotFoundError):
        engine.goals.deposit(OTHER, goal.id, 10)


def test_stale_version_write_conflicts(engine, stores):
    goal = engine.goals.create_goal(OWNER, "Bike", "1000")
    engine.goals.deposit(OWNER, goal.id, 100)
    # ``goal`` still carries the version read before the deposit
    with pytest.raises(ConflictError):
        stores.goals.update(goal.id, OWNER, GoalPatch(current_amount=Decimal("50")), expected_version=goal.version)
    assert engine.goals.get_goal(OWNER, goal.id).current_amount == Decimal("100.00")


def test_edit_reaching_target_completes(engine):
    goal = engine.goals.create_goal(OWNER, "Bike", "1000")
    edited = engine.goals.edit(OWNER, goal.id, GoalPatch(current_amount="1000", status="paused"))
    assert edited.status == "completed"


def test_edit_keeps_requested_or_existing_status(engine):
    goal = engine.goals.create_goal(OWNER, "Bike", "1000")
    paused = engine.goals.edit(OWNER, goal.id, GoalPatch(status="paused"))
    assert paused.status == "paused"
    renamed = engine.goals.edit(OWNER, goal.id, GoalPatch(name="Road bike", description=None))
    assert renamed.status == "paused"
    assert renamed.name == "Road bike"
    assert renamed.description is None


def test_edit_lowering_target_below_current_completes(engine):
    goal = engine.goals.create_goal(OWNER, "Bike", "1000", current_amount="600")
    edited = engine.goals.edit(OWNER, goal.id, GoalPatch(target_amount="500"))
    assert edited.status == "completed"
    assert edited.current_amount == Decimal("600.00")


def test_edit_stores_current_amount_above_target(engine):
    goal = engine.goals.create_goal(OWNER, "Bike", "1000")
    edited = engine.goals.edit(OWNER, goal.id, GoalPatch(current_amount="1500"))
    assert edited.current_amount == Decimal("1500.00")
    assert edited.status == "completed"

    data = engine.goals.progress(OWNER, goal.id).to_dict()
    assert data["currentAmount"] == 1500.0
    assert data["progress"] == 100.0
    assert data["remaining"] == 0.0


def test_create_keeps_current_amount_above_target(engine):
    goal = engine.goals.create_goal(OWNER, "Bike", "1000", current_amount="1200")
    assert goal.current_amount == Decimal("1200.00")
    assert goal.status == "completed"


def test_edit_validates(engine):
    goal = engine.goals.create_goal(OWNER, "Bike", "1000")
    with pytest.raises(ValidationError) as excinfo:
        engine.goals.edit(OWNER, goal.id, GoalPatch(target_amount=0, current_amount="-1", status="dreaming"))
    assert set(excinfo.value.details) == {"target_amount", "current_amount", "status"}


def test_create_requires_name_and_target(engine):
    with pytest.raises(ValidationError) as excinfo:
        engine.goals.create_goal(OWNER, "", None)
    assert set(excinfo.value.details) == {"name", "target_amount"}


def test_list_goals_newest_first_and_to_dict(engine, stores):
    stores.goals.insert(Goal(id="g-old", owner_id=OWNER, name="First", target_amount=Decimal("100"),
                             created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)))
    stores.goals.insert(Goal(id="g-new", owner_id=OWNER, name="Second", target_amount=Decimal("200"),
                             target_date=date(2025, 1, 31), created_at=datetime(2024, 2, 1, tzinfo=timezone.utc)))
    engine.goals.create_goal(OTHER, "Not mine", "300")

    goals = engine.goals.list_goals(OWNER)
    assert [view.goal.id for view in goals] == ["g-new", "g-old"]
    assert [view.goal.id for view in engine.goals.list_goals(OWNER, limit=1)] == ["g-new"]

    data = goals[0].to_dict()
    assert data["targetDate"] == "2025-01-31"
    assert data["progress"] == 0.0
    assert data["remaining"] == 200.0
    assert data["currency"] == "EUR"
    assert set(data) == {
        "id", "name", "description", "targetAmount", "currentAmount", "currency", "targetDate",
        "color", "icon", "status", "progress", "remaining", "createdAt", "updatedAt",
    }


def test_delete_goal(engine):
    goal = engine.goals.create_goal(OWNER, "Bike", "1000")
    engine.goals.delete_goal(OWNER, goal.id)
    with pytest.raises(NotFoundError):
        engine.goals.get_goal(OWNER, goal.id)
