from __future__ import annotations

import pytest

from conftest import OTHER, OWNER
from finance_engine.categories import DEFAULT_CATEGORIES
from finance_engine.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from finance_engine.models import CategoryPatch


def test_defaults_seeded_once(engine):
    assert engine.categories.seed_defaults() == 0
    categories = engine.categories.list_categories(OWNER)
    assert len(categories) == len(DEFAULT_CATEGORIES) == 15
    assert sum(1 for item in categories if item.type == "income") == 5
    assert sum(1 for item in categories if item.type == "expense") == 10


def test_list_puts_defaults_first_then_name(engine):
    engine.categories.create_category(OWNER, "Aardvark care", "expense")
    listed = engine.categories.list_categories(OWNER, type="expense")
    assert listed[-1].name == "Aardvark care"
    default_names = [item.name for item in listed if item.is_default]
    assert default_names == sorted(default_names)


def test_custom_categories_are_private(engine):
    mine = engine.categories.create_category(OWNER, "Pets", "expense", color="#123456")
    assert mine.icon == "tag"
    assert mine.color == "#123456"
    assert mine.id in {item.id for item in engine.categories.list_categories(OWNER)}
    assert mine.id not in {item.id for item in engine.categories.list_categories(OTHER)}
    with pytest.raises(NotFoundError):
        engine.categories.get_category(OTHER, mine.id)
    assert engine.categories.display(OTHER, mine.id) is None


def test_defaults_are_read_only(engine):
    with pytest.raises(PermissionDeniedError):
        engine.categories.update_category(OWNER, "cat_food", CategoryPatch(name="Snacks"))
    with pytest.raises(PermissionDeniedError):
        engine.categories.delete_category(OWNER, "cat_food")
    assert engine.categories.get_category(OWNER, "cat_food").name == "Food"


def test_update_and_delete_custom(engine):
    mine = engine.categories.create_category(OWNER, "Pets", "expense")
    updated = engine.categories.update_category(OWNER, mine.id, CategoryPatch(name="Animals", icon="", color="#000000"))
    assert updated.name == "Animals"
    assert updated.icon == "tag"
    assert updated.color == "#000000"

    engine.categories.delete_category(OWNER, mine.id)
    assert engine.categories.display(OWNER, mine.id) is None


def test_create_validates(engine):
    with pytest.raises(ValidationError) as excinfo:
        engine.categories.create_category(OWNER, " ", "transfer")
    assert set(excinfo.value.details) == {"name", "type"}


def test_display_resolves_weak_references(engine):
    assert engine.categories.display(OWNER, "cat_salary") == {
        "id": "cat_salary", "name": "Salary", "color": "#10b981", "icon": "briefcase",
    }
    assert engine.categories.display(OWNER, None) is None
    assert engine.categories.display(OWNER, "gone") is None


def test_notifications_read_flags(engine):
    first = engine.notifications.notify(OWNER, "One", "first")
    engine.notifications.notify(OWNER, "Two", "second", type="warning")
    engine.notifications.notify(OTHER, "Other", "not yours")

    items, unread = engine.notifications.list_notifications(OWNER)
    assert len(items) == 2
    assert unread == 2

    engine.notifications.mark_read(OWNER, first.id)
    assert engine.notifications.list_notifications(OWNER)[1] == 1
    with pytest.raises(NotFoundError):
        engine.notifications.mark_read(OTHER, first.id)

    assert engine.notifications.mark_all_read(OWNER) == 1
    assert engine.notifications.list_notifications(OWNER)[1] == 0
    assert engine.notifications.list_notifications(OTHER)[1] == 1


def test_notification_type_is_validated(engine):
    with pytest.raises(ValidationError):
        engine.notifications.notify(OWNER, "Odd", "message", type="shout")
