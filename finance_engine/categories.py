"""Category registry: shared defaults plus user-owned categories.

Transactions and budgets hold category ids as weak references. A category
may be deleted while records still point at it, so display code resolves
ids through :meth:`CategoryRegistry.display` and falls back to the
"uncategorized" bucket instead of failing.
"""

from __future__ import annotations

import logging
import uuid
from typing import Dict, List, Optional

from . import config
from .exceptions import NotFoundError, PermissionDeniedError, ValidationError
from .models import TRANSACTION_TYPES, Category, CategoryPatch, utcnow
from .store.base import CategoryStore

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: List[Dict[str, str]] = [
    # Income
    {'id': 'cat_salary', 'name': 'Salary', 'type': 'income', 'color': '#10b981', 'icon': 'briefcase'},
    {'id': 'cat_freelance', 'name': 'Freelance', 'type': 'income', 'color': '#06b6d4', 'icon': 'laptop'},
    {'id': 'cat_investment', 'name': 'Investments', 'type': 'income', 'color': '#8b5cf6', 'icon': 'trending-up'},
    {'id': 'cat_rental', 'name': 'Rental', 'type': 'income', 'color': '#f59e0b', 'icon': 'home'},
    {'id': 'cat_other_income', 'name': 'Other income', 'type': 'income', 'color': '#6366f1', 'icon': 'plus-circle'},
    # Expenses
    {'id': 'cat_housing', 'name': 'Housing', 'type': 'expense', 'color': '#ef4444', 'icon': 'home'},
    {'id': 'cat_food', 'name': 'Food', 'type': 'expense', 'color': '#f97316', 'icon': 'shopping-cart'},
    {'id': 'cat_transport', 'name': 'Transport', 'type': 'expense', 'color': '#eab308', 'icon': 'car'},
    {'id': 'cat_health', 'name': 'Health', 'type': 'expense', 'color': '#ec4899', 'icon': 'heart'},
    {'id': 'cat_entertainment', 'name': 'Entertainment', 'type': 'expense', 'color': '#a855f7', 'icon': 'music'},
    {'id': 'cat_education', 'name': 'Education', 'type': 'expense', 'color': '#3b82f6', 'icon': 'book'},
    {'id': 'cat_clothing', 'name': 'Clothing', 'type': 'expense', 'color': '#14b8a6', 'icon': 'shopping-bag'},
    {'id': 'cat_tech', 'name': 'Technology', 'type': 'expense', 'color': '#64748b', 'icon': 'smartphone'},
    {'id': 'cat_utilities', 'name': 'Bills', 'type': 'expense', 'color': '#84cc16', 'icon': 'zap'},
    {'id': 'cat_other_expense', 'name': 'Other expenses', 'type': 'expense', 'color': '#6b7280', 'icon': 'more-horizontal'},
]


def uncategorized_display() -> Dict[str, Optional[str]]:
    return {
        'id': None,
        'name': config.UNCATEGORIZED_NAME,
        'color': config.UNCATEGORIZED_COLOR,
        'icon': config.DEFAULT_CATEGORY_ICON,
    }


class CategoryRegistry:
    """Lookup and maintenance of categories visible to an owner."""

    def __init__(self, store: CategoryStore):
        self.store = store

    def seed_defaults(self) -> int:
        """Insert the shared default categories once. Returns how many were added."""
        if self.store.count_defaults() > 0:
            return 0
        now = utcnow()
        for entry in DEFAULT_CATEGORIES:
            self.store.insert(Category(owner_id=None, is_default=True, created_at=now, **entry))
        logger.info("Seeded %d default categories", len(DEFAULT_CATEGORIES))
        return len(DEFAULT_CATEGORIES)

    def list_categories(self, owner_id: str, type: Optional[str] = None) -> List[Category]:
        return self.store.list_visible(owner_id, type)

    def find(self, owner_id: str, category_id: Optional[str]) -> Optional[Category]:
        """Resolve a weak reference; ``None`` when absent, dangling or not visible."""
        if not category_id:
            return None
        category = self.store.get(category_id)
        if category is None:
            return None
        if not category.is_default and category.owner_id != owner_id:
            return None
        return category

    def get_category(self, owner_id: str, category_id: str) -> Category:
        category = self.find(owner_id, category_id)
        if category is None:
            raise NotFoundError('Category', category_id)
        return category

    def display(self, owner_id: str, category_id: Optional[str]) -> Optional[Dict[str, Optional[str]]]:
        category = self.find(owner_id, category_id)
        return category.display() if category is not None else None

    def create_category(
        self,
        owner_id: str,
        name: str,
        type: str,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Category:
        errors: Dict[str, str] = {}
        if not name or not str(name).strip():
            errors['name'] = 'Name is required'
        if type not in TRANSACTION_TYPES:
            errors['type'] = "Type must be 'income' or 'expense'"
        if errors:
            raise ValidationError('Invalid category', errors)

        category = Category(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            name=str(name).strip(),
            type=type,
            color=color or config.DEFAULT_CATEGORY_COLOR,
            icon=icon or config.DEFAULT_CATEGORY_ICON,
            is_default=False,
            created_at=utcnow(),
        )
        self.store.insert(category)
        logger.info("Created category %s for owner %s", category.id, owner_id)
        return category

    def _editable(self, owner_id: str, category_id: str) -> Category:
        category = self.get_category(owner_id, category_id)
        if category.is_default:
            raise PermissionDeniedError(f"Default category {category_id} cannot be modified")
        return category

    def update_category(self, owner_id: str, category_id: str, patch: CategoryPatch) -> Category:
        self._editable(owner_id, category_id)
        changes = patch.changes()
        if 'name' in changes and (not changes['name'] or not str(changes['name']).strip()):
            raise ValidationError('Invalid category', {'name': 'Name cannot be empty'})
        # Falsy colours or icons keep the stored value
        cleaned = CategoryPatch(**{key: value for key, value in changes.items() if value})
        return self.store.update(category_id, owner_id, cleaned)

    def delete_category(self, owner_id: str, category_id: str) -> None:
        self._editable(owner_id, category_id)
        self.store.delete(category_id, owner_id)
        logger.info("Deleted category %s for owner %s", category_id, owner_id)
