"""Savings goals: deposits, edits and progress.

``current_amount`` is the only derived figure the engine persists. Every
write goes through the goal store's version check so two deposits racing on
the same goal cannot both apply their clamp to a stale read.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from . import config
from .exceptions import InvalidAmount, ValidationError
from .models import (
    GOAL_ACTIVE,
    GOAL_COMPLETED,
    GOAL_STATUSES,
    HUNDRED,
    ZERO,
    Goal,
    GoalPatch,
    iso_timestamp,
    parse_amount,
    parse_date,
    ratio_percent,
    round1,
    to_money,
    utcnow,
)
from .notifications import NotificationCenter
from .store.base import StoreBundle

logger = logging.getLogger(__name__)


def progress_percent(current: Decimal, target: Decimal) -> Decimal:
    if target <= 0:
        return round1(ZERO)
    return min(HUNDRED, round1(ratio_percent(current, target)))


def remaining_amount(current: Decimal, target: Decimal) -> Decimal:
    return to_money(max(ZERO, target - current))


def apply_deposit(current: Decimal, target: Decimal, status: str, amount: Decimal) -> Tuple[Decimal, str]:
    """Return the clamped balance and resulting status after a deposit."""
    new_current = to_money(min(current + amount, target))
    new_status = GOAL_COMPLETED if new_current >= target else status
    return new_current, new_status


@dataclass
class GoalView:
    goal: Goal

    @property
    def progress(self) -> Decimal:
        return progress_percent(self.goal.current_amount, self.goal.target_amount)

    @property
    def remaining(self) -> Decimal:
        return remaining_amount(self.goal.current_amount, self.goal.target_amount)

    def to_dict(self) -> Dict[str, Any]:
        goal = self.goal
        return {
            'id': goal.id,
            'name': goal.name,
            'description': goal.description,
            'targetAmount': float(goal.target_amount),
            'currentAmount': float(goal.current_amount),
            'currency': goal.currency,
            'targetDate': goal.target_date.isoformat() if goal.target_date else None,
            'color': goal.color,
            'icon': goal.icon,
            'status': goal.status,
            'progress': float(self.progress),
            'remaining': float(self.remaining),
            'createdAt': iso_timestamp(goal.created_at),
            'updatedAt': iso_timestamp(goal.updated_at),
        }


@dataclass
class DepositResult:
    goal: Goal
    completed_now: bool = False

    @property
    def new_amount(self) -> Decimal:
        return self.goal.current_amount

    @property
    def status(self) -> str:
        return self.goal.status

    def to_dict(self) -> Dict[str, Any]:
        return {'newAmount': float(self.new_amount), 'status': self.status}


class GoalEngine:

    def __init__(self, stores: StoreBundle, notifications: NotificationCenter):
        self.stores = stores
        self.notifications = notifications

    def get_goal(self, owner_id: str, goal_id: str) -> Goal:
        return self.stores.goals.get(goal_id, owner_id)

    def progress(self, owner_id: str, goal_id: str) -> GoalView:
        return GoalView(self.get_goal(owner_id, goal_id))

    def list_goals(self, owner_id: str, status: Optional[str] = None, limit: Optional[int] = None) -> List[GoalView]:
        return [GoalView(goal) for goal in self.stores.goals.list(owner_id, status, limit)]

    def create_goal(
        self,
        owner_id: str,
        name: str,
        target_amount: Any,
        current_amount: Any = None,
        description: Optional[str] = None,
        currency: Optional[str] = None,
        target_date: Any = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Goal:
        errors: Dict[str, str] = {}
        if not name or not str(name).strip():
            errors['name'] = 'Name is required'
        target = parse_amount(target_amount)
        if target is None or target <= 0:
            errors['target_amount'] = 'Target amount must be greater than 0'
        current = ZERO
        if current_amount not in (None, ''):
            current = parse_amount(current_amount)
            if current is None or current < 0:
                errors['current_amount'] = 'Current amount cannot be negative'
        deadline = None
        if target_date not in (None, ''):
            deadline = parse_date(target_date)
            if deadline is None:
                errors['target_date'] = 'Invalid date'
        if errors:
            raise ValidationError('Invalid goal', errors)

        current = to_money(current)
        now = utcnow()
        goal = Goal(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            name=str(name).strip(),
            description=description or None,
            target_amount=target,
            current_amount=current,
            currency=currency or config.DEFAULT_CURRENCY,
            target_date=deadline,
            color=color or config.DEFAULT_CATEGORY_COLOR,
            icon=icon or config.DEFAULT_GOAL_ICON,
            status=GOAL_COMPLETED if current >= target else GOAL_ACTIVE,
            created_at=now,
            updated_at=now,
        )
        self.stores.goals.insert(goal)
        logger.info("Created goal %s for owner %s", goal.id, owner_id)
        return goal

    def deposit(self, owner_id: str, goal_id: str, amount: Any) -> DepositResult:
        """Add ``amount`` to a goal, truncating at the target.

        Raises ``ConflictError`` if the goal changed between the read and
        the write; the caller may retry once.
        """
        parsed = parse_amount(amount)
        if parsed is None or parsed <= 0:
            raise InvalidAmount()

        goal = self.stores.goals.get(goal_id, owner_id)
        new_current, new_status = apply_deposit(goal.current_amount, goal.target_amount, goal.status, parsed)
        updated = self.stores.goals.update(
            goal_id,
            owner_id,
            GoalPatch(current_amount=new_current, status=new_status),
            expected_version=goal.version,
        )

        completed_now = new_status == GOAL_COMPLETED and goal.status != GOAL_COMPLETED
        if completed_now:
            self.notifications.notify(
                owner_id,
                title=f'Goal "{goal.name}" reached!',
                message=f"Congratulations! You reached your goal of {goal.target_amount:.2f} {goal.currency}.",
                type='success',
            )
        logger.info("Deposited %s into goal %s (now %s, %s)", parsed, goal_id, new_current, new_status)
        return DepositResult(updated, completed_now)

    def edit(self, owner_id: str, goal_id: str, patch: GoalPatch) -> Goal:
        """Apply a partial update; reaching the target forces ``completed``."""
        goal = self.stores.goals.get(goal_id, owner_id)
        changes = patch.changes()
        errors: Dict[str, str] = {}

        if 'name' in changes:
            if not changes['name'] or not str(changes['name']).strip():
                errors['name'] = 'Name cannot be empty'
            else:
                changes['name'] = str(changes['name']).strip()
        target = goal.target_amount
        if 'target_amount' in changes:
            target = parse_amount(changes['target_amount'])
            if target is None or target <= 0:
                errors['target_amount'] = 'Target amount must be greater than 0'
        current = goal.current_amount
        if 'current_amount' in changes:
            current = parse_amount(changes['current_amount'])
            if current is None or current < 0:
                errors['current_amount'] = 'Current amount cannot be negative'
        if 'target_date' in changes and changes['target_date'] not in (None, ''):
            changes['target_date'] = parse_date(changes['target_date'])
            if changes['target_date'] is None:
                errors['target_date'] = 'Invalid date'
        if changes.get('status') is not None and changes['status'] not in GOAL_STATUSES:
            errors['status'] = f"Status must be one of {', '.join(sorted(GOAL_STATUSES))}"
        if errors:
            raise ValidationError('Invalid goal', errors)

        for key in ('currency', 'color', 'icon', 'status'):
            # Empty values keep what is stored
            if key in changes and not changes[key]:
                del changes[key]
        if changes.get('target_date') == '':
            changes['target_date'] = None

        changes['target_amount'] = target
        # Direct edits store the amount as given; only deposits clamp to the target
        changes['current_amount'] = to_money(current)
        if changes['current_amount'] >= target:
            changes['status'] = GOAL_COMPLETED
        else:
            changes['status'] = changes.get('status', goal.status)

        updated = self.stores.goals.update(goal_id, owner_id, GoalPatch(**changes), expected_version=goal.version)
        logger.info("Updated goal %s for owner %s", goal_id, owner_id)
        return updated

    def delete_goal(self, owner_id: str, goal_id: str) -> None:
        self.stores.goals.delete(goal_id, owner_id)
        logger.info("Deleted goal %s for owner %s", goal_id, owner_id)
