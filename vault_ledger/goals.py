"""
Goal Tracker Module

Savings goals an owner funds from their general vault. A goal is
completed exactly when its saved amount reaches the target; allocations
are applied by the transfer coordinator inside its atomic unit.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .calculator import goal_progress
from .errors import NotFoundError, ValidationError
from .locking import RowLockManager, goal_key
from .logging_config import get_logger, log_action
from .money import Money, parse_amount
from .storage import StorageInterface, StorageRecord, parse_datetime


class GoalStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class Goal(StorageRecord):
    """Savings target funded by allocations"""
    owner_id: str
    name: str
    target_amount: Money
    saved_amount: Money
    status: GoalStatus = GoalStatus.ACTIVE
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.saved_amount.is_negative():
            raise ValueError("Saved amount cannot be negative")

    @property
    def is_active(self) -> bool:
        return self.status == GoalStatus.ACTIVE

    @property
    def progress(self) -> int:
        """Percent of target saved, capped at 100"""
        return goal_progress(self.saved_amount, self.target_amount)

    @property
    def remaining(self) -> Money:
        if self.saved_amount >= self.target_amount:
            return Money.zero()
        return self.target_amount - self.saved_amount

    def derive_status(self, now: datetime) -> bool:
        """
        Bring status in line with saved vs target

        Returns:
            True if the goal became completed by this call
        """
        reached = self.saved_amount >= self.target_amount
        if reached and self.status != GoalStatus.COMPLETED:
            self.status = GoalStatus.COMPLETED
            self.completed_at = now
            return True
        if not reached and self.status != GoalStatus.ACTIVE:
            self.status = GoalStatus.ACTIVE
            self.completed_at = None
        return False


def goal_to_dict(goal: Goal) -> Dict[str, Any]:
    """Convert Goal to dictionary for storage"""
    return {
        'id': goal.id,
        'created_at': goal.created_at.isoformat(),
        'updated_at': goal.updated_at.isoformat(),
        'owner_id': goal.owner_id,
        'name': goal.name,
        'target_amount': str(goal.target_amount.amount),
        'saved_amount': str(goal.saved_amount.amount),
        'status': goal.status.value,
        'completed_at': goal.completed_at.isoformat() if goal.completed_at else None,
    }


def goal_from_dict(data: Dict[str, Any]) -> Goal:
    """Convert dictionary to Goal"""
    return Goal(
        id=data['id'],
        created_at=parse_datetime(data['created_at']),
        updated_at=parse_datetime(data['updated_at']),
        owner_id=data['owner_id'],
        name=data['name'],
        target_amount=Money(Decimal(data['target_amount'])),
        saved_amount=Money(Decimal(data['saved_amount'])),
        status=GoalStatus(data['status']),
        completed_at=parse_datetime(data.get('completed_at')),
    )


def _clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Please enter a goal name")
    return name.strip()


class GoalTracker:
    """Owner-facing goal management"""

    def __init__(
        self,
        storage: StorageInterface,
        lock_manager: Optional[RowLockManager] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.storage = storage
        self.lock_manager = lock_manager or RowLockManager()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.table_name = "goals"
        self.logger = get_logger("vault_ledger.goals")

    def create_goal(
        self,
        owner_id: str,
        name: str,
        target_amount: Union[str, int, Decimal, Money]
    ) -> Goal:
        """
        Create an active goal with nothing saved

        Raises:
            ValidationError: If the name is blank or the target is not positive
        """
        name = _clean_name(name)
        target = parse_amount(target_amount, "target amount")

        now = self.clock()
        goal = Goal(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            owner_id=owner_id,
            name=name,
            target_amount=target,
            saved_amount=Money.zero(),
        )
        self.save_goal(goal)

        log_action(
            self.logger, "info", f"Goal \"{name}\" created",
            owner_id=owner_id, action="create_goal", resource="goal", goal_id=goal.id,
            extra={"target_amount": str(target.amount)}
        )
        return goal

    def get_goal(self, owner_id: str, goal_id: str) -> Goal:
        data = self.storage.load(self.table_name, goal_id)
        if not data or data.get('owner_id') != owner_id:
            raise NotFoundError("Goal not found")
        return goal_from_dict(data)

    def list_goals(self, owner_id: str) -> List[Goal]:
        """Owner's goals, newest first"""
        rows = self.storage.find(self.table_name, {'owner_id': owner_id})
        indexed = list(enumerate(goal_from_dict(row) for row in rows))
        indexed.sort(key=lambda pair: (pair[1].created_at, pair[0]), reverse=True)
        return [goal for _, goal in indexed]

    def update_goal(
        self,
        owner_id: str,
        goal_id: str,
        name: Optional[str] = None,
        target_amount: Optional[Union[str, int, Decimal, Money]] = None
    ) -> Goal:
        """
        Rename a goal or change its target

        Status follows the new target in both directions: lowering it to the
        saved amount completes the goal, raising it above reopens it.
        """
        new_name = _clean_name(name) if name is not None else None
        new_target = parse_amount(target_amount, "target amount") if target_amount is not None else None

        with self.lock_manager.hold([goal_key(goal_id)]):
            with self.storage.atomic():
                goal = self.get_goal(owner_id, goal_id)
                now = self.clock()
                if new_name is not None:
                    goal.name = new_name
                if new_target is not None:
                    goal.target_amount = new_target
                goal.derive_status(now)
                goal.updated_at = now
                self.save_goal(goal)

        log_action(
            self.logger, "info", f"Goal \"{goal.name}\" updated",
            owner_id=owner_id, action="update_goal", resource="goal", goal_id=goal.id,
            extra={"target_amount": str(goal.target_amount.amount), "status": goal.status.value}
        )
        return goal

    def delete_goal(self, owner_id: str, goal_id: str) -> None:
        """
        Remove an active goal

        Raises:
            ValidationError: If the goal is already completed
        """
        with self.lock_manager.hold([goal_key(goal_id)]):
            with self.storage.atomic():
                goal = self.get_goal(owner_id, goal_id)
                if not goal.is_active:
                    raise ValidationError("Completed goals cannot be deleted")
                self.storage.delete(self.table_name, goal_id)

        log_action(
            self.logger, "info", f"Goal \"{goal.name}\" deleted",
            owner_id=owner_id, action="delete_goal", resource="goal", goal_id=goal.id,
            extra={"saved_amount": str(goal.saved_amount.amount)}
        )

    def delete_owner_goals(self, owner_id: str) -> int:
        goals = self.list_goals(owner_id)
        for goal in goals:
            self.storage.delete(self.table_name, goal.id)
        return len(goals)

    def record_allocation(self, goal: Goal, amount: Money, now: datetime) -> bool:
        """
        Add an allocation to a goal loaded inside the caller's unit

        Returns:
            True if this allocation completed the goal
        """
        if not goal.is_active:
            raise ValidationError(f"Goal \"{goal.name}\" is already completed")
        goal.saved_amount = goal.saved_amount + amount
        just_completed = goal.derive_status(now)
        goal.updated_at = now
        self.save_goal(goal)
        return just_completed

    def save_goal(self, goal: Goal) -> None:
        self.storage.save(self.table_name, goal.id, goal_to_dict(goal))
