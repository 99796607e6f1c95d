"""
Schedule of Values Entities - the baseline progress is billed against.

A BudgetItem is what the budgeting collaborator hands us; a
ScheduleOfValuesItem is the immutable snapshot derived from it.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from ..money import ZERO


def _new_id() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class BudgetItem:
    """
    Project budget category as supplied by the budgeting collaborator.

    Attributes:
        id: Budget item identifier
        category: Category label (e.g., 'Concrete')
        original_budget: Budgeted amount
    """

    id: str = field(default_factory=_new_id)
    category: str = ""
    original_budget: Decimal = ZERO


@dataclass(frozen=True)
class ScheduleOfValuesItem:
    """
    One Schedule of Values line (G703 column A/B/C).

    Immutable once created. A change to the underlying budget category
    produces a new item; existing items are never edited.

    Attributes:
        id: Unique identifier
        description: Category label copied from the budget item
        scheduled_value: Scheduled value (>= 0)
        budget_item_id: Budget item this was derived from
    """

    id: str = field(default_factory=_new_id)
    description: str = ""
    scheduled_value: Decimal = ZERO
    budget_item_id: Optional[str] = None

    def matches(self, budget_item: BudgetItem) -> bool:
        """True when this item still reflects the budget item's label and amount."""
        return (
            self.budget_item_id == budget_item.id
            and self.description == budget_item.category
            and self.scheduled_value == budget_item.original_budget
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'description': self.description,
            'scheduled_value': str(self.scheduled_value),
            'budget_item_id': self.budget_item_id,
        }
