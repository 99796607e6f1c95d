"""
Schedule of Values Builder - derives SOV items from budget categories.

Items already referenced by an application line are never changed. When a
referenced category's label or amount moves, a new item supersedes it so
certified applications keep the numbers they were billed against.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Collection, Iterable, List

from progress_billing.domain.entities import BudgetItem, ScheduleOfValuesItem
from progress_billing.domain.exceptions import InvalidAmountError, ValidationError
from progress_billing.domain.money import to_money

logger = logging.getLogger(__name__)


@dataclass
class SOVRefreshResult:
    """
    Outcome of re-deriving a project's visible Schedule of Values.

    Attributes:
        items: Active SOV items, in budget order
        created: Items that did not exist before (new categories or supersessions)
        updated: Unreferenced items whose label or amount was corrected in place
        retired: Previously active items that are no longer visible
    """
    items: List[ScheduleOfValuesItem] = field(default_factory=list)
    created: List[ScheduleOfValuesItem] = field(default_factory=list)
    updated: List[ScheduleOfValuesItem] = field(default_factory=list)
    retired: List[ScheduleOfValuesItem] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.retired)


class ScheduleOfValuesBuilder:
    """Builds one ScheduleOfValuesItem per budget category."""

    def normalize(self, budget_item: BudgetItem) -> BudgetItem:
        """
        Validate a budget item and quantize its amount to cents.

        Raises:
            ValidationError: If the category label is blank
            InvalidAmountError: If the budget is negative
        """
        if not budget_item.category or not budget_item.category.strip():
            raise ValidationError('category', f"budget item '{budget_item.id}' has no category")
        try:
            amount = to_money(budget_item.original_budget, 'original_budget')
        except (TypeError, ValueError) as e:
            raise InvalidAmountError('original_budget', budget_item.original_budget, str(e))
        if amount < 0:
            raise InvalidAmountError('original_budget', amount)
        return replace(budget_item, category=budget_item.category.strip(), original_budget=amount)

    def build(self, budget_items: Iterable[BudgetItem]) -> List[ScheduleOfValuesItem]:
        """
        Derive a fresh Schedule of Values.

        Args:
            budget_items: Current budget categories for a project

        Returns:
            One item per category with scheduled_value = original_budget
        """
        items = []
        for budget_item in budget_items:
            normalized = self.normalize(budget_item)
            items.append(self._item_for(normalized))
        return items

    def refresh(
        self,
        current_items: Iterable[ScheduleOfValuesItem],
        budget_items: Iterable[BudgetItem],
        referenced_ids: Collection[str],
    ) -> SOVRefreshResult:
        """
        Reconcile the active SOV with the current budget.

        Args:
            current_items: Active SOV items for the project
            budget_items: Current budget categories
            referenced_ids: SOV item ids referenced by any application line

        Returns:
            SOVRefreshResult describing the new active SOV
        """
        by_budget = {item.budget_item_id: item for item in current_items}
        result = SOVRefreshResult()
        seen = set()

        for budget_item in budget_items:
            normalized = self.normalize(budget_item)
            seen.add(normalized.id)
            existing = by_budget.get(normalized.id)

            if existing is None:
                item = self._item_for(normalized)
                result.created.append(item)
            elif existing.matches(normalized):
                item = existing
            elif existing.id in referenced_ids:
                item = self._item_for(normalized)
                result.created.append(item)
                result.retired.append(existing)
                logger.info(
                    f"SOV item '{existing.id}' is referenced by billed lines; "
                    f"superseded by '{item.id}' for category '{normalized.category}'"
                )
            else:
                item = replace(
                    existing,
                    description=normalized.category,
                    scheduled_value=normalized.original_budget,
                )
                result.updated.append(item)

            result.items.append(item)

        for budget_id, item in by_budget.items():
            if budget_id not in seen:
                result.retired.append(item)

        return result

    @staticmethod
    def _item_for(budget_item: BudgetItem) -> ScheduleOfValuesItem:
        return ScheduleOfValuesItem(
            description=budget_item.category,
            scheduled_value=budget_item.original_budget,
            budget_item_id=budget_item.id,
        )


def build_schedule_of_values(budget_items: Iterable[BudgetItem]) -> List[ScheduleOfValuesItem]:
    """Module-level shortcut for ScheduleOfValuesBuilder().build()."""
    return ScheduleOfValuesBuilder().build(budget_items)
