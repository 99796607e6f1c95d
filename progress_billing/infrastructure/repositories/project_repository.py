"""
Project Repository - Data access for projects, budget categories and SOV items.

Implements repository pattern for project operations with:
- Budget category replacement (collaborator input)
- Active Schedule of Values persistence
- Record <-> domain entity translation
"""
import uuid
from decimal import Decimal
from typing import Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from progress_billing.models import (
    Project,
    BudgetItemRecord,
    SOVItemRecord,
    ApplicationLineRecord,
)
from progress_billing.domain.entities import BudgetItem, ScheduleOfValuesItem
from progress_billing.domain.exceptions import ProjectNotFoundError, ValidationError
from progress_billing.domain.money import cents_to_money, money_to_cents
from .base_repository import BaseRepository


def budget_item_to_entity(record: BudgetItemRecord) -> BudgetItem:
    return BudgetItem(
        id=record.uuid,
        category=record.category,
        original_budget=cents_to_money(record.original_budget_cents),
    )


def sov_item_to_entity(record: SOVItemRecord) -> ScheduleOfValuesItem:
    return ScheduleOfValuesItem(
        id=record.uuid,
        description=record.description,
        scheduled_value=cents_to_money(record.scheduled_value_cents),
        budget_item_id=record.budget_item_uuid,
    )


class ProjectRepository(BaseRepository[Project]):
    """Repository for projects and the budget/SOV data hanging off them."""

    def __init__(self, session: Session):
        super().__init__(session, Project)

    def exists(self, **criteria) -> bool:
        return self._exists(**criteria)

    def get_or_raise(self, project_uuid: str) -> Project:
        """
        Raises:
            ProjectNotFoundError: If no project has this UUID
        """
        project = self.get_by_uuid(project_uuid)
        if project is None:
            raise ProjectNotFoundError(project_uuid)
        return project

    def create(
        self,
        name: str,
        code: str,
        contract_sum: Optional[Decimal] = None,
        description: Optional[str] = None,
    ) -> Project:
        """
        Create a project.

        Raises:
            ValidationError: If the code is already used
        """
        if self.exists(code=code):
            raise ValidationError('code', f"project code '{code}' already exists")

        project = Project(
            uuid=str(uuid.uuid4()),
            name=name,
            code=code,
            description=description,
            contract_sum_cents=money_to_cents(contract_sum) if contract_sum is not None else None,
        )
        self.add(project)
        return project

    def contract_sum(self, project: Project) -> Optional[Decimal]:
        if project.contract_sum_cents is None:
            return None
        return cents_to_money(project.contract_sum_cents)

    # =========================================================================
    # Budget Categories
    # =========================================================================

    def get_budget_items(self, project: Project) -> List[BudgetItem]:
        records = self.session.query(BudgetItemRecord).filter(
            BudgetItemRecord.project_id == project.id
        ).order_by(BudgetItemRecord.position, BudgetItemRecord.id).all()
        return [budget_item_to_entity(r) for r in records]

    def replace_budget_items(self, project: Project, items: Iterable[BudgetItem]) -> List[BudgetItem]:
        """
        Replace the project's budget categories.

        Existing categories are matched by id and updated; missing ones are
        removed. SOV items are untouched until the next refresh.
        """
        existing = {
            r.uuid: r for r in self.session.query(BudgetItemRecord).filter(
                BudgetItemRecord.project_id == project.id
            ).all()
        }
        keep = set()
        for position, item in enumerate(items):
            record = existing.get(item.id)
            if record is None:
                record = BudgetItemRecord(uuid=item.id, project_id=project.id)
                self.add(record)
            record.category = item.category
            record.original_budget_cents = money_to_cents(item.original_budget)
            record.position = position
            keep.add(item.id)

        for item_uuid, record in existing.items():
            if item_uuid not in keep:
                self.delete(record)

        self.flush()
        return self.get_budget_items(project)

    # =========================================================================
    # Schedule of Values
    # =========================================================================

    def _active_sov_records(self, project: Project) -> List[SOVItemRecord]:
        return self.session.query(SOVItemRecord).filter(
            SOVItemRecord.project_id == project.id,
            SOVItemRecord.is_active.is_(True),
        ).order_by(SOVItemRecord.position, SOVItemRecord.id).all()

    def get_active_sov_items(self, project: Project) -> List[ScheduleOfValuesItem]:
        return [sov_item_to_entity(r) for r in self._active_sov_records(project)]

    def get_referenced_sov_ids(self, project: Project) -> Set[str]:
        """UUIDs of SOV items referenced by any application line."""
        rows = self.session.query(SOVItemRecord.uuid).join(
            ApplicationLineRecord, ApplicationLineRecord.sov_item_id == SOVItemRecord.id
        ).filter(SOVItemRecord.project_id == project.id).distinct().all()
        return {row[0] for row in rows}

    def save_sov_refresh(self, project: Project, result) -> None:
        """Persist the outcome of ScheduleOfValuesBuilder.refresh()."""
        records = {
            r.uuid: r for r in self.session.query(SOVItemRecord).filter(
                SOVItemRecord.project_id == project.id
            ).all()
        }

        for item in result.retired:
            record = records.get(item.id)
            if record is not None:
                record.is_active = False

        for position, item in enumerate(result.items):
            record = records.get(item.id)
            if record is None:
                record = SOVItemRecord(
                    uuid=item.id,
                    project_id=project.id,
                    budget_item_uuid=item.budget_item_id,
                    description=item.description,
                    scheduled_value_cents=money_to_cents(item.scheduled_value),
                )
                self.add(record)
            elif item in result.updated:
                record.description = item.description
                record.scheduled_value_cents = money_to_cents(item.scheduled_value)
            record.position = position
            record.is_active = True

        self.flush()
