"""
Change Order Repository - Data access for change orders.

Amount edits and status moves after approval are refused here and, as a backstop, by the
ORM listener in domain.events.handlers.
"""
import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from progress_billing.models import ChangeOrderRecord, Project
from progress_billing.domain.entities import ChangeOrder, ChangeOrderStatus
from progress_billing.domain.exceptions import (
    ChangeOrderNotFoundError,
    ImmutableFieldError,
    InvalidTransitionError,
    ValidationError,
)
from progress_billing.domain.money import cents_to_money, money_to_cents
from .base_repository import BaseRepository


def change_order_to_entity(record: ChangeOrderRecord) -> ChangeOrder:
    return ChangeOrder(
        id=record.uuid,
        number=record.number,
        description=record.description or "",
        amount=cents_to_money(record.amount_cents),
        status=ChangeOrderStatus(record.status),
        date_initiated=record.date_initiated,
        vendor=record.vendor,
        reason=record.reason,
        schedule_impact=record.schedule_impact,
    )


def coerce_change_order_status(value) -> ChangeOrderStatus:
    """
    Raises:
        ValidationError: If value names no change order status
    """
    if isinstance(value, ChangeOrderStatus):
        return value
    for status in ChangeOrderStatus:
        if str(value).lower() in (status.value.lower(), status.name.lower()):
            return status
    raise ValidationError('status', f"unknown change order status '{value}'")


class ChangeOrderRepository(BaseRepository[ChangeOrderRecord]):
    """Repository for change orders."""

    def __init__(self, session: Session):
        super().__init__(session, ChangeOrderRecord)

    def exists(self, **criteria) -> bool:
        return self._exists(**criteria)

    def get_or_raise(self, change_order_uuid: str) -> ChangeOrderRecord:
        record = self.get_by_uuid(change_order_uuid)
        if record is None:
            raise ChangeOrderNotFoundError(change_order_uuid)
        return record

    def list_for_project(self, project: Project) -> List[ChangeOrder]:
        records = self.session.query(ChangeOrderRecord).filter(
            ChangeOrderRecord.project_id == project.id
        ).order_by(ChangeOrderRecord.number).all()
        return [change_order_to_entity(r) for r in records]

    def create(
        self,
        project: Project,
        number: str,
        amount: Decimal,
        description: str = "",
        status: ChangeOrderStatus = ChangeOrderStatus.SUBMITTED,
        date_initiated: Optional[date] = None,
        vendor: Optional[str] = None,
        reason: Optional[str] = None,
        schedule_impact: Optional[str] = None,
    ) -> ChangeOrder:
        """
        Record a new change order.

        Raises:
            ValidationError: If the number is already used on the project
        """
        if self.exists(project_id=project.id, number=number):
            raise ValidationError('number', f"change order '{number}' already exists")

        record = ChangeOrderRecord(
            uuid=str(uuid.uuid4()),
            project_id=project.id,
            number=number,
            description=description,
            status=coerce_change_order_status(status).value,
            amount_cents=money_to_cents(amount),
            date_initiated=date_initiated,
            vendor=vendor,
            reason=reason,
            schedule_impact=schedule_impact,
        )
        self.add(record)
        self.flush()
        return change_order_to_entity(record)

    def update_status(self, change_order_uuid: str, status) -> ChangeOrder:
        """
        Move a change order to another status. Approved is terminal.

        Raises:
            InvalidTransitionError: If the change order is already approved
            ValidationError: If status names no change order status
        """
        record = self.get_or_raise(change_order_uuid)
        target = coerce_change_order_status(status)
        if record.status == ChangeOrderStatus.APPROVED.value and target != ChangeOrderStatus.APPROVED:
            raise InvalidTransitionError('Change order', record.status, target.value)
        record.status = target.value
        self.flush()
        return change_order_to_entity(record)

    def update_amount(self, change_order_uuid: str, amount: Decimal) -> ChangeOrder:
        """
        Raises:
            ImmutableFieldError: If the change order is already approved
        """
        record = self.get_or_raise(change_order_uuid)
        if record.status == ChangeOrderStatus.APPROVED.value:
            raise ImmutableFieldError(
                field_name='amount',
                entity_type='Approved change order',
                hint="Raise a new change order to adjust the contract sum.",
            )
        record.amount_cents = money_to_cents(amount)
        self.flush()
        return change_order_to_entity(record)
