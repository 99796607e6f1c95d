"""
Payment Application Entities - G702 application and its G703 lines.

Funds flow: SOV Item -> Application Line -> Application -> Certificate

Line derived fields are computed from the entered quantities, so the
line-level identities hold for every instance:
- total_completed_and_stored = work_completed_this_period + materials_stored_this_period
- total_retainage = round(retainage_percent / 100 * total_completed_and_stored, 2)
- balance_to_finish = scheduled_value - total_completed_and_stored
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from ..money import ZERO, CENT, HUNDRED, percent_of, sum_money
from ..exceptions import ApplicationLockedError, ApplicationLineNotFoundError


class ApplicationStatus(Enum):
    """
    Application workflow state.

    Transitions are forward-only and cannot skip a step:
    DRAFT -> SUBMITTED -> APPROVED -> PAID
    """
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    PAID = "Paid"

    @property
    def next_status(self) -> Optional["ApplicationStatus"]:
        return _TRANSITIONS[self]

    def can_transition_to(self, new_status: "ApplicationStatus") -> bool:
        return self.next_status is new_status

    @property
    def is_certified(self) -> bool:
        """Approved or Paid applications count as issued certificates."""
        return self in (ApplicationStatus.APPROVED, ApplicationStatus.PAID)


_TRANSITIONS = {
    ApplicationStatus.DRAFT: ApplicationStatus.SUBMITTED,
    ApplicationStatus.SUBMITTED: ApplicationStatus.APPROVED,
    ApplicationStatus.APPROVED: ApplicationStatus.PAID,
    ApplicationStatus.PAID: None,
}


@dataclass(frozen=True)
class ApplicationLine:
    """
    Continuation sheet (G703) line.

    Attributes:
        id: Unique identifier
        sov_item_id: Referenced SOV item (read-only from the line's side)
        description: SOV description at creation time
        scheduled_value: Copied from the SOV item at creation time
        work_completed_this_period: Work completed (>= 0)
        materials_stored_this_period: Materials presently stored (>= 0)
        retainage_percent: Retainage withheld, in [0, 100]
    """

    id: str = field(default_factory=lambda: str(uuid4()))
    sov_item_id: str = ""
    description: str = ""
    scheduled_value: Decimal = ZERO
    work_completed_this_period: Decimal = ZERO
    materials_stored_this_period: Decimal = ZERO
    retainage_percent: Decimal = Decimal("10.00")

    @property
    def total_completed_and_stored(self) -> Decimal:
        return self.work_completed_this_period + self.materials_stored_this_period

    @property
    def total_retainage(self) -> Decimal:
        return percent_of(self.retainage_percent, self.total_completed_and_stored)

    @property
    def balance_to_finish(self) -> Decimal:
        """May go negative when the line is over-billed."""
        return self.scheduled_value - self.total_completed_and_stored

    @property
    def percent_complete(self) -> Decimal:
        """G703 column G: completed and stored as a percent of scheduled value."""
        if self.scheduled_value == 0:
            return ZERO
        ratio = self.total_completed_and_stored / self.scheduled_value
        return (ratio * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)

    @property
    def is_over_billed(self) -> bool:
        return self.total_completed_and_stored > self.scheduled_value

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'sov_item_id': self.sov_item_id,
            'description': self.description,
            'scheduled_value': str(self.scheduled_value),
            'work_completed_this_period': str(self.work_completed_this_period),
            'materials_stored_this_period': str(self.materials_stored_this_period),
            'total_completed_and_stored': str(self.total_completed_and_stored),
            'percent_complete': str(self.percent_complete),
            'retainage_percent': str(self.retainage_percent),
            'total_retainage': str(self.total_retainage),
            'balance_to_finish': str(self.balance_to_finish),
        }


@dataclass
class Application:
    """
    Payment application (G702) for one billing period.

    Lines are editable only while the application is DRAFT.

    Attributes:
        id: Unique identifier
        project_id: Owning project
        sequence_number: 1-based position in the project's application sequence
        period_start: First day of the billing period
        period_end: Last day of the billing period (>= period_start)
        status: Workflow state
        lines: Continuation sheet lines
    """

    id: str = field(default_factory=lambda: str(uuid4()))
    project_id: str = ""
    sequence_number: int = 1
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    status: ApplicationStatus = ApplicationStatus.DRAFT

    lines: List[ApplicationLine] = field(default_factory=list)

    @property
    def is_locked(self) -> bool:
        return self.status is not ApplicationStatus.DRAFT

    def ensure_editable(self) -> None:
        """
        Raises:
            ApplicationLockedError: If the application is not DRAFT
        """
        if self.is_locked:
            raise ApplicationLockedError(self.id, self.status.value)

    def get_line(self, line_id: str) -> ApplicationLine:
        for line in self.lines:
            if line.id == line_id:
                return line
        raise ApplicationLineNotFoundError(line_id, self.id)

    def replace_line(self, updated: ApplicationLine) -> None:
        """
        Swap in a recomputed line.

        Raises:
            ApplicationLockedError: If the application is not DRAFT
            ApplicationLineNotFoundError: If no line has updated.id
        """
        self.ensure_editable()
        for index, line in enumerate(self.lines):
            if line.id == updated.id:
                self.lines[index] = updated
                return
        raise ApplicationLineNotFoundError(updated.id, self.id)

    def total_completed_and_stored(self) -> Decimal:
        return sum_money(line.total_completed_and_stored for line in self.lines)

    def total_retainage(self) -> Decimal:
        return sum_money(line.total_retainage for line in self.lines)

    def amount_due(self) -> Decimal:
        """Completed and stored less retainage (the applications list column)."""
        return self.total_completed_and_stored() - self.total_retainage()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'sequence_number': self.sequence_number,
            'period_start': self.period_start.isoformat() if self.period_start else None,
            'period_end': self.period_end.isoformat() if self.period_end else None,
            'status': self.status.value,
            'total_completed_and_stored': str(self.total_completed_and_stored()),
            'total_retainage': str(self.total_retainage()),
            'amount_due': str(self.amount_due()),
            'lines': [line.to_dict() for line in self.lines],
        }
