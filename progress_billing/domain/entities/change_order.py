"""
Change Order Entity - contract modification adjusting the contract sum.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from ..money import ZERO


class ChangeOrderStatus(Enum):
    """Approval state of a change order. Only APPROVED moves the contract sum."""
    SUBMITTED = "Submitted"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


@dataclass(frozen=True)
class ChangeOrder:
    """
    Contract modification. Positive amount adds scope, negative deducts.

    The amount is immutable once the change order is approved.

    Attributes:
        id: Unique identifier
        number: CO number (e.g., 'CO-001')
        description: Scope description
        amount: Signed amount
        status: Approval status
        date_initiated: Date the change order was raised
        vendor: Originating vendor, if any
        reason: Reason for the change
        schedule_impact: Free-text schedule impact
    """

    id: str = field(default_factory=lambda: str(uuid4()))
    number: str = ""
    description: str = ""
    amount: Decimal = ZERO
    status: ChangeOrderStatus = ChangeOrderStatus.SUBMITTED
    date_initiated: Optional[date] = None
    vendor: Optional[str] = None
    reason: Optional[str] = None
    schedule_impact: Optional[str] = None

    @property
    def is_approved(self) -> bool:
        return self.status is ChangeOrderStatus.APPROVED

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'number': self.number,
            'description': self.description,
            'amount': str(self.amount),
            'status': self.status.value,
            'date_initiated': self.date_initiated.isoformat() if self.date_initiated else None,
            'vendor': self.vendor,
            'reason': self.reason,
            'schedule_impact': self.schedule_impact,
        }
