"""
Change Order Ledger - net contract adjustment from change orders.

Always re-derived from the change orders passed in; nothing is cached.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List

from progress_billing.domain.entities import ChangeOrder, ChangeOrderStatus
from progress_billing.domain.money import ZERO, sum_money


def net_approved_change_orders(change_orders: Iterable[ChangeOrder]) -> Decimal:
    """Sum of amounts over APPROVED change orders."""
    return sum_money(co.amount for co in change_orders if co.is_approved)


@dataclass(frozen=True)
class ChangeOrderSummary:
    """Per-status totals for a project's change orders."""
    approved: Decimal = ZERO
    submitted: Decimal = ZERO
    pending: Decimal = ZERO
    rejected: Decimal = ZERO
    count: int = 0

    @property
    def pending_exposure(self) -> Decimal:
        """Amount not yet decided (Submitted + Pending)."""
        return self.submitted + self.pending

    def to_dict(self) -> dict:
        return {
            'approved': str(self.approved),
            'submitted': str(self.submitted),
            'pending': str(self.pending),
            'rejected': str(self.rejected),
            'pending_exposure': str(self.pending_exposure),
            'count': self.count,
        }


class ChangeOrderLedger:
    """
    View over a project's change orders.

    Holds the collection it was given and recomputes sums on every call.
    """

    def __init__(self, change_orders: Iterable[ChangeOrder]):
        self._change_orders: List[ChangeOrder] = list(change_orders)

    def __iter__(self):
        return iter(self._change_orders)

    def __len__(self) -> int:
        return len(self._change_orders)

    def net_change(self) -> Decimal:
        return net_approved_change_orders(self._change_orders)

    def totals_by_status(self) -> Dict[ChangeOrderStatus, Decimal]:
        totals = {status: ZERO for status in ChangeOrderStatus}
        for co in self._change_orders:
            totals[co.status] += co.amount
        return totals

    def summary(self) -> ChangeOrderSummary:
        totals = self.totals_by_status()
        return ChangeOrderSummary(
            approved=totals[ChangeOrderStatus.APPROVED],
            submitted=totals[ChangeOrderStatus.SUBMITTED],
            pending=totals[ChangeOrderStatus.PENDING],
            rejected=totals[ChangeOrderStatus.REJECTED],
            count=len(self._change_orders),
        )
