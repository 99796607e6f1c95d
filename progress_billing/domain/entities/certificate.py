"""
Certificate Entity - G702 summary, derived on demand.
"""
from dataclasses import dataclass, asdict
from decimal import Decimal

from ..money import ZERO


@dataclass(frozen=True)
class Certificate:
    """
    Application and Certificate for Payment (G702) figures.

    Never persisted; recomputed from an Application and its project
    context whenever requested.

    Identities:
        contract_sum_to_date = original_contract_sum + net_change_by_change_orders
        total_earned_less_retainage = total_completed_and_stored_to_date - total_retainage
        current_payment_due = total_earned_less_retainage - less_previous_certificates
        balance_to_finish = contract_sum_to_date - total_completed_and_stored_to_date
    """

    application_id: str
    sequence_number: int
    original_contract_sum: Decimal = ZERO
    net_change_by_change_orders: Decimal = ZERO
    contract_sum_to_date: Decimal = ZERO
    total_completed_and_stored_to_date: Decimal = ZERO
    total_retainage: Decimal = ZERO
    total_earned_less_retainage: Decimal = ZERO
    less_previous_certificates: Decimal = ZERO
    current_payment_due: Decimal = ZERO
    balance_to_finish: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            key: str(value) if isinstance(value, Decimal) else value
            for key, value in asdict(self).items()
        }
