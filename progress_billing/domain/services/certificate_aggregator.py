"""
Certificate Aggregator - computes the G702 summary for an application.

Implements:
1. contract_sum_to_date = original_contract_sum + net approved change orders
2. completed/stored and retainage totals from the target's lines
3. total_earned_less_retainage = completed and stored - retainage
4. less_previous_certificates carried forward from the latest certified
   (Approved or Paid) application with a smaller sequence number
5. current_payment_due = earned less retainage - previous certificates
6. balance_to_finish = contract_sum_to_date - completed and stored

The computation is a pure projection: no input is modified and equal
inputs give equal certificates.
"""
import logging
from decimal import Decimal
from typing import Iterable, Optional

from progress_billing.config import PREVIOUS_CERTIFICATE_BASES
from progress_billing.domain.entities import Application, Certificate, ChangeOrder
from progress_billing.domain.exceptions import ValidationError
from progress_billing.domain.money import ZERO, sum_money, to_money
from .change_order_ledger import net_approved_change_orders

logger = logging.getLogger(__name__)


class CertificateAggregator:
    """
    G702 engine.

    Args:
        previous_certificates_basis: How prior certificates are carried forward:
            'current_payment_due' - the prior certificate's current payment due
            'earned_less_retainage' - the prior certificate's cumulative earned
                less retainage (standard AIA carry-forward)
            'none' - always zero, every application billed as if it were first
    """

    def __init__(self, previous_certificates_basis: str = "current_payment_due"):
        if previous_certificates_basis not in PREVIOUS_CERTIFICATE_BASES:
            raise ValidationError(
                'previous_certificates_basis',
                f"expected one of {', '.join(PREVIOUS_CERTIFICATE_BASES)}, "
                f"got '{previous_certificates_basis}'"
            )
        self.previous_certificates_basis = previous_certificates_basis

    @staticmethod
    def earned_less_retainage(application: Application) -> Decimal:
        return application.total_completed_and_stored() - application.total_retainage()

    def previous_certificates(
        self,
        application: Application,
        history: Iterable[Application],
    ) -> Decimal:
        """
        Amount of certificates issued before this application.

        Walks certified predecessors in sequence order, chaining each
        one's payment due onto the next.
        """
        if self.previous_certificates_basis == "none":
            return ZERO

        carried = ZERO
        predecessors = sorted(
            (a for a in history
             if a.sequence_number < application.sequence_number and a.status.is_certified),
            key=lambda a: a.sequence_number,
        )
        for prior in predecessors:
            earned = self.earned_less_retainage(prior)
            if self.previous_certificates_basis == "earned_less_retainage":
                carried = earned
            else:
                carried = earned - carried
        return carried

    def compute(
        self,
        application: Application,
        history: Iterable[Application] = (),
        change_orders: Iterable[ChangeOrder] = (),
        original_contract_sum: Optional[Decimal] = None,
    ) -> Certificate:
        """
        Compute the certificate for an application.

        Args:
            application: Target application
            history: The project's applications (the target may be included;
                only smaller sequence numbers are considered)
            change_orders: The project's change orders, any status
            original_contract_sum: Contract sum before change orders; defaults
                to the scheduled values on the target's lines

        Returns:
            Certificate for the application
        """
        if original_contract_sum is None:
            original = sum_money(line.scheduled_value for line in application.lines)
        else:
            original = to_money(original_contract_sum, 'original_contract_sum')

        net_change = net_approved_change_orders(change_orders)
        contract_sum_to_date = original + net_change

        completed = application.total_completed_and_stored()
        retainage = application.total_retainage()
        earned = completed - retainage
        previous = self.previous_certificates(application, history)

        certificate = Certificate(
            application_id=application.id,
            sequence_number=application.sequence_number,
            original_contract_sum=original,
            net_change_by_change_orders=net_change,
            contract_sum_to_date=contract_sum_to_date,
            total_completed_and_stored_to_date=completed,
            total_retainage=retainage,
            total_earned_less_retainage=earned,
            less_previous_certificates=previous,
            current_payment_due=earned - previous,
            balance_to_finish=contract_sum_to_date - completed,
        )
        logger.debug(
            f"Certificate for application #{application.sequence_number}: "
            f"due {certificate.current_payment_due}, balance {certificate.balance_to_finish}"
        )
        return certificate
