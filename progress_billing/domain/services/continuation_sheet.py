"""
Continuation Sheet Calculator - G703 line arithmetic and sheet totals.

Implements the line rules:
- Period quantities must be non-negative
- Retainage percent must be within [0, 100]
- Over-billing (completed and stored > scheduled value) is allowed but
  reported back to the caller as a warning
- Sheet totals are plain sums over lines
"""
import logging
from dataclasses import dataclass, field, replace, asdict
from decimal import Decimal
from typing import Iterable, List, Optional

from progress_billing.domain.entities import ApplicationLine, ScheduleOfValuesItem
from progress_billing.domain.exceptions import InvalidAmountError
from progress_billing.domain.money import MAX_AMOUNT, ZERO, to_money, to_percent, sum_money

logger = logging.getLogger(__name__)

DEFAULT_RETAINAGE_PERCENT = Decimal("10.00")


@dataclass
class LineUpdateResult:
    """A recomputed line plus any warnings the caller should act on."""
    line: ApplicationLine
    warnings: List[str] = field(default_factory=list)

    @property
    def over_billed(self) -> bool:
        return self.line.is_over_billed


@dataclass(frozen=True)
class ContinuationSheetTotals:
    """Column totals of a continuation sheet."""
    scheduled_value: Decimal = ZERO
    work_completed_this_period: Decimal = ZERO
    materials_stored_this_period: Decimal = ZERO
    total_completed_and_stored: Decimal = ZERO
    total_retainage: Decimal = ZERO
    balance_to_finish: Decimal = ZERO

    def to_dict(self) -> dict:
        return {key: str(value) for key, value in asdict(self).items()}


class ContinuationSheetCalculator:
    """
    Line-level arithmetic for payment applications.

    Args:
        default_retainage_percent: Retainage seeded on new lines
        warn_on_overbilling: Log a warning when a line is over-billed
    """

    def __init__(
        self,
        default_retainage_percent: Decimal = DEFAULT_RETAINAGE_PERCENT,
        warn_on_overbilling: bool = True,
    ):
        self.default_retainage_percent = self.validate_retainage(default_retainage_percent)
        self.warn_on_overbilling = warn_on_overbilling

    # =========================================================================
    # Validation
    # =========================================================================

    @staticmethod
    def validate_quantity(field_name: str, value) -> Decimal:
        """
        Raises:
            InvalidAmountError: If value is not a number or is negative
        """
        try:
            amount = to_money(value, field_name)
        except (TypeError, ValueError) as e:
            raise InvalidAmountError(field_name, value, str(e))
        if amount < 0:
            raise InvalidAmountError(field_name, amount)
        return amount

    @staticmethod
    def validate_retainage(value) -> Decimal:
        """
        Raises:
            InvalidAmountError: If value is not a number or outside [0, 100]
        """
        try:
            percent = to_percent(value, 'retainage_percent')
        except (TypeError, ValueError) as e:
            raise InvalidAmountError('retainage_percent', value, str(e))
        if percent < 0 or percent > 100:
            raise InvalidAmountError('retainage_percent', percent, "must be between 0 and 100")
        return percent

    # =========================================================================
    # Line Operations
    # =========================================================================

    def seed_lines(
        self,
        sov_items: Iterable[ScheduleOfValuesItem],
        retainage_percent: Optional[Decimal] = None,
    ) -> List[ApplicationLine]:
        """
        Create zeroed lines for a new application from the current SOV.

        scheduled_value is copied so later SOV changes never move the
        numbers of this application.
        """
        percent = (
            self.default_retainage_percent
            if retainage_percent is None
            else self.validate_retainage(retainage_percent)
        )
        return [
            ApplicationLine(
                sov_item_id=item.id,
                description=item.description,
                scheduled_value=item.scheduled_value,
                work_completed_this_period=ZERO,
                materials_stored_this_period=ZERO,
                retainage_percent=percent,
            )
            for item in sov_items
        ]

    def apply_update(
        self,
        line: ApplicationLine,
        work_completed_this_period=None,
        materials_stored_this_period=None,
        retainage_percent=None,
    ) -> LineUpdateResult:
        """
        Recompute a line with new inputs. Omitted inputs keep their value.

        Every input is validated before anything changes.

        Raises:
            InvalidAmountError: On a negative quantity or out-of-range percent,
                or when work plus materials exceeds MAX_AMOUNT
        """
        changes = {}
        if work_completed_this_period is not None:
            changes['work_completed_this_period'] = self.validate_quantity(
                'work_completed_this_period', work_completed_this_period
            )
        if materials_stored_this_period is not None:
            changes['materials_stored_this_period'] = self.validate_quantity(
                'materials_stored_this_period', materials_stored_this_period
            )
        if retainage_percent is not None:
            changes['retainage_percent'] = self.validate_retainage(retainage_percent)

        updated = replace(line, **changes) if changes else line
        if updated.total_completed_and_stored > MAX_AMOUNT:
            raise InvalidAmountError(
                'total_completed_and_stored',
                updated.total_completed_and_stored,
                f"exceeds the largest storable amount {MAX_AMOUNT}",
            )
        return LineUpdateResult(line=updated, warnings=self.overbilling_warnings(updated))

    def overbilling_warnings(self, line: ApplicationLine) -> List[str]:
        """Warnings for a line billed beyond its scheduled value."""
        if not line.is_over_billed:
            return []
        message = (
            f"Line '{line.description or line.id}' is over-billed: completed and stored "
            f"{line.total_completed_and_stored} exceeds scheduled value {line.scheduled_value}"
        )
        if self.warn_on_overbilling:
            logger.warning(message)
        return [message]

    # =========================================================================
    # Sheet Totals
    # =========================================================================

    @staticmethod
    def totals(lines: Iterable[ApplicationLine]) -> ContinuationSheetTotals:
        """Sum every column of the sheet."""
        lines = list(lines)
        return ContinuationSheetTotals(
            scheduled_value=sum_money(l.scheduled_value for l in lines),
            work_completed_this_period=sum_money(l.work_completed_this_period for l in lines),
            materials_stored_this_period=sum_money(l.materials_stored_this_period for l in lines),
            total_completed_and_stored=sum_money(l.total_completed_and_stored for l in lines),
            total_retainage=sum_money(l.total_retainage for l in lines),
            balance_to_finish=sum_money(l.balance_to_finish for l in lines),
        )
