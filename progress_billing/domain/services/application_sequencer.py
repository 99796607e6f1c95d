"""
Application Sequencer - owns the ordered applications of one project.

Implements the sequencing rules:
- sequence numbers are 1..N with no gaps or duplicates
- new applications are seeded from the current SOV, status DRAFT
- status moves forward one step at a time (DRAFT -> SUBMITTED -> APPROVED -> PAID)
- lines are read-only once an application leaves DRAFT

Every operation validates before it changes anything, so a failed call
leaves the sequence untouched.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Union

from progress_billing.domain.entities import (
    Application,
    ApplicationStatus,
    ScheduleOfValuesItem,
)
from progress_billing.domain.exceptions import (
    ApplicationNotFoundError,
    InvalidPeriodError,
    InvalidTransitionError,
    InvariantViolationError,
    ValidationError,
)
from .continuation_sheet import ContinuationSheetCalculator, LineUpdateResult

logger = logging.getLogger(__name__)


def coerce_status(value: Union[ApplicationStatus, str]) -> ApplicationStatus:
    """
    Accept an ApplicationStatus, its value ('Submitted') or its name ('SUBMITTED').

    Raises:
        ValidationError: If value names no status
    """
    if isinstance(value, ApplicationStatus):
        return value
    for status in ApplicationStatus:
        if value in (status.value, status.name) or str(value).lower() == status.value.lower():
            return status
    raise ValidationError('status', f"unknown application status '{value}'")


def validate_period(period_start: date, period_end: date) -> None:
    """
    Raises:
        ValidationError: If either bound is missing
        InvalidPeriodError: If period_end is before period_start
    """
    if period_start is None or period_end is None:
        raise ValidationError('period', "period_start and period_end are required")
    if period_end < period_start:
        raise InvalidPeriodError(period_start, period_end)


class ApplicationListing:
    """
    Lazy, finite, restartable view of applications in sequence order.

    The source is read each time iteration starts, so two passes may
    observe different snapshots if a mutation happened in between.
    """

    def __init__(self, source: Callable[[], Iterable[Application]]):
        self._source = source

    def __iter__(self) -> Iterator[Application]:
        for application in sorted(self._source(), key=lambda a: a.sequence_number):
            yield application


class ApplicationSequencer:
    """
    In-memory owner of one project's application sequence.

    Args:
        project_id: Project the applications belong to
        applications: Existing applications (any order)
        calculator: Continuation sheet calculator for seeding and line edits

    Raises:
        InvariantViolationError: If existing sequence numbers are not 1..N
    """

    def __init__(
        self,
        project_id: str,
        applications: Iterable[Application] = (),
        calculator: Optional[ContinuationSheetCalculator] = None,
    ):
        self.project_id = project_id
        self.calculator = calculator or ContinuationSheetCalculator()
        self._applications: Dict[str, Application] = {a.id: a for a in applications}
        self._check_contiguous()

    def _check_contiguous(self) -> None:
        numbers = sorted(a.sequence_number for a in self._applications.values())
        expected = list(range(1, len(numbers) + 1))
        if numbers != expected:
            raise InvariantViolationError(
                'application_sequence',
                expected=str(expected),
                actual=str(numbers),
            )

    # =========================================================================
    # Queries
    # =========================================================================

    def next_sequence_number(self) -> int:
        if not self._applications:
            return 1
        return max(a.sequence_number for a in self._applications.values()) + 1

    def get(self, application_id: str) -> Application:
        """
        Raises:
            ApplicationNotFoundError: If the id is unknown
        """
        application = self._applications.get(application_id)
        if application is None:
            raise ApplicationNotFoundError(application_id)
        return application

    def list_applications(self) -> ApplicationListing:
        return ApplicationListing(lambda: list(self._applications.values()))

    def history_before(self, application: Application) -> List[Application]:
        """Applications with a smaller sequence number, ascending."""
        return [
            a for a in self.list_applications()
            if a.sequence_number < application.sequence_number
        ]

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_application(
        self,
        period_start: date,
        period_end: date,
        sov_items: Iterable[ScheduleOfValuesItem],
        retainage_percent: Optional[Decimal] = None,
    ) -> Application:
        """
        Append a new DRAFT application seeded from the SOV.

        Raises:
            InvalidPeriodError: If period_end < period_start
            InvalidAmountError: If retainage_percent is outside [0, 100]
        """
        validate_period(period_start, period_end)
        lines = self.calculator.seed_lines(sov_items, retainage_percent)

        application = Application(
            project_id=self.project_id,
            sequence_number=self.next_sequence_number(),
            period_start=period_start,
            period_end=period_end,
            status=ApplicationStatus.DRAFT,
            lines=lines,
        )
        self._applications[application.id] = application

        logger.info(
            f"Created application #{application.sequence_number} for project "
            f"{self.project_id} ({period_start} to {period_end}, {len(lines)} lines)"
        )
        return application

    def transition_status(
        self,
        application_id: str,
        new_status: Union[ApplicationStatus, str],
    ) -> Application:
        """
        Move an application one step forward.

        Raises:
            ApplicationNotFoundError: If the id is unknown
            InvalidTransitionError: On a backward, repeated or skipped step, or an
                unknown target status
        """
        application = self.get(application_id)
        try:
            target = coerce_status(new_status)
        except ValidationError:
            raise InvalidTransitionError('Application', application.status.value, str(new_status))

        if not application.status.can_transition_to(target):
            raise InvalidTransitionError('Application', application.status.value, target.value)

        previous = application.status
        application.status = target
        logger.info(
            f"Application #{application.sequence_number} ({application.id}) "
            f"moved {previous.value} -> {target.value}"
        )
        return application

    def update_line(
        self,
        application_id: str,
        line_id: str,
        work_completed_this_period=None,
        materials_stored_this_period=None,
        retainage_percent=None,
    ) -> LineUpdateResult:
        """
        Edit the period quantities or retainage of a DRAFT application's line.

        Raises:
            ApplicationNotFoundError: If the application id is unknown
            ApplicationLockedError: If the application is not DRAFT
            ApplicationLineNotFoundError: If the line id is unknown
            InvalidAmountError: On negative quantities or out-of-range retainage
        """
        application = self.get(application_id)
        application.ensure_editable()
        line = application.get_line(line_id)

        result = self.calculator.apply_update(
            line,
            work_completed_this_period=work_completed_this_period,
            materials_stored_this_period=materials_stored_this_period,
            retainage_percent=retainage_percent,
        )
        application.replace_line(result.line)
        return result
