"""
Unit Tests for application sequencing and status workflow.

Tests business rules:
- Sequence numbers 1..N without gaps
- New applications start DRAFT with zeroed lines copied from the SOV
- Forward-only, single-step status transitions
- Lines locked once the application leaves DRAFT
"""
import pytest
from datetime import date
from decimal import Decimal

from progress_billing.domain.entities import (
    Application,
    ApplicationStatus,
    ScheduleOfValuesItem,
)
from progress_billing.domain.exceptions import (
    ApplicationLineNotFoundError,
    ApplicationLockedError,
    ApplicationNotFoundError,
    InvalidAmountError,
    InvalidPeriodError,
    InvalidTransitionError,
    InvariantViolationError,
    ValidationError,
)
from progress_billing.domain.services import ApplicationSequencer, coerce_status


@pytest.fixture
def sov():
    return [
        ScheduleOfValuesItem(id="sov-1", description="Concrete", scheduled_value=Decimal("100000")),
        ScheduleOfValuesItem(id="sov-2", description="Electrical", scheduled_value=Decimal("40000")),
    ]


@pytest.fixture
def sequencer():
    return ApplicationSequencer("project-1")


def create(sequencer, sov, month=1):
    return sequencer.create_application(date(2024, month, 1), date(2024, month, 28), sov)


def advance_to(sequencer, application, target):
    while application.status is not target:
        sequencer.transition_status(application.id, application.status.next_status)


class TestCreateApplication:

    def test_first_application(self, sequencer, sov):
        application = create(sequencer, sov)

        assert application.sequence_number == 1
        assert application.status is ApplicationStatus.DRAFT
        assert application.project_id == "project-1"
        assert [l.sov_item_id for l in application.lines] == ["sov-1", "sov-2"]
        assert [l.scheduled_value for l in application.lines] == [Decimal("100000"), Decimal("40000")]
        assert application.total_completed_and_stored() == Decimal("0.00")

    def test_sequence_numbers_contiguous(self, sequencer, sov):
        numbers = [create(sequencer, sov, month).sequence_number for month in range(1, 5)]
        assert numbers == [1, 2, 3, 4]

    def test_single_day_period_allowed(self, sequencer, sov):
        application = sequencer.create_application(date(2024, 3, 1), date(2024, 3, 1), sov)
        assert application.period_start == application.period_end

    def test_reversed_period_rejected(self, sequencer, sov):
        with pytest.raises(InvalidPeriodError):
            sequencer.create_application(date(2024, 3, 31), date(2024, 3, 1), sov)
        assert sequencer.next_sequence_number() == 1

    def test_missing_period_rejected(self, sequencer, sov):
        with pytest.raises(ValidationError):
            sequencer.create_application(None, date(2024, 3, 1), sov)

    def test_invalid_retainage_leaves_sequence_unchanged(self, sequencer, sov):
        with pytest.raises(InvalidAmountError):
            sequencer.create_application(date(2024, 1, 1), date(2024, 1, 31), sov, Decimal("150"))
        assert list(sequencer.list_applications()) == []

    def test_gap_in_existing_sequence_detected(self):
        with pytest.raises(InvariantViolationError):
            ApplicationSequencer("p", [Application(sequence_number=1), Application(sequence_number=3)])


class TestStatusTransitions:

    def test_full_workflow(self, sequencer, sov):
        application = create(sequencer, sov)
        for target in ("Submitted", "Approved", "Paid"):
            sequencer.transition_status(application.id, target)
        assert application.status is ApplicationStatus.PAID

    def test_skip_rejected(self, sequencer, sov):
        application = create(sequencer, sov)
        with pytest.raises(InvalidTransitionError):
            sequencer.transition_status(application.id, ApplicationStatus.APPROVED)
        assert application.status is ApplicationStatus.DRAFT

    def test_backward_rejected(self, sequencer, sov):
        application = create(sequencer, sov)
        sequencer.transition_status(application.id, ApplicationStatus.SUBMITTED)
        with pytest.raises(InvalidTransitionError):
            sequencer.transition_status(application.id, ApplicationStatus.DRAFT)

    def test_repeat_rejected(self, sequencer, sov):
        application = create(sequencer, sov)
        sequencer.transition_status(application.id, ApplicationStatus.SUBMITTED)
        with pytest.raises(InvalidTransitionError):
            sequencer.transition_status(application.id, ApplicationStatus.SUBMITTED)

    def test_paid_is_terminal(self):
        assert ApplicationStatus.PAID.next_status is None

    def test_unknown_application(self, sequencer):
        with pytest.raises(ApplicationNotFoundError):
            sequencer.transition_status("missing", ApplicationStatus.SUBMITTED)

    def test_unknown_target_rejected(self, sequencer, sov):
        application = create(sequencer, sov)
        with pytest.raises(InvalidTransitionError) as exc_info:
            sequencer.transition_status(application.id, "Cancelled")
        assert "Cancelled" in exc_info.value.message
        assert application.status is ApplicationStatus.DRAFT

    def test_coerce_status(self):
        assert coerce_status("SUBMITTED") is ApplicationStatus.SUBMITTED
        assert coerce_status("paid") is ApplicationStatus.PAID
        with pytest.raises(ValidationError):
            coerce_status("Cancelled")


class TestLineEdits:

    def test_update_draft_line(self, sequencer, sov):
        application = create(sequencer, sov)
        line_id = application.lines[0].id

        result = sequencer.update_line(application.id, line_id, work_completed_this_period=Decimal("20000"))

        assert result.line.total_retainage == Decimal("2000.00")
        assert application.get_line(line_id).work_completed_this_period == Decimal("20000.00")

    @pytest.mark.parametrize("status", [
        ApplicationStatus.SUBMITTED, ApplicationStatus.APPROVED, ApplicationStatus.PAID,
    ])
    def test_line_locked_after_draft(self, sequencer, sov, status):
        application = create(sequencer, sov)
        advance_to(sequencer, application, status)

        with pytest.raises(ApplicationLockedError):
            sequencer.update_line(
                application.id, application.lines[0].id, work_completed_this_period=Decimal("1")
            )
        assert application.lines[0].work_completed_this_period == Decimal("0.00")

    def test_unknown_line(self, sequencer, sov):
        application = create(sequencer, sov)
        with pytest.raises(ApplicationLineNotFoundError):
            sequencer.update_line(application.id, "missing", work_completed_this_period=Decimal("1"))


class TestListing:

    def test_listing_in_sequence_order(self, sov):
        apps = [Application(sequence_number=n) for n in (3, 1, 2)]
        sequencer = ApplicationSequencer("p", apps)
        assert [a.sequence_number for a in sequencer.list_applications()] == [1, 2, 3]

    def test_listing_is_restartable_and_lazy(self, sequencer, sov):
        listing = sequencer.list_applications()
        assert list(listing) == []

        create(sequencer, sov)
        assert [a.sequence_number for a in listing] == [1]
        assert [a.sequence_number for a in listing] == [1]

    def test_history_before(self, sequencer, sov):
        first, second, third = (create(sequencer, sov, m) for m in (1, 2, 3))
        assert [a.id for a in sequencer.history_before(third)] == [first.id, second.id]
        assert sequencer.history_before(first) == []
