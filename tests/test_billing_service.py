"""
Integration Tests for the progress billing service over SQLAlchemy.

Tests business rules:
- Schedule of Values built lazily and superseded, never edited, once billed
- Application sequencing, status workflow and line locking persisted
- Every mutation commits completely or not at all
- ORM listeners backstop immutability outside the service
"""
import gc
import pytest
import threading
from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from progress_billing.config import get_config
from progress_billing.models import (
    Base,
    ApplicationRecord,
    ApplicationLineRecord,
    ChangeOrderRecord,
    SOVItemRecord,
)
from progress_billing.domain.entities import ApplicationStatus, BudgetItem, ChangeOrderStatus
from progress_billing.domain.exceptions import (
    ApplicationLockedError,
    ApplicationNotFoundError,
    ImmutableFieldError,
    InvalidAmountError,
    InvalidPeriodError,
    InvalidTransitionError,
    ProjectNotFoundError,
    ValidationError,
)
from progress_billing.domain.money import MAX_AMOUNT
from progress_billing.domain.services import ProgressBillingService
from progress_billing.infrastructure import ProjectLockRegistry


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def test_db():
    """Create a test database with fresh tables for each test."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autoflush=False)
    session = Session()

    yield session

    session.close()


@pytest.fixture
def locks():
    return ProjectLockRegistry()


@pytest.fixture
def service(test_db, locks):
    return ProgressBillingService(test_db, config=get_config(), locks=locks)


@pytest.fixture
def project(service):
    """Project with two budget categories."""
    project = service.create_project(name="Test Project", code="TEST-001")
    service.set_budget_items(project.uuid, [
        BudgetItem(id="budget-concrete", category="Concrete", original_budget=Decimal("100000")),
        BudgetItem(id="budget-electrical", category="Electrical", original_budget=Decimal("40000")),
    ])
    return project


def new_application(service, project, month=1, **kwargs):
    return service.create_application(
        project.uuid, date(2024, month, 1), date(2024, month, 28), **kwargs
    )


def certify(service, application):
    for status in (ApplicationStatus.SUBMITTED, ApplicationStatus.APPROVED):
        service.transition_application_status(application.id, status)


def advance_to(service, application, target):
    status = ApplicationStatus.DRAFT
    while status is not target:
        status = status.next_status
        service.transition_application_status(application.id, status)


# =============================================================================
# Projects and Schedule of Values
# =============================================================================

class TestProjects:

    def test_duplicate_code_rejected(self, service, project):
        with pytest.raises(ValidationError):
            service.create_project(name="Other", code="TEST-001")

    def test_unknown_project(self, service):
        with pytest.raises(ProjectNotFoundError):
            service.get_schedule_of_values("missing")

    def test_negative_budget_rejected(self, service, project):
        with pytest.raises(InvalidAmountError):
            service.set_budget_items(project.uuid, [BudgetItem(category="Credit", original_budget=Decimal("-5"))])
        assert len(service.project_repo.get_budget_items(project)) == 2


class TestScheduleOfValues:

    def test_sov_built_on_first_application(self, service, project):
        assert service.get_schedule_of_values(project.uuid) == []

        new_application(service, project)
        sov = service.get_schedule_of_values(project.uuid)

        assert [item.description for item in sov] == ["Concrete", "Electrical"]
        assert [item.scheduled_value for item in sov] == [Decimal("100000.00"), Decimal("40000.00")]

    def test_pure_build_stores_nothing(self, service, project):
        items = service.build_schedule_of_values([BudgetItem(category="Roofing", original_budget=Decimal("5"))])
        assert len(items) == 1
        assert service.get_schedule_of_values(project.uuid) == []

    def test_no_budget_rejected(self, service):
        project = service.create_project(name="Empty", code="EMPTY")
        with pytest.raises(ValidationError):
            new_application(service, project)
        assert list(service.list_applications(project.uuid)) == []

    def test_referenced_item_superseded_on_refresh(self, service, project):
        first = new_application(service, project)
        original_ids = [item.id for item in service.get_schedule_of_values(project.uuid)]

        service.set_budget_items(project.uuid, [
            BudgetItem(id="budget-concrete", category="Concrete", original_budget=Decimal("120000")),
            BudgetItem(id="budget-electrical", category="Electrical", original_budget=Decimal("40000")),
        ])
        sov = service.refresh_schedule_of_values(project.uuid)

        assert sov[0].id != original_ids[0]
        assert sov[0].scheduled_value == Decimal("120000.00")
        assert sov[1].id == original_ids[1]

        # Existing application keeps the numbers it was created with
        reloaded = service.get_application(first.id)
        assert reloaded.lines[0].scheduled_value == Decimal("100000.00")
        assert reloaded.lines[0].sov_item_id == original_ids[0]

        second = new_application(service, project, month=2)
        assert second.lines[0].scheduled_value == Decimal("120000.00")

    def test_later_applications_reuse_stored_sov(self, service, project):
        new_application(service, project)
        service.set_budget_items(project.uuid, [
            BudgetItem(id="budget-concrete", category="Concrete", original_budget=Decimal("1")),
        ])

        second = new_application(service, project, month=2)
        assert len(second.lines) == 2

        third = new_application(service, project, month=3, refresh_sov=True)
        assert [line.description for line in third.lines] == ["Concrete"]
        assert third.lines[0].scheduled_value == Decimal("1.00")


# =============================================================================
# Applications
# =============================================================================

class TestApplications:

    def test_sequence_numbers(self, service, project):
        numbers = [new_application(service, project, m).sequence_number for m in (1, 2, 3)]
        assert numbers == [1, 2, 3]
        assert [a.sequence_number for a in service.list_applications(project.uuid)] == [1, 2, 3]

    def test_invalid_period_creates_nothing(self, service, project):
        with pytest.raises(InvalidPeriodError):
            service.create_application(project.uuid, date(2024, 2, 1), date(2024, 1, 1))
        assert list(service.list_applications(project.uuid)) == []
        assert new_application(service, project).sequence_number == 1

    def test_custom_retainage(self, service, project):
        application = new_application(service, project, retainage_percent=Decimal("5"))
        assert all(line.retainage_percent == Decimal("5.00") for line in application.lines)

    def test_line_update_persisted(self, service, test_db, project, locks):
        application = new_application(service, project)
        line_id = application.lines[0].id

        result = service.update_application_line(
            application.id, line_id,
            work_completed_this_period=Decimal("20000"),
            materials_stored_this_period=Decimal("500.25"),
        )
        assert result.warnings == []

        fresh = ProgressBillingService(test_db, locks=locks).get_application(application.id)
        line = fresh.get_line(line_id)
        assert line.work_completed_this_period == Decimal("20000.00")
        assert line.materials_stored_this_period == Decimal("500.25")

    def test_over_billing_reported(self, service, project):
        application = new_application(service, project)
        result = service.update_application_line(
            application.id, application.lines[1].id, work_completed_this_period=Decimal("40000.01")
        )
        assert result.over_billed
        assert result.warnings

    def test_failed_update_rolls_back(self, service, project):
        application = new_application(service, project)
        line_id = application.lines[0].id

        with pytest.raises(InvalidAmountError):
            service.update_application_line(
                application.id, line_id,
                work_completed_this_period=Decimal("100"),
                retainage_percent=Decimal("101"),
            )

        line = service.get_application(application.id).get_line(line_id)
        assert line.work_completed_this_period == Decimal("0.00")
        assert line.retainage_percent == Decimal("10.00")

    @pytest.mark.parametrize("status", [
        ApplicationStatus.SUBMITTED, ApplicationStatus.APPROVED, ApplicationStatus.PAID,
    ])
    def test_application_locked_after_draft(self, service, project, status):
        application = new_application(service, project)
        advance_to(service, application, status)

        with pytest.raises(ApplicationLockedError):
            service.update_application_line(
                application.id, application.lines[0].id, work_completed_this_period=Decimal("1")
            )
        stored = service.get_application(application.id)
        assert stored.status is status
        assert stored.lines[0].work_completed_this_period == Decimal("0.00")

    @pytest.mark.parametrize("value", [Decimal("1e30"), 10 ** 20])
    def test_oversized_amount_rejected(self, service, project, value):
        application = new_application(service, project)
        line_id = application.lines[0].id

        with pytest.raises(InvalidAmountError):
            service.update_application_line(application.id, line_id, work_completed_this_period=value)

        line = service.get_application(application.id).get_line(line_id)
        assert line.work_completed_this_period == Decimal("0.00")

    def test_largest_amount_persisted(self, service, test_db, project, locks):
        application = new_application(service, project)
        line_id = application.lines[0].id
        service.update_application_line(application.id, line_id, work_completed_this_period=MAX_AMOUNT)

        fresh = ProgressBillingService(test_db, locks=locks).get_application(application.id)
        assert fresh.get_line(line_id).work_completed_this_period == MAX_AMOUNT

    def test_unknown_status_is_invalid_transition(self, service, project):
        application = new_application(service, project)
        with pytest.raises(InvalidTransitionError):
            service.transition_application_status(application.id, "Cancelled")
        assert service.get_application(application.id).status is ApplicationStatus.DRAFT

    def test_invalid_transition_persists_nothing(self, service, project):
        application = new_application(service, project)
        with pytest.raises(InvalidTransitionError):
            service.transition_application_status(application.id, "Paid")
        assert service.get_application(application.id).status is ApplicationStatus.DRAFT

    def test_unknown_application(self, service):
        with pytest.raises(ApplicationNotFoundError):
            service.compute_certificate("missing")

    def test_totals(self, service, project):
        application = new_application(service, project)
        service.update_application_line(
            application.id, application.lines[0].id, work_completed_this_period=Decimal("20000")
        )
        totals = service.get_continuation_sheet_totals(application.id)

        assert totals.scheduled_value == Decimal("140000.00")
        assert totals.total_retainage == Decimal("2000.00")
        assert totals.balance_to_finish == Decimal("120000.00")

    def test_listing_is_lazy(self, service, project):
        listing = service.list_applications(project.uuid)
        new_application(service, project)
        new_application(service, project, month=2)
        assert [a.sequence_number for a in listing] == [1, 2]


# =============================================================================
# Certificates and Change Orders
# =============================================================================

class TestCertificates:

    def test_first_and_second_certificate(self, service, project):
        first = new_application(service, project)
        service.update_application_line(
            first.id, first.lines[0].id, work_completed_this_period=Decimal("20000")
        )
        certificate = service.compute_certificate(first.id)

        assert certificate.original_contract_sum == Decimal("140000.00")
        assert certificate.current_payment_due == Decimal("18000.00")
        assert certificate.balance_to_finish == Decimal("120000.00")

        certify(service, first)
        second = new_application(service, project, month=2)
        assert service.compute_certificate(second.id).less_previous_certificates == Decimal("18000.00")

    def test_draft_predecessor_not_carried(self, service, project):
        first = new_application(service, project)
        service.update_application_line(
            first.id, first.lines[0].id, work_completed_this_period=Decimal("20000")
        )
        second = new_application(service, project, month=2)
        assert service.compute_certificate(second.id).less_previous_certificates == Decimal("0.00")

    def test_project_contract_sum_used(self, service):
        project = service.create_project(name="Fixed", code="FIXED", contract_sum=Decimal("150000"))
        service.set_budget_items(project.uuid, [BudgetItem(category="Concrete", original_budget=Decimal("100000"))])
        application = new_application(service, project)

        certificate = service.compute_certificate(application.id)
        assert certificate.original_contract_sum == Decimal("150000.00")

    def test_approved_change_orders_in_contract_sum(self, service, project):
        application = new_application(service, project)
        service.add_change_order(project.uuid, "CO-001", Decimal("10000"), status=ChangeOrderStatus.APPROVED)
        service.add_change_order(project.uuid, "CO-002", Decimal("3000"), status="Pending")

        certificate = service.compute_certificate(application.id)
        assert certificate.net_change_by_change_orders == Decimal("10000.00")
        assert certificate.contract_sum_to_date == Decimal("150000.00")

    def test_certificate_is_read_only(self, service, project):
        application = new_application(service, project)
        assert service.compute_certificate(application.id) == service.compute_certificate(application.id)
        assert service.get_application(application.id).status is ApplicationStatus.DRAFT


class TestChangeOrders:

    def test_net_recomputed_on_status_change(self, service, project):
        co = service.add_change_order(project.uuid, "CO-001", Decimal("5000"))
        assert service.net_approved_change_orders(project.uuid) == Decimal("0.00")

        service.set_change_order_status(co.id, "Approved")
        assert service.net_approved_change_orders(project.uuid) == Decimal("5000.00")

    def test_duplicate_number_rejected(self, service, project):
        service.add_change_order(project.uuid, "CO-001", Decimal("5000"))
        with pytest.raises(ValidationError):
            service.add_change_order(project.uuid, "CO-001", Decimal("1"))

    def test_amount_editable_until_approved(self, service, project):
        co = service.add_change_order(project.uuid, "CO-001", Decimal("5000"))
        assert service.set_change_order_amount(co.id, Decimal("6000")).amount == Decimal("6000.00")

        service.set_change_order_status(co.id, ChangeOrderStatus.APPROVED)
        with pytest.raises(ImmutableFieldError):
            service.set_change_order_amount(co.id, Decimal("7000"))
        assert service.net_approved_change_orders(project.uuid) == Decimal("6000.00")

    def test_approved_is_terminal(self, service, project):
        co = service.add_change_order(project.uuid, "CO-001", Decimal("5000"), status="Approved")

        for status in ("Submitted", "Pending", "Rejected"):
            with pytest.raises(InvalidTransitionError):
                service.set_change_order_status(co.id, status)
        with pytest.raises(ImmutableFieldError):
            service.set_change_order_amount(co.id, Decimal("999999"))

        stored = service.list_change_orders(project.uuid)[0]
        assert stored.status is ChangeOrderStatus.APPROVED
        assert stored.amount == Decimal("5000.00")
        assert service.net_approved_change_orders(project.uuid) == Decimal("5000.00")

    def test_reapproval_is_noop(self, service, project):
        co = service.add_change_order(project.uuid, "CO-001", Decimal("5000"), status="Approved")
        assert service.set_change_order_status(co.id, "Approved").status is ChangeOrderStatus.APPROVED

    def test_rejected_can_be_resubmitted(self, service, project):
        co = service.add_change_order(project.uuid, "CO-001", Decimal("5000"), status="Rejected")
        assert service.set_change_order_status(co.id, "Submitted").status is ChangeOrderStatus.SUBMITTED

    def test_unknown_status_rejected(self, service, project):
        co = service.add_change_order(project.uuid, "CO-001", Decimal("5000"))
        with pytest.raises(ValidationError):
            service.set_change_order_status(co.id, "Voided")

    def test_summary(self, service, project):
        service.add_change_order(project.uuid, "CO-001", Decimal("5000"), status="Approved")
        service.add_change_order(project.uuid, "CO-002", Decimal("-1000"), status="Approved")
        service.add_change_order(project.uuid, "CO-003", Decimal("2500"), status="Submitted")

        summary = service.change_order_summary(project.uuid)
        assert summary.approved == Decimal("4000.00")
        assert summary.pending_exposure == Decimal("2500.00")
        assert summary.count == 3


# =============================================================================
# ORM Event Listeners
# =============================================================================

class TestEventHandlers:

    def test_approved_change_order_amount_blocked(self, service, test_db, project):
        co = service.add_change_order(project.uuid, "CO-001", Decimal("5000"), status="Approved")
        record = test_db.query(ChangeOrderRecord).filter_by(uuid=co.id).one()

        record.amount_cents = 1
        with pytest.raises(ImmutableFieldError):
            test_db.flush()
        test_db.rollback()

    def test_approved_change_order_status_blocked(self, service, test_db, project):
        co = service.add_change_order(project.uuid, "CO-001", Decimal("5000"), status="Approved")
        record = test_db.query(ChangeOrderRecord).filter_by(uuid=co.id).one()

        record.status = ChangeOrderStatus.SUBMITTED.value
        with pytest.raises(InvalidTransitionError):
            test_db.flush()
        test_db.rollback()

    def test_referenced_sov_item_blocked(self, service, test_db, project):
        new_application(service, project)
        record = test_db.query(SOVItemRecord).filter_by(description="Concrete").one()

        record.scheduled_value_cents = 1
        with pytest.raises(ImmutableFieldError):
            test_db.flush()
        test_db.rollback()

    def test_unreferenced_sov_item_editable(self, service, test_db, project):
        service.refresh_schedule_of_values(project.uuid)
        record = test_db.query(SOVItemRecord).filter_by(description="Concrete").one()

        record.scheduled_value_cents = 1
        test_db.flush()
        test_db.rollback()

    @pytest.mark.parametrize("status", [
        ApplicationStatus.SUBMITTED, ApplicationStatus.APPROVED, ApplicationStatus.PAID,
    ])
    def test_line_outside_draft_blocked(self, service, test_db, project, status):
        application = new_application(service, project)
        advance_to(service, application, status)
        record = test_db.query(ApplicationLineRecord).join(ApplicationRecord).filter(
            ApplicationRecord.uuid == application.id
        ).first()

        record.work_completed_cents = 100
        with pytest.raises(ApplicationLockedError):
            test_db.flush()
        test_db.rollback()


# =============================================================================
# Concurrency
# =============================================================================

class TestConcurrency:

    def test_one_lock_per_project(self, service, project, locks):
        other = service.create_project(name="Other", code="OTHER")
        service.set_budget_items(other.uuid, [BudgetItem(category="Steel", original_budget=Decimal("1"))])

        assert locks.lock_for(project.uuid) is locks.lock_for(project.uuid)
        assert locks.lock_for(project.uuid) is not locks.lock_for(other.uuid)

    def test_idle_locks_released(self, service, project, locks):
        assert service.locks is locks
        service.list_change_orders(project.uuid)
        gc.collect()
        assert len(locks) == 0

    def test_referenced_lock_kept(self, locks):
        lock = locks.lock_for("project-1")
        gc.collect()
        assert locks.lock_for("project-1") is lock
        assert len(locks) == 1

        with locks.hold("project-1"):
            assert len(locks) == 1

    def test_concurrent_creates_stay_contiguous(self, tmp_path, locks):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'billing.db'}", connect_args={"check_same_thread": False}
        )
        Base.metadata.create_all(engine)
        Session = sessionmaker(bind=engine, autoflush=False)

        setup = Session()
        setup_service = ProgressBillingService(setup, locks=locks)
        project = setup_service.create_project(name="Busy", code="BUSY")
        setup_service.set_budget_items(project.uuid, [
            BudgetItem(category="Concrete", original_budget=Decimal("100000")),
        ])
        project_id = project.uuid
        setup.close()

        errors = []

        def worker(month):
            session = Session()
            try:
                ProgressBillingService(session, locks=locks).create_application(
                    project_id, date(2024, month, 1), date(2024, month, 28)
                )
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=worker, args=(m,)) for m in range(1, 9)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        check = Session()
        numbers = [a.sequence_number for a in ProgressBillingService(check, locks=locks).list_applications(project_id)]
        check.close()
        engine.dispose()

        assert errors == []
        assert numbers == list(range(1, 9))
