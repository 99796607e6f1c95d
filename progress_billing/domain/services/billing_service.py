"""
Progress Billing Service - the engine's contract toward collaborators.

Wires the SOV builder, continuation sheet calculator, change order ledger,
application sequencer and certificate aggregator to the repositories.

Every mutation runs as a unit of work under the project's lock: it either
commits completely or the session is rolled back and the error propagates.
Reads take the same lock so they never see a half-applied mutation.
"""
import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterable, Iterator, List, Optional

from sqlalchemy.orm import Session

from progress_billing.config import BillingConfig, get_config
from progress_billing.models import ApplicationRecord, Project
from progress_billing.infrastructure.locks import ProjectLockRegistry, default_registry
from progress_billing.infrastructure.repositories import (
    ProjectRepository,
    ChangeOrderRepository,
    ApplicationRepository,
)
from progress_billing.domain.entities import (
    Application,
    BudgetItem,
    Certificate,
    ChangeOrder,
    ChangeOrderStatus,
    ScheduleOfValuesItem,
)
from progress_billing.domain.exceptions import (
    ApplicationNotFoundError,
    InvalidAmountError,
    ValidationError,
)
from progress_billing.domain.money import to_money
from .sov_builder import ScheduleOfValuesBuilder, SOVRefreshResult
from .continuation_sheet import (
    ContinuationSheetCalculator,
    ContinuationSheetTotals,
    LineUpdateResult,
)
from .change_order_ledger import ChangeOrderLedger, ChangeOrderSummary
from .application_sequencer import ApplicationListing, ApplicationSequencer, validate_period
from .certificate_aggregator import CertificateAggregator

logger = logging.getLogger(__name__)


def _money(value, field_name: str) -> Decimal:
    try:
        return to_money(value, field_name)
    except (TypeError, ValueError) as e:
        raise InvalidAmountError(field_name, value, str(e))


class ProgressBillingService:
    """
    Facade over the billing engine for one database session.

    Args:
        session: SQLAlchemy session
        config: Billing configuration (defaults to get_config())
        locks: Per-project lock registry (defaults to the process-wide one)
    """

    def __init__(
        self,
        session: Session,
        config: Optional[BillingConfig] = None,
        locks: Optional[ProjectLockRegistry] = None,
    ):
        self.session = session
        self.config = config or get_config()
        self.locks = locks if locks is not None else default_registry

        self.project_repo = ProjectRepository(session)
        self.change_order_repo = ChangeOrderRepository(session)
        self.application_repo = ApplicationRepository(session)

        self.sov_builder = ScheduleOfValuesBuilder()
        self.calculator = ContinuationSheetCalculator(
            default_retainage_percent=self.config.default_retainage_percent,
            warn_on_overbilling=self.config.warn_on_overbilling,
        )
        self.aggregator = CertificateAggregator(self.config.previous_certificates_basis)

    # =========================================================================
    # Unit of Work
    # =========================================================================

    @contextmanager
    def _unit_of_work(self, project_id: str) -> Iterator[None]:
        with self.locks.hold(project_id):
            try:
                yield
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise

    def _project_id_for_application(self, application_id: str) -> str:
        """
        Raises:
            ApplicationNotFoundError: If the application id is unknown
        """
        row = self.session.query(Project.uuid).join(
            ApplicationRecord, ApplicationRecord.project_id == Project.id
        ).filter(ApplicationRecord.uuid == application_id).first()
        if row is None:
            raise ApplicationNotFoundError(application_id)
        return row[0]

    def _sequencer(self, project: Project) -> ApplicationSequencer:
        return ApplicationSequencer(
            project.uuid,
            self.application_repo.list_for_project(project),
            calculator=self.calculator,
        )

    # =========================================================================
    # Projects and Budget (collaborator input)
    # =========================================================================

    def create_project(
        self,
        name: str,
        code: str,
        contract_sum: Optional[Decimal] = None,
        description: Optional[str] = None,
    ) -> Project:
        if contract_sum is not None:
            contract_sum = _money(contract_sum, 'contract_sum')
        try:
            project = self.project_repo.create(name, code, contract_sum, description)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(f"Created project {project.code} ({project.uuid})")
        return project

    def get_project(self, project_id: str) -> Project:
        return self.project_repo.get_or_raise(project_id)

    def set_budget_items(self, project_id: str, budget_items: Iterable[BudgetItem]) -> List[BudgetItem]:
        """
        Replace a project's budget categories.

        Raises:
            ProjectNotFoundError: If the project id is unknown
            ValidationError / InvalidAmountError: On a blank category or negative budget
        """
        normalized = [self.sov_builder.normalize(item) for item in budget_items]
        with self._unit_of_work(project_id):
            project = self.project_repo.get_or_raise(project_id)
            items = self.project_repo.replace_budget_items(project, normalized)
        return items

    # =========================================================================
    # Schedule of Values
    # =========================================================================

    def build_schedule_of_values(self, budget_items: Iterable[BudgetItem]) -> List[ScheduleOfValuesItem]:
        """Pure derivation of SOV items from budget categories; nothing is stored."""
        return self.sov_builder.build(budget_items)

    def _refresh_sov(self, project: Project) -> SOVRefreshResult:
        result = self.sov_builder.refresh(
            self.project_repo.get_active_sov_items(project),
            self.project_repo.get_budget_items(project),
            self.project_repo.get_referenced_sov_ids(project),
        )
        if result.changed:
            self.project_repo.save_sov_refresh(project, result)
            logger.info(
                f"Refreshed SOV for project {project.code}: {len(result.created)} created, "
                f"{len(result.updated)} updated, {len(result.retired)} retired"
            )
        return result

    def refresh_schedule_of_values(self, project_id: str) -> List[ScheduleOfValuesItem]:
        """Re-derive the visible SOV from the current budget and store it."""
        with self._unit_of_work(project_id):
            project = self.project_repo.get_or_raise(project_id)
            result = self._refresh_sov(project)
        return result.items

    def get_schedule_of_values(self, project_id: str) -> List[ScheduleOfValuesItem]:
        with self.locks.hold(project_id):
            project = self.project_repo.get_or_raise(project_id)
            return self.project_repo.get_active_sov_items(project)

    # =========================================================================
    # Applications
    # =========================================================================

    def create_application(
        self,
        project_id: str,
        period_start: date,
        period_end: date,
        retainage_percent: Optional[Decimal] = None,
        refresh_sov: bool = False,
    ) -> Application:
        """
        Create the next DRAFT application for a project.

        The SOV is built on the first application; later applications reuse
        the stored SOV unless refresh_sov is set.

        Raises:
            ProjectNotFoundError: If the project id is unknown
            InvalidPeriodError: If period_end < period_start
            InvalidAmountError: If retainage_percent is outside [0, 100]
            ValidationError: If the project has no budget categories
        """
        validate_period(period_start, period_end)

        with self._unit_of_work(project_id):
            project = self.project_repo.get_or_raise(project_id)
            sov_items = self.project_repo.get_active_sov_items(project)
            if refresh_sov or not sov_items:
                sov_items = self._refresh_sov(project).items
            if not sov_items:
                raise ValidationError(
                    'schedule_of_values',
                    f"project '{project_id}' has no budget categories to bill against"
                )

            sequencer = self._sequencer(project)
            application = sequencer.create_application(
                period_start, period_end, sov_items, retainage_percent
            )
            self.application_repo.add_application(project, application)
        return application

    def get_application(self, application_id: str) -> Application:
        project_id = self._project_id_for_application(application_id)
        with self.locks.hold(project_id):
            return self.application_repo.get_entity(application_id)

    def list_applications(self, project_id: str) -> ApplicationListing:
        """
        Applications of a project in sequence order.

        The listing is lazy: each iteration reads a fresh, consistent snapshot.

        Raises:
            ProjectNotFoundError: If the project id is unknown
        """
        self.project_repo.get_or_raise(project_id)

        def snapshot() -> List[Application]:
            with self.locks.hold(project_id):
                project = self.project_repo.get_or_raise(project_id)
                return self.application_repo.list_for_project(project)

        return ApplicationListing(snapshot)

    def update_application_line(
        self,
        application_id: str,
        line_id: str,
        work_completed_this_period=None,
        materials_stored_this_period=None,
        retainage_percent=None,
    ) -> LineUpdateResult:
        """
        Edit a line of a DRAFT application.

        Returns:
            LineUpdateResult; over-billing is reported in result.warnings

        Raises:
            ApplicationNotFoundError / ApplicationLineNotFoundError
            ApplicationLockedError: If the application is not DRAFT
            InvalidAmountError: On negative quantities or out-of-range retainage
        """
        project_id = self._project_id_for_application(application_id)
        with self._unit_of_work(project_id):
            project = self.project_repo.get_or_raise(project_id)
            sequencer = self._sequencer(project)
            result = sequencer.update_line(
                application_id,
                line_id,
                work_completed_this_period=work_completed_this_period,
                materials_stored_this_period=materials_stored_this_period,
                retainage_percent=retainage_percent,
            )
            self.application_repo.save_line(application_id, result.line)
        return result

    def transition_application_status(self, application_id: str, new_status) -> Application:
        """
        Move an application one step along DRAFT -> SUBMITTED -> APPROVED -> PAID.

        Raises:
            ApplicationNotFoundError: If the application id is unknown
            InvalidTransitionError: On a backward, repeated, skipped or unknown step
        """
        project_id = self._project_id_for_application(application_id)
        with self._unit_of_work(project_id):
            project = self.project_repo.get_or_raise(project_id)
            sequencer = self._sequencer(project)
            application = sequencer.transition_status(application_id, new_status)
            self.application_repo.save_status(application)
        return application

    def get_continuation_sheet_totals(self, application_id: str) -> ContinuationSheetTotals:
        return self.calculator.totals(self.get_application(application_id).lines)

    # =========================================================================
    # Certificate
    # =========================================================================

    def compute_certificate(self, application_id: str) -> Certificate:
        """
        Compute the G702 certificate for an application. Never writes.

        Raises:
            ApplicationNotFoundError: If the application id is unknown
        """
        project_id = self._project_id_for_application(application_id)
        with self.locks.hold(project_id):
            project = self.project_repo.get_or_raise(project_id)
            sequencer = self._sequencer(project)
            application = sequencer.get(application_id)
            return self.aggregator.compute(
                application,
                history=sequencer.history_before(application),
                change_orders=self.change_order_repo.list_for_project(project),
                original_contract_sum=self.project_repo.contract_sum(project),
            )

    # =========================================================================
    # Change Orders
    # =========================================================================

    def add_change_order(
        self,
        project_id: str,
        number: str,
        amount: Decimal,
        description: str = "",
        status: ChangeOrderStatus = ChangeOrderStatus.SUBMITTED,
        **details,
    ) -> ChangeOrder:
        amount = _money(amount, 'amount')
        with self._unit_of_work(project_id):
            project = self.project_repo.get_or_raise(project_id)
            change_order = self.change_order_repo.create(
                project, number, amount, description=description, status=status, **details
            )
        logger.info(f"Recorded change order {number} ({change_order.status.value}) on project {project_id}")
        return change_order

    def _project_id_for_change_order(self, change_order_id: str) -> str:
        record = self.change_order_repo.get_or_raise(change_order_id)
        return record.project.uuid

    def set_change_order_status(self, change_order_id: str, status) -> ChangeOrder:
        """
        Raises:
            InvalidTransitionError: If the change order is already approved
        """
        project_id = self._project_id_for_change_order(change_order_id)
        with self._unit_of_work(project_id):
            change_order = self.change_order_repo.update_status(change_order_id, status)
        logger.info(f"Change order {change_order.number} is now {change_order.status.value}")
        return change_order

    def set_change_order_amount(self, change_order_id: str, amount: Decimal) -> ChangeOrder:
        """
        Raises:
            ImmutableFieldError: If the change order is approved
        """
        amount = _money(amount, 'amount')
        project_id = self._project_id_for_change_order(change_order_id)
        with self._unit_of_work(project_id):
            return self.change_order_repo.update_amount(change_order_id, amount)

    def list_change_orders(self, project_id: str) -> List[ChangeOrder]:
        with self.locks.hold(project_id):
            project = self.project_repo.get_or_raise(project_id)
            return self.change_order_repo.list_for_project(project)

    def net_approved_change_orders(self, project_id: str) -> Decimal:
        """Sum of the project's APPROVED change orders, re-derived on every call."""
        return ChangeOrderLedger(self.list_change_orders(project_id)).net_change()

    def change_order_summary(self, project_id: str) -> ChangeOrderSummary:
        return ChangeOrderLedger(self.list_change_orders(project_id)).summary()
