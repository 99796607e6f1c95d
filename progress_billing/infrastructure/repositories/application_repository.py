"""
Application Repository - Data access for payment applications and lines.

Translates ApplicationRecord/ApplicationLineRecord rows into domain
Application/ApplicationLine entities and writes domain changes back.
"""
from typing import List

from sqlalchemy.orm import Session, selectinload

from progress_billing.models import (
    ApplicationRecord,
    ApplicationLineRecord,
    Project,
    SOVItemRecord,
)
from progress_billing.domain.entities import Application, ApplicationLine, ApplicationStatus
from progress_billing.domain.exceptions import (
    ApplicationNotFoundError,
    ApplicationLineNotFoundError,
    InvariantViolationError,
)
from progress_billing.domain.money import (
    basis_points_to_percent,
    cents_to_money,
    money_to_cents,
    percent_to_basis_points,
)
from .base_repository import BaseRepository


def line_to_entity(record: ApplicationLineRecord) -> ApplicationLine:
    return ApplicationLine(
        id=record.uuid,
        sov_item_id=record.sov_item.uuid,
        description=record.description,
        scheduled_value=cents_to_money(record.scheduled_value_cents),
        work_completed_this_period=cents_to_money(record.work_completed_cents),
        materials_stored_this_period=cents_to_money(record.materials_stored_cents),
        retainage_percent=basis_points_to_percent(record.retainage_basis_points),
    )


def application_to_entity(record: ApplicationRecord) -> Application:
    return Application(
        id=record.uuid,
        project_id=record.project.uuid,
        sequence_number=record.sequence_number,
        period_start=record.period_start,
        period_end=record.period_end,
        status=ApplicationStatus(record.status),
        lines=[line_to_entity(line) for line in record.lines],
    )


class ApplicationRepository(BaseRepository[ApplicationRecord]):
    """Repository for payment applications."""

    def __init__(self, session: Session):
        super().__init__(session, ApplicationRecord)

    def exists(self, **criteria) -> bool:
        return self._exists(**criteria)

    def get_or_raise(self, application_uuid: str) -> ApplicationRecord:
        """
        Raises:
            ApplicationNotFoundError: If no application has this UUID
        """
        record = self.session.query(ApplicationRecord).options(
            selectinload(ApplicationRecord.lines).selectinload(ApplicationLineRecord.sov_item)
        ).filter(ApplicationRecord.uuid == application_uuid).first()
        if record is None:
            raise ApplicationNotFoundError(application_uuid)
        return record

    def get_entity(self, application_uuid: str) -> Application:
        return application_to_entity(self.get_or_raise(application_uuid))

    def list_for_project(self, project: Project) -> List[Application]:
        """All applications of a project, ascending sequence number."""
        records = self.session.query(ApplicationRecord).options(
            selectinload(ApplicationRecord.lines).selectinload(ApplicationLineRecord.sov_item)
        ).filter(
            ApplicationRecord.project_id == project.id
        ).order_by(ApplicationRecord.sequence_number).all()
        return [application_to_entity(r) for r in records]

    def add_application(self, project: Project, application: Application) -> ApplicationRecord:
        """
        Persist a newly created application and its seeded lines.

        Raises:
            InvariantViolationError: If a line references an SOV item outside the project
        """
        sov_uuids = {line.sov_item_id for line in application.lines}
        sov_records = {
            r.uuid: r for r in self.session.query(SOVItemRecord).filter(
                SOVItemRecord.project_id == project.id,
                SOVItemRecord.uuid.in_(sov_uuids),
            ).all()
        } if sov_uuids else {}
        missing = sov_uuids - set(sov_records)
        if missing:
            raise InvariantViolationError(
                'line_references_project_sov',
                expected="SOV items of this project",
                actual=", ".join(sorted(missing)),
            )

        record = ApplicationRecord(
            uuid=application.id,
            project_id=project.id,
            sequence_number=application.sequence_number,
            period_start=application.period_start,
            period_end=application.period_end,
            status=application.status.value,
        )
        for position, line in enumerate(application.lines):
            record.lines.append(ApplicationLineRecord(
                uuid=line.id,
                sov_item_id=sov_records[line.sov_item_id].id,
                position=position,
                description=line.description,
                scheduled_value_cents=money_to_cents(line.scheduled_value),
                work_completed_cents=money_to_cents(line.work_completed_this_period),
                materials_stored_cents=money_to_cents(line.materials_stored_this_period),
                retainage_basis_points=percent_to_basis_points(line.retainage_percent),
            ))
        self.add(record)
        self.flush()
        return record

    def save_line(self, application_uuid: str, line: ApplicationLine) -> None:
        """Write a line's entered values back to its row."""
        record = self.session.query(ApplicationLineRecord).join(ApplicationRecord).filter(
            ApplicationRecord.uuid == application_uuid,
            ApplicationLineRecord.uuid == line.id,
        ).first()
        if record is None:
            raise ApplicationLineNotFoundError(line.id, application_uuid)

        record.work_completed_cents = money_to_cents(line.work_completed_this_period)
        record.materials_stored_cents = money_to_cents(line.materials_stored_this_period)
        record.retainage_basis_points = percent_to_basis_points(line.retainage_percent)
        self.flush()

    def save_status(self, application: Application) -> None:
        record = self.get_or_raise(application.id)
        record.status = application.status.value
        self.flush()
