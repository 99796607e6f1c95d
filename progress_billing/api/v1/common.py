"""
Shared API plumbing: service dependency, error mapping, response models.
"""
from datetime import date
from decimal import Decimal
from typing import List

from fastapi import Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from progress_billing.models import get_db
from progress_billing.domain.entities import Application, ApplicationLine
from progress_billing.domain.exceptions import (
    DomainError,
    NotFoundError,
    InvalidAmountError,
    InvalidPeriodError,
    InvalidTransitionError,
    ApplicationLockedError,
    ImmutableFieldError,
    InvariantViolationError,
    ValidationError,
)
from progress_billing.domain.money import money_to_cents
from progress_billing.domain.services import ProgressBillingService


def get_service(db: Session = Depends(get_db)) -> ProgressBillingService:
    """Billing service bound to the request's session."""
    return ProgressBillingService(db)


_STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidAmountError, status.HTTP_400_BAD_REQUEST),
    (InvalidPeriodError, status.HTTP_400_BAD_REQUEST),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ApplicationLockedError, status.HTTP_409_CONFLICT),
    (ImmutableFieldError, status.HTTP_409_CONFLICT),
    (InvariantViolationError, status.HTTP_409_CONFLICT),
)


def http_error(error: DomainError) -> HTTPException:
    """Translate a domain error into an HTTPException."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            break
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )


# =============================================================================
# Response Models
# =============================================================================

class ApplicationLineResponse(BaseModel):
    """G703 line, money in cents."""
    id: str
    sov_item_id: str
    description: str
    scheduled_value_cents: int
    work_completed_this_period_cents: int
    materials_stored_this_period_cents: int
    total_completed_and_stored_cents: int
    percent_complete: Decimal
    retainage_percent: Decimal
    total_retainage_cents: int
    balance_to_finish_cents: int

    @classmethod
    def from_entity(cls, line: ApplicationLine) -> "ApplicationLineResponse":
        return cls(
            id=line.id,
            sov_item_id=line.sov_item_id,
            description=line.description,
            scheduled_value_cents=money_to_cents(line.scheduled_value),
            work_completed_this_period_cents=money_to_cents(line.work_completed_this_period),
            materials_stored_this_period_cents=money_to_cents(line.materials_stored_this_period),
            total_completed_and_stored_cents=money_to_cents(line.total_completed_and_stored),
            percent_complete=line.percent_complete,
            retainage_percent=line.retainage_percent,
            total_retainage_cents=money_to_cents(line.total_retainage),
            balance_to_finish_cents=money_to_cents(line.balance_to_finish),
        )


class ApplicationSummaryResponse(BaseModel):
    """Row of the applications list."""
    id: str
    project_id: str
    sequence_number: int
    period_start: date
    period_end: date
    status: str
    total_completed_and_stored_cents: int
    total_retainage_cents: int
    amount_due_cents: int

    @classmethod
    def from_entity(cls, application: Application) -> "ApplicationSummaryResponse":
        return cls(
            id=application.id,
            project_id=application.project_id,
            sequence_number=application.sequence_number,
            period_start=application.period_start,
            period_end=application.period_end,
            status=application.status.value,
            total_completed_and_stored_cents=money_to_cents(application.total_completed_and_stored()),
            total_retainage_cents=money_to_cents(application.total_retainage()),
            amount_due_cents=money_to_cents(application.amount_due()),
        )


class ApplicationResponse(ApplicationSummaryResponse):
    """Application with its continuation sheet."""
    lines: List[ApplicationLineResponse]

    @classmethod
    def from_entity(cls, application: Application) -> "ApplicationResponse":
        summary = ApplicationSummaryResponse.from_entity(application)
        return cls(
            **summary.model_dump(),
            lines=[ApplicationLineResponse.from_entity(line) for line in application.lines],
        )
