"""
Application API Endpoints - G703 line edits, status workflow and G702 certificate.

Implements:
- GET /api/v1/applications/{id} - Application with continuation sheet
- PATCH /api/v1/applications/{id}/lines/{line_id} - Edit a Draft line
- POST /api/v1/applications/{id}/status - Advance Draft -> Submitted -> Approved -> Paid
- GET /api/v1/applications/{id}/totals - Continuation sheet column totals
- GET /api/v1/applications/{id}/certificate - G702 certificate (read-only)
"""
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from progress_billing.domain.exceptions import DomainError
from progress_billing.domain.money import MAX_CENTS, cents_to_money, money_to_cents
from progress_billing.domain.services import ProgressBillingService
from .common import (
    ApplicationLineResponse,
    ApplicationResponse,
    get_service,
    http_error,
)

router = APIRouter()

# =============================================================================
# Pydantic Models
# =============================================================================

class LineUpdate(BaseModel):
    """Request model for a line edit. Omitted fields keep their value."""
    work_completed_this_period_cents: Optional[int] = Field(None, ge=-MAX_CENTS, le=MAX_CENTS)
    materials_stored_this_period_cents: Optional[int] = Field(None, ge=-MAX_CENTS, le=MAX_CENTS)
    retainage_percent: Optional[Decimal] = None

class LineUpdateResponse(BaseModel):
    line: ApplicationLineResponse
    over_billed: bool
    warnings: List[str]

class StatusUpdate(BaseModel):
    status: str = Field(..., description="Submitted, Approved or Paid")

class TotalsResponse(BaseModel):
    scheduled_value_cents: int
    work_completed_this_period_cents: int
    materials_stored_this_period_cents: int
    total_completed_and_stored_cents: int
    total_retainage_cents: int
    balance_to_finish_cents: int

class CertificateResponse(BaseModel):
    """G702 summary, money in cents."""
    application_id: str
    sequence_number: int
    original_contract_sum_cents: int
    net_change_by_change_orders_cents: int
    contract_sum_to_date_cents: int
    total_completed_and_stored_to_date_cents: int
    total_retainage_cents: int
    total_earned_less_retainage_cents: int
    less_previous_certificates_cents: int
    current_payment_due_cents: int
    balance_to_finish_cents: int

# =============================================================================
# Endpoints
# =============================================================================

@router.get("/{application_id}", response_model=ApplicationResponse, summary="Get application")
def get_application(
    application_id: str,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        application = service.get_application(application_id)
    except DomainError as e:
        raise http_error(e)
    return ApplicationResponse.from_entity(application)

@router.patch(
    "/{application_id}/lines/{line_id}",
    response_model=LineUpdateResponse,
    summary="Edit a continuation sheet line",
    description="Only Draft applications are editable. Over-billing is accepted "
                "and reported in warnings."
)
def update_line(
    application_id: str,
    line_id: str,
    update: LineUpdate,
    service: ProgressBillingService = Depends(get_service)
):
    work = update.work_completed_this_period_cents
    materials = update.materials_stored_this_period_cents
    try:
        result = service.update_application_line(
            application_id,
            line_id,
            work_completed_this_period=cents_to_money(work) if work is not None else None,
            materials_stored_this_period=cents_to_money(materials) if materials is not None else None,
            retainage_percent=update.retainage_percent,
        )
    except DomainError as e:
        raise http_error(e)
    return LineUpdateResponse(
        line=ApplicationLineResponse.from_entity(result.line),
        over_billed=result.over_billed,
        warnings=result.warnings,
    )

@router.post(
    "/{application_id}/status",
    response_model=ApplicationResponse,
    summary="Advance application status"
)
def transition_status(
    application_id: str,
    update: StatusUpdate,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        application = service.transition_application_status(application_id, update.status)
    except DomainError as e:
        raise http_error(e)
    return ApplicationResponse.from_entity(application)

@router.get(
    "/{application_id}/totals",
    response_model=TotalsResponse,
    summary="Continuation sheet totals"
)
def get_totals(
    application_id: str,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        totals = service.get_continuation_sheet_totals(application_id)
    except DomainError as e:
        raise http_error(e)
    return TotalsResponse(
        scheduled_value_cents=money_to_cents(totals.scheduled_value),
        work_completed_this_period_cents=money_to_cents(totals.work_completed_this_period),
        materials_stored_this_period_cents=money_to_cents(totals.materials_stored_this_period),
        total_completed_and_stored_cents=money_to_cents(totals.total_completed_and_stored),
        total_retainage_cents=money_to_cents(totals.total_retainage),
        balance_to_finish_cents=money_to_cents(totals.balance_to_finish),
    )

@router.get(
    "/{application_id}/certificate",
    response_model=CertificateResponse,
    summary="Compute the G702 certificate",
    description="Pure computation over the application, its certified predecessors "
                "and the project's approved change orders. Nothing is stored."
)
def get_certificate(
    application_id: str,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        certificate = service.compute_certificate(application_id)
    except DomainError as e:
        raise http_error(e)
    return CertificateResponse(
        application_id=certificate.application_id,
        sequence_number=certificate.sequence_number,
        original_contract_sum_cents=money_to_cents(certificate.original_contract_sum),
        net_change_by_change_orders_cents=money_to_cents(certificate.net_change_by_change_orders),
        contract_sum_to_date_cents=money_to_cents(certificate.contract_sum_to_date),
        total_completed_and_stored_to_date_cents=money_to_cents(
            certificate.total_completed_and_stored_to_date
        ),
        total_retainage_cents=money_to_cents(certificate.total_retainage),
        total_earned_less_retainage_cents=money_to_cents(certificate.total_earned_less_retainage),
        less_previous_certificates_cents=money_to_cents(certificate.less_previous_certificates),
        current_payment_due_cents=money_to_cents(certificate.current_payment_due),
        balance_to_finish_cents=money_to_cents(certificate.balance_to_finish),
    )
