"""
Project API Endpoints - projects, budget categories, SOV and per-project listings.

Implements:
- POST /api/v1/projects - Create project
- GET /api/v1/projects/{project_id} - Get project
- PUT /api/v1/projects/{project_id}/budget - Replace budget categories
- GET /api/v1/projects/{project_id}/schedule-of-values - Active SOV
- POST /api/v1/projects/{project_id}/schedule-of-values/refresh - Re-derive SOV
- POST/GET /api/v1/projects/{project_id}/change-orders - Record / list change orders
- GET /api/v1/projects/{project_id}/change-orders/summary - Totals by status
- POST/GET /api/v1/projects/{project_id}/applications - Create / list applications
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from progress_billing.domain.entities import BudgetItem, ChangeOrder, ScheduleOfValuesItem
from progress_billing.domain.exceptions import DomainError
from progress_billing.domain.money import MAX_CENTS, cents_to_money, money_to_cents
from progress_billing.domain.services import ProgressBillingService
from progress_billing.models import Project
from .common import (
    ApplicationResponse,
    ApplicationSummaryResponse,
    get_service,
    http_error,
)

router = APIRouter()


# =============================================================================
# Pydantic Models
# =============================================================================

class ProjectCreate(BaseModel):
    """Request model for creating a project."""
    name: str = Field(..., min_length=1, max_length=200)
    code: str = Field(..., min_length=1, max_length=50, description="Unique project code")
    contract_sum_cents: Optional[int] = Field(
        None, ge=0, le=MAX_CENTS, description="Original contract sum; derived from the SOV when omitted"
    )
    description: Optional[str] = None


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    uuid: str
    name: str
    code: str
    description: Optional[str]
    contract_sum_cents: Optional[int]


class BudgetItemIn(BaseModel):
    id: Optional[str] = Field(None, description="Existing budget item id; omit for a new category")
    category: str
    original_budget_cents: int = Field(..., ge=-MAX_CENTS, le=MAX_CENTS)


class BudgetReplace(BaseModel):
    """Request model for replacing a project's budget categories."""
    items: List[BudgetItemIn]


class BudgetItemResponse(BaseModel):
    id: str
    category: str
    original_budget_cents: int

    @classmethod
    def from_entity(cls, item: BudgetItem) -> "BudgetItemResponse":
        return cls(
            id=item.id,
            category=item.category,
            original_budget_cents=money_to_cents(item.original_budget),
        )


class SOVItemResponse(BaseModel):
    id: str
    description: str
    scheduled_value_cents: int
    budget_item_id: Optional[str]

    @classmethod
    def from_entity(cls, item: ScheduleOfValuesItem) -> "SOVItemResponse":
        return cls(
            id=item.id,
            description=item.description,
            scheduled_value_cents=money_to_cents(item.scheduled_value),
            budget_item_id=item.budget_item_id,
        )


class ScheduleOfValuesResponse(BaseModel):
    items: List[SOVItemResponse]
    total_scheduled_value_cents: int


class ChangeOrderCreate(BaseModel):
    """Request model for recording a change order. Negative amounts deduct scope."""
    number: str = Field(..., min_length=1, max_length=50, description="CO number (e.g., 'CO-001')")
    amount_cents: int = Field(..., ge=-MAX_CENTS, le=MAX_CENTS)
    description: str = ""
    status: str = Field("Submitted", description="Submitted, Pending, Approved or Rejected")
    date_initiated: Optional[date] = None
    vendor: Optional[str] = None
    reason: Optional[str] = None
    schedule_impact: Optional[str] = None


class ChangeOrderResponse(BaseModel):
    id: str
    number: str
    description: str
    amount_cents: int
    status: str
    date_initiated: Optional[date]
    vendor: Optional[str]
    reason: Optional[str]
    schedule_impact: Optional[str]

    @classmethod
    def from_entity(cls, change_order: ChangeOrder) -> "ChangeOrderResponse":
        return cls(
            id=change_order.id,
            number=change_order.number,
            description=change_order.description,
            amount_cents=money_to_cents(change_order.amount),
            status=change_order.status.value,
            date_initiated=change_order.date_initiated,
            vendor=change_order.vendor,
            reason=change_order.reason,
            schedule_impact=change_order.schedule_impact,
        )


class ChangeOrderListResponse(BaseModel):
    change_orders: List[ChangeOrderResponse]
    net_approved_cents: int
    total: int


class ChangeOrderSummaryResponse(BaseModel):
    approved_cents: int
    submitted_cents: int
    pending_cents: int
    rejected_cents: int
    pending_exposure_cents: int
    count: int


class ApplicationCreate(BaseModel):
    """Request model for creating the next payment application."""
    period_start: date
    period_end: date
    retainage_percent: Optional[Decimal] = Field(
        None, description="Retainage seeded on every line; configured default when omitted"
    )
    refresh_sov: bool = Field(False, description="Re-derive the SOV from the current budget first")


class ApplicationListResponse(BaseModel):
    applications: List[ApplicationSummaryResponse]
    total: int


# =============================================================================
# Project Endpoints
# =============================================================================

@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
)
def create_project(
    project_data: ProjectCreate,
    service: ProgressBillingService = Depends(get_service)
):
    contract_sum = None
    if project_data.contract_sum_cents is not None:
        contract_sum = cents_to_money(project_data.contract_sum_cents)
    try:
        project = service.create_project(
            name=project_data.name,
            code=project_data.code,
            contract_sum=contract_sum,
            description=project_data.description,
        )
    except DomainError as e:
        raise http_error(e)
    return ProjectResponse.model_validate(project)


@router.get("/{project_id}", response_model=ProjectResponse, summary="Get project by UUID")
def get_project(
    project_id: str,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        project: Project = service.get_project(project_id)
    except DomainError as e:
        raise http_error(e)
    return ProjectResponse.model_validate(project)


@router.put(
    "/{project_id}/budget",
    response_model=List[BudgetItemResponse],
    summary="Replace budget categories",
    description="Replace the project's budget categories. The stored Schedule of Values "
                "is only re-derived on refresh or when the first application is created."
)
def replace_budget(
    project_id: str,
    budget: BudgetReplace,
    service: ProgressBillingService = Depends(get_service)
):
    items = []
    for item in budget.items:
        kwargs = dict(category=item.category, original_budget=cents_to_money(item.original_budget_cents))
        if item.id:
            kwargs['id'] = item.id
        items.append(BudgetItem(**kwargs))

    try:
        stored = service.set_budget_items(project_id, items)
    except DomainError as e:
        raise http_error(e)
    return [BudgetItemResponse.from_entity(item) for item in stored]


# =============================================================================
# Schedule of Values Endpoints
# =============================================================================

def _sov_response(items: List[ScheduleOfValuesItem]) -> ScheduleOfValuesResponse:
    return ScheduleOfValuesResponse(
        items=[SOVItemResponse.from_entity(item) for item in items],
        total_scheduled_value_cents=sum(money_to_cents(item.scheduled_value) for item in items),
    )


@router.get(
    "/{project_id}/schedule-of-values",
    response_model=ScheduleOfValuesResponse,
    summary="Get the active Schedule of Values"
)
def get_schedule_of_values(
    project_id: str,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        items = service.get_schedule_of_values(project_id)
    except DomainError as e:
        raise http_error(e)
    return _sov_response(items)


@router.post(
    "/{project_id}/schedule-of-values/refresh",
    response_model=ScheduleOfValuesResponse,
    summary="Re-derive the Schedule of Values from the current budget",
    description="Items already referenced by application lines are never edited; "
                "a changed category produces a new item instead."
)
def refresh_schedule_of_values(
    project_id: str,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        items = service.refresh_schedule_of_values(project_id)
    except DomainError as e:
        raise http_error(e)
    return _sov_response(items)


# =============================================================================
# Change Order Endpoints
# =============================================================================

@router.post(
    "/{project_id}/change-orders",
    response_model=ChangeOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a change order"
)
def create_change_order(
    project_id: str,
    change_order_data: ChangeOrderCreate,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        change_order = service.add_change_order(
            project_id,
            number=change_order_data.number,
            amount=cents_to_money(change_order_data.amount_cents),
            description=change_order_data.description,
            status=change_order_data.status,
            date_initiated=change_order_data.date_initiated,
            vendor=change_order_data.vendor,
            reason=change_order_data.reason,
            schedule_impact=change_order_data.schedule_impact,
        )
    except DomainError as e:
        raise http_error(e)
    return ChangeOrderResponse.from_entity(change_order)


@router.get(
    "/{project_id}/change-orders",
    response_model=ChangeOrderListResponse,
    summary="List change orders with the net approved change"
)
def list_change_orders(
    project_id: str,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        change_orders = service.list_change_orders(project_id)
        net_approved = service.net_approved_change_orders(project_id)
    except DomainError as e:
        raise http_error(e)
    return ChangeOrderListResponse(
        change_orders=[ChangeOrderResponse.from_entity(co) for co in change_orders],
        net_approved_cents=money_to_cents(net_approved),
        total=len(change_orders),
    )


@router.get(
    "/{project_id}/change-orders/summary",
    response_model=ChangeOrderSummaryResponse,
    summary="Change order totals by status"
)
def change_order_summary(
    project_id: str,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        summary = service.change_order_summary(project_id)
    except DomainError as e:
        raise http_error(e)
    return ChangeOrderSummaryResponse(
        approved_cents=money_to_cents(summary.approved),
        submitted_cents=money_to_cents(summary.submitted),
        pending_cents=money_to_cents(summary.pending),
        rejected_cents=money_to_cents(summary.rejected),
        pending_exposure_cents=money_to_cents(summary.pending_exposure),
        count=summary.count,
    )


# =============================================================================
# Application Endpoints
# =============================================================================

@router.post(
    "/{project_id}/applications",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create the next payment application",
    description="Creates a Draft application numbered after the project's last one, "
                "with one zeroed line per active Schedule of Values item."
)
def create_application(
    project_id: str,
    application_data: ApplicationCreate,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        application = service.create_application(
            project_id,
            period_start=application_data.period_start,
            period_end=application_data.period_end,
            retainage_percent=application_data.retainage_percent,
            refresh_sov=application_data.refresh_sov,
        )
    except DomainError as e:
        raise http_error(e)
    return ApplicationResponse.from_entity(application)


@router.get(
    "/{project_id}/applications",
    response_model=ApplicationListResponse,
    summary="List applications in sequence order"
)
def list_applications(
    project_id: str,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        applications = list(service.list_applications(project_id))
    except DomainError as e:
        raise http_error(e)
    return ApplicationListResponse(
        applications=[ApplicationSummaryResponse.from_entity(a) for a in applications],
        total=len(applications),
    )
