"""
Change Order API Endpoints - status and amount edits.

Implements:
- PATCH /api/v1/change-orders/{id}/status - Move between Submitted/Pending/Approved/Rejected
- PATCH /api/v1/change-orders/{id}/amount - Amend amount (refused once Approved)
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from progress_billing.domain.exceptions import DomainError
from progress_billing.domain.money import MAX_CENTS, cents_to_money
from progress_billing.domain.services import ProgressBillingService
from .common import get_service, http_error
from .projects import ChangeOrderResponse

router = APIRouter()


class ChangeOrderStatusUpdate(BaseModel):
    status: str = Field(..., description="Submitted, Pending, Approved or Rejected")


class ChangeOrderAmountUpdate(BaseModel):
    amount_cents: int = Field(..., ge=-MAX_CENTS, le=MAX_CENTS)


@router.patch(
    "/{change_order_id}/status",
    response_model=ChangeOrderResponse,
    summary="Set change order status"
)
def set_change_order_status(
    change_order_id: str,
    update: ChangeOrderStatusUpdate,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        change_order = service.set_change_order_status(change_order_id, update.status)
    except DomainError as e:
        raise http_error(e)
    return ChangeOrderResponse.from_entity(change_order)


@router.patch(
    "/{change_order_id}/amount",
    response_model=ChangeOrderResponse,
    summary="Amend change order amount",
    description="The amount of an Approved change order is IMMUTABLE."
)
def set_change_order_amount(
    change_order_id: str,
    update: ChangeOrderAmountUpdate,
    service: ProgressBillingService = Depends(get_service)
):
    try:
        change_order = service.set_change_order_amount(
            change_order_id, cents_to_money(update.amount_cents)
        )
    except DomainError as e:
        raise http_error(e)
    return ChangeOrderResponse.from_entity(change_order)
