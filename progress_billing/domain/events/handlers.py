"""
Domain Event Handlers for the Progress Billing engine.

Implements SQLAlchemy event listeners for:
- Change order amount and status immutability after approval
- SOV item immutability once referenced by an application line
- Application line locking once the application leaves Draft

These handlers ensure business rules are enforced at the ORM level even
when rows are edited outside the domain services.
"""
from sqlalchemy import event, inspect, select, func

from progress_billing.models import (
    ApplicationRecord,
    ApplicationLineRecord,
    ChangeOrderRecord,
    SOVItemRecord,
)
from progress_billing.domain.entities import ApplicationStatus, ChangeOrderStatus
from progress_billing.domain.exceptions import (
    ApplicationLockedError,
    ImmutableFieldError,
    InvalidTransitionError,
)


def _changed(state, attr_name: str) -> bool:
    """True when the attribute's committed value differs from the pending one."""
    history = getattr(state.attrs, attr_name).history
    if not history.has_changes():
        return False
    old_value = history.deleted[0] if history.deleted else None
    new_value = history.added[0] if history.added else None
    return old_value is not None and old_value != new_value


def _committed_value(state, attr_name: str):
    history = getattr(state.attrs, attr_name).history
    if history.deleted:
        return history.deleted[0]
    return getattr(state.obj(), attr_name)


# =============================================================================
# Change Orders - Immutability After Approval
# =============================================================================

@event.listens_for(ChangeOrderRecord, 'before_update')
def change_order_before_update(mapper, connection, target):
    """
    Enforce change order immutability after approval.

    The amount may change while Submitted/Pending; once the stored status
    is Approved both amount and status are fixed.
    """
    state = inspect(target)
    previous_status = _committed_value(state, 'status')

    if previous_status == ChangeOrderStatus.APPROVED.value and _changed(state, 'status'):
        raise InvalidTransitionError('Change order', previous_status, target.status)

    if previous_status == ChangeOrderStatus.APPROVED.value and _changed(state, 'amount_cents'):
        raise ImmutableFieldError(
            field_name='amount',
            entity_type='Approved change order',
            hint="Raise a new change order to adjust the contract sum.",
        )


# =============================================================================
# SOV Items - Immutability Once Referenced
# =============================================================================

@event.listens_for(SOVItemRecord, 'before_update')
def sov_item_before_update(mapper, connection, target):
    """
    Refuse to change description or scheduled value of a referenced SOV item.

    Deactivating a referenced item is allowed (it is superseded, not edited).
    """
    state = inspect(target)
    for attr_name in ('scheduled_value_cents', 'description'):
        if not _changed(state, attr_name):
            continue
        references = connection.execute(
            select(func.count())
            .select_from(ApplicationLineRecord.__table__)
            .where(ApplicationLineRecord.__table__.c.sov_item_id == target.id)
        ).scalar()
        if references:
            raise ImmutableFieldError(
                field_name=attr_name,
                entity_type='Referenced SOV item',
                hint="Create a new SOV item instead.",
            )


# =============================================================================
# Application Lines - Draft-only Editing
# =============================================================================

@event.listens_for(ApplicationLineRecord, 'before_update')
def application_line_before_update(mapper, connection, target):
    """Refuse line edits when the stored application status is not Draft."""
    table = ApplicationRecord.__table__
    row = connection.execute(
        select(table.c.uuid, table.c.status).where(table.c.id == target.application_id)
    ).first()
    if row is not None and row.status != ApplicationStatus.DRAFT.value:
        raise ApplicationLockedError(row.uuid, row.status)
