"""
Domain Exceptions for the Progress Billing engine.

Custom exceptions enforcing business rules:
- Non-negative amounts and bounded retainage
- Valid billing periods
- Forward-only application status transitions
- Application line locking after submission
- Immutability of certified data
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


# =============================================================================
# Amount / Period Exceptions
# =============================================================================

class InvalidAmountError(DomainError):
    """Raised for a negative quantity or a retainage percent outside [0, 100]."""

    def __init__(self, field_name: str, value, reason: str = "must not be negative"):
        message = f"Invalid amount for '{field_name}' ({value}): {reason}"
        super().__init__(message, code="INVALID_AMOUNT")
        self.field_name = field_name
        self.value = value
        self.reason = reason


class InvalidPeriodError(DomainError):
    """Raised when a billing period ends before it starts."""

    def __init__(self, period_start, period_end):
        message = (
            f"Billing period end ({period_end}) must not be before "
            f"start ({period_start})"
        )
        super().__init__(message, code="INVALID_PERIOD")
        self.period_start = period_start
        self.period_end = period_end


# =============================================================================
# Lookup Exceptions
# =============================================================================

class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity_type: str, entity_id: str):
        message = f"{entity_type} with id '{entity_id}' not found"
        super().__init__(message, code="NOT_FOUND")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ProjectNotFoundError(NotFoundError):
    def __init__(self, project_id: str):
        super().__init__("Project", project_id)
        self.project_id = project_id


class ApplicationNotFoundError(NotFoundError):
    def __init__(self, application_id: str):
        super().__init__("Application", application_id)
        self.application_id = application_id


class ApplicationLineNotFoundError(NotFoundError):
    def __init__(self, line_id: str, application_id: str):
        super().__init__("Application line", line_id)
        self.line_id = line_id
        self.application_id = application_id


class ChangeOrderNotFoundError(NotFoundError):
    def __init__(self, change_order_id: str):
        super().__init__("Change order", change_order_id)
        self.change_order_id = change_order_id


# =============================================================================
# Workflow Exceptions
# =============================================================================

class InvalidTransitionError(DomainError):
    """Raised on a backward, repeated, skipped or unknown status change."""

    def __init__(self, entity_type: str, current_status: str, requested_status: str):
        message = (
            f"{entity_type} cannot move from '{current_status}' "
            f"to '{requested_status}'"
        )
        super().__init__(message, code="INVALID_TRANSITION")
        self.entity_type = entity_type
        self.current_status = current_status
        self.requested_status = requested_status


class ApplicationLockedError(DomainError):
    """Raised when editing lines of an application that is no longer Draft."""

    def __init__(self, application_id: str, status: str):
        message = (
            f"Application '{application_id}' is {status}; "
            f"its lines can only be edited while Draft"
        )
        super().__init__(message, code="APPLICATION_LOCKED")
        self.application_id = application_id
        self.status = status


class ImmutableFieldError(DomainError):
    """Raised when attempting to modify an immutable field."""

    def __init__(self, field_name: str, entity_type: str, hint: str = ""):
        message = f"{entity_type} {field_name} cannot be modified."
        if hint:
            message = f"{message} {hint}"
        super().__init__(message, code="IMMUTABLE_FIELD")
        self.field_name = field_name
        self.entity_type = entity_type


# =============================================================================
# Validation Exceptions
# =============================================================================

class ValidationError(DomainError):
    """Raised when data validation fails."""

    def __init__(self, field: str, message: str):
        super().__init__(f"Validation failed for '{field}': {message}", code="VALIDATION_ERROR")
        self.field = field


class InvariantViolationError(DomainError):
    """Raised when a mathematical invariant is violated."""

    def __init__(self, invariant_name: str, expected: str, actual: str):
        message = (
            f"Invariant '{invariant_name}' violated. "
            f"Expected: {expected}, Actual: {actual}"
        )
        super().__init__(message, code="INVARIANT_VIOLATION")
        self.invariant_name = invariant_name
        self.expected = expected
        self.actual = actual
