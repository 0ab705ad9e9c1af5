"""
Typed errors for the outcome billing services.

Services raise these; the HTTP and Lambda layers translate them into status
codes. The fee calculator never raises - degenerate configuration bills zero.

    OutcomeBillingError
    +-- NotFound            organization, plan, event or invoice absent
    +-- InvalidArgument     missing model field, unknown field or action
    |   +-- Conflict        duplicate plan, deleting a plan with events
    +-- InvalidState        lifecycle transition from an incompatible status
"""


class OutcomeBillingError(Exception):
    """Base class for all outcome billing errors."""

    code: str = "OUTCOME_BILLING_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(OutcomeBillingError, LookupError):
    code = "NOT_FOUND"


class InvalidArgument(OutcomeBillingError, ValueError):
    code = "INVALID_ARGUMENT"


class Conflict(InvalidArgument):
    code = "CONFLICT"


class InvalidState(OutcomeBillingError):
    """A lifecycle transition was attempted from a status that forbids it."""

    code = "INVALID_STATE"

    def __init__(self, message: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(message)
