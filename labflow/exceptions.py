"""
Unified exception hierarchy.

Every business exception derives from BaseAppException and carries:
- type:        error category (validation_error / not_found / forbidden / conflict)
- code:        business error code (INVALID_TRANSITION / INSUFFICIENT_STOCK / ...)
- message:     human readable description
- detail:      optional extra payload (dict / list / None)
- http_status: HTTP status code

Services only raise; exception_handler formats the response.
"""


class BaseAppException(Exception):
    """Base class for all business exceptions."""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationError(BaseAppException):
    """Input failed validation. 400."""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class NotFound(BaseAppException):
    """A case / material / doctor id does not resolve. 404."""

    type = 'not_found'
    code = 'NOT_FOUND'
    http_status = 404


class InsufficientAuthorization(BaseAppException):
    """
    Role or row-scope violation. 403.

    Raised by the access layer when a caller reaches outside its scope;
    out-of-scope rows are never silently dropped from a direct lookup.
    """

    type = 'forbidden'
    code = 'INSUFFICIENT_AUTHORIZATION'
    http_status = 403


class InvalidTransition(BaseAppException):
    """Illegal status move. 409."""

    type = 'conflict'
    code = 'INVALID_TRANSITION'
    http_status = 409


class ConstraintViolation(BaseAppException):
    """A data rule blocks the operation (dependent rows, stock, double claim). 409."""

    type = 'conflict'
    code = 'CONSTRAINT_VIOLATION'
    http_status = 409


class ConcurrencyConflict(BaseAppException):
    """
    The row changed underneath the caller, or the store aborted the transaction.

    Not retried inside the core: the right new state depends on what changed,
    so the caller re-reads and decides. 409.
    """

    type = 'conflict'
    code = 'CONCURRENCY_CONFLICT'
    http_status = 409
