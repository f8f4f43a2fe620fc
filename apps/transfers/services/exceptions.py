"""
Domain-specific exceptions for the transfers app.

These exceptions represent business rule violations. They are raised by
the services, surfaced verbatim to the caller, and converted to HTTP
responses in views. None of them are retried by the services.
"""


class TransfersServiceError(Exception):
    """Base exception for all transfer service errors."""

    code = 'transfer_error'
    http_status = 400

    def __init__(self, message=None):
        super().__init__(message or self.__doc__)

    @property
    def message(self):
        return str(self)


class ValidationError(TransfersServiceError):
    """Transfer request data is malformed or violates a creation rule."""

    code = 'validation_error'

    def __init__(self, message=None, field=None):
        super().__init__(message)
        self.field = field


class AuthorizationError(TransfersServiceError):
    """Caller is not scoped to the branch relevant to this action."""

    code = 'branch_not_authorized'
    http_status = 401


class ConflictBlockedError(TransfersServiceError):
    """Approval blocked: the student still has conflicts at the current branch."""

    code = 'conflicts_present'
    http_status = 409

    def __init__(self, message=None, snapshot=None):
        super().__init__(message)
        self.snapshot = snapshot


class StateError(TransfersServiceError):
    """Transition is not allowed from the request's current status."""

    code = 'invalid_state'
    http_status = 409


class NotFoundError(TransfersServiceError):
    """Transfer request or document does not exist."""

    code = 'not_found'
    http_status = 404


class TransitionFailedError(TransfersServiceError):
    """A side effect of the transition failed; nothing was changed."""

    code = 'transition_failed'
    http_status = 500
