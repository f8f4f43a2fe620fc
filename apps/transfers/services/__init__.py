"""
Transfers app services layer.

Services hold the branch transfer workflow: request creation, conflict
detection, the two-stage approval state machine, audit and requester
notifications. Views stay thin HTTP handlers that call into these
functions and translate the exceptions below into responses.
"""

from .exceptions import (
    TransfersServiceError,
    ValidationError,
    AuthorizationError,
    ConflictBlockedError,
    StateError,
    NotFoundError,
    TransitionFailedError,
)

from .refund_estimation import (
    estimate_subscription_refund,
    estimate_refund_amount,
)

from .conflict_detection import (
    ConflictSnapshot,
    detect_conflicts,
    branch_now,
)

from .request_steps import (
    TransferDraft,
    run_request_steps,
    validate_document_file,
)

from .request_store import (
    STAGE_OLD_BRANCH,
    STAGE_NEW_BRANCH,
    create_transfer_request,
    get_transfer_request,
    transfer_requests_for_user,
)

from .state_machine import (
    approve_transfer_request,
    reject_transfer_request,
    cancel_transfer_request,
    get_request_conflicts,
    can_view_transfer_request,
    available_actions,
)

from .notifications import (
    record_transition,
    deliver_notification,
    deliver_pending_notifications,
    queue_missing_notifications,
)

from .documents import (
    get_document_url,
)


__all__ = [
    # Exceptions
    'TransfersServiceError',
    'ValidationError',
    'AuthorizationError',
    'ConflictBlockedError',
    'StateError',
    'NotFoundError',
    'TransitionFailedError',

    # Refund Estimation
    'estimate_subscription_refund',
    'estimate_refund_amount',

    # Conflict Detection
    'ConflictSnapshot',
    'detect_conflicts',
    'branch_now',

    # Request Steps
    'TransferDraft',
    'run_request_steps',
    'validate_document_file',

    # Request Store
    'STAGE_OLD_BRANCH',
    'STAGE_NEW_BRANCH',
    'create_transfer_request',
    'get_transfer_request',
    'transfer_requests_for_user',

    # State Machine
    'approve_transfer_request',
    'reject_transfer_request',
    'cancel_transfer_request',
    'get_request_conflicts',
    'can_view_transfer_request',
    'available_actions',

    # Notifications
    'record_transition',
    'deliver_notification',
    'deliver_pending_notifications',
    'queue_missing_notifications',

    # Documents
    'get_document_url',
]
