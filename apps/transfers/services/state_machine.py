"""
Approval state machine for branch transfer requests.

    Pending ──old branch approves──▶ ReadyToTransfer ──new branch approves──▶ Approved
       │                                   │
       ├──old branch rejects──▶ Rejected ◀─┘ new branch rejects
       └──requester cancels──▶ Cancelled

Every transition runs in one transaction: lock the request row, check the
status guard and the caller's branch scope, perform side effects, then
compare-and-set the status. A side effect that fails rolls the whole
transition back and surfaces as TransitionFailedError.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from apps.accounts.models import User
from apps.operations.models import Order, Slot, Subscription
from apps.students.models import Student
from apps.transfers.models import OPEN_STATUSES, TransferRequest, TransferStatus

from .conflict_detection import ConflictSnapshot, detect_conflicts
from .exceptions import (
    AuthorizationError,
    ConflictBlockedError,
    StateError,
    TransfersServiceError,
    TransitionFailedError,
    ValidationError,
)
from .notifications import record_transition
from .refund_estimation import estimate_subscription_refund
from .request_store import compare_and_set_status, get_transfer_request

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    TransferStatus.PENDING: frozenset({
        TransferStatus.READY_TO_TRANSFER,
        TransferStatus.REJECTED,
        TransferStatus.CANCELLED,
    }),
    TransferStatus.READY_TO_TRANSFER: frozenset({
        TransferStatus.APPROVED,
        TransferStatus.REJECTED,
    }),
    TransferStatus.APPROVED: frozenset(),
    TransferStatus.REJECTED: frozenset(),
    TransferStatus.CANCELLED: frozenset(),
}


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


@dataclass(frozen=True)
class ApprovalDecision:
    """Manager's choices for an approve action."""

    auto_cancel_subscriptions: bool = False
    auto_cancel_slots: bool = False
    auto_cancel_orders: bool = False
    approve_only_if_no_conflicts: bool = False
    manager_notes: str = ''


@dataclass
class ClearanceOutcome:
    """What the old branch cancelled while approving a transfer."""

    cancelled_subscription_ids: List[UUID] = field(default_factory=list)
    refunds: List[Tuple[UUID, Decimal]] = field(default_factory=list)
    cancelled_slot_ids: List[UUID] = field(default_factory=list)
    cancelled_order_ids: List[UUID] = field(default_factory=list)

    @property
    def refunded_amount(self) -> Decimal:
        return sum((amount for _, amount in self.refunds), Decimal('0.00'))

    def as_dict(self) -> dict:
        return {
            'cancelled_subscriptions': [str(pk) for pk in self.cancelled_subscription_ids],
            'refunds': [
                {'subscription_id': str(pk), 'amount': str(amount)}
                for pk, amount in self.refunds
            ],
            'refunded_amount': str(self.refunded_amount),
            'cancelled_slots': [str(pk) for pk in self.cancelled_slot_ids],
            'cancelled_orders': [str(pk) for pk in self.cancelled_order_ids],
        }


@dataclass
class TransitionResult:
    transfer_request: TransferRequest
    snapshot: Optional[ConflictSnapshot] = None
    clearance: Optional[ClearanceOutcome] = None
    enrolled_student: Optional[Student] = None


def _observe(request_id: UUID) -> str:
    """Status as read before any lock is taken."""
    return get_transfer_request(request_id=request_id).status


def _lock_observed(request_id: UUID, observed_status: str) -> TransferRequest:
    """Lock the request; fail if its status moved since it was observed."""
    transfer_request = get_transfer_request(request_id=request_id, lock=True)
    if transfer_request.status != observed_status:
        raise StateError(
            f"Transfer request {transfer_request.id} changed from {observed_status} "
            f"to {transfer_request.status} while this action was waiting"
        )
    return transfer_request


def _ensure_transition(transfer_request: TransferRequest, to_status: str) -> None:
    if not can_transition(transfer_request.status, to_status):
        raise StateError(
            f"Cannot move transfer request from {transfer_request.status} to {to_status}"
        )


def _ensure_branch_manager(user: User, branch_id: UUID, action: str) -> None:
    if not user.manages_branch(branch_id):
        raise AuthorizationError(
            f"You must manage the branch responsible for {action} this transfer request"
        )


@contextmanager
def _side_effects(transfer_request: TransferRequest, step: str):
    """Convert unexpected side-effect failures into TransitionFailedError."""
    try:
        yield
    except TransfersServiceError:
        raise
    except Exception as exc:
        logger.exception(
            "%s of transfer request %s failed; rolling back", step, transfer_request.id
        )
        raise TransitionFailedError(f"{step} failed: {exc}") from exc


# =============================================================================
# Approve
# =============================================================================

def approve_transfer_request(
    *,
    request_id: UUID,
    user: User,
    auto_cancel_subscriptions: bool = False,
    auto_cancel_slots: bool = False,
    auto_cancel_orders: bool = False,
    approve_only_if_no_conflicts: bool = False,
    manager_notes: str = ''
) -> TransitionResult:
    """
    Approve a transfer request at whichever branch it is waiting on.

    A Pending request is approved by a manager of the current branch
    (clears the student's data there); a ReadyToTransfer request is
    approved by a manager of the target branch (enrolls the student).

    Args:
        request_id: UUID of the transfer request
        user: Approving manager
        auto_cancel_subscriptions: Cancel and refund active subscriptions
            (old-branch step only)
        auto_cancel_slots: Cancel future slots (old-branch step only)
        auto_cancel_orders: Cancel pending orders (old-branch step only)
        approve_only_if_no_conflicts: Refuse if any conflict exists
        manager_notes: Optional notes stored with the request

    Returns:
        TransitionResult

    Raises:
        NotFoundError: If the request doesn't exist
        StateError: If the request is not awaiting approval, or another
            action changed it first
        AuthorizationError: If user doesn't manage the responsible branch
        ConflictBlockedError: If conflicts exist and the caller asked to
            approve only without conflicts
        TransitionFailedError: If cancelling records or enrolling failed
    """
    decision = ApprovalDecision(
        auto_cancel_subscriptions=auto_cancel_subscriptions,
        auto_cancel_slots=auto_cancel_slots,
        auto_cancel_orders=auto_cancel_orders,
        approve_only_if_no_conflicts=approve_only_if_no_conflicts,
        manager_notes=(manager_notes or '').strip(),
    )

    observed_status = _observe(request_id)

    with transaction.atomic():
        transfer_request = _lock_observed(request_id, observed_status)

        if transfer_request.status == TransferStatus.PENDING:
            result = _approve_at_old_branch(transfer_request, user, decision)
        elif transfer_request.status == TransferStatus.READY_TO_TRANSFER:
            result = _approve_at_new_branch(transfer_request, user, decision)
        else:
            raise StateError(
                f"Transfer request is {transfer_request.status} and can no longer be approved"
            )

    return result


def _approve_at_old_branch(
    transfer_request: TransferRequest,
    user: User,
    decision: ApprovalDecision
) -> TransitionResult:
    _ensure_branch_manager(user, transfer_request.current_branch_id, 'approving')

    # Recomputed under lock so the counts acted on are the counts checked
    snapshot = detect_conflicts(
        student_id=transfer_request.student_id,
        branch_id=transfer_request.current_branch_id,
        lock=True,
    )

    if decision.approve_only_if_no_conflicts and not snapshot.is_empty:
        raise ConflictBlockedError(
            f"Student still has {', '.join(snapshot.categories)} at the current branch",
            snapshot=snapshot,
        )

    with _side_effects(transfer_request, 'Clearing the current branch'):
        clearance = _clear_current_branch(transfer_request, snapshot, decision, user)

    left_untouched = [
        category for category, flag in (
            ('subscriptions', decision.auto_cancel_subscriptions),
            ('slots', decision.auto_cancel_slots),
            ('orders', decision.auto_cancel_orders),
        )
        if not flag and category in snapshot.categories
    ]
    if left_untouched:
        logger.warning(
            "Transfer request %s approved with %s left at branch %s",
            transfer_request.id, ', '.join(left_untouched), transfer_request.current_branch_id
        )

    now = timezone.now()
    fields = {
        'old_branch_decided_by': user,
        'old_branch_decided_time': now,
    }
    if decision.manager_notes:
        fields['manager_notes'] = decision.manager_notes

    compare_and_set_status(
        transfer_request,
        expected=TransferStatus.PENDING,
        new=TransferStatus.READY_TO_TRANSFER,
        actor=user,
        **fields
    )

    details = clearance.as_dict()
    details['left_untouched'] = left_untouched
    record_transition(
        transfer_request=transfer_request,
        actor=user,
        action='old_branch_approved',
        from_status=TransferStatus.PENDING,
        to_status=TransferStatus.READY_TO_TRANSFER,
        notes=decision.manager_notes,
        details=details,
    )

    logger.info(
        "Transfer request %s approved by current branch %s (refunded %s)",
        transfer_request.id, transfer_request.current_branch_id, clearance.refunded_amount
    )
    return TransitionResult(
        transfer_request=transfer_request,
        snapshot=snapshot,
        clearance=clearance,
    )


def _clear_current_branch(
    transfer_request: TransferRequest,
    snapshot: ConflictSnapshot,
    decision: ApprovalDecision,
    user: User
) -> ClearanceOutcome:
    """Cancel the conflicting records whose auto-cancel flag is set."""
    outcome = ClearanceOutcome()
    refund_reason = f"Branch transfer {transfer_request.id}"

    if decision.auto_cancel_subscriptions and snapshot.active_subscriptions:
        subscriptions = Subscription.objects.filter(
            id__in=[sub.id for sub in snapshot.active_subscriptions]
        ).order_by('created_at')
        for subscription in subscriptions:
            amount = estimate_subscription_refund(
                subscription.price_final,
                subscription.used_slots,
                subscription.total_slots,
            )
            subscription.cancel(
                refund_amount=amount if amount > 0 else None,
                issued_by=user,
                reason=refund_reason,
            )
            outcome.cancelled_subscription_ids.append(subscription.id)
            if amount > 0:
                outcome.refunds.append((subscription.id, amount))

    if decision.auto_cancel_slots and snapshot.future_slots:
        slots = Slot.objects.filter(
            id__in=[slot.id for slot in snapshot.future_slots]
        ).order_by('date', 'start_time')
        for slot in slots:
            slot.cancel()
            outcome.cancelled_slot_ids.append(slot.id)

    if decision.auto_cancel_orders and snapshot.pending_orders:
        orders = Order.objects.filter(
            id__in=[order.id for order in snapshot.pending_orders]
        ).order_by('created_at')
        for order in orders:
            order.cancel()
            outcome.cancelled_order_ids.append(order.id)

    return outcome


def _approve_at_new_branch(
    transfer_request: TransferRequest,
    user: User,
    decision: ApprovalDecision
) -> TransitionResult:
    _ensure_branch_manager(user, transfer_request.target_branch_id, 'approving')

    with _side_effects(transfer_request, 'Enrolling the student'):
        enrolled_student = _enroll_at_target_branch(transfer_request)

    now = timezone.now()
    fields = {
        'enrolled_student': enrolled_student,
        'new_branch_decided_by': user,
        'new_branch_decided_time': now,
    }
    if decision.manager_notes:
        fields['manager_notes'] = decision.manager_notes

    compare_and_set_status(
        transfer_request,
        expected=TransferStatus.READY_TO_TRANSFER,
        new=TransferStatus.APPROVED,
        actor=user,
        **fields
    )

    record_transition(
        transfer_request=transfer_request,
        actor=user,
        action='new_branch_approved',
        from_status=TransferStatus.READY_TO_TRANSFER,
        to_status=TransferStatus.APPROVED,
        notes=decision.manager_notes,
        details={'enrolled_student_id': str(enrolled_student.id)},
    )

    logger.info(
        "Transfer request %s approved by target branch %s; enrolled student %s",
        transfer_request.id, transfer_request.target_branch_id, enrolled_student.id
    )
    return TransitionResult(
        transfer_request=transfer_request,
        enrolled_student=enrolled_student,
    )


def _enroll_at_target_branch(transfer_request: TransferRequest) -> Student:
    """Create the student record at the target branch and retire the old one."""
    previous = Student.objects.select_for_update().get(id=transfer_request.student_id)

    enrolled = Student.objects.create(
        full_name=previous.full_name,
        date_of_birth=previous.date_of_birth,
        parent_id=previous.parent_id,
        branch_id=transfer_request.target_branch_id,
        school_id=(
            transfer_request.target_school_id
            if transfer_request.change_school else previous.school_id
        ),
        student_level_id=(
            transfer_request.target_student_level_id
            if transfer_request.change_level else previous.student_level_id
        ),
        transferred_from=previous,
    )

    previous.is_active = False
    previous.save(update_fields=['is_active', 'updated_at'])
    return enrolled


# =============================================================================
# Reject / Cancel
# =============================================================================

def reject_transfer_request(
    *,
    request_id: UUID,
    user: User,
    rejection_reason: str,
    manager_notes: str = ''
) -> TransitionResult:
    """
    Reject a request waiting on the caller's branch.

    While Pending the current branch decides, while ReadyToTransfer the
    target branch does. Operational data is left untouched.

    Raises:
        ValidationError: If rejection_reason is empty
        NotFoundError: If the request doesn't exist
        StateError: If the request is already terminal
        AuthorizationError: If user doesn't manage the responsible branch
    """
    reason = (rejection_reason or '').strip()
    if not reason:
        raise ValidationError('A rejection reason is required', field='rejection_reason')
    notes = (manager_notes or '').strip()

    observed_status = _observe(request_id)

    with transaction.atomic():
        transfer_request = _lock_observed(request_id, observed_status)
        _ensure_transition(transfer_request, TransferStatus.REJECTED)
        _ensure_branch_manager(user, transfer_request.responsible_branch_id(), 'rejecting')

        from_status = transfer_request.status
        fields = {'rejection_reason': reason}
        if notes:
            fields['manager_notes'] = notes
        if from_status == TransferStatus.PENDING:
            fields.update(old_branch_decided_by=user, old_branch_decided_time=timezone.now())
        else:
            fields.update(new_branch_decided_by=user, new_branch_decided_time=timezone.now())

        compare_and_set_status(
            transfer_request,
            expected=from_status,
            new=TransferStatus.REJECTED,
            actor=user,
            **fields
        )
        record_transition(
            transfer_request=transfer_request,
            actor=user,
            action='rejected',
            from_status=from_status,
            to_status=TransferStatus.REJECTED,
            notes=notes,
            reason=reason,
        )

    logger.info("Transfer request %s rejected from %s", transfer_request.id, from_status)
    return TransitionResult(transfer_request=transfer_request)


def cancel_transfer_request(*, request_id: UUID, user: User) -> TransitionResult:
    """
    Cancel a Pending request (requester only).

    Raises:
        NotFoundError: If the request doesn't exist
        AuthorizationError: If user is not the requester
        StateError: If the request is no longer Pending
    """
    with transaction.atomic():
        transfer_request = get_transfer_request(request_id=request_id, lock=True)

        if transfer_request.requested_by_id != user.id:
            raise AuthorizationError('Only the parent who submitted the request can cancel it')
        _ensure_transition(transfer_request, TransferStatus.CANCELLED)

        compare_and_set_status(
            transfer_request,
            expected=TransferStatus.PENDING,
            new=TransferStatus.CANCELLED,
            actor=user,
        )
        record_transition(
            transfer_request=transfer_request,
            actor=user,
            action='cancelled',
            from_status=TransferStatus.PENDING,
            to_status=TransferStatus.CANCELLED,
        )

    logger.info("Transfer request %s cancelled by requester", transfer_request.id)
    return TransitionResult(transfer_request=transfer_request)


# =============================================================================
# Read helpers
# =============================================================================

def can_view_transfer_request(transfer_request: TransferRequest, user: User) -> bool:
    if user.is_platform_admin or transfer_request.requested_by_id == user.id:
        return True
    return (
        user.manages_branch(transfer_request.current_branch_id) or
        user.manages_branch(transfer_request.target_branch_id)
    )


def get_request_conflicts(*, request_id: UUID, user: User) -> ConflictSnapshot:
    """
    Conflict snapshot at the request's current branch, for display.

    The approve action recomputes its own snapshot; this one is
    informational only.

    Raises:
        NotFoundError: If the request doesn't exist
        AuthorizationError: If user manages neither branch
    """
    transfer_request = get_transfer_request(request_id=request_id)

    if not (
        user.is_platform_admin or
        user.manages_branch(transfer_request.current_branch_id) or
        user.manages_branch(transfer_request.target_branch_id)
    ):
        raise AuthorizationError('Only managers of the involved branches can view conflicts')

    return detect_conflicts(
        student_id=transfer_request.student_id,
        branch_id=transfer_request.current_branch_id,
    )


def available_actions(transfer_request: TransferRequest, user: User) -> dict:
    """Actions the user may take on the request right now."""
    responsible_branch_id = transfer_request.responsible_branch_id()
    can_decide = (
        transfer_request.status in OPEN_STATUSES and
        user.manages_branch(responsible_branch_id)
    )

    stage = None
    if transfer_request.status == TransferStatus.PENDING:
        stage = 'old_branch'
    elif transfer_request.status == TransferStatus.READY_TO_TRANSFER:
        stage = 'new_branch'

    return {
        'can_approve': can_decide,
        'can_reject': can_decide,
        'can_cancel': (
            transfer_request.status == TransferStatus.PENDING and
            transfer_request.requested_by_id == user.id
        ),
        'approval_stage': stage,
    }
