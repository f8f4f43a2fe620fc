"""
Audit and notification sink for transfer requests.

Every status transition appends an immutable TransferAuditEntry and
queues a TransferNotification for the requester in the same database
transaction. Delivery happens after commit through a pluggable backend;
undelivered notifications stay pending and are retried by the
``deliver_transfer_notifications`` management command, which also queues
notifications for audit entries whose outbox write failed. Nothing in
this module can undo a committed transition.
"""

import logging
from datetime import timedelta
from functools import partial
from typing import Optional
from uuid import UUID

from django.conf import settings
from django.core.mail import send_mail
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from apps.accounts.models import User
from apps.transfers.models import (
    NotificationStatus,
    TransferAuditEntry,
    TransferNotification,
    TransferRequest,
)

logger = logging.getLogger(__name__)


TRANSITION_MESSAGES = {
    'created': (
        'Transfer request received',
        'Your request to transfer {student} from {current_branch} to {target_branch} '
        'has been received and is waiting for approval by {current_branch}.'
    ),
    'old_branch_approved': (
        'Transfer approved by current branch',
        '{current_branch} approved the transfer of {student}. '
        'The request is now waiting for {target_branch} to confirm enrollment.'
    ),
    'new_branch_approved': (
        'Transfer completed',
        '{student} is now enrolled at {target_branch}.'
    ),
    'rejected': (
        'Transfer request rejected',
        'The transfer of {student} to {target_branch} was rejected. Reason: {reason}'
    ),
    'cancelled': (
        'Transfer request cancelled',
        'Your transfer request for {student} to {target_branch} has been cancelled.'
    ),
}


class EmailNotificationBackend:
    """Deliver notifications by email through Django's mail framework."""

    def send(self, notification: TransferNotification) -> None:
        send_mail(
            subject=notification.subject,
            message=notification.message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[notification.recipient.email],
            fail_silently=False,
        )


class LoggingNotificationBackend:
    """Write notifications to the log; for development."""

    def send(self, notification: TransferNotification) -> None:
        logger.info(
            "Notification for %s: %s - %s",
            notification.recipient.email, notification.subject, notification.message
        )


def get_notification_backend():
    return import_string(settings.TRANSFER_NOTIFICATION_BACKEND)()


def _render_message(transfer_request: TransferRequest, action: str, reason: str):
    subject, template = TRANSITION_MESSAGES[action]
    message = template.format(
        student=transfer_request.student.full_name,
        current_branch=transfer_request.current_branch.name,
        target_branch=transfer_request.target_branch.name,
        reason=reason or '-',
    )
    return subject, message


def _queue_notification(entry: TransferAuditEntry) -> TransferNotification:
    subject, message = _render_message(entry.request, entry.action, entry.reason)
    return TransferNotification.objects.create(
        request=entry.request,
        audit_entry=entry,
        recipient_id=entry.request.requested_by_id,
        subject=subject,
        message=message,
        next_attempt_at=timezone.now(),
    )


def record_transition(
    *,
    transfer_request: TransferRequest,
    actor: User,
    action: str,
    from_status: str,
    to_status: str,
    notes: str = '',
    reason: str = '',
    details: Optional[dict] = None
) -> Optional[TransferNotification]:
    """
    Append the audit entry and queue the requester notification.

    Each write runs in its own savepoint of the caller's transaction, so a
    failure is logged and the transition still commits. A failed audit
    write is retried once the transaction commits; a failed outbox write
    is picked up by ``queue_missing_notifications``. Delivery is attempted
    once the transaction commits.

    Returns:
        The queued TransferNotification, or None if either write failed
    """
    entry_fields = {
        'actor_id': actor.id,
        'action': action,
        'from_status': from_status,
        'to_status': to_status,
        'notes': notes or '',
        'reason': reason or '',
        'details': details or {},
    }

    try:
        with transaction.atomic():
            entry = TransferAuditEntry.objects.create(request=transfer_request, **entry_fields)
    except DatabaseError:
        logger.exception(
            "Failed to record '%s' audit entry for transfer request %s; retrying after commit",
            action, transfer_request.id
        )
        transaction.on_commit(
            partial(_record_after_commit, transfer_request.id, entry_fields),
            robust=True
        )
        return None

    try:
        with transaction.atomic():
            notification = _queue_notification(entry)
    except DatabaseError:
        logger.exception(
            "Failed to queue '%s' notification for transfer request %s; "
            "it will be queued by the next delivery run",
            action, transfer_request.id
        )
        return None

    transaction.on_commit(lambda: deliver_notification(notification.id), robust=True)
    return notification


def _record_after_commit(request_id: UUID, entry_fields: dict) -> None:
    with transaction.atomic():
        transfer_request = TransferRequest.objects.select_related(
            'student', 'current_branch', 'target_branch'
        ).get(id=request_id)
        entry = TransferAuditEntry.objects.create(request=transfer_request, **entry_fields)
        notification = _queue_notification(entry)

    logger.info(
        "Recorded '%s' audit entry for transfer request %s after commit",
        entry.action, request_id
    )
    deliver_notification(notification.id)


def queue_missing_notifications() -> int:
    """
    Queue notifications for audit entries whose outbox write failed.

    Returns:
        Number of notifications queued
    """
    entries = (
        TransferAuditEntry.objects
        .filter(notification__isnull=True)
        .select_related('request__student', 'request__current_branch', 'request__target_branch')
        .order_by('created_at')
    )

    queued = 0
    for entry in entries:
        try:
            with transaction.atomic():
                _queue_notification(entry)
        except IntegrityError:
            # Queued by a concurrent run
            continue
        queued += 1

    if queued:
        logger.warning("Queued %d notification(s) missing from the outbox", queued)
    return queued


def _retry_delay(attempts: int) -> timedelta:
    base = settings.TRANSFER_NOTIFICATION_RETRY_SECONDS
    return timedelta(seconds=base * (2 ** max(0, attempts - 1)))


def deliver_notification(notification_id: UUID) -> TransferNotification:
    """
    Attempt delivery of one pending notification.

    Backend failures are recorded on the row and scheduled for retry with
    exponential backoff; after TRANSFER_NOTIFICATION_MAX_ATTEMPTS the row
    is marked failed.
    """
    with transaction.atomic():
        notification = (
            TransferNotification.objects
            .select_for_update()
            .select_related('recipient')
            .get(id=notification_id)
        )
        if notification.status != NotificationStatus.PENDING:
            return notification

        notification.attempts += 1
        try:
            get_notification_backend().send(notification)
        except Exception as exc:
            notification.last_error = str(exc)[:1000]
            if notification.attempts >= settings.TRANSFER_NOTIFICATION_MAX_ATTEMPTS:
                notification.status = NotificationStatus.FAILED
                notification.next_attempt_at = None
                logger.error(
                    "Giving up on notification %s after %d attempts: %s",
                    notification.id, notification.attempts, exc
                )
            else:
                notification.next_attempt_at = timezone.now() + _retry_delay(notification.attempts)
                logger.warning(
                    "Notification %s delivery failed (attempt %d), retrying at %s: %s",
                    notification.id, notification.attempts, notification.next_attempt_at, exc
                )
        else:
            notification.status = NotificationStatus.SENT
            notification.sent_at = timezone.now()
            notification.next_attempt_at = None
            notification.last_error = ''

        notification.save(update_fields=[
            'status', 'attempts', 'last_error', 'next_attempt_at', 'sent_at'
        ])

    return notification


def deliver_pending_notifications(*, limit: int = 100) -> dict:
    """
    Retry every pending notification that is due.

    Returns:
        Counts of notifications per resulting status
    """
    queue_missing_notifications()

    now = timezone.now()
    due_ids = list(
        TransferNotification.objects
        .filter(status=NotificationStatus.PENDING)
        .filter(next_attempt_at__lte=now)
        .order_by('next_attempt_at')
        .values_list('id', flat=True)[:limit]
    )

    counts = {
        NotificationStatus.SENT: 0,
        NotificationStatus.PENDING: 0,
        NotificationStatus.FAILED: 0,
    }
    for notification_id in due_ids:
        notification = deliver_notification(notification_id)
        counts[notification.status] += 1

    return {str(status): count for status, count in counts.items()}
