from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models
from django.db.models import F, Q
import uuid


class TransferStatus(models.TextChoices):
    PENDING = 'Pending', 'Pending'
    READY_TO_TRANSFER = 'ReadyToTransfer', 'Ready to transfer'
    APPROVED = 'Approved', 'Approved'
    REJECTED = 'Rejected', 'Rejected'
    CANCELLED = 'Cancelled', 'Cancelled'


OPEN_STATUSES = (TransferStatus.PENDING, TransferStatus.READY_TO_TRANSFER)
TERMINAL_STATUSES = (TransferStatus.APPROVED, TransferStatus.REJECTED, TransferStatus.CANCELLED)


def transfer_document_path(instance, filename):
    return f"transfer_documents/{instance.id}/{filename}"


class TransferDocument(models.Model):
    """Supporting document uploaded with a transfer request."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    file = models.FileField(upload_to=transfer_document_path)
    original_name = models.CharField(max_length=255, blank=True)
    content_type = models.CharField(max_length=100)
    size_bytes = models.PositiveIntegerField()

    uploaded_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='transfer_documents'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'transfer_documents'
        ordering = ['-created_at']

    def __str__(self):
        return self.original_name or str(self.id)


class TransferRequest(models.Model):
    """
    Request to move a student from one branch to another.

    Status is only ever changed through the services in
    ``apps.transfers.services.state_machine``; rows are never deleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Immutable after creation
    student = models.ForeignKey(
        'students.Student',
        on_delete=models.PROTECT,
        related_name='transfer_requests'
    )
    current_branch = models.ForeignKey(
        'branches.Branch',
        on_delete=models.PROTECT,
        related_name='outgoing_transfer_requests'
    )
    target_branch = models.ForeignKey(
        'branches.Branch',
        on_delete=models.PROTECT,
        related_name='incoming_transfer_requests'
    )

    # School / level at the time of the request
    current_school = models.ForeignKey(
        'branches.School',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    current_student_level = models.ForeignKey(
        'branches.StudentLevel',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    # School / level change
    change_school = models.BooleanField(default=False)
    target_school = models.ForeignKey(
        'branches.School',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+'
    )
    change_level = models.BooleanField(default=False)
    target_student_level = models.ForeignKey(
        'branches.StudentLevel',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+'
    )

    document = models.ForeignKey(
        TransferDocument,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='transfer_requests'
    )
    request_reason = models.TextField(blank=True)

    # Workflow
    status = models.CharField(
        max_length=20,
        choices=TransferStatus.choices,
        default=TransferStatus.PENDING,
        db_index=True
    )
    rejection_reason = models.TextField(blank=True)
    manager_notes = models.TextField(blank=True)

    # Student record created at the target branch on final approval
    enrolled_student = models.OneToOneField(
        'students.Student',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='enrolled_by_transfer'
    )

    # Audit
    requested_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='transfer_requests'
    )
    created_time = models.DateTimeField(auto_now_add=True)
    decided_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+'
    )
    decided_time = models.DateTimeField(null=True, blank=True)
    old_branch_decided_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+'
    )
    old_branch_decided_time = models.DateTimeField(null=True, blank=True)
    new_branch_decided_by = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+'
    )
    new_branch_decided_time = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'transfer_requests'
        indexes = [
            models.Index(fields=['current_branch', 'status'], name='transfer_re_current_6a1b2c_idx'),
            models.Index(fields=['target_branch', 'status'], name='transfer_re_target__9d3e4f_idx'),
            models.Index(fields=['requested_by', 'created_time'], name='transfer_re_request_2f7a8b_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~Q(target_branch=F('current_branch')),
                name='transfer_target_differs_from_current',
            ),
            models.UniqueConstraint(
                fields=['student'],
                condition=Q(status__in=OPEN_STATUSES),
                name='transfer_one_open_request_per_student',
            ),
        ]
        ordering = ['-created_time']

    def __str__(self):
        return f"{self.student.full_name}: {self.current_branch.name} -> {self.target_branch.name} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def responsible_branch_id(self):
        """Branch whose manager must act next, or None once terminal."""
        if self.status == TransferStatus.PENDING:
            return self.current_branch_id
        if self.status == TransferStatus.READY_TO_TRANSFER:
            return self.target_branch_id
        return None


class TransferAuditEntry(models.Model):
    """Immutable record of one status transition."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    request = models.ForeignKey(
        TransferRequest,
        on_delete=models.PROTECT,
        related_name='audit_entries'
    )
    actor = models.ForeignKey(
        'accounts.User',
        on_delete=models.PROTECT,
        related_name='transfer_audit_entries'
    )
    action = models.CharField(max_length=40)
    from_status = models.CharField(max_length=20, choices=TransferStatus.choices, blank=True)
    to_status = models.CharField(max_length=20, choices=TransferStatus.choices)
    notes = models.TextField(blank=True)
    reason = models.TextField(blank=True)
    details = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'transfer_audit_entries'
        ordering = ['created_at']

    def __str__(self):
        return f"{self.action}: {self.from_status or '-'} -> {self.to_status}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise DjangoValidationError('Audit entries are immutable.')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise DjangoValidationError('Audit entries cannot be deleted.')


class NotificationStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    SENT = 'sent', 'Sent'
    FAILED = 'failed', 'Failed'


class TransferNotification(models.Model):
    """Outbox row for a requester notification; delivered at least once."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    request = models.ForeignKey(
        TransferRequest,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    recipient = models.ForeignKey(
        'accounts.User',
        on_delete=models.CASCADE,
        related_name='transfer_notifications'
    )
    audit_entry = models.OneToOneField(
        TransferAuditEntry,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notification'
    )
    subject = models.CharField(max_length=200)
    message = models.TextField()

    status = models.CharField(
        max_length=20,
        choices=NotificationStatus.choices,
        default=NotificationStatus.PENDING
    )
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    next_attempt_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'transfer_notifications'
        indexes = [
            models.Index(fields=['status', 'next_attempt_at'], name='transfer_no_status_5c6d7e_idx'),
        ]
        ordering = ['created_at']

    def __str__(self):
        return f"{self.subject} -> {self.recipient} ({self.status})"
