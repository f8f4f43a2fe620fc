# ==========================================
# apps/transfers/admin.py
# ==========================================

from django.contrib import admin
from django.utils import timezone
from django.utils.html import format_html
from apps.transfers.models import (
    NotificationStatus,
    TransferAuditEntry,
    TransferNotification,
    TransferRequest,
    TransferStatus,
)


STATUS_COLORS = {
    TransferStatus.PENDING: ('#F2C94C', '#2C1810'),
    TransferStatus.READY_TO_TRANSFER: ('#2F80ED', 'white'),
    TransferStatus.APPROVED: ('#6B8E5E', 'white'),
    TransferStatus.REJECTED: ('#B23A48', 'white'),
    TransferStatus.CANCELLED: ('#999', 'white'),
}


class ReadOnlyAdminMixin:
    """Workflow rows change only through the transfer services."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class TransferAuditEntryInline(ReadOnlyAdminMixin, admin.TabularInline):
    """Inline audit trail on the request page."""
    model = TransferAuditEntry
    extra = 0
    fields = ['created_at', 'action', 'from_status', 'to_status', 'actor', 'reason']
    readonly_fields = fields


@admin.register(TransferRequest)
class TransferRequestAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Admin interface for branch transfer requests."""

    list_display = [
        'student',
        'current_branch',
        'target_branch',
        'status_badge',
        'requested_by',
        'created_time',
        'decided_time',
    ]
    list_filter = ['status', 'current_branch', 'target_branch', 'created_time']
    search_fields = ['student__full_name', 'requested_by__email', 'request_reason']
    inlines = [TransferAuditEntryInline]
    date_hierarchy = 'created_time'
    ordering = ['-created_time']

    fieldsets = (
        ('Request', {
            'fields': (
                'student', 'current_branch', 'target_branch',
                'current_school', 'current_student_level',
                'change_school', 'target_school',
                'change_level', 'target_student_level',
                'document', 'request_reason', 'requested_by', 'created_time',
            )
        }),
        ('Decision', {
            'fields': (
                'status', 'rejection_reason', 'manager_notes',
                'old_branch_decided_by', 'old_branch_decided_time',
                'new_branch_decided_by', 'new_branch_decided_time',
                'enrolled_student',
            )
        }),
    )

    def status_badge(self, obj):
        """Display status as colored badge."""
        bg, fg = STATUS_COLORS.get(obj.status, ('#ccc', '#666'))
        return format_html(
            '<span style="background: {}; color: {}; padding: 3px 8px; '
            'border-radius: 10px; font-size: 11px;">{}</span>',
            bg, fg, obj.get_status_display()
        )
    status_badge.short_description = 'Status'
    status_badge.admin_order_field = 'status'

    def get_queryset(self, request):
        """Optimize query."""
        qs = super().get_queryset(request)
        return qs.select_related('student', 'current_branch', 'target_branch', 'requested_by')


@admin.register(TransferAuditEntry)
class TransferAuditEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Admin interface for the transfer audit trail."""

    list_display = ['request', 'action', 'from_status', 'to_status', 'actor', 'created_at']
    list_filter = ['action', 'to_status', 'created_at']
    search_fields = ['request__student__full_name', 'actor__email']
    date_hierarchy = 'created_at'
    ordering = ['-created_at']


@admin.register(TransferNotification)
class TransferNotificationAdmin(admin.ModelAdmin):
    """Admin interface for the requester notification outbox."""

    list_display = ['subject', 'recipient', 'status', 'attempts', 'next_attempt_at', 'sent_at']
    list_filter = ['status', 'created_at']
    search_fields = ['recipient__email', 'subject']
    readonly_fields = [
        'request', 'recipient', 'subject', 'message', 'status',
        'attempts', 'last_error', 'next_attempt_at', 'sent_at', 'created_at',
    ]
    ordering = ['-created_at']

    actions = ['retry_failed']

    def has_add_permission(self, request):
        return False

    @admin.action(description='Retry selected failed notifications')
    def retry_failed(self, request, queryset):
        """Requeue failed notifications for the delivery command."""
        count = queryset.filter(status=NotificationStatus.FAILED).update(
            status=NotificationStatus.PENDING,
            attempts=0,
            next_attempt_at=timezone.now(),
        )
        self.message_user(request, f'Requeued {count} notification(s).')
