from rest_framework import serializers

from apps.accounts.serializers import UserMinimalSerializer
from apps.branches.models import Branch, School, StudentLevel
from apps.students.models import Student

from .models import TransferAuditEntry, TransferRequest, TransferStatus
from .services import STAGE_NEW_BRANCH, STAGE_OLD_BRANCH, available_actions


# =============================================================================
# Nested
# =============================================================================

class BranchMinimalSerializer(serializers.ModelSerializer):
    class Meta:
        model = Branch
        fields = ['id', 'name']
        read_only_fields = fields


class SchoolMinimalSerializer(serializers.ModelSerializer):
    class Meta:
        model = School
        fields = ['id', 'name']
        read_only_fields = fields


class StudentLevelMinimalSerializer(serializers.ModelSerializer):
    class Meta:
        model = StudentLevel
        fields = ['id', 'name']
        read_only_fields = fields


class StudentMinimalSerializer(serializers.ModelSerializer):
    class Meta:
        model = Student
        fields = ['id', 'full_name', 'date_of_birth', 'is_active']
        read_only_fields = fields


# =============================================================================
# Input
# =============================================================================

class TransferRequestCreateSerializer(serializers.Serializer):
    """Multipart payload of a new transfer request."""

    student_id = serializers.UUIDField()
    target_branch_id = serializers.UUIDField()
    change_school = serializers.BooleanField(default=False)
    change_level = serializers.BooleanField(default=False)
    target_school_id = serializers.UUIDField(required=False, allow_null=True)
    target_student_level_id = serializers.UUIDField(required=False, allow_null=True)
    document_file = serializers.FileField(required=False, allow_null=True)
    request_reason = serializers.CharField(required=False, allow_blank=True, default='')


class ApproveTransferSerializer(serializers.Serializer):
    """Manager decision for the approve action."""

    request_id = serializers.UUIDField(required=False)
    auto_cancel_subscriptions = serializers.BooleanField(default=False)
    auto_cancel_slots = serializers.BooleanField(default=False)
    auto_cancel_orders = serializers.BooleanField(default=False)
    approve_only_if_no_conflicts = serializers.BooleanField(default=False)
    manager_notes = serializers.CharField(required=False, allow_blank=True, default='')


class RejectTransferSerializer(serializers.Serializer):
    request_id = serializers.UUIDField(required=False)
    rejection_reason = serializers.CharField(allow_blank=True)
    manager_notes = serializers.CharField(required=False, allow_blank=True, default='')


class TransferRequestFilterSerializer(serializers.Serializer):
    """Query parameters of the list endpoint."""

    status = serializers.ChoiceField(choices=TransferStatus.choices, required=False)
    branch_id = serializers.UUIDField(required=False)
    student_id = serializers.UUIDField(required=False)
    stage = serializers.ChoiceField(
        choices=[STAGE_OLD_BRANCH, STAGE_NEW_BRANCH],
        required=False
    )


# =============================================================================
# Output
# =============================================================================

class TransferRequestListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for list views."""

    student = StudentMinimalSerializer(read_only=True)
    current_branch = BranchMinimalSerializer(read_only=True)
    target_branch = BranchMinimalSerializer(read_only=True)

    class Meta:
        model = TransferRequest
        fields = [
            'id',
            'student',
            'current_branch',
            'target_branch',
            'change_school',
            'change_level',
            'status',
            'created_time',
            'decided_time',
        ]
        read_only_fields = fields


class TransferRequestSerializer(serializers.ModelSerializer):
    """Full transfer request detail with the caller's permitted actions."""

    student = StudentMinimalSerializer(read_only=True)
    current_branch = BranchMinimalSerializer(read_only=True)
    target_branch = BranchMinimalSerializer(read_only=True)
    current_school = SchoolMinimalSerializer(read_only=True)
    current_student_level = StudentLevelMinimalSerializer(read_only=True)
    target_school = SchoolMinimalSerializer(read_only=True)
    target_student_level = StudentLevelMinimalSerializer(read_only=True)
    requested_by = UserMinimalSerializer(read_only=True)
    decided_by = UserMinimalSerializer(read_only=True)
    document_id = serializers.UUIDField(read_only=True, allow_null=True)
    enrolled_student_id = serializers.UUIDField(read_only=True, allow_null=True)
    available_actions = serializers.SerializerMethodField()

    class Meta:
        model = TransferRequest
        fields = [
            'id',
            'student',
            'current_branch',
            'target_branch',
            'current_school',
            'current_student_level',
            'change_school',
            'target_school',
            'change_level',
            'target_student_level',
            'document_id',
            'request_reason',
            'status',
            'rejection_reason',
            'manager_notes',
            'requested_by',
            'created_time',
            'decided_by',
            'decided_time',
            'old_branch_decided_time',
            'new_branch_decided_time',
            'enrolled_student_id',
            'available_actions',
        ]
        read_only_fields = fields

    def get_available_actions(self, obj):
        request = self.context.get('request')
        if request and request.user.is_authenticated:
            return available_actions(obj, request.user)
        return None


class TransferAuditEntrySerializer(serializers.ModelSerializer):
    actor = UserMinimalSerializer(read_only=True)

    class Meta:
        model = TransferAuditEntry
        fields = [
            'id',
            'action',
            'from_status',
            'to_status',
            'actor',
            'notes',
            'reason',
            'details',
            'created_at',
        ]
        read_only_fields = fields


class SubscriptionConflictSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    package_name = serializers.CharField()
    price_final = serializers.DecimalField(max_digits=14, decimal_places=2)
    used_slots = serializers.IntegerField()
    total_slots = serializers.IntegerField()
    estimated_refund = serializers.DecimalField(max_digits=14, decimal_places=2)


class SlotConflictSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    timeframe_name = serializers.CharField()
    room_name = serializers.CharField()
    date = serializers.DateField()
    start_time = serializers.TimeField()


class OrderConflictSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    item_count = serializers.IntegerField()
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    created_date = serializers.DateTimeField()


class ConflictSnapshotSerializer(serializers.Serializer):
    """Serializes ``ConflictSnapshot.as_dict()``."""

    student_id = serializers.UUIDField()
    branch_id = serializers.UUIDField()
    computed_at = serializers.DateTimeField()
    active_subscriptions = SubscriptionConflictSerializer(many=True)
    future_slots = SlotConflictSerializer(many=True)
    pending_orders = OrderConflictSerializer(many=True)
    active_subscriptions_count = serializers.IntegerField()
    future_slots_count = serializers.IntegerField()
    pending_orders_count = serializers.IntegerField()
    estimated_refund_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    has_conflicts = serializers.BooleanField()


class DocumentUrlSerializer(serializers.Serializer):
    document_id = serializers.UUIDField()
    url = serializers.CharField()
    content_type = serializers.CharField()


class ErrorResponseSerializer(serializers.Serializer):
    error = serializers.CharField()
    code = serializers.CharField()
    field = serializers.CharField(required=False)
    conflicts = ConflictSnapshotSerializer(required=False)
