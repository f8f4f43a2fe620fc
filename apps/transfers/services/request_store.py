"""
Transfer request store.

Creates, loads and lists transfer requests, and owns the one primitive
allowed to change a request's status: a compare-and-set update guarded by
the status the caller read.
"""

import logging
from typing import Optional
from uuid import UUID

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from apps.accounts.models import User
from apps.branches.models import Branch, School, StudentLevel
from apps.students.models import Student
from apps.transfers.models import TransferDocument, TransferRequest, TransferStatus

from .exceptions import NotFoundError, StateError, ValidationError
from .notifications import record_transition
from .request_steps import TransferDraft, run_request_steps

logger = logging.getLogger(__name__)

STAGE_OLD_BRANCH = 'old_branch'
STAGE_NEW_BRANCH = 'new_branch'


def _resolve(model, object_id, *, field: str, label: str):
    if object_id is None:
        return None
    try:
        return model.objects.get(id=object_id)
    except (model.DoesNotExist, DjangoValidationError, ValueError):
        raise ValidationError(f"{label} not found", field=field)


def create_transfer_request(
    *,
    requested_by: User,
    student_id: UUID,
    target_branch_id: UUID,
    change_school: bool = False,
    change_level: bool = False,
    target_school_id: Optional[UUID] = None,
    target_student_level_id: Optional[UUID] = None,
    document_file=None,
    request_reason: str = ''
) -> TransferRequest:
    """
    Create a Pending transfer request for the requester's child.

    All request steps are validated before anything is written; the
    document upload and the request row are then stored in one
    transaction.

    Args:
        requested_by: Parent submitting the request
        student_id: Child to transfer
        target_branch_id: Branch the child moves to
        change_school: Whether the child also changes school
        change_level: Whether the child also changes student level
        target_school_id: Required when change_school
        target_student_level_id: Required when change_level
        document_file: Uploaded supporting document, required when
            changing school or level
        request_reason: Optional free text

    Returns:
        Created TransferRequest

    Raises:
        ValidationError: If any request step fails
        AuthorizationError: If the student is not the requester's child
    """
    draft = TransferDraft(
        requested_by=requested_by,
        student=_resolve(Student, student_id, field='student_id', label='Student'),
        target_branch=_resolve(Branch, target_branch_id, field='target_branch_id', label='Target branch'),
        change_school=change_school,
        target_school=_resolve(
            School, target_school_id if change_school else None,
            field='target_school_id', label='Target school'
        ),
        change_level=change_level,
        target_student_level=_resolve(
            StudentLevel, target_student_level_id if change_level else None,
            field='target_student_level_id', label='Target student level'
        ),
        document_file=document_file,
        request_reason=(request_reason or '').strip(),
    )
    run_request_steps(draft)

    with transaction.atomic():
        document = None
        if draft.document_file is not None:
            document = TransferDocument.objects.create(
                file=draft.document_file,
                original_name=getattr(draft.document_file, 'name', '') or '',
                content_type=draft.document_file.content_type,
                size_bytes=draft.document_file.size,
                uploaded_by=requested_by,
            )

        try:
            with transaction.atomic():
                transfer_request = TransferRequest.objects.create(
                    student=draft.student,
                    current_branch_id=draft.student.branch_id,
                    current_school_id=draft.student.school_id,
                    current_student_level_id=draft.student.student_level_id,
                    target_branch=draft.target_branch,
                    change_school=draft.change_school,
                    target_school=draft.target_school,
                    change_level=draft.change_level,
                    target_student_level=draft.target_student_level,
                    document=document,
                    request_reason=draft.request_reason,
                    status=TransferStatus.PENDING,
                    requested_by=requested_by,
                )
        except IntegrityError:
            # Concurrent submission for the same student
            if document is not None:
                document.file.delete(save=False)
            raise ValidationError(
                'This student already has a transfer request in progress',
                field='student_id'
            )

        record_transition(
            transfer_request=transfer_request,
            actor=requested_by,
            action='created',
            from_status='',
            to_status=TransferStatus.PENDING,
            notes=draft.request_reason,
        )

    logger.info(
        "Transfer request %s created for student %s (%s -> %s)",
        transfer_request.id, draft.student.id,
        transfer_request.current_branch_id, transfer_request.target_branch_id,
    )
    return transfer_request


def get_transfer_request(*, request_id: UUID, lock: bool = False) -> TransferRequest:
    """
    Load a transfer request.

    Args:
        request_id: UUID of the request
        lock: Take a row lock (SELECT FOR UPDATE); only inside a transaction

    Raises:
        NotFoundError: If the request doesn't exist
    """
    if lock:
        queryset = TransferRequest.objects.select_for_update()
    else:
        queryset = TransferRequest.objects.select_related(
            'student',
            'current_branch',
            'target_branch',
            'target_school',
            'target_student_level',
            'requested_by',
            'document',
        )

    try:
        return queryset.get(id=request_id)
    except (TransferRequest.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFoundError(f"Transfer request {request_id} not found")


def transfer_requests_for_user(
    user: User,
    *,
    status: Optional[str] = None,
    branch_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    stage: Optional[str] = None
) -> QuerySet[TransferRequest]:
    """
    Requests visible to a user, with optional filters.

    Parents see the requests they submitted, managers see requests that
    leave from or arrive at a branch they manage, admins see everything.

    ``stage`` narrows to the requests waiting on a manager: ``old_branch``
    (Pending, by current branch) or ``new_branch`` (ReadyToTransfer, by
    target branch).
    """
    queryset = TransferRequest.objects.select_related(
        'student',
        'current_branch',
        'target_branch',
        'target_school',
        'target_student_level',
        'requested_by',
    )

    managed_ids = None
    if user.is_platform_admin:
        pass
    elif user.is_manager:
        managed_ids = list(user.managed_branches.values_list('id', flat=True))
        queryset = queryset.filter(
            Q(current_branch_id__in=managed_ids) |
            Q(target_branch_id__in=managed_ids)
        )
    else:
        queryset = queryset.filter(requested_by=user)

    if status:
        queryset = queryset.filter(status=status)
    if branch_id:
        queryset = queryset.filter(
            Q(current_branch_id=branch_id) | Q(target_branch_id=branch_id)
        )
    if student_id:
        queryset = queryset.filter(student_id=student_id)

    if stage == STAGE_OLD_BRANCH:
        queryset = queryset.filter(status=TransferStatus.PENDING)
        if managed_ids is not None:
            queryset = queryset.filter(current_branch_id__in=managed_ids)
    elif stage == STAGE_NEW_BRANCH:
        queryset = queryset.filter(status=TransferStatus.READY_TO_TRANSFER)
        if managed_ids is not None:
            queryset = queryset.filter(target_branch_id__in=managed_ids)

    return queryset.order_by('-created_time')


def compare_and_set_status(
    transfer_request: TransferRequest,
    *,
    expected: str,
    new: str,
    actor: User,
    **fields
) -> TransferRequest:
    """
    Move a request from ``expected`` to ``new`` status in one UPDATE.

    The row only changes if its stored status still equals ``expected``,
    so of two racing transitions exactly one wins. Extra ``fields`` are
    written in the same statement.

    Raises:
        StateError: If the stored status no longer matches
    """
    now = timezone.now()
    updates = {
        'status': new,
        'decided_by': actor,
        'decided_time': now,
        'updated_at': now,
        **fields,
    }

    updated = (
        TransferRequest.objects
        .filter(id=transfer_request.id, status=expected)
        .update(**updates)
    )
    if updated != 1:
        raise StateError(
            f"Transfer request {transfer_request.id} is no longer {expected}; "
            f"it was changed by another action"
        )

    for name, value in updates.items():
        setattr(transfer_request, name, value)
    return transfer_request
