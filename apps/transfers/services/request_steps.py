"""
Ordered validators for the parent-facing transfer request flow.

The request form is filled in three steps (child and target branch,
school and level, supporting document and reason). Each step is a plain
function over a TransferDraft that raises a domain exception and never
writes anything; creation runs all of them before touching the database.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from django.conf import settings

from apps.accounts.models import User
from apps.branches.models import Branch, School, StudentLevel
from apps.students.models import Student
from apps.transfers.models import OPEN_STATUSES

from .exceptions import AuthorizationError, ValidationError


@dataclass(frozen=True)
class TransferDraft:
    """Resolved input of a transfer request that has not been stored yet."""

    requested_by: User
    student: Optional[Student]
    target_branch: Optional[Branch]
    change_school: bool = False
    target_school: Optional[School] = None
    change_level: bool = False
    target_student_level: Optional[StudentLevel] = None
    document_file: Optional[object] = None
    request_reason: str = ''

    @property
    def requires_document(self) -> bool:
        return self.change_school or self.change_level


def validate_student_and_branch(draft: TransferDraft) -> None:
    """Step 1: the child belongs to the requester and moves to another branch."""
    if draft.student is None:
        raise ValidationError('Please select the child to transfer', field='student_id')
    if draft.target_branch is None:
        raise ValidationError('Please select the target branch', field='target_branch_id')

    if draft.student.parent_id != draft.requested_by.id:
        raise AuthorizationError('You can only request transfers for your own children')
    if not draft.student.is_active:
        raise ValidationError('This student record is no longer active', field='student_id')
    if not draft.target_branch.is_active:
        raise ValidationError('The target branch is not accepting students', field='target_branch_id')

    if draft.target_branch.id == draft.student.branch_id:
        raise ValidationError(
            'Target branch must be different from the current branch',
            field='target_branch_id'
        )

    if draft.student.transfer_requests.filter(status__in=OPEN_STATUSES).exists():
        raise ValidationError(
            'This student already has a transfer request in progress',
            field='student_id'
        )


def validate_school_and_level(draft: TransferDraft) -> None:
    """Step 2: requested school/level exist and are supported by the target branch."""
    if draft.change_school:
        if draft.target_school is None:
            raise ValidationError('Please select the target school', field='target_school_id')
        if not draft.target_branch.supports_school(draft.target_school.id):
            raise ValidationError(
                'The target branch does not support the selected school',
                field='target_school_id'
            )

    if draft.change_level:
        if draft.target_student_level is None:
            raise ValidationError('Please select the target student level', field='target_student_level_id')
        if not draft.target_branch.supports_student_level(draft.target_student_level.id):
            raise ValidationError(
                'The target branch does not support the selected student level',
                field='target_student_level_id'
            )


def validate_document_and_reason(draft: TransferDraft) -> None:
    """Step 3: a supporting document accompanies school or level changes."""
    if draft.requires_document and draft.document_file is None:
        raise ValidationError(
            'A supporting document is required when changing school or level',
            field='document_file'
        )
    if draft.document_file is not None:
        validate_document_file(draft.document_file)


def validate_document_file(document_file) -> None:
    """Only images (JPEG, PNG) and PDFs up to the configured size are accepted."""
    content_type = getattr(document_file, 'content_type', None)
    if content_type not in settings.TRANSFER_DOCUMENT_CONTENT_TYPES:
        raise ValidationError('Only JPEG, PNG or PDF documents are accepted', field='document_file')

    max_bytes = settings.TRANSFER_DOCUMENT_MAX_BYTES
    if document_file.size > max_bytes:
        raise ValidationError(
            f'Document must not exceed {max_bytes // (1024 * 1024)} MB',
            field='document_file'
        )


REQUEST_STEPS: Sequence[Callable[[TransferDraft], None]] = (
    validate_student_and_branch,
    validate_school_and_level,
    validate_document_and_reason,
)


def run_request_steps(draft: TransferDraft, steps: Sequence[Callable[[TransferDraft], None]] = REQUEST_STEPS) -> TransferDraft:
    """Run the step validators in order; the first failure stops the flow."""
    for step in steps:
        step(draft)
    return draft
