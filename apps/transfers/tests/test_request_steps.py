"""
Tests for the transfer request step validators and creation.

Tests cover:
- Step 1: student ownership, active records, different target branch
- Step 2: school/level required and supported by the target branch
- Step 3: supporting document rules
- Creation writes nothing when a step fails
- Duplicate submissions leave no stored upload
"""

import pytest
from pathlib import Path
from unittest.mock import patch
from uuid import uuid4

from apps.branches.models import Branch, School
from apps.transfers.models import TransferAuditEntry, TransferDocument, TransferRequest, TransferStatus
from apps.transfers.services import create_transfer_request, TransferDraft, run_request_steps
from apps.transfers.services.exceptions import AuthorizationError, ValidationError
from apps.transfers.services.request_steps import validate_student_and_branch

from .conftest import make_document


@pytest.mark.django_db
class TestStudentAndBranchStep:
    """Step 1 validation."""

    def test_same_branch_rejected(self, parent, student, old_branch):
        with pytest.raises(ValidationError) as exc_info:
            create_transfer_request(
                requested_by=parent,
                student_id=student.id,
                target_branch_id=old_branch.id,
            )

        assert exc_info.value.field == 'target_branch_id'
        assert TransferRequest.objects.count() == 0

    def test_other_parents_child_rejected(self, other_parent, student, new_branch):
        with pytest.raises(AuthorizationError):
            create_transfer_request(
                requested_by=other_parent,
                student_id=student.id,
                target_branch_id=new_branch.id,
            )

    def test_unknown_student(self, parent, new_branch):
        with pytest.raises(ValidationError, match='Student not found'):
            create_transfer_request(
                requested_by=parent,
                student_id=uuid4(),
                target_branch_id=new_branch.id,
            )

    def test_malformed_branch_id(self, parent, student):
        with pytest.raises(ValidationError, match='Target branch not found'):
            create_transfer_request(
                requested_by=parent,
                student_id=student.id,
                target_branch_id='not-a-uuid',
            )

    def test_inactive_target_branch(self, parent, student):
        closed = Branch.objects.create(name='Closed', is_active=False)

        with pytest.raises(ValidationError, match='not accepting students'):
            create_transfer_request(
                requested_by=parent,
                student_id=student.id,
                target_branch_id=closed.id,
            )

    def test_one_open_request_per_student(self, parent, student, new_branch, pending_request):
        with pytest.raises(ValidationError, match='already has a transfer request'):
            create_transfer_request(
                requested_by=parent,
                student_id=student.id,
                target_branch_id=new_branch.id,
            )

        assert TransferRequest.objects.filter(student=student).count() == 1

    def test_missing_student_in_draft(self, parent, new_branch):
        draft = TransferDraft(requested_by=parent, student=None, target_branch=new_branch)

        with pytest.raises(ValidationError) as exc_info:
            validate_student_and_branch(draft)

        assert exc_info.value.field == 'student_id'


@pytest.mark.django_db
class TestSchoolAndLevelStep:
    """Step 2 validation."""

    def test_change_school_requires_target_school(self, parent, student, new_branch):
        with pytest.raises(ValidationError) as exc_info:
            create_transfer_request(
                requested_by=parent,
                student_id=student.id,
                target_branch_id=new_branch.id,
                change_school=True,
                document_file=make_document(),
            )

        assert exc_info.value.field == 'target_school_id'

    def test_school_must_be_supported_by_target_branch(self, parent, student, new_branch):
        unsupported = School.objects.create(name='Far Away School')

        with pytest.raises(ValidationError, match='does not support the selected school'):
            create_transfer_request(
                requested_by=parent,
                student_id=student.id,
                target_branch_id=new_branch.id,
                change_school=True,
                target_school_id=unsupported.id,
                document_file=make_document(),
            )

    def test_change_level_requires_target_level(self, parent, student, new_branch):
        with pytest.raises(ValidationError) as exc_info:
            create_transfer_request(
                requested_by=parent,
                student_id=student.id,
                target_branch_id=new_branch.id,
                change_level=True,
                document_file=make_document(),
            )

        assert exc_info.value.field == 'target_student_level_id'

    def test_target_ids_ignored_without_change_flag(self, parent, student, new_branch, new_school):
        transfer_request = create_transfer_request(
            requested_by=parent,
            student_id=student.id,
            target_branch_id=new_branch.id,
            target_school_id=new_school.id,
        )

        assert transfer_request.change_school is False
        assert transfer_request.target_school is None


@pytest.mark.django_db
class TestDocumentStep:
    """Step 3 validation."""

    def test_document_required_when_changing_level(self, parent, student, new_branch, new_level):
        with pytest.raises(ValidationError) as exc_info:
            create_transfer_request(
                requested_by=parent,
                student_id=student.id,
                target_branch_id=new_branch.id,
                change_level=True,
                target_student_level_id=new_level.id,
            )

        assert exc_info.value.field == 'document_file'

    def test_unsupported_document_type(self, parent, student, new_branch, new_level):
        with pytest.raises(ValidationError, match='JPEG, PNG or PDF'):
            create_transfer_request(
                requested_by=parent,
                student_id=student.id,
                target_branch_id=new_branch.id,
                change_level=True,
                target_student_level_id=new_level.id,
                document_file=make_document('notes.txt', 'text/plain', b'hello'),
            )

        assert TransferDocument.objects.count() == 0

    def test_document_too_large(self, settings, parent, student, new_branch, new_level):
        settings.TRANSFER_DOCUMENT_MAX_BYTES = 10

        with pytest.raises(ValidationError, match='must not exceed'):
            create_transfer_request(
                requested_by=parent,
                student_id=student.id,
                target_branch_id=new_branch.id,
                change_level=True,
                target_student_level_id=new_level.id,
                document_file=make_document('scan.png', 'image/png', b'x' * 11),
            )

    def test_optional_document_still_validated(self, parent, student, new_branch):
        with pytest.raises(ValidationError):
            create_transfer_request(
                requested_by=parent,
                student_id=student.id,
                target_branch_id=new_branch.id,
                document_file=make_document('movie.mp4', 'video/mp4', b'0000'),
            )


@pytest.mark.django_db
class TestCreateTransferRequest:
    """Successful creation."""

    def test_creates_pending_request(self, parent, student, old_branch, new_branch, school, level):
        transfer_request = create_transfer_request(
            requested_by=parent,
            student_id=student.id,
            target_branch_id=new_branch.id,
            request_reason='  Closer to work  ',
        )

        assert transfer_request.status == TransferStatus.PENDING
        assert transfer_request.current_branch == old_branch
        assert transfer_request.target_branch == new_branch
        assert transfer_request.current_school == school
        assert transfer_request.current_student_level == level
        assert transfer_request.requested_by == parent
        assert transfer_request.request_reason == 'Closer to work'
        assert transfer_request.document is None

    def test_stores_document(self, school_change_request, parent, new_school):
        document = school_change_request.document

        assert school_change_request.target_school == new_school
        assert document is not None
        assert document.content_type == 'application/pdf'
        assert document.uploaded_by == parent
        assert document.original_name == 'proof.pdf'
        assert document.size_bytes == len(b'%PDF-1.4 test document')

    def test_records_creation_audit_entry(self, pending_request, parent):
        entry = TransferAuditEntry.objects.get(request=pending_request)

        assert entry.action == 'created'
        assert entry.from_status == ''
        assert entry.to_status == TransferStatus.PENDING
        assert entry.actor == parent

    def test_run_request_steps_stops_at_first_failure(self, parent, student, new_branch):
        calls = []

        def first(draft):
            calls.append('first')
            raise ValidationError('stop here')

        def second(draft):
            calls.append('second')

        draft = TransferDraft(requested_by=parent, student=student, target_branch=new_branch)
        with pytest.raises(ValidationError, match='stop here'):
            run_request_steps(draft, steps=(first, second))

        assert calls == ['first']


@pytest.mark.django_db
class TestConcurrentSubmission:
    """A second request that slips past the steps hits the open-request constraint."""

    def test_duplicate_rejected_and_upload_removed(self, media_root, parent, student, new_branch, new_school, pending_request):
        with patch('apps.transfers.services.request_store.run_request_steps'):
            with pytest.raises(ValidationError) as exc_info:
                create_transfer_request(
                    requested_by=parent,
                    student_id=student.id,
                    target_branch_id=new_branch.id,
                    change_school=True,
                    target_school_id=new_school.id,
                    document_file=make_document(),
                )

        assert exc_info.value.field == 'student_id'
        assert TransferRequest.objects.filter(student=student).count() == 1
        assert TransferDocument.objects.count() == 0
        assert [path for path in Path(media_root).rglob('*') if path.is_file()] == []
