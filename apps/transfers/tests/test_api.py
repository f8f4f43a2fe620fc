"""
API tests for the branch transfer endpoints.

Tests cover:
- Authentication requirements
- Multipart request creation
- Listing, filtering and detail with available actions
- Approve / reject / cancel responses and error payloads
- Conflicts, history and document endpoints
"""

import pytest
from decimal import Decimal
from uuid import uuid4
from django.urls import reverse
from rest_framework import status

from apps.transfers.models import TransferRequest, TransferStatus

from .conftest import make_document


def detail_url(transfer_request, suffix=''):
    name = f'transfers:transfer-request-{suffix}' if suffix else 'transfers:transfer-request-detail'
    return reverse(name, kwargs={'pk': transfer_request.id})


@pytest.mark.django_db
class TestAuthentication:
    """Every endpoint requires an authenticated user."""

    def test_list_requires_auth(self, api_client):
        response = api_client.get(reverse('transfers:transfer-request-list'))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert 'detail' in response.data
        assert 'code' not in response.data

    def test_create_requires_auth(self, api_client):
        response = api_client.post(reverse('transfers:create-request'), {})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestCreateRequest:
    """Tests for POST /api/branch-transfer/request/."""

    def test_create_multipart(self, parent_client, student, new_branch, new_level):
        response = parent_client.post(
            reverse('transfers:create-request'),
            {
                'student_id': str(student.id),
                'target_branch_id': str(new_branch.id),
                'change_school': 'false',
                'change_level': 'true',
                'target_student_level_id': str(new_level.id),
                'document_file': make_document('birth.png', 'image/png', b'\x89PNG fake'),
                'request_reason': 'Moving',
            },
            format='multipart',
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == TransferStatus.PENDING
        assert response.data['target_branch']['id'] == str(new_branch.id)
        assert response.data['target_student_level']['id'] == str(new_level.id)
        assert response.data['document_id'] is not None
        assert response.data['available_actions']['can_cancel'] is True

    def test_create_same_branch(self, parent_client, student, old_branch):
        response = parent_client.post(
            reverse('transfers:create-request'),
            {'student_id': str(student.id), 'target_branch_id': str(old_branch.id)},
            format='multipart',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['code'] == 'validation_error'
        assert response.data['field'] == 'target_branch_id'

    def test_create_missing_school(self, parent_client, student, new_branch):
        response = parent_client.post(
            reverse('transfers:create-request'),
            {
                'student_id': str(student.id),
                'target_branch_id': str(new_branch.id),
                'change_school': 'true',
                'document_file': make_document(),
            },
            format='multipart',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['field'] == 'target_school_id'

    def test_create_malformed_payload(self, parent_client):
        response = parent_client.post(
            reverse('transfers:create-request'),
            {'student_id': 'nope'},
            format='multipart',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'student_id' in response.data
        assert 'target_branch_id' in response.data

    def test_create_for_someone_elses_child(self, other_parent_client, student, new_branch):
        response = other_parent_client.post(
            reverse('transfers:create-request'),
            {'student_id': str(student.id), 'target_branch_id': str(new_branch.id)},
            format='multipart',
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['code'] == 'branch_not_authorized'


@pytest.mark.django_db
class TestListAndDetail:
    """Tests for GET requests/ and requests/{id}/."""

    def test_list_scoped(self, pending_request, parent_client, other_parent_client, outsider_client):
        url = reverse('transfers:transfer-request-list')

        response = parent_client.get(url)
        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['id'] == str(pending_request.id)

        assert other_parent_client.get(url).data['count'] == 0
        assert outsider_client.get(url).data['count'] == 0

    def test_list_stage_filter(self, pending_request, old_manager_client, new_manager_client):
        url = reverse('transfers:transfer-request-list')

        assert old_manager_client.get(url, {'stage': 'old_branch'}).data['count'] == 1
        assert new_manager_client.get(url, {'stage': 'new_branch'}).data['count'] == 0

    def test_list_invalid_filter(self, parent_client):
        response = parent_client.get(reverse('transfers:transfer-request-list'), {'status': 'Unknown'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_detail_with_actions(self, pending_request, old_manager_client):
        response = old_manager_client.get(detail_url(pending_request))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['student']['full_name'] == 'Minh Anh'
        assert response.data['available_actions'] == {
            'can_approve': True,
            'can_reject': True,
            'can_cancel': False,
            'approval_stage': 'old_branch',
        }

    def test_detail_forbidden_for_outsiders(self, pending_request, other_parent_client, outsider_client):
        assert other_parent_client.get(detail_url(pending_request)).status_code == status.HTTP_403_FORBIDDEN
        assert outsider_client.get(detail_url(pending_request)).status_code == status.HTTP_403_FORBIDDEN

    def test_detail_not_found(self, parent_client):
        response = parent_client.get(
            reverse('transfers:transfer-request-detail', kwargs={'pk': uuid4()})
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestApprove:
    """Tests for POST requests/{id}/approve/."""

    def test_old_branch_approve_with_auto_cancel(self, pending_request, old_manager_client, subscriptions, future_slot):
        response = old_manager_client.post(
            detail_url(pending_request, 'approve'),
            {
                'request_id': str(pending_request.id),
                'auto_cancel_subscriptions': True,
                'auto_cancel_slots': False,
                'manager_notes': 'Refund issued',
            },
            format='json',
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == TransferStatus.READY_TO_TRANSFER
        assert response.data['manager_notes'] == 'Refund issued'
        assert response.data['clearance']['refunded_amount'] == '1000000.00'
        assert response.data['clearance']['cancelled_slots'] == []

    def test_blocked_by_conflicts(self, pending_request, old_manager_client, subscriptions, future_slot):
        response = old_manager_client.post(
            detail_url(pending_request, 'approve'),
            {'approve_only_if_no_conflicts': True},
            format='json',
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'conflicts_present'
        assert response.data['conflicts']['active_subscriptions_count'] == 2
        assert response.data['conflicts']['future_slots_count'] == 1
        assert Decimal(response.data['conflicts']['estimated_refund_amount']) == Decimal('1000000')

        pending_request.refresh_from_db()
        assert pending_request.status == TransferStatus.PENDING

    def test_wrong_branch_is_401_with_code(self, pending_request, new_manager_client):
        response = new_manager_client.post(detail_url(pending_request, 'approve'), {}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['code'] == 'branch_not_authorized'

    def test_new_branch_approve(self, ready_request, new_manager_client):
        response = new_manager_client.post(detail_url(ready_request, 'approve'), {}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == TransferStatus.APPROVED
        assert response.data['enrolled_student_id'] is not None
        assert 'clearance' not in response.data

    def test_approve_terminal_is_409(self, pending_request, new_manager_client):
        TransferRequest.objects.filter(id=pending_request.id).update(status=TransferStatus.CANCELLED)

        response = new_manager_client.post(detail_url(pending_request, 'approve'), {}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'invalid_state'

    def test_mismatched_request_id(self, pending_request, old_manager_client):
        response = old_manager_client.post(
            detail_url(pending_request, 'approve'),
            {'request_id': str(uuid4())},
            format='json',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['field'] == 'request_id'

    def test_unknown_request(self, old_manager_client):
        response = old_manager_client.post(
            reverse('transfers:transfer-request-approve', kwargs={'pk': uuid4()}),
            {},
            format='json',
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['code'] == 'not_found'


@pytest.mark.django_db
class TestRejectAndCancel:
    """Tests for POST requests/{id}/reject/ and DELETE requests/{id}/."""

    def test_reject(self, pending_request, old_manager_client):
        response = old_manager_client.post(
            detail_url(pending_request, 'reject'),
            {'rejection_reason': 'Balance outstanding'},
            format='json',
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == TransferStatus.REJECTED
        assert response.data['rejection_reason'] == 'Balance outstanding'

    def test_reject_empty_reason(self, pending_request, old_manager_client):
        response = old_manager_client.post(
            detail_url(pending_request, 'reject'),
            {'rejection_reason': ''},
            format='json',
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['field'] == 'rejection_reason'
        pending_request.refresh_from_db()
        assert pending_request.status == TransferStatus.PENDING

    def test_cancel(self, pending_request, parent_client):
        response = parent_client.delete(detail_url(pending_request))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == TransferStatus.CANCELLED

    def test_cancel_ready_is_409(self, ready_request, parent_client):
        response = parent_client.delete(detail_url(ready_request))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'invalid_state'


@pytest.mark.django_db
class TestConflictsHistoryDocuments:
    """Tests for the read-only side endpoints."""

    def test_conflicts(self, pending_request, old_manager_client, subscriptions, future_slot):
        response = old_manager_client.get(detail_url(pending_request, 'conflicts'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['has_conflicts'] is True
        assert response.data['estimated_refund_amount'] == '1000000.00'
        assert len(response.data['active_subscriptions']) == 2
        assert response.data['pending_orders'] == []

    def test_conflicts_hidden_from_parent(self, pending_request, parent_client):
        response = parent_client.get(detail_url(pending_request, 'conflicts'))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['code'] == 'branch_not_authorized'

    def test_history(self, ready_request, parent_client):
        response = parent_client.get(detail_url(ready_request, 'history'))

        assert response.status_code == status.HTTP_200_OK
        assert [entry['action'] for entry in response.data] == ['created', 'old_branch_approved']

    def test_document_for_managers(self, school_change_request, new_manager_client):
        document = school_change_request.document
        response = new_manager_client.get(
            reverse('transfers:document-image', kwargs={'document_id': document.id})
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['document_id'] == str(document.id)
        assert response.data['content_type'] == 'application/pdf'
        assert response.data['url'].startswith('http://testserver/media/transfer_documents/')

    def test_document_for_outsiders(self, school_change_request, outsider_client):
        response = outsider_client.get(
            reverse('transfers:document-image', kwargs={'document_id': school_change_request.document.id})
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['code'] == 'branch_not_authorized'

    def test_unknown_document(self, parent_client):
        response = parent_client.get(
            reverse('transfers:document-image', kwargs={'document_id': uuid4()})
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['code'] == 'not_found'
