from rest_framework import mixins, viewsets, status
from rest_framework.decorators import action, api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import OpenApiParameter, extend_schema

from .models import TransferRequest
from .serializers import (
    TransferRequestSerializer,
    TransferRequestListSerializer,
    TransferRequestCreateSerializer,
    TransferRequestFilterSerializer,
    TransferAuditEntrySerializer,
    ApproveTransferSerializer,
    RejectTransferSerializer,
    ConflictSnapshotSerializer,
    DocumentUrlSerializer,
    ErrorResponseSerializer,
)
from .permissions import IsTransferParticipant

from apps.transfers.services import (
    create_transfer_request,
    transfer_requests_for_user,
    approve_transfer_request,
    reject_transfer_request,
    cancel_transfer_request,
    get_request_conflicts,
    get_document_url,
    # Exceptions
    TransfersServiceError,
    ValidationError,
    ConflictBlockedError,
)


def error_response(exc: TransfersServiceError) -> Response:
    """Translate a service exception into the API error payload."""
    payload = {'error': exc.message, 'code': exc.code}
    if isinstance(exc, ValidationError) and exc.field:
        payload['field'] = exc.field
    if isinstance(exc, ConflictBlockedError) and exc.snapshot is not None:
        payload['conflicts'] = ConflictSnapshotSerializer(exc.snapshot.as_dict()).data
    return Response(payload, status=exc.http_status)


def _mismatched_request_id(serializer, pk):
    request_id = serializer.validated_data.get('request_id')
    return request_id is not None and str(request_id) != str(pk).lower()


class TransferRequestPagination(PageNumberPagination):
    """Custom pagination for transfer requests."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class TransferRequestViewSet(mixins.ListModelMixin,
                             mixins.RetrieveModelMixin,
                             viewsets.GenericViewSet):
    """
    ViewSet for branch transfer requests.

    All business logic is handled by services.
    Views are thin HTTP handlers only.

    list: Requests visible to the user (own requests, or those touching a managed branch)
    retrieve: Request detail with the actions the user may take
    destroy: Cancel a Pending request (requester only)
    """

    queryset = TransferRequest.objects.select_related(
        'student',
        'current_branch',
        'target_branch',
        'current_school',
        'current_student_level',
        'target_school',
        'target_student_level',
        'requested_by',
        'decided_by',
    )
    serializer_class = TransferRequestSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = TransferRequestPagination

    def get_queryset(self):
        """Scope list results to the user; detail access is checked per object."""
        if self.action == 'list':
            filters = TransferRequestFilterSerializer(data=self.request.query_params)
            filters.is_valid(raise_exception=True)
            return transfer_requests_for_user(self.request.user, **filters.validated_data)
        return super().get_queryset()

    def get_serializer_class(self):
        if self.action == 'list':
            return TransferRequestListSerializer
        return TransferRequestSerializer

    def get_permissions(self):
        if self.action in ['retrieve', 'history']:
            return [IsAuthenticated(), IsTransferParticipant()]
        return [IsAuthenticated()]

    @extend_schema(
        parameters=[TransferRequestFilterSerializer],
        tags=['branch-transfer'],
    )
    def list(self, request, *args, **kwargs):
        return super().list(request, *args, **kwargs)

    @extend_schema(tags=['branch-transfer'])
    def retrieve(self, request, *args, **kwargs):
        return super().retrieve(request, *args, **kwargs)

    @extend_schema(
        responses={200: TransferRequestSerializer, 401: ErrorResponseSerializer, 409: ErrorResponseSerializer},
        description="Cancel a Pending transfer request. Only the requester may cancel.",
        tags=['branch-transfer'],
    )
    def destroy(self, request, pk=None):
        """Cancel a transfer request."""
        try:
            result = cancel_transfer_request(request_id=pk, user=request.user)
        except TransfersServiceError as e:
            return error_response(e)

        serializer = TransferRequestSerializer(result.transfer_request, context={'request': request})
        return Response(serializer.data)

    @extend_schema(
        responses={200: ConflictSnapshotSerializer, 401: ErrorResponseSerializer, 404: ErrorResponseSerializer},
        description="Current conflicts of the student at the branch they are leaving.",
        tags=['branch-transfer'],
    )
    @action(detail=True, methods=['get'])
    def conflicts(self, request, pk=None):
        """Get the conflict snapshot for display."""
        try:
            snapshot = get_request_conflicts(request_id=pk, user=request.user)
        except TransfersServiceError as e:
            return error_response(e)

        return Response(ConflictSnapshotSerializer(snapshot.as_dict()).data)

    @extend_schema(
        request=ApproveTransferSerializer,
        responses={
            200: TransferRequestSerializer,
            400: ErrorResponseSerializer,
            401: ErrorResponseSerializer,
            409: ErrorResponseSerializer,
            500: ErrorResponseSerializer,
        },
        description=(
            "Approve a transfer request. A manager of the current branch approves a "
            "Pending request, a manager of the target branch a ReadyToTransfer one. "
            "401 with code 'branch_not_authorized' means the caller is not scoped "
            "to the responsible branch."
        ),
        tags=['branch-transfer'],
    )
    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        """Approve the request at the branch it is waiting on."""
        serializer = ApproveTransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        if _mismatched_request_id(serializer, pk):
            return error_response(ValidationError('request_id does not match the URL', field='request_id'))

        data = serializer.validated_data
        try:
            result = approve_transfer_request(
                request_id=pk,
                user=request.user,
                auto_cancel_subscriptions=data['auto_cancel_subscriptions'],
                auto_cancel_slots=data['auto_cancel_slots'],
                auto_cancel_orders=data['auto_cancel_orders'],
                approve_only_if_no_conflicts=data['approve_only_if_no_conflicts'],
                manager_notes=data['manager_notes']
            )
        except TransfersServiceError as e:
            return error_response(e)

        output = TransferRequestSerializer(result.transfer_request, context={'request': request}).data
        if result.clearance is not None:
            output['clearance'] = result.clearance.as_dict()
        return Response(output)

    @extend_schema(
        request=RejectTransferSerializer,
        responses={
            200: TransferRequestSerializer,
            400: ErrorResponseSerializer,
            401: ErrorResponseSerializer,
            409: ErrorResponseSerializer,
        },
        description="Reject a transfer request waiting on the caller's branch.",
        tags=['branch-transfer'],
    )
    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        """Reject the request."""
        serializer = RejectTransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        if _mismatched_request_id(serializer, pk):
            return error_response(ValidationError('request_id does not match the URL', field='request_id'))

        try:
            result = reject_transfer_request(
                request_id=pk,
                user=request.user,
                rejection_reason=serializer.validated_data['rejection_reason'],
                manager_notes=serializer.validated_data['manager_notes']
            )
        except TransfersServiceError as e:
            return error_response(e)

        serializer = TransferRequestSerializer(result.transfer_request, context={'request': request})
        return Response(serializer.data)

    @extend_schema(
        responses={200: TransferAuditEntrySerializer(many=True)},
        description="Audit trail of the request's status transitions.",
        tags=['branch-transfer'],
    )
    @action(detail=True, methods=['get'])
    def history(self, request, pk=None):
        """Get the audit trail."""
        transfer_request = self.get_object()
        entries = transfer_request.audit_entries.select_related('actor')
        serializer = TransferAuditEntrySerializer(entries, many=True)
        return Response(serializer.data)


@extend_schema(
    request={'multipart/form-data': TransferRequestCreateSerializer},
    responses={
        201: TransferRequestSerializer,
        400: ErrorResponseSerializer,
        401: ErrorResponseSerializer,
    },
    description=(
        "Submit a transfer request for one of your children. A supporting "
        "document (JPEG, PNG or PDF) is required when changing school or level."
    ),
    tags=['branch-transfer'],
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser, JSONParser])
def create_request(request):
    """Create a transfer request."""
    serializer = TransferRequestCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        transfer_request = create_transfer_request(
            requested_by=request.user,
            student_id=data['student_id'],
            target_branch_id=data['target_branch_id'],
            change_school=data['change_school'],
            change_level=data['change_level'],
            target_school_id=data.get('target_school_id'),
            target_student_level_id=data.get('target_student_level_id'),
            document_file=data.get('document_file'),
            request_reason=data.get('request_reason', '')
        )
    except TransfersServiceError as e:
        return error_response(e)

    output_serializer = TransferRequestSerializer(transfer_request, context={'request': request})
    return Response(output_serializer.data, status=status.HTTP_201_CREATED)


@extend_schema(
    parameters=[OpenApiParameter('document_id', str, OpenApiParameter.PATH)],
    responses={200: DocumentUrlSerializer, 401: ErrorResponseSerializer, 404: ErrorResponseSerializer},
    description="Get a viewable URL for a transfer request's supporting document.",
    tags=['branch-transfer'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def document_image(request, document_id):
    """Get the supporting document URL."""
    try:
        document = get_document_url(
            document_id=document_id,
            user=request.user,
            build_absolute_uri=request.build_absolute_uri
        )
    except TransfersServiceError as e:
        return error_response(e)

    return Response(DocumentUrlSerializer(document).data)
