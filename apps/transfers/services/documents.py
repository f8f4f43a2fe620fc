"""Access to supporting documents uploaded with transfer requests."""

import logging
from typing import Callable, Optional
from uuid import UUID

from django.core.exceptions import ValidationError as DjangoValidationError

from apps.accounts.models import User
from apps.transfers.models import TransferDocument

from .exceptions import AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)


def can_view_document(document: TransferDocument, user: User) -> bool:
    """Uploader, platform admins and managers of either branch on a linked request."""
    if user.is_platform_admin or document.uploaded_by_id == user.id:
        return True

    for transfer_request in document.transfer_requests.all():
        if (
            user.manages_branch(transfer_request.current_branch_id) or
            user.manages_branch(transfer_request.target_branch_id)
        ):
            return True
    return False


def get_document_url(
    *,
    document_id: UUID,
    user: User,
    build_absolute_uri: Optional[Callable[[str], str]] = None
) -> dict:
    """
    Resolve the URL of an uploaded document for a permitted viewer.

    Args:
        document_id: UUID of the document
        user: User asking to view it
        build_absolute_uri: Optional callable turning the storage URL into
            an absolute one (usually ``request.build_absolute_uri``)

    Returns:
        Dict with document_id, url and content_type

    Raises:
        NotFoundError: If the document doesn't exist
        AuthorizationError: If user may not view it
    """
    try:
        document = TransferDocument.objects.get(id=document_id)
    except (TransferDocument.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFoundError(f"Document {document_id} not found")

    if not can_view_document(document, user):
        logger.warning("User %s denied access to transfer document %s", user.id, document.id)
        raise AuthorizationError('You are not allowed to view this document')

    url = document.file.url
    if build_absolute_uri is not None:
        url = build_absolute_uri(url)

    return {
        'document_id': document.id,
        'url': url,
        'content_type': document.content_type,
    }
