from rest_framework import permissions

from .services import can_view_transfer_request


class IsTransferParticipant(permissions.BasePermission):
    """
    Permission: User submitted the request, manages one of its branches,
    or is a platform admin.
    """

    def has_object_permission(self, request, view, obj):
        # obj is a TransferRequest instance
        return can_view_transfer_request(obj, request.user)
