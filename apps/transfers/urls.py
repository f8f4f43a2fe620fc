from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'transfers'

# Router for ViewSets
router = DefaultRouter()
router.register(r'requests', views.TransferRequestViewSet, basename='transfer-request')

urlpatterns = [
    # Transfer request ViewSet routes
    # GET    /api/branch-transfer/requests/                  - List visible requests
    # GET    /api/branch-transfer/requests/{id}/             - Request detail
    # DELETE /api/branch-transfer/requests/{id}/             - Cancel (requester)
    # GET    /api/branch-transfer/requests/{id}/conflicts/   - Conflict snapshot
    # POST   /api/branch-transfer/requests/{id}/approve/     - Approve (branch manager)
    # POST   /api/branch-transfer/requests/{id}/reject/      - Reject (branch manager)
    # GET    /api/branch-transfer/requests/{id}/history/     - Audit trail

    # Additional endpoints
    path('request/', views.create_request, name='create-request'),
    path('documents/<uuid:document_id>/image/', views.document_image, name='document-image'),

    # Include router URLs
    path('', include(router.urls)),
]
