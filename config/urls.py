"""
VaxTrack — Root URL Configuration

All API endpoints are namespaced under /api/v1/.
The DRF browsable API is available for route inspection in development.

@file config/urls.py
"""

from django.contrib import admin
from django.urls import include, path
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.reverse import reverse

admin.site.site_header = 'VaxTrack Administration'
admin.site.site_title = 'VaxTrack'
admin.site.index_title = 'Vaccine Stock Management'


@api_view(['GET'])
@permission_classes([AllowAny])
def api_root(request, format=None):
    """VaxTrack API v1 — endpoint directory."""
    return Response({
        'stock': {
            'lots': reverse('api-v1:stock:lot-list', request=request, format=format),
            'levels': reverse('api-v1:stock:stock-level', request=request, format=format),
            'consume': reverse('api-v1:stock:consume', request=request, format=format),
            'transfers': reverse('api-v1:stock:transfer-list', request=request, format=format),
            'pending_transfers': reverse('api-v1:stock:pending-transfer-list', request=request, format=format),
            'reservations': reverse('api-v1:stock:reservation-list', request=request, format=format),
        },
    })


api_v1_patterns = [
    path('', api_root, name='api-root'),
    path('stock/', include('stock.urls', namespace='stock')),
]

urlpatterns = [
    path('admin/', admin.site.urls),

    # DRF session auth (powers the "Log in" button on the browsable API)
    path('api/auth/', include('rest_framework.urls', namespace='rest_framework')),

    # Versioned API
    path('api/v1/', include((api_v1_patterns, 'api-v1'))),
]
