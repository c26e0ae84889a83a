"""
URL configuration for Bizdesk.
"""
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

urlpatterns = [
    # API Documentation
    path('schema/', SpectacularAPIView.as_view(), name='schema'),
    path('schema/swagger/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),

    # Technician endpoints
    path('v1/', include('apps.tenants.urls')),  # Duplicate diagnosis, consolidation, tenant deletion

    # RBAC endpoints
    path('v1/', include('apps.rbac.urls')),  # Permissions, memberships, roles, channels
]
