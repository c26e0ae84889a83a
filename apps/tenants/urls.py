"""
Tenant admin API URLs.
"""
from django.urls import path

from apps.tenants.views_admin import (
    AdminDuplicateTenantsView,
    AdminConsolidateTenantsView,
    AdminTenantDetailView,
)

app_name = 'tenants'

urlpatterns = [
    path('admin/tenants/duplicates', AdminDuplicateTenantsView.as_view(), name='admin-tenant-duplicates'),
    path('admin/tenants/consolidate', AdminConsolidateTenantsView.as_view(), name='admin-tenant-consolidate'),
    path('admin/tenants/<uuid:tenant_id>', AdminTenantDetailView.as_view(), name='admin-tenant-detail'),
]
