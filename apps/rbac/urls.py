"""
RBAC API URLs.

Provides endpoints for:
- Permission catalog and effective permissions
- Memberships and tenant switching
- Tenant-scoped role management
- Channel access grants
"""
from django.urls import path
from apps.rbac.views import (
    PermissionListView,
    MembershipListView,
    UserEffectivePermissionsView,
    TenantSwitchView,
    TenantRoleListView,
    TenantRoleDetailView,
    ChannelAccessView,
    ChannelGrantView,
    ChannelRevokeView,
    ChannelCheckView,
)

app_name = 'rbac'

urlpatterns = [
    # Permission endpoints
    path('permissions', PermissionListView.as_view(), name='permission-list'),
    path('users/<uuid:user_id>/effective-permissions', UserEffectivePermissionsView.as_view(), name='user-effective-permissions'),

    # Membership endpoints
    path('memberships/me', MembershipListView.as_view(), name='membership-list'),
    path('tenants/<uuid:tenant_id>/switch', TenantSwitchView.as_view(), name='tenant-switch'),

    # Role endpoints
    path('tenants/<uuid:tenant_id>/roles', TenantRoleListView.as_view(), name='role-list'),
    path('tenants/<uuid:tenant_id>/roles/<uuid:role_id>', TenantRoleDetailView.as_view(), name='role-detail'),

    # Channel access endpoints
    path('channels/<uuid:tenant_id>', ChannelAccessView.as_view(), name='channel-list'),
    path('channels/<uuid:tenant_id>/grant', ChannelGrantView.as_view(), name='channel-grant'),
    path('channels/<uuid:tenant_id>/revoke', ChannelRevokeView.as_view(), name='channel-revoke'),
    path('channels/<uuid:tenant_id>/check/<uuid:user_id>/<str:channel>', ChannelCheckView.as_view(), name='channel-check'),
]
