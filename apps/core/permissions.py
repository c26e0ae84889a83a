"""
DRF permission classes for tenant access enforcement.

This module provides:
- IsTechnician: restricts administrative endpoints to technician users
- HasTenantAccess: runs the tenant access guard for the ``tenant_id`` URL kwarg
"""
import logging
from rest_framework.permissions import BasePermission

from apps.rbac.services import TenantAccessGuard

logger = logging.getLogger(__name__)


class IsTechnician(BasePermission):
    """
    Allow only authenticated users whose system role is technician.

    Usage in views:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsTechnician]
    """

    message = 'Technician role required'

    def has_permission(self, request, view):
        user = getattr(request, 'user', None)
        if user is not None and getattr(user, 'is_technician', False):
            return True

        logger.warning(
            "Permission denied: technician role required",
            extra={
                'user_id': str(getattr(user, 'pk', None)),
                'view': view.__class__.__name__,
                'method': request.method,
                'path': request.path,
            }
        )
        return False


class HasTenantAccess(BasePermission):
    """
    Evaluate the tenant access guard before the view runs.

    The tenant is taken from the view's ``tenant_id`` URL kwarg (the kwarg
    name can be changed with ``tenant_url_kwarg`` on the view). Technicians
    always pass; everyone else needs a membership in that tenant.
    """

    message = 'Access to this tenant is denied'

    def has_permission(self, request, view):
        kwarg = getattr(view, 'tenant_url_kwarg', 'tenant_id')
        tenant_id = view.kwargs.get(kwarg)

        # Nothing tenant-scoped to check
        if tenant_id is None:
            return True

        if TenantAccessGuard.can_access_tenant(request.user, tenant_id):
            return True

        logger.warning(
            f"Permission denied: user {getattr(request.user, 'pk', None)} has no membership in tenant {tenant_id}",
            extra={
                'user_id': str(getattr(request.user, 'pk', None)),
                'target_tenant_id': str(tenant_id),
                'view': view.__class__.__name__,
                'method': request.method,
                'path': request.path,
                'request_id': getattr(request, 'request_id', None),
            }
        )
        return False

    def has_object_permission(self, request, view, obj):
        """Objects must belong to a tenant the caller can access."""
        tenant_id = getattr(obj, 'tenant_id', None)
        if tenant_id is None:
            return True
        return TenantAccessGuard.can_access_tenant(request.user, tenant_id)
