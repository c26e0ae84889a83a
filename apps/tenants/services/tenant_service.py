"""
Tenant management service.

Handles tenant lifecycle operations including:
- Tenant creation with Owner role assignment
- Adding users to a tenant (membership entry plus member list entry)
- Switching a user's active tenant context
- Soft deletion, refused while the tenant's roles are still in use
"""
import logging
from typing import Optional

from django.db import transaction

from apps.core.exceptions import InvalidStateError, NotFoundError
from apps.rbac.models import Membership, Permission, Role, RolePermission, User
from apps.rbac.services import TenantAccessGuard, coerce_uuid
from apps.tenants.models import Tenant, TenantMember

logger = logging.getLogger(__name__)


class TenantService:
    """
    Service for tenant lifecycle and membership management.
    """

    OWNER_ROLE_NAME = 'Owner'

    @staticmethod
    def get_tenant(tenant_id) -> Tenant:
        """
        Fetch a live tenant.

        Raises:
            NotFoundError: If the id is malformed or the tenant is deleted
        """
        pk = coerce_uuid(tenant_id)
        tenant = Tenant.objects.filter(pk=pk).first() if pk else None
        if tenant is None:
            raise NotFoundError('Tenant not found', details={'tenant_id': str(tenant_id)})
        return tenant

    @staticmethod
    def _seed_owner_role(tenant: Tenant) -> Role:
        """
        Seed the Owner role for a tenant with every catalog permission.
        """
        owner_role, created = Role.objects.get_or_create(
            tenant=tenant,
            name=TenantService.OWNER_ROLE_NAME,
            defaults={
                'description': 'Full access to all tenant features and settings',
                'level': 10,
            }
        )

        if created:
            for permission in Permission.objects.all():
                RolePermission.objects.create(role=owner_role, permission=permission)

        return owner_role

    @classmethod
    @transaction.atomic
    def create_tenant(cls, user: User, name: str, description: str = '',
                      category: str = '') -> Tenant:
        """
        Create a new tenant with ``user`` as Owner.

        Args:
            user: User registering the business
            name: Business name (duplicates allowed)
            description: Optional business description
            category: Optional business category

        Returns:
            Tenant instance
        """
        if not name or not name.strip():
            raise ValueError('Tenant name is required')

        tenant = Tenant.objects.create(
            name=name.strip(),
            description=description,
            category=category,
            owner=user,
        )
        owner_role = cls._seed_owner_role(tenant)
        cls.add_member(tenant, user, role=owner_role)

        if user.current_tenant_id is None:
            user.current_tenant = tenant
            user.save(update_fields=['current_tenant', 'updated_at'])

        logger.info(
            "Tenant created",
            extra={'tenant_id': str(tenant.pk), 'tenant_name': tenant.name, 'owner_id': str(user.pk)}
        )
        return tenant

    @classmethod
    @transaction.atomic
    def add_member(cls, tenant: Tenant, user: User, role: Optional[Role] = None) -> Membership:
        """
        Give ``user`` a membership in ``tenant``.

        Appends a Membership entry to the user's sequence and records the
        user on the tenant's member list. An existing entry for the tenant is
        returned unchanged.

        Raises:
            InvalidStateError: If the role belongs to another tenant
        """
        if role is not None and role.tenant_id != tenant.pk:
            raise InvalidStateError(
                'Role does not belong to this tenant',
                details={'role_id': str(role.pk), 'tenant_id': str(tenant.pk)}
            )

        membership = Membership.objects.filter(user=user, tenant=tenant).order_by('position', 'created_at').first()
        if membership is None:
            membership = Membership.objects.create(
                user=user,
                tenant=tenant,
                role=role,
                position=user.next_membership_position(),
            )

        TenantMember.objects.get_or_create(tenant=tenant, user=user, defaults={'role': role})
        return membership

    @classmethod
    def switch_tenant(cls, user: User, tenant_id) -> Tenant:
        """
        Make ``tenant_id`` the user's active tenant context.

        Raises:
            PermissionDeniedError: If the user cannot access the tenant
            NotFoundError: If the tenant does not exist
        """
        TenantAccessGuard.require_tenant_access(user, tenant_id)
        tenant = cls.get_tenant(tenant_id)

        user.current_tenant = tenant
        user.save(update_fields=['current_tenant', 'updated_at'])

        logger.info(
            "Switched active tenant",
            extra={'user_id': str(user.pk), 'tenant_id': str(tenant.pk)}
        )
        return tenant

    @classmethod
    def delete_tenant(cls, tenant: Tenant, user: User):
        """
        Soft delete a tenant.

        Technician only. Refused while any of the tenant's roles is still
        referenced by a membership entry or a legacy role field.

        Raises:
            PermissionDeniedError: If ``user`` is not a technician
            InvalidStateError: If a role of the tenant is still in use
        """
        TenantAccessGuard.require_technician(user)

        referenced = [role for role in Role.objects.for_tenant(tenant) if role.is_referenced()]
        if referenced:
            raise InvalidStateError(
                'Tenant roles are still assigned to users',
                details={
                    'tenant_id': str(tenant.pk),
                    'roles': [{'id': str(role.pk), 'name': role.name} for role in referenced],
                }
            )

        tenant.delete()

        logger.info(
            "Tenant deleted",
            extra={'tenant_id': str(tenant.pk), 'tenant_name': tenant.name, 'deleted_by': str(user.pk)}
        )
