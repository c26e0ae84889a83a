"""
RBAC services.

Implements:
- MembershipResolver: picks the single membership that applies to a
  (user, tenant) pair across the legacy and multi-tenant representations
- PermissionAggregator: expands the resolved role into effective permission
  codes and visible categories
- TenantAccessGuard: the boolean gate evaluated before every tenant-scoped
  mutation
- RoleService: tenant-scoped role management behind the guard
"""
import enum
import logging
import uuid
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Tuple

from django.db import transaction

from apps.core.exceptions import InvalidStateError, NotFoundError, PermissionDeniedError
from apps.rbac.models import Membership, Permission, Role, RolePermission, User

logger = logging.getLogger(__name__)


DEFAULT_PERMISSION_CODE = 'VIEW_GENERAL_CATEGORY'
DEFAULT_CATEGORY = 'GENERAL'
CATEGORY_SUFFIXES = ('_VIEW', '_MANAGE')


def coerce_uuid(tenant_or_id) -> Optional[uuid.UUID]:
    """
    Normalise a model instance, UUID or string into a UUID.

    Returns None for anything that is not a UUID; such tenant ids resolve to
    no membership rather than raising.
    """
    if tenant_or_id is None:
        return None
    value = getattr(tenant_or_id, 'pk', tenant_or_id)
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


class MembershipSource(enum.Enum):
    """Where a resolved membership came from."""
    SYSTEM = 'system'
    MEMBERSHIP = 'membership'
    LEGACY = 'legacy'


@dataclass(frozen=True)
class ResolvedMembership:
    """
    The membership that applies to one (user, tenant) pair.

    ``source`` tags the representation it was read from. SYSTEM memberships
    are synthesised for technicians and carry no role.
    """
    source: MembershipSource
    tenant_id: Optional[uuid.UUID]
    role: Optional[Role] = None
    entry: Optional[Membership] = None

    @property
    def is_all_access(self) -> bool:
        return self.source is MembershipSource.SYSTEM

    @property
    def role_id(self):
        return self.role.pk if self.role is not None else None

    def to_dict(self):
        return {
            'source': self.source.value,
            'tenant_id': str(self.tenant_id) if self.tenant_id else None,
            'role_id': str(self.role_id) if self.role_id else None,
            'role_name': self.role.name if self.role is not None else None,
            'all_access': self.is_all_access,
        }


class MembershipResolver:
    """
    Resolve which membership applies to a user in a tenant.

    Precedence:
    1. technician system role: synthetic all-access membership
    2. first multi-tenant Membership entry for the tenant (authoritative,
       legacy fields are not consulted even when they disagree)
    3. legacy_tenant / legacy_role, for users never migrated
    4. None: no access
    """

    @classmethod
    def resolve(cls, user, tenant_id) -> Optional[ResolvedMembership]:
        if user is None or not getattr(user, 'is_authenticated', False):
            return None

        target = coerce_uuid(tenant_id)

        if getattr(user, 'is_technician', False):
            return ResolvedMembership(source=MembershipSource.SYSTEM, tenant_id=target)

        if target is None:
            return None

        entry = (
            Membership.objects
            .filter(user=user, tenant_id=target, tenant__deleted_at__isnull=True)
            .select_related('role')
            .order_by('position', 'created_at')
            .first()
        )
        if entry is not None:
            return ResolvedMembership(
                source=MembershipSource.MEMBERSHIP,
                tenant_id=target,
                role=entry.role,
                entry=entry,
            )

        if (
            user.legacy_tenant_id is not None
            and user.legacy_tenant_id == target
            and not user.legacy_tenant.is_deleted
        ):
            return ResolvedMembership(
                source=MembershipSource.LEGACY,
                tenant_id=target,
                role=user.legacy_role,
            )

        return None

    @classmethod
    def list_memberships(cls, user) -> List[ResolvedMembership]:
        """
        Every membership the user holds, one per tenant.

        Multi-tenant entries come first in sequence order; the legacy
        membership is appended when its tenant has no entry of its own.
        """
        resolved = []
        seen = set()
        entries = (
            Membership.objects
            .filter(user=user, tenant__deleted_at__isnull=True)
            .select_related('role')
            .order_by('position', 'created_at')
        )
        for entry in entries:
            if entry.tenant_id in seen:
                continue
            seen.add(entry.tenant_id)
            resolved.append(ResolvedMembership(
                source=MembershipSource.MEMBERSHIP,
                tenant_id=entry.tenant_id,
                role=entry.role,
                entry=entry,
            ))

        legacy_tenant = user.legacy_tenant
        if legacy_tenant is not None and not legacy_tenant.is_deleted and legacy_tenant.pk not in seen:
            resolved.append(ResolvedMembership(
                source=MembershipSource.LEGACY,
                tenant_id=legacy_tenant.pk,
                role=user.legacy_role,
            ))

        return resolved


@dataclass(frozen=True)
class EffectivePermissions:
    codes: FrozenSet[str]
    categories: FrozenSet[str]

    @classmethod
    def default(cls):
        return cls(
            codes=frozenset([DEFAULT_PERMISSION_CODE]),
            categories=frozenset([DEFAULT_CATEGORY]),
        )

    @property
    def is_default(self) -> bool:
        return self == self.default()

    def to_dict(self):
        return {
            'permissions': sorted(self.codes),
            'categories': sorted(self.categories),
        }


class PermissionAggregator:
    """
    Expand a resolved membership into effective permissions.

    Users without a membership, or whose role grants nothing, get exactly
    the baseline ``VIEW_GENERAL_CATEGORY`` / ``GENERAL`` pair. Permission
    codes stored on ``User.legacy_permissions`` are never read.
    """

    @classmethod
    def effective_permissions(cls, user, tenant_id) -> EffectivePermissions:
        membership = MembershipResolver.resolve(user, tenant_id)

        if membership is None:
            return EffectivePermissions.default()

        if membership.is_all_access:
            permissions = Permission.objects.all()
        elif membership.role is None:
            return EffectivePermissions.default()
        else:
            permissions = membership.role.permissions.all()

        return cls.aggregate(permissions.values_list('code', 'category'))

    @staticmethod
    def aggregate(pairs: Iterable[Tuple[str, str]]) -> EffectivePermissions:
        """Fold (code, category) pairs into codes and visible categories."""
        codes = set()
        categories = set()

        for code, category in pairs:
            if not code:
                continue
            codes.add(code)
            if category:
                categories.add(category)
            if code.endswith(CATEGORY_SUFFIXES):
                prefix = code.split('_', 1)[0]
                if prefix:
                    categories.add(prefix)

        if not codes and not categories:
            return EffectivePermissions.default()

        return EffectivePermissions(codes=frozenset(codes), categories=frozenset(categories))

    @classmethod
    def has_permission(cls, user, tenant_id, code: str) -> bool:
        return code in cls.effective_permissions(user, tenant_id).codes

    @classmethod
    def has_category(cls, user, tenant_id, category: str) -> bool:
        return category in cls.effective_permissions(user, tenant_id).categories


class TenantAccessGuard:
    """Gate evaluated before every tenant-scoped mutation."""

    @classmethod
    def can_access_tenant(cls, user, tenant_id) -> bool:
        if getattr(user, 'is_technician', False):
            return True
        return MembershipResolver.resolve(user, tenant_id) is not None

    @classmethod
    def require_tenant_access(cls, user, tenant_id):
        if cls.can_access_tenant(user, tenant_id):
            return
        logger.warning(
            "Tenant access denied",
            extra={
                'user_id': str(getattr(user, 'pk', None)),
                'target_tenant_id': str(tenant_id),
            }
        )
        raise PermissionDeniedError(
            'Access to this tenant is denied',
            details={'tenant_id': str(tenant_id)}
        )

    @classmethod
    def require_technician(cls, user):
        if getattr(user, 'is_technician', False):
            return
        logger.warning(
            "Technician role required",
            extra={'user_id': str(getattr(user, 'pk', None))}
        )
        raise PermissionDeniedError('Technician role required')


class RoleService:
    """
    Tenant-scoped role management. Every mutation passes the access guard
    first.
    """

    @staticmethod
    def _permissions_for(codes) -> List[Permission]:
        codes = set(codes or [])
        permissions = list(Permission.objects.filter(code__in=codes))
        missing = codes - {p.code for p in permissions}
        if missing:
            raise NotFoundError(
                'Unknown permission codes',
                details={'codes': sorted(missing)}
            )
        return permissions

    @classmethod
    @transaction.atomic
    def create_role(cls, user, tenant, name: str, level: int = 1,
                    description: str = '', permission_codes=None) -> Role:
        TenantAccessGuard.require_tenant_access(user, tenant.pk)

        if Role.objects.by_name(tenant, name) is not None:
            raise InvalidStateError(
                f"Role '{name}' already exists in this tenant",
                details={'name': name}
            )

        permissions = cls._permissions_for(permission_codes)
        role = Role.objects.create(
            tenant=tenant,
            name=name,
            level=level,
            description=description,
        )
        for permission in permissions:
            RolePermission.objects.create(role=role, permission=permission)

        logger.info(
            "Role created",
            extra={'tenant_id': str(tenant.pk), 'role_id': str(role.pk), 'role_name': name}
        )
        return role

    @classmethod
    @transaction.atomic
    def update_role(cls, user, role: Role, permission_codes=None, **fields) -> Role:
        TenantAccessGuard.require_tenant_access(user, role.tenant_id)

        new_name = fields.get('name')
        if new_name and new_name != role.name and Role.objects.filter(
            tenant_id=role.tenant_id, name=new_name
        ).exists():
            raise InvalidStateError(
                f"Role '{new_name}' already exists in this tenant",
                details={'name': new_name}
            )

        for field in ('name', 'description', 'level'):
            if field in fields:
                setattr(role, field, fields[field])
        role.save()

        if permission_codes is not None:
            permissions = cls._permissions_for(permission_codes)
            RolePermission.objects.filter(role=role).hard_delete()
            for permission in permissions:
                RolePermission.objects.create(role=role, permission=permission)

        return role

    @classmethod
    def delete_role(cls, user, role: Role):
        """Delete a role; refused while any user still references it."""
        TenantAccessGuard.require_tenant_access(user, role.tenant_id)

        if role.is_referenced():
            raise InvalidStateError(
                'Role is still assigned to users and cannot be deleted',
                details={'role_id': str(role.pk)}
            )

        logger.info(
            "Role deleted",
            extra={'tenant_id': str(role.tenant_id), 'role_id': str(role.pk)}
        )
        role.hard_delete()


def get_user_or_404(user_id) -> User:
    try:
        return User.objects.get(pk=coerce_uuid(user_id))
    except User.DoesNotExist:
        raise NotFoundError('User not found', details={'user_id': str(user_id)})
