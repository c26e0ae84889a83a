"""
RBAC models for multi-tenant access control.

Implements:
- Global User identity carrying both membership representations:
  the legacy single-tenant fields (legacy_tenant / legacy_role) and the
  ordered multi-tenant Membership entries
- Membership (user, tenant, role) entries of the multi-tenant system
- Permission (global catalog of <ACTION>_<SCOPE> codes grouped by category)
- Role (per-tenant role definitions with a 1-10 level)
- RolePermission (maps permissions to roles)
"""
import logging
from django.db import models
from django.contrib.auth.hashers import make_password, check_password
from django.core.validators import MinValueValidator, MaxValueValidator
from apps.core.models import BaseModel, BaseModelManager

logger = logging.getLogger(__name__)


class UserManager(BaseModelManager):
    """
    Manager for User queries.

    Compatible with Django's authentication system.
    """

    def technicians(self):
        return self.filter(system_role=User.SYSTEM_ROLE_TECHNICIAN)

    def create_user(self, email, password=None, **extra_fields):
        """
        Create a new user with hashed password.
        """
        if not email:
            raise ValueError('Email address is required')

        email = self.normalize_email(email)
        extra_fields.setdefault('is_active', True)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        user.save(using=self._db)
        return user

    def create_technician(self, email, password=None, **extra_fields):
        extra_fields['system_role'] = User.SYSTEM_ROLE_TECHNICIAN
        return self.create_user(email, password, **extra_fields)

    def normalize_email(self, email):
        """
        Normalize the email address by lowercasing the domain part.
        """
        email = email or ''
        try:
            email_name, domain_part = email.strip().rsplit('@', 1)
        except ValueError:
            pass
        else:
            email = email_name + '@' + domain_part.lower()
        return email

    def get_by_natural_key(self, email):
        return self.get(**{self.model.USERNAME_FIELD: email})


class User(BaseModel):
    """
    Global user identity - can belong to multiple tenants.

    Two membership representations coexist on a user:

    * ``legacy_tenant`` / ``legacy_role``: the original single-tenant
      fields. At most one tenant, at most one role.
    * ``memberships``: ordered Membership entries, one role per tenant.

    Resolution goes through ``MembershipResolver``; never read either
    representation directly to make an access decision.
    """

    SYSTEM_ROLE_TECHNICIAN = 'technician'
    SYSTEM_ROLE_SUPERADMIN = 'superadmin'
    SYSTEM_ROLE_USER = 'user'

    SYSTEM_ROLE_CHOICES = [
        (SYSTEM_ROLE_TECHNICIAN, 'Technician'),
        (SYSTEM_ROLE_SUPERADMIN, 'Super Admin'),
        (SYSTEM_ROLE_USER, 'User'),
    ]

    email = models.EmailField(
        unique=True,
        db_index=True,
        help_text="User email address (unique globally)"
    )
    password_hash = models.CharField(
        max_length=255,
        blank=True,
        help_text="Hashed password"
    )
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether user account is active"
    )
    system_role = models.CharField(
        max_length=20,
        choices=SYSTEM_ROLE_CHOICES,
        default=SYSTEM_ROLE_USER,
        db_index=True,
        help_text="Global role; technicians bypass every tenant-scoped check"
    )

    # Legacy single-tenant membership
    legacy_tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='legacy_users',
        help_text="Tenant of the pre-multi-tenant membership"
    )
    legacy_role = models.ForeignKey(
        'rbac.Role',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='legacy_users',
        help_text="Role of the pre-multi-tenant membership"
    )
    legacy_permissions = models.JSONField(
        default=list,
        blank=True,
        help_text="Pre-tenant permission codes, kept for old clients only; never used for access"
    )

    current_tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='current_users',
        help_text="Tenant context the user is currently operating in"
    )

    last_login = models.DateTimeField(null=True, blank=True)

    USERNAME_FIELD = 'email'
    EMAIL_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['legacy_tenant', 'is_active'], name='users_legacy_tenant_idx'),
            models.Index(fields=['current_tenant', 'is_active'], name='users_current_tenant_idx'),
        ]

    def __str__(self):
        return self.email

    @property
    def password(self):
        return self.password_hash

    @password.setter
    def password(self, value):
        self.password_hash = value

    def check_password(self, raw_password):
        return check_password(raw_password, self.password_hash)

    def set_password(self, raw_password):
        self.password_hash = make_password(raw_password)

    def get_full_name(self):
        if self.first_name or self.last_name:
            return f"{self.first_name} {self.last_name}".strip()
        return self.email

    def get_username(self):
        return self.email

    def natural_key(self):
        return (self.email,)

    @property
    def is_technician(self):
        return self.system_role == self.SYSTEM_ROLE_TECHNICIAN

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    @property
    def is_staff(self):
        return self.is_technician

    @property
    def is_superuser(self):
        return self.is_technician

    def next_membership_position(self):
        last = self.memberships.order_by('-position').values_list('position', flat=True).first()
        return 0 if last is None else last + 1


class Membership(BaseModel):
    """
    Multi-tenant membership entry: one user in one tenant with one role.

    Entries are ordered by ``position``; when a user holds several entries
    for the same tenant (possible after a consolidation) the first one wins.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='memberships',
        help_text="Member"
    )
    tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.CASCADE,
        related_name='user_memberships',
        help_text="Tenant this membership belongs to"
    )
    role = models.ForeignKey(
        'rbac.Role',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='memberships',
        help_text="Role held in the tenant"
    )
    position = models.PositiveIntegerField(
        default=0,
        help_text="Order of the entry in the user's membership sequence"
    )

    class Meta:
        db_table = 'memberships'
        ordering = ['position', 'created_at']
        indexes = [
            models.Index(fields=['user', 'tenant'], name='memberships_user_tenant_idx'),
        ]

    def __str__(self):
        return f"{self.user_id} @ {self.tenant_id}"


class PermissionManager(BaseModelManager):
    """Manager for Permission queries."""

    def by_code(self, code):
        return self.filter(code=code).first()

    def by_category(self, category):
        return self.filter(category=category)

    def grouped_by_category(self):
        """Return {category: [Permission, ...]} in catalog order."""
        grouped = {}
        for permission in self.order_by('category', 'code'):
            grouped.setdefault(permission.category, []).append(permission)
        return grouped


class Permission(BaseModel):
    """
    Global permission catalog entry.

    ``code`` follows ``<ACTION>_<SCOPE>``; codes ending in ``_VIEW`` or
    ``_MANAGE`` also make their leading segment a visible category.
    """

    CATEGORY_GENERAL = 'GENERAL'

    code = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Unique permission code (e.g., 'MANAGE_ROLES')"
    )
    label = models.CharField(max_length=255, blank=True)
    description = models.TextField(blank=True)
    category = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Coarse category (e.g., 'GENERAL', 'ADMINISTRATION')"
    )

    objects = PermissionManager()

    class Meta:
        db_table = 'permissions'
        ordering = ['category', 'code']

    def __str__(self):
        return self.code


class RoleManager(BaseModelManager):
    """Manager for Role queries with tenant scoping."""

    def for_tenant(self, tenant):
        return self.filter(tenant=tenant)

    def by_name(self, tenant, name):
        return self.filter(tenant=tenant, name=name).first()


class Role(BaseModel):
    """
    Per-tenant role definitions.

    Names are unique within a tenant; the same name may exist in others.
    """

    tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.CASCADE,
        related_name='roles',
        help_text="Tenant this role belongs to"
    )
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    level = models.PositiveSmallIntegerField(
        default=1,
        validators=[MinValueValidator(1), MaxValueValidator(10)],
        help_text="Seniority level from 1 to 10"
    )
    permissions = models.ManyToManyField(
        Permission,
        through='RolePermission',
        related_name='roles',
        blank=True,
    )

    objects = RoleManager()

    class Meta:
        db_table = 'roles'
        unique_together = [('tenant', 'name')]
        ordering = ['tenant', 'name']

    def __str__(self):
        return f"{self.tenant_id} - {self.name}"

    @property
    def permission_codes(self):
        return set(self.permissions.values_list('code', flat=True))

    def is_referenced(self):
        """Whether any membership entry or legacy field still points here."""
        return (
            Membership.objects.filter(role=self).exists()
            or User.objects.filter(legacy_role=self).exists()
        )


class RolePermission(BaseModel):
    """Maps permissions to roles."""

    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='role_permissions',
    )
    permission = models.ForeignKey(
        Permission,
        on_delete=models.CASCADE,
        related_name='role_permissions',
    )

    class Meta:
        db_table = 'role_permissions'
        unique_together = [('role', 'permission')]

    def __str__(self):
        return f"{self.role.name} -> {self.permission.code}"
