"""
Tenant models.

A Tenant is a business entity (company). Its name is not unique: duplicate
tenant records for one business can exist and are repaired by the
consolidation service, whose progress is tracked by TenantMerge.
"""
import uuid

from django.db import models
from django.utils.text import slugify
from apps.core.models import BaseModel, BaseModelManager


class TenantManager(BaseModelManager):
    """Manager for tenant queries."""

    def matching_name(self, pattern):
        """Tenants whose name matches ``pattern`` (case-insensitive regex), oldest first."""
        return self.filter(name__iregex=pattern).order_by('created_at', 'id')


class Tenant(BaseModel):
    """
    Tenant model representing a business account.
    """

    CATEGORY_CHOICES = [
        ('restaurant', 'Restaurant'),
        ('retail', 'Retail'),
        ('service', 'Service'),
        ('industry', 'Industry'),
        ('technology', 'Technology'),
        ('other', 'Other'),
    ]

    # Attributes copied across when duplicates are consolidated
    DESCRIPTIVE_FIELDS = ('description', 'category')

    name = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Business name (not unique)"
    )
    slug = models.SlugField(
        unique=True,
        max_length=120,
        help_text="URL-friendly identifier"
    )
    description = models.TextField(
        blank=True,
        max_length=500,
        help_text="Business description"
    )
    category = models.CharField(
        max_length=20,
        choices=CATEGORY_CHOICES,
        blank=True,
        help_text="Business category"
    )
    owner = models.ForeignKey(
        'rbac.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='owned_tenants',
        help_text="User who registered the business"
    )
    is_active = models.BooleanField(default=True, db_index=True)

    objects = TenantManager()

    class Meta:
        db_table = 'tenants'
        ordering = ['created_at']

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = self._unique_slug()
        super().save(*args, **kwargs)

    def _unique_slug(self):
        base_slug = slugify(self.name) or 'tenant'
        slug = base_slug
        counter = 1
        while Tenant.objects_with_deleted.filter(slug=slug).exists():
            slug = f"{base_slug}-{counter}"
            counter += 1
        return slug

    def member_user_ids(self):
        return set(self.members.values_list('user_id', flat=True))


class TenantMember(BaseModel):
    """
    Tenant-side member list entry.
    """

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name='members',
    )
    user = models.ForeignKey(
        'rbac.User',
        on_delete=models.CASCADE,
        related_name='tenant_member_entries',
    )
    role = models.ForeignKey(
        'rbac.Role',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='member_entries',
    )
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'tenant_members'
        unique_together = [('tenant', 'user')]
        ordering = ['joined_at']

    def __str__(self):
        return f"{self.user_id} in {self.tenant_id}"


class TenantMerge(BaseModel):
    """
    Progress record of one consolidation of an absorbed tenant into a
    surviving one.

    Every step is appended to ``completed_steps`` once all of its record
    saves succeeded, so a retry after a failure resumes at ``failed_step``.
    """

    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_FAILED = 'failed'
    STATUS_COMPLETED = 'completed'

    STATUS_CHOICES = [
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_COMPLETED, 'Completed'),
    ]
    UNFINISHED_STATUSES = [STATUS_IN_PROGRESS, STATUS_FAILED]

    surviving_tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name='merges_received',
    )
    absorbed_tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name='merges_given',
    )
    run_id = models.UUIDField(
        default=uuid.uuid4,
        db_index=True,
        help_text="Shared by the merge records of one consolidation run",
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_IN_PROGRESS,
        db_index=True,
    )
    completed_steps = models.JSONField(default=list, blank=True)
    failed_step = models.CharField(max_length=50, blank=True)
    error_message = models.TextField(blank=True)
    migrated_user_ids = models.JSONField(default=list, blank=True)
    initiated_by = models.ForeignKey(
        'rbac.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='tenant_merges',
    )
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'tenant_merges'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.absorbed_tenant_id} -> {self.surviving_tenant_id} ({self.status})"

    def has_completed(self, step):
        return step in self.completed_steps
