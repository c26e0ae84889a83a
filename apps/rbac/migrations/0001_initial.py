# Generated migration for users, memberships, roles and permissions

import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


def base_fields():
    return [
        ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
        ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
        ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
        ('deleted_at', models.DateTimeField(blank=True, db_index=True, help_text='Timestamp when the record was soft deleted', null=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('tenants', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Permission',
            fields=base_fields() + [
                ('code', models.CharField(db_index=True, help_text="Unique permission code (e.g., 'MANAGE_ROLES')", max_length=100, unique=True)),
                ('label', models.CharField(blank=True, max_length=255)),
                ('description', models.TextField(blank=True)),
                ('category', models.CharField(db_index=True, help_text="Coarse category (e.g., 'GENERAL', 'ADMINISTRATION')", max_length=50)),
            ],
            options={
                'db_table': 'permissions',
                'ordering': ['category', 'code'],
            },
        ),
        migrations.CreateModel(
            name='Role',
            fields=base_fields() + [
                ('name', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True)),
                ('level', models.PositiveSmallIntegerField(default=1, help_text='Seniority level from 1 to 10', validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(10)])),
                ('tenant', models.ForeignKey(help_text='Tenant this role belongs to', on_delete=django.db.models.deletion.CASCADE, related_name='roles', to='tenants.tenant')),
            ],
            options={
                'db_table': 'roles',
                'ordering': ['tenant', 'name'],
                'unique_together': {('tenant', 'name')},
            },
        ),
        migrations.CreateModel(
            name='RolePermission',
            fields=base_fields() + [
                ('permission', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='role_permissions', to='rbac.permission')),
                ('role', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='role_permissions', to='rbac.role')),
            ],
            options={
                'db_table': 'role_permissions',
                'unique_together': {('role', 'permission')},
            },
        ),
        migrations.AddField(
            model_name='role',
            name='permissions',
            field=models.ManyToManyField(blank=True, related_name='roles', through='rbac.RolePermission', to='rbac.permission'),
        ),
        migrations.CreateModel(
            name='User',
            fields=base_fields() + [
                ('email', models.EmailField(db_index=True, help_text='User email address (unique globally)', max_length=254, unique=True)),
                ('password_hash', models.CharField(blank=True, help_text='Hashed password', max_length=255)),
                ('first_name', models.CharField(blank=True, max_length=100)),
                ('last_name', models.CharField(blank=True, max_length=100)),
                ('is_active', models.BooleanField(db_index=True, default=True, help_text='Whether user account is active')),
                ('system_role', models.CharField(choices=[('technician', 'Technician'), ('superadmin', 'Super Admin'), ('user', 'User')], db_index=True, default='user', help_text='Global role; technicians bypass every tenant-scoped check', max_length=20)),
                ('legacy_permissions', models.JSONField(blank=True, default=list, help_text='Pre-tenant permission codes, kept for old clients only; never used for access')),
                ('last_login', models.DateTimeField(blank=True, null=True)),
                ('current_tenant', models.ForeignKey(blank=True, help_text='Tenant context the user is currently operating in', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='current_users', to='tenants.tenant')),
                ('legacy_role', models.ForeignKey(blank=True, help_text='Role of the pre-multi-tenant membership', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='legacy_users', to='rbac.role')),
                ('legacy_tenant', models.ForeignKey(blank=True, help_text='Tenant of the pre-multi-tenant membership', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='legacy_users', to='tenants.tenant')),
            ],
            options={
                'db_table': 'users',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['legacy_tenant', 'is_active'], name='users_legacy_tenant_idx'),
                    models.Index(fields=['current_tenant', 'is_active'], name='users_current_tenant_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Membership',
            fields=base_fields() + [
                ('position', models.PositiveIntegerField(default=0, help_text="Order of the entry in the user's membership sequence")),
                ('role', models.ForeignKey(blank=True, help_text='Role held in the tenant', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='memberships', to='rbac.role')),
                ('tenant', models.ForeignKey(help_text='Tenant this membership belongs to', on_delete=django.db.models.deletion.CASCADE, related_name='user_memberships', to='tenants.tenant')),
                ('user', models.ForeignKey(help_text='Member', on_delete=django.db.models.deletion.CASCADE, related_name='memberships', to='rbac.user')),
            ],
            options={
                'db_table': 'memberships',
                'ordering': ['position', 'created_at'],
                'indexes': [
                    models.Index(fields=['user', 'tenant'], name='memberships_user_tenant_idx'),
                ],
            },
        ),
    ]
