# Generated migration for tenant owner, member list and merge records

import uuid

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

    dependencies = [
        ('tenants', '0001_initial'),
        ('rbac', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='tenant',
            name='owner',
            field=models.ForeignKey(blank=True, help_text='User who registered the business', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='owned_tenants', to='rbac.user'),
        ),
        migrations.CreateModel(
            name='TenantMember',
            fields=base_fields() + [
                ('joined_at', models.DateTimeField(auto_now_add=True)),
                ('role', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='member_entries', to='rbac.role')),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='members', to='tenants.tenant')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tenant_member_entries', to='rbac.user')),
            ],
            options={
                'db_table': 'tenant_members',
                'ordering': ['joined_at'],
                'unique_together': {('tenant', 'user')},
            },
        ),
        migrations.CreateModel(
            name='TenantMerge',
            fields=base_fields() + [
                ('status', models.CharField(choices=[('in_progress', 'In progress'), ('failed', 'Failed'), ('completed', 'Completed')], db_index=True, default='in_progress', max_length=20)),
                ('completed_steps', models.JSONField(blank=True, default=list)),
                ('failed_step', models.CharField(blank=True, max_length=50)),
                ('error_message', models.TextField(blank=True)),
                ('migrated_user_ids', models.JSONField(blank=True, default=list)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('absorbed_tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='merges_given', to='tenants.tenant')),
                ('initiated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='tenant_merges', to='rbac.user')),
                ('surviving_tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='merges_received', to='tenants.tenant')),
            ],
            options={
                'db_table': 'tenant_merges',
                'ordering': ['-created_at'],
            },
        ),
    ]
