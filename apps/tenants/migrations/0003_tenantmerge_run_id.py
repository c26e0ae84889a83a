# Generated migration for grouping merge records by consolidation run

import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('tenants', '0002_tenant_owner_members_merges'),
    ]

    operations = [
        migrations.AddField(
            model_name='tenantmerge',
            name='run_id',
            field=models.UUIDField(db_index=True, default=uuid.uuid4, help_text='Shared by the merge records of one consolidation run'),
        ),
    ]
