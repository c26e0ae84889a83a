# Generated migration for the tenant model

import uuid

import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Tenant',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('deleted_at', models.DateTimeField(blank=True, db_index=True, help_text='Timestamp when the record was soft deleted', null=True)),
                ('name', models.CharField(db_index=True, help_text='Business name (not unique)', max_length=100)),
                ('slug', models.SlugField(help_text='URL-friendly identifier', max_length=120, unique=True)),
                ('description', models.TextField(blank=True, help_text='Business description', max_length=500)),
                ('category', models.CharField(blank=True, choices=[('restaurant', 'Restaurant'), ('retail', 'Retail'), ('service', 'Service'), ('industry', 'Industry'), ('technology', 'Technology'), ('other', 'Other')], help_text='Business category', max_length=20)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
            ],
            options={
                'db_table': 'tenants',
                'ordering': ['created_at'],
            },
        ),
    ]
