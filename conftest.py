"""
Pytest configuration and fixtures.
"""
import io

import pytest
from django.conf import settings
import django
from django.core.management import call_command


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
    django.setup()


@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture(autouse=True)
def clear_channel_access():
    """Channel grants are process-wide; start every test empty."""
    from apps.rbac.channels import channel_access
    channel_access.clear()
    yield
    channel_access.clear()


@pytest.fixture
def permissions(db):
    """Seed the canonical permission catalog."""
    from apps.rbac.models import Permission
    call_command('seed_permissions', stdout=io.StringIO())
    return {p.code: p for p in Permission.objects.all()}


@pytest.fixture
def tenant(db):
    """Create a test tenant."""
    from apps.tenants.models import Tenant
    return Tenant.objects.create(
        name='Test Tenant',
        description='A test business',
        category='retail',
    )


@pytest.fixture
def other_tenant(db):
    """Create another test tenant for isolation tests."""
    from apps.tenants.models import Tenant
    return Tenant.objects.create(name='Other Tenant')


@pytest.fixture
def user(db):
    """Create a regular test user."""
    from apps.rbac.models import User
    return User.objects.create_user(
        email='user@example.com',
        password='testpass123',
        first_name='Test',
        last_name='User',
    )


@pytest.fixture
def other_user(db):
    from apps.rbac.models import User
    return User.objects.create_user(email='other@example.com', password='testpass123')


@pytest.fixture
def technician(db):
    """Create a technician (all-tenant access)."""
    from apps.rbac.models import User
    return User.objects.create_technician(email='tech@example.com', password='testpass123')


@pytest.fixture
def manager_role(db, tenant, permissions):
    """Role with a mix of category-deriving and plain codes."""
    from apps.rbac.models import Role, RolePermission
    role = Role.objects.create(tenant=tenant, name='Manager', level=5)
    for code in ('MANAGEMENT_VIEW', 'MANAGE_ROLES', 'ADMINISTRATION_MANAGE'):
        RolePermission.objects.create(role=role, permission=permissions[code])
    return role


@pytest.fixture
def member(db, user, tenant, manager_role):
    """``user`` with a multi-tenant membership in ``tenant`` holding ``manager_role``."""
    from apps.tenants.services import TenantService
    TenantService.add_member(tenant, user, role=manager_role)
    return user
