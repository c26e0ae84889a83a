"""
Tests for the DRF permission classes.
"""
import uuid
from types import SimpleNamespace

import pytest
from rest_framework.test import APIRequestFactory

from apps.core.permissions import HasTenantAccess, IsTechnician


def make_request(user):
    request = APIRequestFactory().get('/v1/anything')
    request.user = user
    return request


def make_view(**kwargs):
    return SimpleNamespace(kwargs=kwargs)


@pytest.mark.django_db
class TestIsTechnician:

    def test_technician_allowed(self, technician):
        assert IsTechnician().has_permission(make_request(technician), make_view())

    def test_regular_user_denied(self, user):
        assert not IsTechnician().has_permission(make_request(user), make_view())


@pytest.mark.django_db
class TestHasTenantAccess:

    def test_member_allowed(self, member, tenant):
        assert HasTenantAccess().has_permission(make_request(member), make_view(tenant_id=tenant.pk))

    def test_outsider_denied(self, member, other_tenant):
        assert not HasTenantAccess().has_permission(
            make_request(member), make_view(tenant_id=other_tenant.pk)
        )

    def test_technician_allowed_anywhere(self, technician):
        assert HasTenantAccess().has_permission(
            make_request(technician), make_view(tenant_id=uuid.uuid4())
        )

    def test_view_without_tenant_kwarg_passes(self, user):
        assert HasTenantAccess().has_permission(make_request(user), make_view())

    def test_custom_kwarg_name(self, member, tenant, other_tenant):
        view = make_view(business_id=other_tenant.pk, tenant_id=tenant.pk)
        view.tenant_url_kwarg = 'business_id'

        assert not HasTenantAccess().has_permission(make_request(member), view)

    def test_object_permission(self, member, manager_role, other_tenant):
        foreign = SimpleNamespace(tenant_id=other_tenant.pk)

        assert HasTenantAccess().has_object_permission(make_request(member), make_view(), manager_role)
        assert not HasTenantAccess().has_object_permission(make_request(member), make_view(), foreign)
