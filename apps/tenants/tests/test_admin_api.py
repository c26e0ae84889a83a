"""
Tests for the technician admin tenant endpoints.
"""
from datetime import timedelta
from unittest import mock

import pytest
from django.db import DatabaseError
from django.utils import timezone
from rest_framework import status

from apps.rbac.models import Membership, User
from apps.tenants.models import Tenant, TenantMerge


@pytest.fixture
def duplicates(db):
    older = Tenant.objects.create(name='Acme', created_at=timezone.now() - timedelta(hours=2))
    newer = Tenant.objects.create(
        name='Acme', description='Second copy', created_at=timezone.now() - timedelta(hours=1)
    )
    for i in range(2):
        user = User.objects.create_user(email=f'acme{i}@example.com')
        Membership.objects.create(user=user, tenant=newer)
    return older, newer


@pytest.mark.django_db
class TestDuplicateTenantsEndpoint:
    """GET /v1/admin/tenants/duplicates"""

    def test_technician_gets_report(self, api_client, technician, duplicates):
        older, newer = duplicates
        api_client.force_authenticate(user=technician)

        response = api_client.get('/v1/admin/tenants/duplicates', {'name_pattern': 'acme'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2
        assert response.data['recommendation']['keep']['id'] == str(older.pk)
        assert response.data['tenants'][1]['membership_user_count'] == 2

    def test_requires_technician(self, api_client, user, duplicates):
        api_client.force_authenticate(user=user)

        response = api_client.get('/v1/admin/tenants/duplicates', {'name_pattern': 'acme'})

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_requires_pattern(self, api_client, technician):
        api_client.force_authenticate(user=technician)

        response = api_client.get('/v1/admin/tenants/duplicates')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_rejects_invalid_pattern(self, api_client, technician):
        api_client.force_authenticate(user=technician)

        response = api_client.get('/v1/admin/tenants/duplicates', {'name_pattern': '[acme'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestConsolidateEndpoint:
    """POST /v1/admin/tenants/consolidate"""

    def test_consolidates(self, api_client, technician, duplicates):
        older, newer = duplicates
        api_client.force_authenticate(user=technician)

        response = api_client.post(
            '/v1/admin/tenants/consolidate', {'name_pattern': 'acme'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['success'] is True
        assert response.data['migrated_user_count'] == 2
        assert response.data['destination']['id'] == str(older.pk)
        assert response.data['source']['id'] == str(newer.pk)
        assert response.data['surviving']['id'] == str(older.pk)
        assert not Tenant.objects.filter(pk=newer.pk).exists()
        assert TenantMerge.objects.get().initiated_by == technician
        assert len(response.data['merges']) == 1
        assert response.data['merges'][0]['status'] == TenantMerge.STATUS_COMPLETED
        assert response.data['merges'][0]['absorbed_tenant'] == newer.pk

    def test_wrong_candidate_count_conflicts(self, api_client, technician, duplicates):
        api_client.force_authenticate(user=technician)

        response = api_client.post(
            '/v1/admin/tenants/consolidate', {'name_pattern': 'acme', 'expected_count': 3}, format='json'
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['code'] == 'INVALID_STATE'
        assert Tenant.objects.filter(name='Acme').count() == 2

    def test_expected_count_below_two_rejected(self, api_client, technician, duplicates):
        api_client.force_authenticate(user=technician)

        response = api_client.post(
            '/v1/admin/tenants/consolidate', {'name_pattern': 'acme', 'expected_count': 1}, format='json'
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_partial_failure_reports_step(self, api_client, technician, duplicates):
        api_client.force_authenticate(user=technician)

        with mock.patch.object(Membership, 'save', side_effect=DatabaseError('disk full')):
            response = api_client.post(
                '/v1/admin/tenants/consolidate', {'name_pattern': 'acme'}, format='json'
            )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.data['code'] == 'PARTIAL_MERGE'
        assert response.data['details']['step'] == 'memberships'

    def test_requires_technician(self, api_client, user, duplicates):
        api_client.force_authenticate(user=user)

        response = api_client.post(
            '/v1/admin/tenants/consolidate', {'name_pattern': 'acme'}, format='json'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert Tenant.objects.filter(name='Acme').count() == 2


@pytest.mark.django_db
class TestTenantDeleteEndpoint:
    """DELETE /v1/admin/tenants/{tenant_id}"""

    def test_deletes_tenant(self, api_client, technician, other_tenant):
        api_client.force_authenticate(user=technician)

        response = api_client.delete(f'/v1/admin/tenants/{other_tenant.pk}')

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not Tenant.objects.filter(pk=other_tenant.pk).exists()

    def test_refused_while_roles_in_use(self, api_client, technician, member, tenant):
        api_client.force_authenticate(user=technician)

        response = api_client.delete(f'/v1/admin/tenants/{tenant.pk}')

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_unknown_tenant(self, api_client, technician):
        api_client.force_authenticate(user=technician)

        response = api_client.delete('/v1/admin/tenants/00000000-0000-0000-0000-000000000000')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_requires_technician(self, api_client, member, tenant):
        api_client.force_authenticate(user=member)

        response = api_client.delete(f'/v1/admin/tenants/{tenant.pk}')

        assert response.status_code == status.HTTP_403_FORBIDDEN
