"""
Tests for duplicate tenant diagnosis and consolidation.
"""
from datetime import timedelta
from unittest import mock

import pytest
from django.db import DatabaseError
from django.utils import timezone

from apps.core.exceptions import InvalidStateError, PartialMergeError
from apps.rbac.models import Membership, Role, User
from apps.rbac.services import MembershipResolver, MembershipSource
from apps.tenants.models import Tenant, TenantMember, TenantMerge
from apps.tenants.services import TenantConsolidationService
from apps.tenants.services import consolidation_service


def make_tenant(name, minutes_ago, **fields):
    return Tenant.objects.create(
        name=name,
        created_at=timezone.now() - timedelta(minutes=minutes_ago),
        **fields
    )


def make_members(tenant, count, prefix):
    users = []
    for i in range(count):
        user = User.objects.create_user(email=f'{prefix}{i}@example.com')
        Membership.objects.create(user=user, tenant=tenant, position=user.next_membership_position())
        TenantMember.objects.create(tenant=tenant, user=user)
        users.append(user)
    return users


@pytest.fixture
def acme_pair(db):
    """Acme created twice: the older copy has 3 members, the newer 1 and a description."""
    older = make_tenant('Acme', minutes_ago=20)
    newer = make_tenant('ACME', minutes_ago=10, description='Hardware and tools', category='retail')
    make_members(older, 3, 'old')
    make_members(newer, 1, 'new')
    return older, newer


@pytest.mark.django_db
class TestDiagnose:
    """Test the read-only duplicate report."""

    def test_reports_both_copies_oldest_first(self, acme_pair):
        older, newer = acme_pair

        report = TenantConsolidationService.diagnose('acme')

        assert report['count'] == 2
        assert [t['id'] for t in report['tenants']] == [str(older.pk), str(newer.pk)]
        assert report['recommendation']['keep']['id'] == str(older.pk)
        assert [t['id'] for t in report['recommendation']['remove']] == [str(newer.pk)]
        assert report['recommendation']['has_duplicates']

    def test_counts_users_across_representations(self, acme_pair):
        older, _ = acme_pair
        legacy_only = User.objects.create_user(email='legacy@example.com', legacy_tenant=older)

        entry = TenantConsolidationService.diagnose('acme')['tenants'][0]

        assert entry['members_count'] == 3
        assert entry['membership_user_count'] == 3
        assert entry['legacy_user_count'] == 1
        assert entry['total_user_count'] == 4
        assert legacy_only.legacy_tenant_id == older.pk

    def test_is_read_only(self, acme_pair):
        TenantConsolidationService.diagnose('acme')

        assert Tenant.objects.filter(name__iexact='acme').count() == 2
        assert not TenantMerge.objects.exists()

    def test_no_match(self, db):
        report = TenantConsolidationService.diagnose('nothing')

        assert report['count'] == 0
        assert report['recommendation']['keep'] is None
        assert not report['recommendation']['has_duplicates']

    def test_invalid_pattern(self, db):
        with pytest.raises(ValueError):
            TenantConsolidationService.diagnose('acme(')

        with pytest.raises(ValueError):
            TenantConsolidationService.diagnose('')


@pytest.mark.django_db
class TestConsolidate:
    """Test merging duplicates into the earliest-created tenant."""

    def test_merges_into_earliest_tenant(self, acme_pair, technician):
        older, newer = acme_pair

        result = TenantConsolidationService.consolidate_by_name('acme', initiated_by=technician)

        assert result.surviving['id'] == str(older.pk)
        assert [t['id'] for t in result.absorbed] == [str(newer.pk)]
        assert Membership.objects.filter(tenant=older).count() == 4
        assert older.members.count() == 4
        assert not Tenant.objects.filter(pk=newer.pk).exists()
        assert Tenant.objects_with_deleted.get(pk=newer.pk).is_deleted

    def test_copies_missing_descriptive_fields(self, acme_pair):
        older, _ = acme_pair

        TenantConsolidationService.consolidate_by_name('acme')

        older.refresh_from_db()
        assert older.description == 'Hardware and tools'
        assert older.category == 'retail'

    def test_does_not_overwrite_populated_fields(self, db):
        older = make_tenant('Acme', 20, description='Original')
        make_tenant('Acme', 10, description='Newer text', category='service')

        TenantConsolidationService.consolidate_by_name('acme')

        older.refresh_from_db()
        assert older.description == 'Original'
        assert older.category == 'service'

    def test_migrated_users_resolve_to_surviving_tenant(self, acme_pair):
        older, newer = acme_pair
        moved = Membership.objects.get(tenant=newer).user

        TenantConsolidationService.consolidate_by_name('acme')

        assert MembershipResolver.resolve(moved, older.pk).source is MembershipSource.MEMBERSHIP
        assert MembershipResolver.resolve(moved, newer.pk) is None

    def test_rewrites_legacy_and_current_tenant(self, db):
        older = make_tenant('Acme', 20)
        newer = make_tenant('Acme', 10)
        legacy = User.objects.create_user(email='legacy@example.com', legacy_tenant=newer, current_tenant=newer)

        result = TenantConsolidationService.consolidate_by_name('acme')

        legacy.refresh_from_db()
        assert legacy.legacy_tenant == older
        assert legacy.current_tenant == older
        assert MembershipResolver.resolve(legacy, older.pk).source is MembershipSource.LEGACY
        # Counted once although rewritten by two steps
        assert result.migrated_user_count == 1

    def test_migrated_count_is_distinct_users(self, acme_pair):
        _, newer = acme_pair
        user = Membership.objects.get(tenant=newer).user
        user.legacy_tenant = newer
        user.current_tenant = newer
        user.save()

        result = TenantConsolidationService.consolidate_by_name('acme')

        assert result.migrated_user_count == 1
        assert result.migrated_user_ids == [str(user.pk)]
        assert '1 users migrated' in result.message

    def test_member_list_is_deduplicated(self, acme_pair):
        older, newer = acme_pair
        shared = Membership.objects.filter(tenant=older).first().user
        TenantMember.objects.create(tenant=newer, user=shared)

        TenantConsolidationService.consolidate_by_name('acme')

        assert older.members.filter(user=shared).count() == 1
        assert older.members.count() == 4

    def test_reports_roles_left_on_absorbed_tenant(self, acme_pair):
        _, newer = acme_pair
        role = Role.objects.create(tenant=newer, name='Cashier')
        Membership.objects.filter(tenant=newer).update(role=role)

        result = TenantConsolidationService.consolidate_by_name('acme')

        assert result.role_remap_required == [
            {'role_id': str(role.pk), 'role_name': 'Cashier', 'tenant_id': str(newer.pk)}
        ]
        # Role is kept on the absorbed tenant and still resolves
        moved = Membership.objects.filter(role=role).first()
        assert moved.tenant_id != newer.pk
        assert Role.objects.filter(pk=role.pk).exists()

    def test_records_completed_merge(self, acme_pair, technician):
        older, newer = acme_pair

        result = TenantConsolidationService.consolidate_by_name('acme', initiated_by=technician)

        merge = TenantMerge.objects.get()
        assert str(merge.pk) in result.merge_ids
        assert merge.status == TenantMerge.STATUS_COMPLETED
        assert merge.completed_steps == list(consolidation_service.STEPS)
        assert merge.surviving_tenant == older
        assert merge.absorbed_tenant_id == newer.pk
        assert merge.initiated_by == technician
        assert merge.completed_at is not None
        assert not result.resumed

    def test_diagnose_after_consolidation_shows_single_tenant(self, acme_pair):
        TenantConsolidationService.consolidate_by_name('acme')

        report = TenantConsolidationService.diagnose('acme')

        assert report['count'] == 1
        assert not report['recommendation']['has_duplicates']

    def test_to_dict(self, acme_pair):
        data = TenantConsolidationService.consolidate_by_name('acme').to_dict()

        assert data['success'] is True
        assert data['migrated_user_count'] == 1
        assert set(data) == {
            'success', 'message', 'migrated_user_count', 'source', 'destination',
            'surviving', 'absorbed', 'role_remap_required', 'resumed',
        }

    def test_to_dict_names_source_and_destination(self, acme_pair):
        older, newer = acme_pair

        data = TenantConsolidationService.consolidate_by_name('acme').to_dict()

        assert data['destination'] == {'id': str(older.pk), 'name': 'Acme'}
        assert data['source'] == {'id': str(newer.pk), 'name': 'ACME'}

    def test_to_dict_lists_every_source_of_a_multi_way_merge(self, acme_pair):
        older, newer = acme_pair
        newest = make_tenant('acme', 5)

        data = TenantConsolidationService.consolidate_by_name('acme', expected_count=3).to_dict()

        assert data['destination']['id'] == str(older.pk)
        assert [t['id'] for t in data['source']] == [str(newer.pk), str(newest.pk)]

    def test_restores_removed_member_entry_on_surviving_tenant(self, acme_pair):
        older, newer = acme_pair
        user = Membership.objects.get(tenant=newer).user
        TenantMember.objects.create(tenant=older, user=user).delete()

        TenantConsolidationService.consolidate_by_name('acme')

        assert older.members.filter(user=user).count() == 1
        assert older.members.count() == 4
        assert user.pk in older.member_user_ids()


@pytest.mark.django_db
class TestConsolidationPreconditions:
    """Nothing is mutated when a consolidation cannot start."""

    def test_single_candidate_is_refused(self, db):
        only = make_tenant('Acme', 10)
        user = User.objects.create_user(email='solo@example.com', legacy_tenant=only)

        with pytest.raises(InvalidStateError):
            TenantConsolidationService.consolidate_by_name('acme')

        user.refresh_from_db()
        assert user.legacy_tenant == only
        assert not TenantMerge.objects.exists()

    def test_three_candidates_are_refused(self, acme_pair):
        make_tenant('acme', 5)

        with pytest.raises(InvalidStateError) as exc_info:
            TenantConsolidationService.consolidate_by_name('acme')

        assert exc_info.value.details == {'found': 3, 'expected': 2}
        assert Tenant.objects.filter(name__iexact='acme').count() == 3
        assert not TenantMerge.objects.exists()

    def test_expected_count_from_settings(self, acme_pair, settings):
        settings.CONSOLIDATION_EXPECTED_CANDIDATES = 3
        make_tenant('Acme', 5)

        result = TenantConsolidationService.consolidate_by_name('acme')

        assert len(result.absorbed) == 2
        assert Tenant.objects.filter(name__iexact='acme').count() == 1

    def test_expected_count_below_two_is_refused(self, acme_pair):
        with pytest.raises(InvalidStateError):
            TenantConsolidationService.consolidate_by_name('acme', expected_count=1)

    def test_duplicate_candidates_are_refused(self, acme_pair):
        older, _ = acme_pair

        with pytest.raises(InvalidStateError):
            TenantConsolidationService.consolidate([older, older.pk])

    def test_vanished_candidate_is_refused(self, acme_pair):
        older, newer = acme_pair
        newer.delete()

        with pytest.raises(InvalidStateError) as exc_info:
            TenantConsolidationService.consolidate([older.pk, newer.pk])

        assert exc_info.value.details['missing'] == [str(newer.pk)]
        assert Membership.objects.filter(tenant=older).count() == 3

    def test_concurrent_run_is_refused(self, acme_pair):
        assert consolidation_service._consolidation_lock.acquire(blocking=False)
        try:
            with pytest.raises(InvalidStateError):
                TenantConsolidationService.consolidate_by_name('acme')
        finally:
            consolidation_service._consolidation_lock.release()

        assert not TenantMerge.objects.exists()


@pytest.mark.django_db
class TestPartialFailure:
    """A failed save stops the merge; running it again resumes."""

    @pytest.fixture
    def two_absorbed_members(self, db):
        older = make_tenant('Acme', 20)
        newer = make_tenant('Acme', 10, description='From the newer copy')
        make_members(older, 1, 'old')
        make_members(newer, 2, 'new')
        return older, newer

    @staticmethod
    def flaky_membership_save(fail_on_call):
        original_save = Membership.save
        calls = {'count': 0}

        def save(self, *args, **kwargs):
            calls['count'] += 1
            if calls['count'] == fail_on_call:
                raise DatabaseError('connection reset')
            return original_save(self, *args, **kwargs)

        return mock.patch.object(Membership, 'save', save)

    def test_failure_keeps_earlier_rewrites(self, two_absorbed_members):
        older, newer = two_absorbed_members

        with self.flaky_membership_save(fail_on_call=2):
            with pytest.raises(PartialMergeError) as exc_info:
                TenantConsolidationService.consolidate_by_name('acme')

        assert exc_info.value.step == consolidation_service.STEP_MEMBERSHIPS
        assert Membership.objects.filter(tenant=older).count() == 2
        assert Membership.objects.filter(tenant=newer).count() == 1
        # Absorbed tenant survives a partial merge
        assert Tenant.objects.filter(pk=newer.pk).exists()

        merge = TenantMerge.objects.get()
        assert merge.status == TenantMerge.STATUS_FAILED
        assert merge.failed_step == consolidation_service.STEP_MEMBERSHIPS
        assert merge.completed_steps == [consolidation_service.STEP_LEGACY_MEMBERSHIPS]
        assert 'connection reset' in merge.error_message
        assert len(merge.migrated_user_ids) == 1

    def test_rerun_resumes_from_failed_step(self, two_absorbed_members):
        older, newer = two_absorbed_members

        with self.flaky_membership_save(fail_on_call=2):
            with pytest.raises(PartialMergeError):
                TenantConsolidationService.consolidate_by_name('acme')

        result = TenantConsolidationService.consolidate_by_name('acme')

        assert result.resumed
        assert result.migrated_user_count == 2
        assert Membership.objects.filter(tenant=older).count() == 3
        assert not Tenant.objects.filter(pk=newer.pk).exists()

        older.refresh_from_db()
        assert older.description == 'From the newer copy'

        merge = TenantMerge.objects.get()
        assert merge.status == TenantMerge.STATUS_COMPLETED
        assert merge.failed_step == ''
        assert merge.completed_steps == list(consolidation_service.STEPS)

    def test_failure_releases_lock(self, two_absorbed_members):
        with self.flaky_membership_save(fail_on_call=1):
            with pytest.raises(PartialMergeError):
                TenantConsolidationService.consolidate_by_name('acme')

        assert not consolidation_service._consolidation_lock.locked()

    def test_three_way_merge_resumes_after_second_tenant_fails(self, db, settings):
        settings.CONSOLIDATION_EXPECTED_CANDIDATES = 3
        oldest = make_tenant('Acme', 30)
        middle = make_tenant('Acme', 20)
        newest = make_tenant('Acme', 10)
        make_members(oldest, 1, 'oldest')
        make_members(middle, 1, 'middle')
        make_members(newest, 2, 'newest')

        # Call 1 moves the middle tenant's entry, call 2 the first of the newest
        with self.flaky_membership_save(fail_on_call=2):
            with pytest.raises(PartialMergeError):
                TenantConsolidationService.consolidate_by_name('acme')

        assert not Tenant.objects.filter(pk=middle.pk).exists()
        assert Tenant.objects.filter(name='Acme').count() == 2

        result = TenantConsolidationService.consolidate_by_name('acme')

        assert result.resumed
        assert result.surviving['id'] == str(oldest.pk)
        assert [t['id'] for t in result.absorbed] == [str(middle.pk), str(newest.pk)]
        assert result.migrated_user_count == 3
        assert len(result.merge_ids) == 2
        assert Membership.objects.filter(tenant=oldest).count() == 4
        assert Tenant.objects.filter(name='Acme').count() == 1

        merges = TenantMerge.objects.all()
        assert {m.status for m in merges} == {TenantMerge.STATUS_COMPLETED}
        assert len({m.run_id for m in merges}) == 1

    def test_new_run_does_not_count_tenants_absorbed_by_a_finished_run(self, acme_pair):
        older, _ = acme_pair
        TenantConsolidationService.consolidate_by_name('acme')
        make_tenant('Acme', 5)

        result = TenantConsolidationService.consolidate_by_name('acme')

        assert not result.resumed
        assert len(result.absorbed) == 1
        assert result.surviving['id'] == str(older.pk)
