"""
Tenant consolidation service.

Merges duplicate tenant records for one business into the earliest-created
of them. Every user, membership and member-list reference to an absorbed
tenant is rewritten to the surviving tenant, missing descriptive fields are
copied over, and the absorbed tenant is soft deleted last.

Records are saved one at a time without a surrounding transaction. Progress
is kept on a TenantMerge record after every step, so a consolidation that
stopped on a failed save resumes at that step when run again.

This is an administrative operation for a single operator; a concurrent
run in the same process is rejected.
"""
import logging
import re
import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from apps.core.exceptions import InvalidStateError, PartialMergeError
from apps.rbac.models import Membership, Role, User
from apps.rbac.services import coerce_uuid
from apps.tenants.models import Tenant, TenantMember, TenantMerge

logger = logging.getLogger(__name__)


STEP_LEGACY_MEMBERSHIPS = 'legacy_memberships'
STEP_MEMBERSHIPS = 'memberships'
STEP_CURRENT_TENANT = 'current_tenant'
STEP_MEMBERS = 'members'
STEP_ATTRIBUTES = 'attributes'
STEP_DELETE_ABSORBED = 'delete_absorbed'

STEPS = (
    STEP_LEGACY_MEMBERSHIPS,
    STEP_MEMBERSHIPS,
    STEP_CURRENT_TENANT,
    STEP_MEMBERS,
    STEP_ATTRIBUTES,
    STEP_DELETE_ABSORBED,
)

_consolidation_lock = threading.Lock()


def _tenant_ref(tenant: Tenant) -> Dict[str, str]:
    return {'id': str(tenant.pk), 'name': tenant.name}


@dataclass
class MergeResult:
    """Outcome of a completed consolidation."""
    surviving: Dict[str, str]
    absorbed: List[Dict[str, str]]
    migrated_user_ids: List[str] = field(default_factory=list)
    role_remap_required: List[Dict[str, str]] = field(default_factory=list)
    merge_ids: List[str] = field(default_factory=list)
    resumed: bool = False

    @property
    def migrated_user_count(self) -> int:
        return len(self.migrated_user_ids)

    @property
    def message(self) -> str:
        names = ', '.join(f'"{t["name"]}"' for t in self.absorbed)
        return (
            f"Consolidation complete. {self.migrated_user_count} users migrated "
            f"from {names} to \"{self.surviving['name']}\"."
        )

    def to_dict(self):
        return {
            'success': True,
            'message': self.message,
            'migrated_user_count': self.migrated_user_count,
            'source': self.absorbed[0] if len(self.absorbed) == 1 else self.absorbed,
            'destination': self.surviving,
            'surviving': self.surviving,
            'absorbed': self.absorbed,
            'role_remap_required': self.role_remap_required,
            'resumed': self.resumed,
        }


class TenantConsolidationService:
    """
    Detect and merge duplicate tenants.

    Usage:
        report = TenantConsolidationService.diagnose(r'acme')
        result = TenantConsolidationService.consolidate_by_name(r'acme', initiated_by=technician)
    """

    @staticmethod
    def validate_pattern(name_pattern: str) -> str:
        if not name_pattern:
            raise ValueError('A name pattern is required')
        try:
            re.compile(name_pattern, re.IGNORECASE)
        except re.error as exc:
            raise ValueError(f'Invalid name pattern: {exc}')
        return name_pattern

    @classmethod
    def find_candidates(cls, name_pattern: str) -> List[Tenant]:
        return list(Tenant.objects.matching_name(cls.validate_pattern(name_pattern)))

    @classmethod
    def diagnose(cls, name_pattern: str) -> dict:
        """
        Report the tenants matching ``name_pattern`` and which one would be kept.

        Read only. ``keep`` is the earliest-created tenant, the same one
        ``consolidate`` keeps.
        """
        tenants = cls.find_candidates(name_pattern)

        entries = []
        for tenant in tenants:
            legacy_ids = set(User.objects.filter(legacy_tenant=tenant).values_list('id', flat=True))
            membership_ids = set(Membership.objects.filter(tenant=tenant).values_list('user_id', flat=True))
            member_ids = tenant.member_user_ids()
            entries.append({
                'id': str(tenant.pk),
                'name': tenant.name,
                'description': tenant.description,
                'category': tenant.category,
                'created_at': tenant.created_at.isoformat(),
                'members_count': len(member_ids),
                'legacy_user_count': len(legacy_ids),
                'membership_user_count': len(membership_ids),
                'total_user_count': len(legacy_ids | membership_ids | member_ids),
            })

        keep = entries[0] if entries else None
        remove = entries[1:]

        return {
            'count': len(entries),
            'tenants': entries,
            'recommendation': {
                'keep': keep,
                'remove': remove,
                'has_duplicates': bool(remove),
            },
        }

    @classmethod
    def consolidate_by_name(cls, name_pattern: str, expected_count: Optional[int] = None,
                            initiated_by: Optional[User] = None) -> MergeResult:
        return cls.consolidate(
            cls.find_candidates(name_pattern),
            expected_count=expected_count,
            initiated_by=initiated_by,
        )

    @classmethod
    def consolidate(cls, candidates, expected_count: Optional[int] = None,
                    initiated_by: Optional[User] = None) -> MergeResult:
        """
        Merge ``candidates`` into the earliest-created one.

        When an earlier run over the same tenants stopped part way, its
        unfinished merge records are resumed and the tenants it already
        absorbed count toward ``expected_count``.

        Args:
            candidates: Tenants (or tenant ids) describing one business
            expected_count: Exact number of candidates required; defaults
                to ``CONSOLIDATION_EXPECTED_CANDIDATES``
            initiated_by: Operator recorded on the merge records

        Returns:
            MergeResult

        Raises:
            InvalidStateError: Wrong candidate count, a candidate no longer
                exists, or another consolidation is running. Nothing is
                mutated.
            PartialMergeError: A record save failed; earlier rewrites stay
                applied and the absorbed tenant is not deleted.
        """
        if expected_count is None:
            expected_count = getattr(settings, 'CONSOLIDATION_EXPECTED_CANDIDATES', 2)

        if expected_count < 2:
            raise InvalidStateError(
                'Consolidation needs at least two tenants',
                details={'expected': expected_count}
            )

        candidates = list(candidates)
        run_id, finished = cls._interrupted_run([coerce_uuid(c) for c in candidates])
        found = len(candidates) + len(finished)
        if found != expected_count:
            raise InvalidStateError(
                f"Found {found} candidate tenants, expected {expected_count}",
                details={'found': found, 'expected': expected_count}
            )

        if not _consolidation_lock.acquire(blocking=False):
            raise InvalidStateError('Another tenant consolidation is already running')

        try:
            tenants = cls._load_candidates(candidates)
            surviving, absorbed = tenants[0], tenants[1:]

            result = MergeResult(
                surviving=_tenant_ref(surviving),
                absorbed=[_tenant_ref(m.absorbed_tenant) for m in finished] + [_tenant_ref(t) for t in absorbed],
                resumed=bool(finished),
            )
            migrated = set()

            for merge in finished:
                migrated.update(merge.migrated_user_ids)
                result.merge_ids.append(str(merge.pk))
                result.role_remap_required.extend(cls._orphaned_roles(merge.absorbed_tenant))

            run_id = run_id or uuid.uuid4()
            for tenant in absorbed:
                merge, resumed = cls._merge_record(surviving, tenant, initiated_by, run_id)
                result.resumed = result.resumed or resumed
                migrated |= cls._merge_pair(merge, surviving, tenant)
                result.merge_ids.append(str(merge.pk))
                result.role_remap_required.extend(cls._orphaned_roles(tenant))

            result.migrated_user_ids = sorted(migrated)
        finally:
            _consolidation_lock.release()

        logger.info(
            "Tenant consolidation completed",
            extra={
                'surviving_tenant_id': result.surviving['id'],
                'absorbed_tenant_ids': [t['id'] for t in result.absorbed],
                'migrated_user_count': result.migrated_user_count,
                'resumed': result.resumed,
            }
        )
        return result

    @staticmethod
    def _load_candidates(candidates) -> List[Tenant]:
        ids = [coerce_uuid(candidate) for candidate in candidates]
        if None in ids or len(set(ids)) != len(ids):
            raise InvalidStateError(
                'Candidate tenants must be distinct tenant ids',
                details={'candidates': [str(getattr(c, 'pk', c)) for c in candidates]}
            )

        tenants = list(Tenant.objects.filter(pk__in=ids))
        if len(tenants) != len(ids):
            missing = set(ids) - {t.pk for t in tenants}
            raise InvalidStateError(
                'Candidate tenant no longer exists',
                details={'missing': sorted(str(pk) for pk in missing)}
            )

        return sorted(tenants, key=lambda t: (t.created_at, str(t.pk)))

    @staticmethod
    def _interrupted_run(ids):
        """
        (run_id, completed merges) of an unfinished consolidation touching ``ids``.

        Tenants absorbed earlier in that run are soft deleted and no longer
        match by name, but they still count toward the expected candidates
        when the run is resumed. Returns ``(None, [])`` when no run is pending.
        """
        ids = [pk for pk in ids if pk is not None]
        pending = (
            TenantMerge.objects
            .filter(status__in=TenantMerge.UNFINISHED_STATUSES)
            .filter(Q(surviving_tenant_id__in=ids) | Q(absorbed_tenant_id__in=ids))
            .order_by('created_at')
            .first()
        )
        if pending is None:
            return None, []

        finished = list(
            TenantMerge.objects
            .filter(
                run_id=pending.run_id,
                status=TenantMerge.STATUS_COMPLETED,
                surviving_tenant_id__in=ids,
            )
            .exclude(absorbed_tenant_id__in=ids)
            .select_related('absorbed_tenant')
            .order_by('created_at')
        )
        return pending.run_id, finished

    @staticmethod
    def _merge_record(surviving: Tenant, absorbed: Tenant, initiated_by, run_id):
        """(merge record, resumed) for the pair; unfinished records are reused."""
        merge = TenantMerge.objects.filter(
            surviving_tenant=surviving,
            absorbed_tenant=absorbed,
            status__in=TenantMerge.UNFINISHED_STATUSES,
        ).first()

        if merge is None:
            merge = TenantMerge.objects.create(
                surviving_tenant=surviving,
                absorbed_tenant=absorbed,
                run_id=run_id,
                initiated_by=initiated_by,
            )
            return merge, False

        logger.info(
            "Resuming tenant consolidation",
            extra={
                'merge_id': str(merge.pk),
                'failed_step': merge.failed_step,
                'completed_steps': merge.completed_steps,
            }
        )
        merge.status = TenantMerge.STATUS_IN_PROGRESS
        merge.failed_step = ''
        merge.error_message = ''
        merge.save(update_fields=['status', 'failed_step', 'error_message', 'updated_at'])
        return merge, True

    @classmethod
    def _merge_pair(cls, merge: TenantMerge, surviving: Tenant, absorbed: Tenant) -> set:
        moved = set(merge.migrated_user_ids)

        handlers = {
            STEP_LEGACY_MEMBERSHIPS: cls._move_legacy_memberships,
            STEP_MEMBERSHIPS: cls._move_memberships,
            STEP_CURRENT_TENANT: cls._move_current_tenant,
            STEP_MEMBERS: cls._move_members,
            STEP_ATTRIBUTES: cls._copy_attributes,
            STEP_DELETE_ABSORBED: cls._delete_absorbed,
        }

        for step in STEPS:
            if merge.has_completed(step):
                logger.info(
                    "Skipping completed consolidation step",
                    extra={'merge_id': str(merge.pk), 'step': step}
                )
                continue

            try:
                handlers[step](surviving, absorbed, moved)
            except Exception as exc:
                merge.status = TenantMerge.STATUS_FAILED
                merge.failed_step = step
                merge.error_message = str(exc)
                merge.migrated_user_ids = sorted(moved)
                merge.save(update_fields=[
                    'status', 'failed_step', 'error_message', 'migrated_user_ids', 'updated_at',
                ])
                logger.error(
                    "Tenant consolidation stopped",
                    extra={
                        'merge_id': str(merge.pk),
                        'step': step,
                        'surviving_tenant_id': str(surviving.pk),
                        'absorbed_tenant_id': str(absorbed.pk),
                        'error': str(exc),
                    },
                    exc_info=True
                )
                raise PartialMergeError(
                    f"Consolidation stopped at step '{step}'; run it again to resume",
                    step=step,
                    details={
                        'merge_id': str(merge.pk),
                        'completed_steps': list(merge.completed_steps),
                        'error': str(exc),
                    }
                ) from exc

            merge.completed_steps = list(merge.completed_steps) + [step]
            merge.migrated_user_ids = sorted(moved)
            merge.save(update_fields=['completed_steps', 'migrated_user_ids', 'updated_at'])
            logger.info(
                "Consolidation step completed",
                extra={'merge_id': str(merge.pk), 'step': step, 'migrated_user_count': len(moved)}
            )

        merge.status = TenantMerge.STATUS_COMPLETED
        merge.completed_at = timezone.now()
        merge.save(update_fields=['status', 'completed_at', 'updated_at'])
        return moved

    @staticmethod
    def _move_legacy_memberships(surviving, absorbed, moved):
        for user in User.objects.filter(legacy_tenant=absorbed):
            user.legacy_tenant = surviving
            user.save(update_fields=['legacy_tenant', 'updated_at'])
            moved.add(str(user.pk))

    @staticmethod
    def _move_memberships(surviving, absorbed, moved):
        # Roles stay attached to the absorbed tenant
        for entry in Membership.objects.filter(tenant=absorbed):
            entry.tenant = surviving
            entry.save(update_fields=['tenant', 'updated_at'])
            moved.add(str(entry.user_id))

    @staticmethod
    def _move_current_tenant(surviving, absorbed, moved):
        for user in User.objects.filter(current_tenant=absorbed):
            user.current_tenant = surviving
            user.save(update_fields=['current_tenant', 'updated_at'])
            moved.add(str(user.pk))

    @staticmethod
    def _move_members(surviving, absorbed, moved):
        existing = {
            member.user_id: member
            for member in TenantMember.objects_with_deleted.filter(tenant=surviving)
        }
        for member in TenantMember.objects.filter(tenant=absorbed):
            kept = existing.get(member.user_id)
            if kept is not None:
                # A removed entry on the surviving tenant comes back for a live absorbed member
                if kept.is_deleted:
                    kept.restore()
                continue
            member.tenant = surviving
            member.save(update_fields=['tenant', 'updated_at'])
            existing[member.user_id] = member

    @staticmethod
    def _copy_attributes(surviving, absorbed, moved):
        changed = []
        for name in Tenant.DESCRIPTIVE_FIELDS:
            if not getattr(surviving, name) and getattr(absorbed, name):
                setattr(surviving, name, getattr(absorbed, name))
                changed.append(name)
        if changed:
            surviving.save(update_fields=changed + ['updated_at'])

    @staticmethod
    def _delete_absorbed(surviving, absorbed, moved):
        absorbed.delete()

    @staticmethod
    def _orphaned_roles(absorbed: Tenant) -> List[Dict[str, str]]:
        """Roles of the absorbed tenant still held by migrated users."""
        orphaned = [
            {'role_id': str(role.pk), 'role_name': role.name, 'tenant_id': str(absorbed.pk)}
            for role in Role.objects.for_tenant(absorbed)
            if role.is_referenced()
        ]
        if orphaned:
            logger.warning(
                "Migrated users still hold roles of the absorbed tenant",
                extra={
                    'absorbed_tenant_id': str(absorbed.pk),
                    'roles': [r['role_name'] for r in orphaned],
                }
            )
        return orphaned
