"""
Management command to merge duplicate tenants into the earliest-created one.

Run it again after a failure to resume from the failed step. Do not run it
twice at the same time for overlapping tenants.
"""
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from apps.core.exceptions import BizdeskException
from apps.tenants.services import TenantConsolidationService


class Command(BaseCommand):
    help = 'Consolidate tenants matching a name pattern into the earliest-created one'

    def add_arguments(self, parser):
        parser.add_argument(
            'name_pattern',
            type=str,
            help='Case-insensitive regular expression matched against tenant names'
        )
        parser.add_argument(
            '--expected-count',
            type=int,
            default=None,
            help='Exact number of matching tenants required '
                 '(default: CONSOLIDATION_EXPECTED_CANDIDATES)'
        )

    def handle(self, *args, **options):
        expected_count = options['expected_count']
        if expected_count is None:
            expected_count = settings.CONSOLIDATION_EXPECTED_CANDIDATES

        try:
            result = TenantConsolidationService.consolidate_by_name(
                options['name_pattern'],
                expected_count=expected_count,
            )
        except ValueError as e:
            raise CommandError(str(e))
        except BizdeskException as e:
            step = e.details.get('step')
            suffix = f' (step: {step})' if step else ''
            raise CommandError(f'{e.message}{suffix}')

        if result.resumed:
            self.stdout.write(self.style.WARNING('Resumed an unfinished consolidation.'))

        self.stdout.write(self.style.SUCCESS(result.message))
        self.stdout.write(f"Destination tenant: {result.surviving['name']} ({result.surviving['id']})")
        for absorbed in result.absorbed:
            self.stdout.write(f"Source tenant: {absorbed['name']} ({absorbed['id']})")

        if result.role_remap_required:
            self.stdout.write(self.style.WARNING(
                '\nThese roles belong to an absorbed tenant and are still assigned; '
                'recreate them in the surviving tenant and reassign users:'
            ))
            for role in result.role_remap_required:
                self.stdout.write(f"  {role['role_name']} ({role['role_id']})")
