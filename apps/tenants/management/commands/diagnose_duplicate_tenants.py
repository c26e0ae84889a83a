"""
Management command to report duplicate tenants for one business name.
"""
from django.core.management.base import BaseCommand, CommandError
from apps.tenants.services import TenantConsolidationService


class Command(BaseCommand):
    help = 'List tenants matching a name pattern and which one a consolidation would keep (read only)'

    def add_arguments(self, parser):
        parser.add_argument(
            'name_pattern',
            type=str,
            help='Case-insensitive regular expression matched against tenant names'
        )

    def handle(self, *args, **options):
        try:
            report = TenantConsolidationService.diagnose(options['name_pattern'])
        except ValueError as e:
            raise CommandError(str(e))

        self.stdout.write(f"Found {report['count']} tenant(s) matching \"{options['name_pattern']}\"")
        self.stdout.write('=' * 70)

        for entry in report['tenants']:
            self.stdout.write(f"{entry['name']} ({entry['id']})")
            self.stdout.write(f"   Created: {entry['created_at']}")
            self.stdout.write(f"   Category: {entry['category'] or '-'}")
            self.stdout.write(
                f"   Users: {entry['total_user_count']} "
                f"(legacy {entry['legacy_user_count']}, "
                f"memberships {entry['membership_user_count']}, "
                f"members {entry['members_count']})"
            )

        recommendation = report['recommendation']
        if not recommendation['has_duplicates']:
            self.stdout.write(self.style.SUCCESS('\nNo duplicates to consolidate.'))
            return

        keep = recommendation['keep']
        self.stdout.write(self.style.WARNING(
            f"\nKeep: {keep['name']} ({keep['id']})\n"
            f"Remove: {', '.join(t['id'] for t in recommendation['remove'])}"
        ))
