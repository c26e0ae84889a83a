"""
Management command to seed canonical permissions.

Creates all global Permission records that define available access controls
across the system. This command is idempotent and safe to re-run.
"""
from django.core.management.base import BaseCommand
from apps.rbac.models import Permission


class Command(BaseCommand):
    help = 'Seed canonical permissions (idempotent)'

    # Canonical permissions with categories, labels, and descriptions
    CANONICAL_PERMISSIONS = [
        # General
        {
            'code': 'VIEW_GENERAL_CATEGORY',
            'label': 'View General',
            'description': 'Access the general section; every member has it',
            'category': 'GENERAL',
        },
        {
            'code': 'MANAGE_SERVICE_SESSIONS',
            'label': 'Manage Service Sessions',
            'description': 'Start and close service sessions',
            'category': 'GENERAL',
        },

        # Paperwork
        {
            'code': 'PAPERWORK_VIEW',
            'label': 'View Paperwork',
            'description': 'Open the paperwork section',
            'category': 'PAPERWORK',
        },
        {
            'code': 'PAPERWORK_MANAGE',
            'label': 'Manage Paperwork',
            'description': 'Edit every paperwork document',
            'category': 'PAPERWORK',
        },
        {
            'code': 'MANAGE_INVOICES',
            'label': 'Manage Invoices',
            'description': 'Create, update, and delete invoices',
            'category': 'PAPERWORK',
        },
        {
            'code': 'MANAGE_PARTNERSHIPS',
            'label': 'Manage Partnerships',
            'description': 'Create and update partnerships',
            'category': 'PAPERWORK',
        },

        # Management
        {
            'code': 'MANAGEMENT_VIEW',
            'label': 'View Management',
            'description': 'Open the management section',
            'category': 'MANAGEMENT',
        },
        {
            'code': 'MANAGEMENT_MANAGE',
            'label': 'Manage Management',
            'description': 'Edit every management record',
            'category': 'MANAGEMENT',
        },
        {
            'code': 'MANAGE_CHARGES',
            'label': 'Manage Charges',
            'description': 'Record and edit company charges',
            'category': 'MANAGEMENT',
        },
        {
            'code': 'MANAGE_STOCK',
            'label': 'Manage Stock',
            'description': 'Adjust stock levels',
            'category': 'MANAGEMENT',
        },
        {
            'code': 'MANAGE_ITEMS',
            'label': 'Manage Items',
            'description': 'Create, update, and delete items',
            'category': 'MANAGEMENT',
        },
        {
            'code': 'MANAGE_SALES',
            'label': 'Manage Sales',
            'description': 'Record sales and edit sales history',
            'category': 'MANAGEMENT',
        },

        # Administration
        {
            'code': 'ADMINISTRATION_VIEW',
            'label': 'View Administration',
            'description': 'Open the administration section',
            'category': 'ADMINISTRATION',
        },
        {
            'code': 'ADMINISTRATION_MANAGE',
            'label': 'Manage Administration',
            'description': 'Edit every administration setting',
            'category': 'ADMINISTRATION',
        },
        {
            'code': 'MANAGE_ROLES',
            'label': 'Manage Roles',
            'description': 'Create roles and change their permissions',
            'category': 'ADMINISTRATION',
        },
        {
            'code': 'MANAGE_EMPLOYEES',
            'label': 'Manage Employees',
            'description': 'Hire, update, and dismiss employees',
            'category': 'ADMINISTRATION',
        },
        {
            'code': 'ASSIGN_EMPLOYEE_ROLES',
            'label': 'Assign Employee Roles',
            'description': 'Change the role of an employee',
            'category': 'ADMINISTRATION',
        },
        {
            'code': 'GENERATE_EMPLOYEE_CODE',
            'label': 'Generate Employee Code',
            'description': 'Issue enrollment codes for new employees',
            'category': 'ADMINISTRATION',
        },
        {
            'code': 'MANAGE_COMPANY',
            'label': 'Manage Company',
            'description': 'Edit company details and settings',
            'category': 'ADMINISTRATION',
        },
    ]

    def handle(self, *args, **options):
        """Create or update all canonical permissions."""

        created_count = 0
        updated_count = 0

        self.stdout.write('Seeding canonical permissions...\n')

        for perm_data in self.CANONICAL_PERMISSIONS:
            permission, created = Permission.objects.get_or_create(
                code=perm_data['code'],
                defaults={
                    'label': perm_data['label'],
                    'description': perm_data['description'],
                    'category': perm_data['category'],
                }
            )

            if created:
                created_count += 1
                self.stdout.write(self.style.SUCCESS(f'Created: {permission.code}'))
                continue

            changed = [
                name for name in ('label', 'description', 'category')
                if getattr(permission, name) != perm_data[name]
            ]
            if changed:
                for name in changed:
                    setattr(permission, name, perm_data[name])
                permission.save()
                updated_count += 1
                self.stdout.write(self.style.WARNING(f'Updated: {permission.code}'))

        unchanged = len(self.CANONICAL_PERMISSIONS) - created_count - updated_count
        self.stdout.write(
            self.style.SUCCESS(
                f'\nSeeding complete: {created_count} created, {updated_count} updated, '
                f'{unchanged} unchanged'
            )
        )

        self.stdout.write('\n' + '=' * 70)
        self.stdout.write('Permissions Summary by Category:')
        self.stdout.write('=' * 70)

        for category, perms in Permission.objects.grouped_by_category().items():
            self.stdout.write(f'\n{category}:')
            for perm in perms:
                self.stdout.write(f'  {perm.code:<30} {perm.label}')

        self.stdout.write(f'\nTotal permissions: {Permission.objects.count()}')
