"""
Management command to seed the cooperative's business rules

This command creates:
- Business configuration rows (SystemConfig) with their default values
- Default loan types
- Default loan approval workflows (small, standard, large)

Usage:
    python manage.py seed_business_rules
    python manage.py seed_business_rules --reset  # Delete configuration and workflows, then recreate
"""

from django.core.management.base import BaseCommand
from django.db import transaction
from decimal import Decimal

from cooperative.models import (
    ApprovalLevel, EntityType, LoanType, SystemConfig, User, WorkflowTemplate,
)
from cooperative.services.config import DEFAULTS, SETTING_DEFINITIONS


LOAN_TYPES = [
    {
        'code': 'REG',
        'name': 'Regular Loan',
        'description': 'General purpose loan for members',
        'interest_rate': Decimal('12.00'),
        'min_amount': Decimal('10000.00'),
        'max_amount': Decimal('5000000.00'),
        'min_term_months': 1,
        'max_term_months': 24,
        'risk_class': LoanType.RiskClass.STANDARD,
    },
    {
        'code': 'EMG',
        'name': 'Emergency Loan',
        'description': 'Short-term loan for urgent needs',
        'interest_rate': Decimal('10.00'),
        'min_amount': Decimal('5000.00'),
        'max_amount': Decimal('200000.00'),
        'min_term_months': 1,
        'max_term_months': 6,
        'risk_class': LoanType.RiskClass.LOW,
    },
    {
        'code': 'SPC',
        'name': 'Special Loan',
        'description': 'Large loan for projects and assets',
        'interest_rate': Decimal('15.00'),
        'min_amount': Decimal('500000.00'),
        'max_amount': Decimal('5000000.00'),
        'min_term_months': 6,
        'max_term_months': 36,
        'requires_guarantor': True,
        'guarantor_count': 2,
        'risk_class': LoanType.RiskClass.HIGH,
    },
]

WORKFLOWS = [
    {
        'name': 'Small Loan Approval',
        'min_amount': None,
        'max_amount': Decimal('500000.00'),
        'description': 'Loans above the auto-approval limit up to ₦500,000',
        'levels': [
            ('Loan Officer Review', User.Role.LOAN_OFFICER),
        ],
    },
    {
        'name': 'Standard Loan Approval',
        'min_amount': Decimal('500000.01'),
        'max_amount': Decimal('2000000.00'),
        'description': 'Loans from ₦500,000.01 to ₦2,000,000',
        'levels': [
            ('Loan Officer Review', User.Role.LOAN_OFFICER),
            ('Manager Approval', User.Role.MANAGER),
        ],
    },
    {
        'name': 'Large Loan Approval',
        'min_amount': Decimal('2000000.01'),
        'max_amount': None,
        'description': 'Loans above ₦2,000,000',
        'levels': [
            ('Manager Review', User.Role.MANAGER),
            ('Loan Committee Approval', User.Role.COMMITTEE),
            ('President Approval', User.Role.PRESIDENT),
        ],
    },
]


class Command(BaseCommand):
    help = 'Seed business configuration, loan types and loan approval workflows'

    def add_arguments(self, parser):
        parser.add_argument(
            '--reset',
            action='store_true',
            help='Delete existing configuration and workflow templates and recreate them',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        if options['reset']:
            self.stdout.write(self.style.WARNING('Deleting existing configuration and workflows...'))
            SystemConfig.objects.all().delete()
            WorkflowTemplate.objects.all().delete()

        self.stdout.write(self.style.SUCCESS('\n=== Seeding Business Rules ===\n'))

        self.create_settings()
        self.create_loan_types()
        self.create_workflows()

        self.stdout.write(self.style.SUCCESS('\n[SUCCESS] Business rules seeded successfully!\n'))

    def create_settings(self):
        self.stdout.write('Creating Configuration...')

        for key, value, value_type, category, description, minimum, maximum in SETTING_DEFINITIONS:
            setting, created = SystemConfig.objects.get_or_create(
                key=key,
                defaults={
                    'value': value,
                    'value_type': value_type,
                    'category': category,
                    'description': description,
                    'min_value': Decimal(minimum) if minimum is not None else None,
                    'max_value': Decimal(maximum) if maximum is not None else None,
                }
            )
            if created:
                self.stdout.write(f'  [+] Created: {key} = {value}')
            else:
                self.stdout.write(f'  [*] Exists: {key} = {setting.value}')

    def create_loan_types(self):
        self.stdout.write('\nCreating Loan Types...')

        for data in LOAN_TYPES:
            data = dict(data)
            code = data.pop('code')
            loan_type, created = LoanType.objects.get_or_create(code=code, defaults=data)
            marker = '[+] Created' if created else '[*] Exists'
            self.stdout.write(f'  {marker}: {loan_type.code} - {loan_type.name}')

    def create_workflows(self):
        self.stdout.write('\nCreating Loan Workflows...')

        timeout_hours = self.timeout_hours()

        for data in WORKFLOWS:
            template, created = WorkflowTemplate.objects.get_or_create(
                name=data['name'],
                defaults={
                    'entity_type': EntityType.LOAN,
                    'min_amount': data['min_amount'],
                    'max_amount': data['max_amount'],
                    'description': data['description'],
                }
            )
            if not created:
                self.stdout.write(f'  [*] Exists: {template.name}')
                continue

            for number, (name, role) in enumerate(data['levels'], 1):
                ApprovalLevel.objects.create(
                    template=template,
                    level_number=number,
                    name=name,
                    required_role=role,
                    timeout_hours=timeout_hours,
                )
            self.stdout.write(f'  [+] Created: {template.name} ({len(data["levels"])} levels)')

    def timeout_hours(self):
        setting = SystemConfig.objects.filter(key='approval_timeout_days').first()
        days = setting.typed_value if setting else DEFAULTS['approval_timeout_days']
        return int(days) * 24
