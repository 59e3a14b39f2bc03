from decimal import Decimal

import pytest
from dateutil.relativedelta import relativedelta
from django.utils import timezone

from cooperative.models import (
    ApprovalLevel, Contribution, EntityType, Loan, LoanType, Member, User, WorkflowTemplate,
)
from cooperative.notifications import NotificationDispatcher
from cooperative.services.config import BusinessConfig, get_business_config


class RecordingMailer:
    """Stands in for send_email and keeps what would have been sent"""

    def __init__(self):
        self.sent = []

    def __call__(self, to_email, subject, html_content):
        self.sent.append((to_email, subject))
        return True

    @property
    def recipients(self):
        return [to_email for to_email, _ in self.sent]


@pytest.fixture(autouse=True)
def fresh_business_config():
    config = get_business_config()
    config.clear()
    yield
    config.clear()


@pytest.fixture
def make_config():
    """BusinessConfig over fixed values (defaults fill the rest)"""
    def factory(**values):
        return BusinessConfig(loader=lambda: dict(values))
    return factory


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def notifier(mailer):
    return NotificationDispatcher(send=mailer)


@pytest.fixture
def today():
    return timezone.localdate()


@pytest.fixture
def make_user(db):
    def factory(username, role=User.Role.MEMBER, **extra):
        extra.setdefault('email', f'{username}@example.com')
        return User.objects.create_user(username=username, password='secret-pass-123', role=role, **extra)
    return factory


@pytest.fixture
def make_member(db, today):
    def factory(first_name='Ada', last_name='Obi', months=12, status=Member.Status.ACTIVE, **extra):
        extra.setdefault('email', f'{first_name.lower()}.{last_name.lower()}@example.com')
        return Member.objects.create(
            first_name=first_name,
            last_name=last_name,
            join_date=today - relativedelta(months=months),
            status=status,
            **extra
        )
    return factory


@pytest.fixture
def contribute(db):
    def factory(member, amount, contribution_type=Contribution.Type.MANDATORY,
                status=Contribution.Status.COMPLETED, when=None):
        return Contribution.objects.create(
            member=member,
            amount=Decimal(str(amount)),
            contribution_type=contribution_type,
            status=status,
            transaction_date=when or timezone.now(),
        )
    return factory


@pytest.fixture
def loan_type(db):
    return LoanType.objects.create(
        code='REG',
        name='Regular Loan',
        interest_rate=Decimal('12.00'),
        min_amount=Decimal('10000.00'),
        max_amount=Decimal('5000000.00'),
        min_term_months=1,
        max_term_months=24,
    )


@pytest.fixture
def make_loan(db, loan_type):
    def factory(member, principal, status=Loan.Status.PENDING, term_months=12, **extra):
        return Loan.objects.create(
            member=member,
            loan_type=extra.pop('loan_type', loan_type),
            principal=Decimal(str(principal)),
            term_months=term_months,
            purpose='Shop stock',
            status=status,
            **extra
        )
    return factory


@pytest.fixture
def make_template(db):
    def factory(name, roles, min_amount=None, max_amount=None, risk_class='',
                entity_type=EntityType.LOAN, timeout_hours=168):
        template = WorkflowTemplate.objects.create(
            name=name,
            entity_type=entity_type,
            min_amount=min_amount,
            max_amount=max_amount,
            risk_class=risk_class,
        )
        for number, role in enumerate(roles, 1):
            ApprovalLevel.objects.create(
                template=template,
                level_number=number,
                name=f'Level {number}',
                required_role=role,
                timeout_hours=timeout_hours,
            )
        return template
    return factory


@pytest.fixture
def officer(make_user):
    return make_user('officer', User.Role.LOAN_OFFICER)


@pytest.fixture
def manager(make_user):
    return make_user('manager', User.Role.MANAGER)


@pytest.fixture
def admin_user(make_user):
    return make_user('admin', User.Role.ADMIN)


@pytest.fixture
def two_level_template(make_template):
    return make_template(
        'Standard Loan Approval',
        [User.Role.LOAN_OFFICER, User.Role.MANAGER],
        min_amount=Decimal('100000.01'),
    )


@pytest.fixture
def saver(make_member, contribute, make_user):
    """Member of twelve months with ₦50,000 mandatory savings and a login"""
    member = make_member(user=make_user('ada'))
    contribute(member, '50000')
    return member
