from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied, ValidationError

from cooperative.models import (
    Contribution, Guarantor, Loan, LoanRepayment, LoanType, Member, SystemConfig,
    User, WorkflowTemplate,
)
from cooperative.utils.helpers import add_months, months_between


class TestDateHelpers:

    @pytest.mark.parametrize('start, end, months', [
        (date(2024, 1, 15), date(2024, 3, 15), 2),
        (date(2024, 1, 15), date(2024, 3, 14), 1),
        (date(2024, 1, 31), date(2024, 2, 29), 0),
        (date(2024, 1, 31), date(2024, 3, 31), 2),
        (date(2024, 2, 29), date(2024, 3, 28), 0),
        (date(2023, 12, 20), date(2024, 1, 20), 1),
        (date(2023, 6, 1), date(2024, 6, 1), 12),
        (date(2024, 6, 1), date(2024, 5, 1), 0),
    ])
    def test_months_between(self, start, end, months):
        assert months_between(start, end) == months

    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)


@pytest.mark.django_db
class TestMember:

    def test_member_number_is_generated(self, make_member):
        assert make_member().member_number.startswith('MEM-')

    def test_join_date_cannot_change(self, make_member):
        member = make_member()
        member.join_date = member.join_date - timedelta(days=30)
        with pytest.raises(ValidationError):
            member.save()

    def test_status_is_normalised(self, make_member):
        member = make_member(status='  SUSPENDED ')
        member.refresh_from_db()
        assert member.status == Member.Status.SUSPENDED
        assert Member.objects.filter(status='Suspended').count() == 1

    def test_status_change_requires_admin(self, make_member, admin_user, officer):
        member = make_member()
        with pytest.raises(PermissionDenied):
            member.change_status('suspended', officer)

        member.change_status('Suspended', admin_user)
        member.refresh_from_db()
        assert member.status == Member.Status.SUSPENDED

    def test_unknown_status_is_rejected(self, make_member, admin_user):
        with pytest.raises(ValueError):
            make_member().change_status('banned', admin_user)


@pytest.mark.django_db
class TestContributionLedger:

    def test_entries_cannot_be_deleted(self, make_member, contribute):
        entry = contribute(make_member(), '5000')
        with pytest.raises(ValidationError):
            entry.delete()
        assert Contribution.objects.filter(pk=entry.pk).exists()

    def test_amount_cannot_be_edited(self, make_member, contribute):
        entry = contribute(make_member(), '5000')
        entry.amount = Decimal('50000.00')
        with pytest.raises(ValidationError):
            entry.save()

    def test_status_may_change(self, make_member, contribute):
        entry = contribute(make_member(), '5000', status=Contribution.Status.PENDING)
        entry.status = Contribution.Status.COMPLETED
        entry.save()
        entry.refresh_from_db()
        assert entry.status == Contribution.Status.COMPLETED

    def test_status_may_change_when_amount_was_given_as_text(self, make_member):
        entry = Contribution.objects.create(
            member=make_member(),
            amount='100.5',
            contribution_type=Contribution.Type.MANDATORY,
            status=Contribution.Status.PENDING,
        )
        entry.status = Contribution.Status.COMPLETED
        entry.save()
        entry.refresh_from_db()
        assert entry.status == Contribution.Status.COMPLETED
        assert entry.amount == Decimal('100.50')


@pytest.mark.django_db
class TestLoan:

    def test_repayment_figures_on_create(self, saver, make_loan, loan_type):
        loan = make_loan(saver, '120000', term_months=12)
        assert loan.reference.startswith('LN-')
        assert loan.interest_rate == loan_type.interest_rate
        assert loan.monthly_payment == Decimal('10661.85')
        assert loan.total_repayable == Decimal('127942.20')

    def test_disburse_builds_schedule(self, saver, make_loan):
        loan = make_loan(saver, '120000', status=Loan.Status.APPROVED, term_months=12)
        loan.disburse()

        assert loan.status == Loan.Status.ACTIVE
        assert loan.repayments.count() == 12
        assert loan.expected_completion_date is not None

    def test_only_approved_loans_are_disbursed(self, saver, make_loan):
        with pytest.raises(ValidationError):
            make_loan(saver, '120000').disburse()

    def test_full_repayment_closes_loan(self, saver, make_loan):
        loan = make_loan(saver, '12000', status=Loan.Status.APPROVED, term_months=3,
                         interest_rate=Decimal('0.00'))
        loan.disburse()

        assert loan.record_repayment('4000') == Decimal('0.00')
        assert loan.status == Loan.Status.ACTIVE
        assert loan.repayments.paid().count() == 1

        assert loan.record_repayment('9000') == Decimal('1000.00')
        assert loan.status == Loan.Status.PAID
        assert loan.outstanding_balance == Decimal('0.00')

    def test_partial_installment(self, saver, make_loan):
        loan = make_loan(saver, '12000', status=Loan.Status.APPROVED, term_months=3,
                         interest_rate=Decimal('0.00'))
        loan.disburse()
        loan.record_repayment('1500')

        first = loan.repayments.get(installment_number=1)
        assert first.status == LoanRepayment.Status.PARTIAL
        assert first.amount_paid == Decimal('1500.00')

    def test_guarantor_cannot_be_the_borrower(self, saver, make_loan):
        loan = make_loan(saver, '20000')
        guarantee = Guarantor(loan=loan, guarantor=saver, guarantee_amount=Decimal('20000'))
        with pytest.raises(ValidationError):
            guarantee.clean()


@pytest.mark.django_db
class TestLoanType:

    def test_amount_band_must_be_ordered(self):
        loan_type = LoanType(code='BAD', name='Bad', min_amount=Decimal('5000'), max_amount=Decimal('1000'))
        with pytest.raises(ValidationError) as excinfo:
            loan_type.clean()
        assert 'max_amount' in excinfo.value.message_dict

    def test_guarantor_count_required(self):
        loan_type = LoanType(code='GRT', name='Guaranteed', requires_guarantor=True, guarantor_count=0)
        with pytest.raises(ValidationError) as excinfo:
            loan_type.clean()
        assert 'guarantor_count' in excinfo.value.message_dict


class TestWorkflowTemplate:

    def test_open_bounds(self):
        template = WorkflowTemplate(name='Any')
        assert template.covers_amount(Decimal('1'))
        assert template.covers_amount(None)

    def test_bounds_are_inclusive(self):
        template = WorkflowTemplate(name='Band', min_amount=Decimal('100'), max_amount=Decimal('200'))
        assert template.covers_amount(Decimal('100'))
        assert template.covers_amount(Decimal('200'))
        assert not template.covers_amount(Decimal('99.99'))
        assert not template.covers_amount(Decimal('200.01'))


class TestSystemConfigSerialisation:

    def test_boolean(self):
        row = SystemConfig(key='flag', value='false', value_type='boolean')
        assert row.serialize('Yes') == 'true'
        assert row.serialize(False) == 'false'

    def test_json(self):
        row = SystemConfig(key='bands', value='[]', value_type='json')
        assert row.serialize([1, 2]) == '[1, 2]'
        with pytest.raises(ValueError):
            row.serialize('{broken')


def test_roles_are_normalised():
    assert User.Role.normalize('Loan Officer') == User.Role.LOAN_OFFICER
    with pytest.raises(ValueError):
        User.Role.normalize('treasurer')
