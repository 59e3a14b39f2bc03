import uuid
from decimal import Decimal

import pytest
from django.db import DatabaseError

from cooperative.managers import MemberQuerySet
from cooperative.models import Loan, Member
from cooperative.services.aggregators import LoanSummary, SavingsAggregator, SavingsSummary
from cooperative.services.eligibility import (
    ACTIVE_LOANS, DATA_UNAVAILABLE, DEFAULTED_LOANS, GUARANTORS, LOAN_LIMIT,
    MANDATORY_SAVINGS, MEMBER_NOT_FOUND, MEMBER_STATUS, MEMBERSHIP_DURATION,
    MINIMUM_AMOUNT, OVERDUE_LOANS, EligibilityEvaluator, GuarantorPledge,
)


def rules(violations):
    return [v.rule for v in violations]


class UnavailableSavings:
    def summarize(self, member_id, months=None, today=None):
        return SavingsSummary.unavailable()


class FixedLoans:
    def __init__(self, **figures):
        defaults = dict(active_count=0, outstanding_principal=Decimal('0.00'),
                        overdue_count=0, defaulted_count=0)
        defaults.update(figures)
        self.summary = LoanSummary(**defaults)

    def summarize(self, member_id, today=None):
        return self.summary


@pytest.mark.django_db
class TestEffectiveLoanLimit:

    def test_savings_multiple(self, config, loan_type):
        evaluator = EligibilityEvaluator(config)
        assert evaluator.effective_loan_limit(Decimal('50000'), loan_type) == Decimal('150000.00')

    def test_global_ceiling_caps_limit(self, make_config, loan_type):
        evaluator = EligibilityEvaluator(make_config(max_loan_amount=Decimal('100000')))
        assert evaluator.effective_loan_limit(Decimal('50000'), loan_type) == Decimal('100000.00')

    def test_loan_type_maximum_caps_limit(self, config, loan_type):
        loan_type.max_amount = Decimal('80000.00')
        evaluator = EligibilityEvaluator(config)
        assert evaluator.effective_loan_limit(Decimal('50000'), loan_type) == Decimal('80000.00')

    def test_no_savings_means_no_limit(self, config, loan_type):
        evaluator = EligibilityEvaluator(config)
        assert evaluator.effective_loan_limit(Decimal('0'), loan_type) == Decimal('0.00')


@pytest.mark.django_db
class TestEligibilityEvaluator:

    def test_eligible_member(self, config, saver, loan_type):
        violations = EligibilityEvaluator(config).evaluate(saver.pk, Decimal('100000'), loan_type)
        assert violations == []

    def test_amount_equal_to_limit_is_allowed(self, config, saver, loan_type):
        violations = EligibilityEvaluator(config).evaluate(saver.pk, Decimal('150000.00'), loan_type)
        assert violations == []

    def test_amount_above_limit(self, config, saver, loan_type):
        violations = EligibilityEvaluator(config).evaluate(saver.pk, Decimal('150000.01'), loan_type)
        assert rules(violations) == [LOAN_LIMIT]
        assert '₦150,000.00' in violations[0].message

    def test_fractional_limit_is_not_rounded_up(self, make_config, make_member, contribute, loan_type):
        member = make_member()
        contribute(member, '50000.01')
        evaluator = EligibilityEvaluator(make_config(loan_to_savings_multiplier=Decimal('2.5')))

        assert evaluator.loan_limit(Decimal('50000.01'), loan_type) == Decimal('125000.025')
        assert evaluator.effective_loan_limit(Decimal('50000.01'), loan_type) == Decimal('125000.03')

        violations = evaluator.evaluate(member.pk, Decimal('125000.03'), loan_type)
        assert rules(violations) == [LOAN_LIMIT]
        assert evaluator.evaluate(member.pk, Decimal('125000.02'), loan_type) == []

    def test_membership_boundary(self, config, make_member, contribute, loan_type):
        six = make_member('Bola', 'Ade', months=6)
        five = make_member('Chi', 'Eze', months=5)
        contribute(six, '50000')
        contribute(five, '50000')

        evaluator = EligibilityEvaluator(config)
        assert evaluator.evaluate(six.pk, Decimal('50000'), loan_type) == []
        assert rules(evaluator.evaluate(five.pk, Decimal('50000'), loan_type)) == [MEMBERSHIP_DURATION]

    def test_mandatory_savings_boundary(self, config, make_member, contribute, loan_type):
        member = make_member()
        contribute(member, '4999.99')
        contribute(member, '20000', contribution_type='voluntary')

        evaluator = EligibilityEvaluator(config)
        assert rules(evaluator.evaluate(member.pk, Decimal('10000'), loan_type)) == [MANDATORY_SAVINGS]

        contribute(member, '0.01')
        assert evaluator.evaluate(member.pk, Decimal('10000'), loan_type) == []

    def test_all_failures_reported_together(self, config, make_member, loan_type):
        member = make_member(months=1, status=Member.Status.PROBATION)
        violations = EligibilityEvaluator(config).evaluate(member.pk, Decimal('200000'), loan_type)
        assert set(rules(violations)) == {
            MEMBERSHIP_DURATION, MEMBER_STATUS, MANDATORY_SAVINGS, LOAN_LIMIT,
        }
        assert all(v.message for v in violations)

    def test_below_loan_type_minimum(self, config, saver, loan_type):
        violations = EligibilityEvaluator(config).evaluate(saver.pk, Decimal('9999.99'), loan_type)
        assert rules(violations) == [MINIMUM_AMOUNT]

    def test_unknown_member_is_the_only_violation(self, config, loan_type):
        violations = EligibilityEvaluator(config).evaluate(uuid.uuid4(), Decimal('10000'), loan_type)
        assert rules(violations) == [MEMBER_NOT_FOUND]

    def test_evaluation_is_repeatable(self, config, saver, loan_type):
        evaluator = EligibilityEvaluator(config)
        first = evaluator.evaluate(saver.pk, Decimal('200000'), loan_type)
        second = evaluator.evaluate(saver.pk, Decimal('200000'), loan_type)
        assert first == second

    def test_active_loan_limit_counts_pending_applications(self, make_config, saver, loan_type, make_loan):
        evaluator = EligibilityEvaluator(make_config(max_active_loans=2))
        make_loan(saver, '20000', status=Loan.Status.ACTIVE)
        assert evaluator.evaluate(saver.pk, Decimal('20000'), loan_type) == []

        make_loan(saver, '20000', status=Loan.Status.PENDING)
        assert rules(evaluator.evaluate(saver.pk, Decimal('20000'), loan_type)) == [ACTIVE_LOANS]

    def test_closed_loans_do_not_count(self, make_config, saver, loan_type, make_loan):
        evaluator = EligibilityEvaluator(make_config(max_active_loans=1))
        make_loan(saver, '20000', status=Loan.Status.PAID)
        make_loan(saver, '20000', status=Loan.Status.REJECTED)
        assert evaluator.evaluate(saver.pk, Decimal('20000'), loan_type) == []

    def test_overdue_and_defaulted_loans(self, config, saver, loan_type):
        evaluator = EligibilityEvaluator(config, loans=FixedLoans(overdue_count=1, defaulted_count=1))
        violations = evaluator.evaluate(saver.pk, Decimal('20000'), loan_type)
        assert set(rules(violations)) == {OVERDUE_LOANS, DEFAULTED_LOANS}

    def test_savings_window(self, make_config, make_member, contribute, loan_type):
        from django.utils import timezone
        from dateutil.relativedelta import relativedelta

        member = make_member(months=24)
        contribute(member, '50000', when=timezone.now() - relativedelta(months=18))

        assert EligibilityEvaluator(make_config()).evaluate(member.pk, Decimal('20000'), loan_type) == []

        windowed = EligibilityEvaluator(make_config(savings_window_months=12))
        assert rules(windowed.evaluate(member.pk, Decimal('20000'), loan_type)) == [MANDATORY_SAVINGS]


@pytest.mark.django_db
class TestGuarantorRules:

    @pytest.fixture
    def wealthy(self, make_member, contribute, make_user):
        member = make_member('Ngozi', 'Okafor', user=make_user('ngozi'))
        contribute(member, '400000')
        return member

    @pytest.fixture
    def guarantors(self, make_member):
        return [make_member('Tunde', 'Bello'), make_member('Kemi', 'Ade')]

    def test_threshold_requires_guarantors(self, config, wealthy, loan_type):
        violations = EligibilityEvaluator(config).evaluate(wealthy.pk, Decimal('500000'), loan_type)
        assert rules(violations) == [GUARANTORS, GUARANTORS]

    def test_below_threshold_needs_none(self, config, wealthy, loan_type):
        violations = EligibilityEvaluator(config).evaluate(wealthy.pk, Decimal('499999.99'), loan_type)
        assert violations == []

    def test_enough_pledges(self, config, wealthy, guarantors, loan_type):
        pledges = [GuarantorPledge(g.pk, Decimal('250000')) for g in guarantors]
        violations = EligibilityEvaluator(config).evaluate(wealthy.pk, Decimal('500000'), loan_type, pledges)
        assert violations == []

    def test_pledges_must_cover_amount(self, config, wealthy, guarantors, loan_type):
        pledges = [GuarantorPledge(g.pk, Decimal('200000')) for g in guarantors]
        violations = EligibilityEvaluator(config).evaluate(wealthy.pk, Decimal('500000'), loan_type, pledges)
        assert rules(violations) == [GUARANTORS]
        assert 'do not cover' in violations[0].message

    def test_ineligible_guarantors_are_not_counted(self, config, wealthy, guarantors, make_member, loan_type):
        suspended = make_member('Sade', 'Ola', status=Member.Status.SUSPENDED)
        pledges = [
            GuarantorPledge(guarantors[0].pk, Decimal('300000')),
            GuarantorPledge(guarantors[0].pk, Decimal('300000')),
            GuarantorPledge(suspended.pk, Decimal('300000')),
            GuarantorPledge(wealthy.pk, Decimal('300000')),
        ]
        evaluator = EligibilityEvaluator(config)
        eligible, degraded = evaluator.eligible_pledges(wealthy, pledges)
        assert not degraded
        assert [p.member_id for p in eligible] == [guarantors[0].pk]

        violations = evaluator.evaluate(wealthy.pk, Decimal('500000'), loan_type, pledges)
        assert GUARANTORS in rules(violations)

    def test_loan_type_requiring_guarantors(self, config, saver, guarantors, loan_type):
        loan_type.requires_guarantor = True
        loan_type.guarantor_count = 1
        evaluator = EligibilityEvaluator(config)

        assert rules(evaluator.evaluate(saver.pk, Decimal('20000'), loan_type)) == [GUARANTORS]

        pledges = [GuarantorPledge(guarantors[0].pk, Decimal('20000'))]
        assert evaluator.evaluate(saver.pk, Decimal('20000'), loan_type, pledges) == []


@pytest.mark.django_db
class TestDegradedEvaluation:

    def test_unavailable_savings_is_reported(self, config, saver, loan_type):
        evaluator = EligibilityEvaluator(config, savings=UnavailableSavings())
        violations = evaluator.evaluate(saver.pk, Decimal('20000'), loan_type)
        assert rules(violations)[0] == DATA_UNAVAILABLE
        assert MANDATORY_SAVINGS in rules(violations)

    def test_member_lookup_failure(self, config, saver, loan_type, monkeypatch):
        def broken_get(self, *args, **kwargs):
            raise DatabaseError("connection lost")

        monkeypatch.setattr(MemberQuerySet, 'get', broken_get)
        violations = EligibilityEvaluator(config).evaluate(saver.pk, Decimal('20000'), loan_type)
        assert rules(violations) == [DATA_UNAVAILABLE]

    def test_aggregator_failure_flows_through(self, config, saver, loan_type, monkeypatch):
        from cooperative.managers import ContributionQuerySet

        def broken_totals(self):
            raise DatabaseError("connection lost")

        monkeypatch.setattr(ContributionQuerySet, 'totals', broken_totals)
        assert SavingsAggregator().summarize(saver.pk).degraded

        violations = EligibilityEvaluator(config).evaluate(saver.pk, Decimal('20000'), loan_type)
        assert DATA_UNAVAILABLE in rules(violations)
