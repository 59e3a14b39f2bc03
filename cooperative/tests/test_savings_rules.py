from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from cooperative.services.aggregators import SavingsSummary
from cooperative.services.penalties import calculate_loan_penalty, months_overdue
from cooperative.services.savings import (
    calculate_savings_interest, validate_mandatory_contribution, validate_withdrawal,
)


class FixedSavings:
    def __init__(self, summary):
        self.summary = summary

    def summarize(self, member_id, months=None, today=None):
        return self.summary


def savings(voluntary='100000', degraded=False):
    if degraded:
        return FixedSavings(SavingsSummary.unavailable())
    voluntary = Decimal(voluntary)
    return FixedSavings(SavingsSummary(voluntary + 50000, Decimal('50000'), voluntary, 6))


class TestMandatoryContribution:

    def test_within_bounds(self, config):
        assert validate_mandatory_contribution('5000', config) == []
        assert validate_mandatory_contribution('200000', config) == []

    def test_below_minimum(self, config):
        assert validate_mandatory_contribution('4999.99', config) == [
            "Minimum mandatory contribution is ₦5,000.00"
        ]

    def test_above_maximum(self, config):
        assert validate_mandatory_contribution('200000.01', config) == [
            "Maximum mandatory contribution is ₦200,000.00"
        ]


class TestWithdrawal:

    def test_share_of_voluntary_savings(self, config):
        assert validate_withdrawal('member', '80000', config, savings=savings()) == []

    def test_above_withdrawable_share(self, config):
        errors = validate_withdrawal('member', '80000.01', config, savings=savings())
        assert errors == ["Maximum withdrawal amount is ₦80,000.00"]

    def test_below_minimum_transaction(self, config):
        errors = validate_withdrawal('member', '50', config, savings=savings())
        assert errors == ["Minimum transaction amount is ₦100.00"]

    def test_configured_percentage(self, make_config):
        config = make_config(withdrawal_max_percentage=Decimal('50'))
        assert validate_withdrawal('member', '50000.01', config, savings=savings()) != []

    def test_unavailable_savings(self, config):
        errors = validate_withdrawal('member', '1000', config, savings=savings(degraded=True))
        assert len(errors) == 1
        assert 'unavailable' in errors[0]


class TestSavingsInterest:

    @pytest.mark.parametrize('frequency, expected', [
        ('monthly', Decimal('600.00')),
        ('Quarterly', Decimal('1800.00')),
        ('annually', Decimal('7200.00')),
        ('fortnightly', Decimal('600.00')),
    ])
    def test_period_interest(self, make_config, frequency, expected):
        config = make_config(savings_interest_frequency=frequency)
        assert calculate_savings_interest('120000', config) == expected

    def test_empty_balance_earns_nothing(self, config):
        assert calculate_savings_interest('0', config) == Decimal('0.00')
        assert calculate_savings_interest('-10', config) == Decimal('0.00')


class TestPenalties:

    loan = SimpleNamespace(monthly_payment=Decimal('10000.00'))
    due = date(2024, 1, 10)

    def test_nothing_within_grace_period(self, config):
        assert calculate_loan_penalty(self.loan, self.due, config, today=date(2024, 1, 17)) == Decimal('0.00')

    @pytest.mark.parametrize('today, months', [
        (date(2024, 1, 20), 0),
        (date(2024, 2, 5), 1),
        (date(2024, 2, 17), 1),
        (date(2024, 3, 18), 2),
        (date(2024, 4, 10), 3),
    ])
    def test_months_overdue(self, today, months):
        assert months_overdue(date(2024, 1, 17), today) == months

    def test_penalty_per_month(self, config):
        assert calculate_loan_penalty(self.loan, self.due, config, today=date(2024, 3, 18)) == Decimal('400.00')

    def test_configured_rate_and_grace(self, make_config):
        config = make_config(loan_penalty_rate=Decimal('5'), grace_period_days=0)
        assert calculate_loan_penalty(self.loan, self.due, config, today=date(2024, 2, 10)) == Decimal('500.00')
