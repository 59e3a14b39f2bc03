"""
Savings rules: contribution bounds, withdrawal limits and interest.
"""

from decimal import Decimal
import logging

from cooperative.services.aggregators import SavingsAggregator
from cooperative.utils.money import MoneyCalculator


logger = logging.getLogger(__name__)

fmt = MoneyCalculator.format_currency

INTEREST_PERIODS_PER_YEAR = {
    'monthly': 12,
    'quarterly': 4,
    'annually': 1,
}


def validate_mandatory_contribution(amount, config):
    """
    Check a mandatory contribution against the configured bounds

    Returns:
        list[str]: error messages, empty when valid
    """
    amount = MoneyCalculator.to_decimal(amount)
    errors = []
    minimum = config.min_mandatory_savings
    maximum = config.max_mandatory_savings

    if amount < minimum:
        errors.append(f"Minimum mandatory contribution is {fmt(minimum)}")
    if amount > maximum:
        errors.append(f"Maximum mandatory contribution is {fmt(maximum)}")
    return errors


def validate_withdrawal(member_id, amount, config, savings=None):
    """
    Check a withdrawal against voluntary savings

    Only a share (withdrawal_max_percentage) of voluntary savings may be
    withdrawn; mandatory savings are never withdrawable.
    """
    amount = MoneyCalculator.to_decimal(amount)
    summary = (savings or SavingsAggregator()).summarize(member_id)
    errors = []

    if summary.degraded:
        errors.append("Savings records are temporarily unavailable; please try again later")
        return errors

    minimum = config.minimum_transaction_amount
    if amount < minimum:
        errors.append(f"Minimum transaction amount is {fmt(minimum)}")

    available = MoneyCalculator.calculate_percentage(summary.voluntary, config.withdrawal_max_percentage)
    if amount > available:
        errors.append(f"Maximum withdrawal amount is {fmt(available)}")

    return errors


def calculate_savings_interest(balance, config):
    """Interest credited for one period at the configured frequency"""
    frequency = config.savings_interest_frequency
    periods = INTEREST_PERIODS_PER_YEAR.get(frequency)
    if periods is None:
        logger.warning(f"Unknown savings interest frequency {frequency!r}; using monthly")
        periods = 12

    balance = MoneyCalculator.to_decimal(balance)
    if balance <= 0:
        return Decimal('0.00')
    annual = balance * config.savings_interest_rate / Decimal('100')
    return MoneyCalculator.round_money(annual / periods)
