"""
Late-payment penalties on loan installments.
"""

from datetime import timedelta
from decimal import Decimal
from dateutil.relativedelta import relativedelta

from cooperative.utils.helpers import local_today
from cooperative.utils.money import MoneyCalculator


PART_MONTH_DAYS = 15


def months_overdue(grace_end, today):
    """
    Calendar months from the end of the grace period to `today`

    A remaining part-month of more than 15 days counts as a full month.
    """
    if today <= grace_end:
        return 0
    delta = relativedelta(today, grace_end)
    months = delta.years * 12 + delta.months
    if delta.days > PART_MONTH_DAYS:
        months += 1
    return months


def calculate_loan_penalty(loan, due_date, config, today=None):
    """
    Penalty owed on an installment due on `due_date`

    Nothing accrues until the grace period has passed. Afterwards the
    penalty is monthly_payment x loan_penalty_rate% for every month overdue.
    """
    today = today or local_today()
    grace_end = due_date + timedelta(days=config.grace_period_days)

    months = months_overdue(grace_end, today)
    if months == 0:
        return Decimal('0.00')

    per_month = loan.monthly_payment * config.loan_penalty_rate / Decimal('100')
    return MoneyCalculator.round_money(per_month * months)
