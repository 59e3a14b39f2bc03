"""
Decimal and Money Calculation Utilities
========================================

Provides consistent rounding and Naira money handling across the rules engine.
All amounts are carried as Decimal; rounding to kobo happens only for storage
and display.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


class MoneyCalculator:
    """
    Consistent money calculations with proper rounding

    Usage:
        total = MoneyCalculator.round_money(123.456)  # 123.46
        emi = MoneyCalculator.calculate_emi(100000, Decimal('0.01'), 12)
    """

    TWO_PLACES = Decimal('0.01')
    ZERO = Decimal('0.00')

    @staticmethod
    def to_decimal(amount):
        """
        Convert int, float, str or Decimal to Decimal without float drift

        Raises:
            ValueError: if the value is not numeric
        """
        if amount is None:
            return MoneyCalculator.ZERO
        if isinstance(amount, Decimal):
            return amount
        try:
            value = Decimal(str(amount).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid amount: {amount!r}")
        if not value.is_finite():
            raise ValueError(f"Invalid amount: {amount!r}")
        return value

    @staticmethod
    def round_money(amount, places=None, rounding=ROUND_HALF_UP):
        """
        Round amount to specified decimal places

        Args:
            amount: Amount to round (can be Decimal, int, float, str)
            places: Decimal precision (default: 2 places)
            rounding: Rounding mode (default: ROUND_HALF_UP)

        Returns:
            Decimal: Rounded amount
        """
        if amount is None:
            return MoneyCalculator.ZERO

        if places is None:
            places = MoneyCalculator.TWO_PLACES

        return MoneyCalculator.to_decimal(amount).quantize(places, rounding=rounding)

    @staticmethod
    def calculate_percentage(amount, rate_percent):
        """
        Percentage of an amount, rate given in percent (2 means 2%)

        Example:
            >>> MoneyCalculator.calculate_percentage(10000, 2)
            Decimal('200.00')
        """
        if not amount or not rate_percent:
            return MoneyCalculator.ZERO
        result = (
            MoneyCalculator.to_decimal(amount)
            * MoneyCalculator.to_decimal(rate_percent)
            / Decimal('100')
        )
        return MoneyCalculator.round_money(result)

    @staticmethod
    def safe_divide(numerator, denominator, default=Decimal('0.00'), places=None):
        """Division returning `default` when the denominator is zero"""
        if not denominator or MoneyCalculator.to_decimal(denominator) == 0:
            return default

        result = MoneyCalculator.to_decimal(numerator) / MoneyCalculator.to_decimal(denominator)
        return MoneyCalculator.round_money(result, places)

    @staticmethod
    def sum_amounts(*amounts):
        """Sum amounts at full precision, skipping None"""
        total = Decimal('0')
        for amount in amounts:
            if amount:
                total += MoneyCalculator.to_decimal(amount)
        return total

    @staticmethod
    def calculate_emi(principal, rate, periods):
        """
        Calculate Equal Monthly Installment (EMI)

        Formula: P × r × (1+r)^n / ((1+r)^n - 1)

        Args:
            principal: Loan principal
            rate: Interest rate per period (0.01 = 1% per month)
            periods: Number of periods

        Returns:
            Decimal: EMI amount
        """
        periods = int(periods)
        if periods <= 0:
            raise ValueError("Number of periods must be positive")

        if not rate or MoneyCalculator.to_decimal(rate) == 0:
            return MoneyCalculator.safe_divide(principal, periods)

        principal = MoneyCalculator.to_decimal(principal)
        rate = MoneyCalculator.to_decimal(rate)

        factor = (1 + rate) ** periods
        emi = principal * rate * factor / (factor - 1)

        return MoneyCalculator.round_money(emi)

    @staticmethod
    def format_currency(amount, symbol='₦'):
        """
        Format amount as Naira string

        Example:
            >>> MoneyCalculator.format_currency(1234567.891)
            '₦1,234,567.89'
        """
        amount = MoneyCalculator.round_money(amount)
        return f"{symbol}{amount:,.2f}"


class InterestCalculator:
    """
    Loan repayment figures for an annual percentage rate
    """

    @staticmethod
    def monthly_rate(annual_rate_percent):
        return MoneyCalculator.to_decimal(annual_rate_percent) / Decimal('1200')

    @staticmethod
    def calculate_repayment(principal, annual_rate_percent, months):
        """
        Amortised repayment figures

        Returns:
            dict: monthly_payment, total_repayable, total_interest
        """
        principal = MoneyCalculator.to_decimal(principal)
        emi = MoneyCalculator.calculate_emi(
            principal, InterestCalculator.monthly_rate(annual_rate_percent), months
        )
        total = MoneyCalculator.round_money(emi * months)

        return {
            'monthly_payment': emi,
            'total_repayable': total,
            'total_interest': MoneyCalculator.round_money(total - principal),
        }

    @staticmethod
    def generate_amortization_schedule(principal, annual_rate_percent, months, start_date):
        """
        Generate loan amortization schedule

        Args:
            principal: Loan principal
            annual_rate_percent: Annual interest rate in percent
            months: Loan duration
            start_date: Disbursement date; the first installment falls a month later

        Returns:
            list: Schedule with payment breakdown
        """
        from dateutil.relativedelta import relativedelta

        monthly_rate = InterestCalculator.monthly_rate(annual_rate_percent)
        emi = MoneyCalculator.calculate_emi(principal, monthly_rate, months)
        balance = MoneyCalculator.to_decimal(principal)
        schedule = []

        for month in range(1, months + 1):
            interest_payment = MoneyCalculator.round_money(balance * monthly_rate)
            principal_payment = MoneyCalculator.round_money(emi - interest_payment)
            amount_due = emi

            # Final installment absorbs the rounding remainder
            if month == months:
                principal_payment = balance
                amount_due = MoneyCalculator.round_money(principal_payment + interest_payment)

            balance = MoneyCalculator.round_money(balance - principal_payment)

            schedule.append({
                'installment_number': month,
                'due_date': start_date + relativedelta(months=month),
                'principal_payment': principal_payment,
                'interest_payment': interest_payment,
                'amount_due': amount_due,
                'balance_after': max(balance, MoneyCalculator.ZERO),
            })

        return schedule

