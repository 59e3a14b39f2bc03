"""
Loan Eligibility Evaluator
==========================

Checks a loan request against the cooperative's business rules and returns
every rule that fails. An empty list means the member may apply.

Rules are independent: one failure never hides another, and a value equal to
a limit satisfies the rule.
"""

from django.core.exceptions import ValidationError
from django.db import DatabaseError
from decimal import Decimal
from typing import NamedTuple
import logging
import uuid

from cooperative.models import Member
from cooperative.services.aggregators import SavingsAggregator, LoanAggregator
from cooperative.utils.helpers import local_today
from cooperative.utils.money import MoneyCalculator


logger = logging.getLogger(__name__)

fmt = MoneyCalculator.format_currency


class Violation(NamedTuple):
    rule: str
    message: str


class GuarantorPledge(NamedTuple):
    member_id: object
    amount: Decimal


# Rule codes
MEMBER_NOT_FOUND = 'member_not_found'
DATA_UNAVAILABLE = 'data_unavailable'
MEMBERSHIP_DURATION = 'membership_duration'
MEMBER_STATUS = 'member_status'
MANDATORY_SAVINGS = 'mandatory_savings'
LOAN_LIMIT = 'loan_limit'
MINIMUM_AMOUNT = 'minimum_amount'
ACTIVE_LOANS = 'active_loans'
OVERDUE_LOANS = 'overdue_loans'
DEFAULTED_LOANS = 'defaulted_loans'
GUARANTORS = 'guarantors'


class EligibilityEvaluator:
    """
    Usage:
        evaluator = EligibilityEvaluator(get_business_config())
        violations = evaluator.evaluate(member.pk, Decimal('150000'), loan_type)
    """

    def __init__(self, config, savings=None, loans=None):
        self.config = config
        self.savings = savings or SavingsAggregator()
        self.loans = loans or LoanAggregator()

    def loan_limit(self, total_savings, loan_type=None):
        """Smallest of the savings multiple, the global ceiling and the loan type maximum, unrounded"""
        limits = [
            MoneyCalculator.to_decimal(total_savings) * self.config.loan_to_savings_multiplier,
            self.config.max_loan_amount,
        ]
        if loan_type is not None and loan_type.max_amount is not None:
            limits.append(loan_type.max_amount)
        return min(limits)

    def effective_loan_limit(self, total_savings, loan_type=None):
        """The loan limit rounded to kobo for display"""
        return MoneyCalculator.round_money(self.loan_limit(total_savings, loan_type))

    def evaluate(self, member_id, requested_amount, loan_type, guarantors=(), today=None):
        """
        Returns:
            list[Violation]: all failed rules, empty when eligible
        """
        amount = MoneyCalculator.to_decimal(requested_amount)
        today = today or local_today()

        try:
            member = Member.objects.get(pk=member_id)
        except (Member.DoesNotExist, ValidationError, ValueError):
            return [Violation(MEMBER_NOT_FOUND, "Member record not found")]
        except DatabaseError:
            logger.exception(f"Member lookup failed for {member_id}")
            return [Violation(DATA_UNAVAILABLE, "Member data is temporarily unavailable; please try again later")]

        savings = self.savings.summarize(member.pk, today=today)
        window = self.config.savings_window_months
        windowed = self.savings.summarize(member.pk, months=window, today=today) if window else savings
        loans = self.loans.summarize(member.pk, today=today)
        pledges, pledges_degraded = self.eligible_pledges(member, guarantors)

        violations = []

        if savings.degraded or windowed.degraded or loans.degraded or pledges_degraded:
            violations.append(Violation(
                DATA_UNAVAILABLE,
                "Savings or loan records are temporarily unavailable; eligibility cannot be confirmed"
            ))

        # Membership
        required_months = self.config.min_membership_months
        months = member.membership_months(today)
        if months < required_months:
            violations.append(Violation(
                MEMBERSHIP_DURATION,
                f"Minimum membership period of {required_months} months required (current: {months} months)"
            ))

        if member.status != Member.Status.ACTIVE:
            violations.append(Violation(
                MEMBER_STATUS,
                f"Membership status is {member.get_status_display().lower()}; only active members may borrow"
            ))

        # Savings
        minimum_savings = self.config.min_mandatory_savings
        if windowed.mandatory < minimum_savings:
            violations.append(Violation(
                MANDATORY_SAVINGS,
                f"Minimum mandatory savings of {fmt(minimum_savings)} required (current: {fmt(windowed.mandatory)})"
            ))

        # Amount
        limit = self.loan_limit(savings.total, loan_type)
        if amount > limit:
            violations.append(Violation(
                LOAN_LIMIT,
                f"Requested amount {fmt(amount)} exceeds your loan limit of "
                f"{fmt(MoneyCalculator.round_money(limit))}"
            ))

        if loan_type.min_amount is not None and amount < loan_type.min_amount:
            violations.append(Violation(
                MINIMUM_AMOUNT,
                f"Minimum amount for {loan_type.name} is {fmt(loan_type.min_amount)}"
            ))

        # Existing loans
        max_active = self.config.max_active_loans
        if loans.active_count >= max_active:
            violations.append(Violation(
                ACTIVE_LOANS,
                f"Maximum of {max_active} active loans allowed (current: {loans.active_count})"
            ))

        if loans.has_overdue:
            violations.append(Violation(
                OVERDUE_LOANS,
                f"You have {loans.overdue_count} overdue loan(s); settle them before applying"
            ))

        if loans.defaulted_count:
            violations.append(Violation(
                DEFAULTED_LOANS,
                f"You have {loans.defaulted_count} defaulted loan(s) on record"
            ))

        violations.extend(self._guarantor_violations(amount, loan_type, pledges))
        return violations

    # =========================================================================
    # GUARANTORS
    # =========================================================================

    def eligible_pledges(self, member, guarantors):
        """
        Pledges from active members other than the applicant

        A member pledging twice counts once, with their first pledge.
        Returns (pledges, degraded).
        """
        candidates = {}
        for pledge in guarantors:
            try:
                key = uuid.UUID(str(pledge.member_id))
            except ValueError:
                continue
            if key not in candidates:
                candidates[key] = MoneyCalculator.to_decimal(pledge.amount)

        if not candidates:
            return [], False

        try:
            eligible = set(
                Member.objects.active()
                .filter(pk__in=list(candidates))
                .exclude(pk=member.pk)
                .values_list('pk', flat=True)
            )
        except DatabaseError:
            logger.exception(f"Guarantor lookup failed for member {member.pk}")
            return [], True

        return [
            GuarantorPledge(member_id, amount)
            for member_id, amount in candidates.items()
            if member_id in eligible and amount > 0
        ], False

    def _guarantor_violations(self, amount, loan_type, pledges):
        violations = []
        count = len(pledges)
        pledged = sum((p.amount for p in pledges), Decimal('0.00'))

        threshold = self.config.guarantor_threshold
        if amount >= threshold:
            required = self.config.min_guarantors_required
            if count < required:
                violations.append(Violation(
                    GUARANTORS,
                    f"At least {required} eligible guarantors required for loans of "
                    f"{fmt(threshold)} and above (provided: {count})"
                ))
            if pledged < amount:
                violations.append(Violation(
                    GUARANTORS,
                    f"Guarantor pledges of {fmt(pledged)} do not cover the requested {fmt(amount)}"
                ))

        if loan_type.requires_guarantor and count < loan_type.guarantor_count:
            violations.append(Violation(
                GUARANTORS,
                f"{loan_type.name} requires {loan_type.guarantor_count} eligible guarantor(s) (provided: {count})"
            ))

        return violations
