"""
Member Credit Scoring
=====================

Score range 300-850, built from:
- repayment timeliness over paid installments
- the share of running loans that are overdue
- savings consistency over the last 12 months
- membership tenure

Better repayment history never lowers the score.
"""

from django.db import DatabaseError
from django.db.models import F
from decimal import Decimal
from typing import NamedTuple
import logging

from cooperative.exceptions import DependencyUnavailable
from cooperative.models import Member, Loan, LoanRepayment
from cooperative.services.aggregators import SavingsAggregator, LoanAggregator
from cooperative.utils.helpers import local_today


logger = logging.getLogger(__name__)


BASE_SCORE = 500
MIN_SCORE = 300
MAX_SCORE = 850

RATING_BANDS = [
    (750, 'Excellent'),
    (700, 'Good'),
    (650, 'Fair'),
]
LOWEST_RATING = 'Poor'
NOT_RATED = 'NotRated'


class CreditScore(NamedTuple):
    score: int
    rating: str
    total_payments: int
    on_time_percentage: Decimal


def rating_for(score):
    for floor, rating in RATING_BANDS:
        if score >= floor:
            return rating
    return LOWEST_RATING


class CreditScorer:

    def __init__(self, config, loans=None, savings=None):
        self.config = config
        self.loans = loans or LoanAggregator()
        self.savings = savings or SavingsAggregator()

    def score(self, member_id, today=None):
        """
        Raises:
            Member.DoesNotExist: unknown member
            DependencyUnavailable: repayment records could not be read
        """
        today = today or local_today()
        try:
            return self._score(member_id, today)
        except DatabaseError as exc:
            logger.exception(f"Credit scoring failed for member {member_id}")
            raise DependencyUnavailable("Repayment records are temporarily unavailable") from exc

    def _score(self, member_id, today):
        member = Member.objects.get(pk=member_id)

        paid = LoanRepayment.objects.for_member(member.pk).paid()
        total_payments = paid.count()
        on_time = paid.filter(paid_date__lte=F('due_date')).count()

        score = Decimal(BASE_SCORE)
        on_time_percentage = Decimal('0.0')
        if total_payments:
            on_time_percentage = Decimal(on_time * 100) / Decimal(total_payments)
            score += (on_time_percentage - 50) * 4

        running = Loan.objects.for_member(member.pk).running().count()
        if running:
            summary = self.loans.summarize(member.pk, today=today)
            if summary.degraded:
                raise DependencyUnavailable("Loan records are temporarily unavailable")
            score -= Decimal(150) * Decimal(summary.overdue_count) / Decimal(running)

        savings = self.savings.summarize(member.pk, months=12, today=today)
        if savings.degraded:
            raise DependencyUnavailable("Savings records are temporarily unavailable")
        score += min(100, 8 * savings.contributing_months)
        score += min(50, 2 * member.membership_months(today))

        final = int(max(MIN_SCORE, min(MAX_SCORE, score)))

        has_history = total_payments > 0 or Loan.objects.for_member(member.pk).with_history().exists()
        rating = rating_for(final) if has_history else NOT_RATED

        logger.debug(f"Credit score for {member.member_number}: {final} ({rating})")
        return CreditScore(
            score=final,
            rating=rating,
            total_payments=total_payments,
            on_time_percentage=on_time_percentage.quantize(Decimal('0.1')),
        )
