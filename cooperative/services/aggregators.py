"""
Savings and Loan Aggregators
============================

Read-only per-member summaries used by the rules engine. A storage failure
never escapes: it is logged and a zeroed summary flagged `degraded` is
returned, so callers decide how to treat missing data.
"""

from django.db import DatabaseError
from decimal import Decimal
from typing import NamedTuple
import logging

from cooperative.models import Contribution, Loan, LoanRepayment
from cooperative.managers import RUNNING_LOAN_STATUSES
from cooperative.utils.helpers import local_today, month_window_start


logger = logging.getLogger(__name__)


class SavingsSummary(NamedTuple):
    total: Decimal
    mandatory: Decimal
    voluntary: Decimal
    contributing_months: int
    degraded: bool = False

    @classmethod
    def unavailable(cls):
        zero = Decimal('0.00')
        return cls(zero, zero, zero, 0, degraded=True)


class LoanSummary(NamedTuple):
    active_count: int
    outstanding_principal: Decimal
    overdue_count: int
    defaulted_count: int
    degraded: bool = False

    @property
    def has_overdue(self):
        return self.overdue_count > 0

    @classmethod
    def unavailable(cls):
        return cls(0, Decimal('0.00'), 0, 0, degraded=True)


class SavingsAggregator:
    """Completed-contribution totals for a member"""

    def summarize(self, member_id, months=None, today=None):
        """
        Args:
            member_id: Member primary key
            months: Optional trailing window in months (None/0 = whole history)
            today: Reference date, defaults to the local date
        """
        today = today or local_today()
        try:
            entries = Contribution.objects.for_member(member_id).since(
                month_window_start(today, months)
            )
            totals = entries.totals()
            contributing = entries.completed().mandatory().contributing_months()
        except DatabaseError:
            logger.exception(f"Savings aggregation failed for member {member_id}")
            return SavingsSummary.unavailable()

        return SavingsSummary(
            total=totals['total'],
            mandatory=totals['mandatory'],
            voluntary=totals['voluntary'],
            contributing_months=contributing,
        )


class LoanAggregator:
    """Open, overdue and defaulted loan figures for a member"""

    def summarize(self, member_id, today=None):
        today = today or local_today()
        try:
            loans = Loan.objects.for_member(member_id)
            active_count = loans.open().count()
            defaulted_count = loans.defaulted().count()
            running = list(loans.running())
            late_loan_ids = set(
                LoanRepayment.objects.for_member(member_id)
                .past_due(today)
                .filter(loan__status__in=RUNNING_LOAN_STATUSES)
                .values_list('loan_id', flat=True)
            )
        except DatabaseError:
            logger.exception(f"Loan aggregation failed for member {member_id}")
            return LoanSummary.unavailable()

        outstanding = sum((loan.outstanding_principal for loan in running), Decimal('0.00'))
        overdue_count = sum(1 for loan in running if self._is_overdue(loan, today, late_loan_ids))

        return LoanSummary(
            active_count=active_count,
            outstanding_principal=outstanding,
            overdue_count=overdue_count,
            defaulted_count=defaulted_count,
        )

    @staticmethod
    def _is_overdue(loan, today, late_loan_ids):
        if loan.pk in late_loan_ids:
            return True
        completion = loan.expected_completion_date
        return completion is not None and completion < today and not loan.is_fully_repaid
