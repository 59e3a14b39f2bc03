"""
Custom QuerySets and Managers
==============================

Provides reusable query methods for the rules engine's aggregations
"""

from django.db import models
from django.db.models import Q, Sum, Count
from django.db.models.functions import TruncMonth
from decimal import Decimal


# Loan status groups. Pending applications count against the active-loan
# limit so a second application cannot slip in while the first is routed.
OPEN_LOAN_STATUSES = ['pending', 'approved', 'disbursed', 'active']
RUNNING_LOAN_STATUSES = ['disbursed', 'active']


class MemberQuerySet(models.QuerySet):
    """QuerySet for Member model"""

    def active(self):
        """Members allowed to borrow and to guarantee"""
        return self.filter(status='active')

    def search(self, term):
        return self.filter(
            Q(member_number__icontains=term) |
            Q(first_name__icontains=term) |
            Q(last_name__icontains=term)
        )


class ContributionQuerySet(models.QuerySet):
    """QuerySet for the contribution ledger"""

    def for_member(self, member_id):
        return self.filter(member_id=member_id)

    def completed(self):
        return self.filter(status='completed')

    def mandatory(self):
        return self.filter(contribution_type='mandatory')

    def voluntary(self):
        return self.filter(contribution_type='voluntary')

    def since(self, start_date):
        """Entries on or after `start_date` (no-op when None)"""
        if start_date is None:
            return self
        return self.filter(transaction_date__date__gte=start_date)

    def totals(self):
        """
        Completed totals split by contribution type

        Returns:
            dict: total, mandatory, voluntary as Decimal
        """
        result = self.completed().aggregate(
            total=Sum('amount'),
            mandatory=Sum('amount', filter=Q(contribution_type='mandatory')),
            voluntary=Sum('amount', filter=Q(contribution_type='voluntary')),
        )
        return {key: value or Decimal('0.00') for key, value in result.items()}

    def contributing_months(self):
        """Distinct calendar months holding at least one entry"""
        return (
            self.order_by()
            .annotate(month=TruncMonth('transaction_date'))
            .values('month')
            .distinct()
            .count()
        )


class LoanQuerySet(models.QuerySet):
    """QuerySet for Loan model"""

    def for_member(self, member_id):
        return self.filter(member_id=member_id)

    def open(self):
        """Loans counted against the active-loan limit"""
        return self.filter(status__in=OPEN_LOAN_STATUSES)

    def running(self):
        """Disbursed loans being repaid"""
        return self.filter(status__in=RUNNING_LOAN_STATUSES)

    def defaulted(self):
        return self.filter(status='defaulted')

    def pending(self):
        return self.filter(status='pending')

    def with_history(self):
        """Loans that reached disbursement at some point"""
        return self.filter(
            status__in=RUNNING_LOAN_STATUSES + ['paid', 'defaulted', 'written_off']
        )

    def get_statistics(self):
        """Loan counts by status"""
        rows = self.order_by().values('status').annotate(count=Count('id'))
        return {row['status']: row['count'] for row in rows}


class LoanRepaymentQuerySet(models.QuerySet):
    """QuerySet for scheduled loan repayments"""

    def for_member(self, member_id):
        return self.filter(loan__member_id=member_id)

    def paid(self):
        return self.filter(status='paid')

    def unpaid(self):
        return self.filter(status__in=['pending', 'partial'])

    def past_due(self, today):
        """Unpaid installments whose due date has passed"""
        return self.unpaid().filter(due_date__lt=today)


class WorkflowApprovalQuerySet(models.QuerySet):
    """QuerySet for approval workflows"""

    def pending(self):
        return self.filter(status='pending')

    def for_entity(self, entity_type, entity_id):
        return self.filter(entity_type=entity_type, entity_id=str(entity_id))

    def completed(self):
        return self.exclude(status='pending')

    def created_between(self, date_from=None, date_to=None):
        queryset = self
        if date_from:
            queryset = queryset.filter(created_at__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(created_at__date__lte=date_to)
        return queryset
