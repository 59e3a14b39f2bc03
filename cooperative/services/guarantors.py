"""
Guarantor Sign-off
==================

Guarantors named on an application start as pending. Each one is asked to
sign off, and accepts (guarantee becomes active) or declines. Loan staff are
told about every response after commit.
"""

from django.core.exceptions import PermissionDenied
from django.db import transaction
from django.utils import timezone
import logging

from cooperative.exceptions import SignoffStateError
from cooperative.models import Guarantor, Loan
from cooperative.notifications import NotificationDispatcher


logger = logging.getLogger(__name__)


OPEN_LOAN_STATUSES = [
    Loan.Status.PENDING,
    Loan.Status.APPROVED,
    Loan.Status.REVISION_REQUESTED,
]


class GuarantorSignoffService:

    def __init__(self, notifier=None):
        self.notifier = notifier or NotificationDispatcher()

    def request_signoffs(self, loan):
        """Ask every pending guarantor on `loan` to sign off"""
        guarantees = list(
            Guarantor.objects.filter(loan=loan, status=Guarantor.Status.PENDING)
            .select_related('loan__member', 'guarantor__user')
        )
        for guarantee in guarantees:
            self.notifier.guarantor_signoff_requested(guarantee)
        return len(guarantees)

    def pending_for(self, member):
        """Guarantees awaiting `member`'s decision on loans still open"""
        return (
            Guarantor.objects
            .filter(guarantor=member, status=Guarantor.Status.PENDING, loan__status__in=OPEN_LOAN_STATUSES)
            .select_related('loan', 'loan__member')
            .order_by('created_at')
        )

    def respond(self, guarantee, user, accept, comments=''):
        """
        Record the guarantor's decision

        Raises:
            PermissionDenied: user is not the guaranteeing member
            SignoffStateError: already answered, or the loan is closed
        """
        with transaction.atomic():
            guarantee = (
                Guarantor.objects.select_for_update()
                .select_related('loan', 'guarantor')
                .get(pk=guarantee.pk)
            )

            member = getattr(user, 'member', None)
            if member is None or member.pk != guarantee.guarantor_id:
                raise PermissionDenied("Only the named guarantor can respond to this request")

            if guarantee.status != Guarantor.Status.PENDING:
                raise SignoffStateError(f"This guarantee was already answered ({guarantee.status})")
            if guarantee.loan.status not in OPEN_LOAN_STATUSES:
                raise SignoffStateError(f"Loan {guarantee.loan.reference} is {guarantee.loan.status}")

            guarantee.status = Guarantor.Status.ACTIVE if accept else Guarantor.Status.DECLINED
            guarantee.responded_at = timezone.now()
            guarantee.response_comments = (comments or '').strip()
            guarantee.save(update_fields=['status', 'responded_at', 'response_comments', 'updated_at'])

            transaction.on_commit(lambda: self.notifier.guarantor_responded(guarantee), robust=True)

        logger.info(f"Guarantor {member.member_number} {guarantee.status} on loan {guarantee.loan.reference}")
        return guarantee
