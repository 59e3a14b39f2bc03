"""
Loan Application Service
========================

Runs a loan application as one transaction:

1. validate the input
2. lock the member row (one application per member at a time)
3. evaluate eligibility
4. save the loan, its guarantors and collateral
5. start the approval workflow in a savepoint
6. after commit, notify the member and ask guarantors to sign off

A routing failure does not undo the application: the loan stays pending and
WorkflowInitiationError is raised after commit with `.loan` set, so routing
can be retried without resubmitting.
"""

from django.core.exceptions import ValidationError
from django.db import transaction
from typing import NamedTuple
import logging

from cooperative.exceptions import EligibilityError, WorkflowInitiationError, WorkflowStateError
from cooperative.models import (
    Collateral, EntityType, Guarantor, Loan, Member, WorkflowApproval,
)
from cooperative.notifications import NotificationDispatcher
from cooperative.services.eligibility import EligibilityEvaluator
from cooperative.services.guarantors import GuarantorSignoffService
from cooperative.services.workflow import WorkflowRouter
from cooperative.utils.money import MoneyCalculator


logger = logging.getLogger(__name__)


MAX_TERM_MONTHS = 60


class ApplicationResult(NamedTuple):
    loan: Loan
    reference: str
    workflow: WorkflowApproval


class LoanApplicationService:

    def __init__(self, config, evaluator=None, router=None, notifier=None, signoffs=None):
        self.config = config
        self.notifier = notifier or NotificationDispatcher()
        self.evaluator = evaluator or EligibilityEvaluator(config)
        self.router = router or WorkflowRouter(config, notifier=self.notifier)
        self.signoffs = signoffs or GuarantorSignoffService(notifier=self.notifier)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self, loan_type, amount, term_months, purpose):
        """
        Check request shape before any rule is evaluated

        Returns:
            tuple: (amount as Decimal, term as int)

        Raises:
            ValidationError: dict of field errors
        """
        errors = {}

        try:
            amount = MoneyCalculator.to_decimal(amount)
        except ValueError:
            errors['amount'] = "Amount must be a number"
        else:
            if amount <= 0:
                errors['amount'] = "Amount must be greater than zero"

        try:
            term_months = int(term_months)
        except (TypeError, ValueError):
            errors['term_months'] = "Term must be a whole number of months"
        else:
            if not 1 <= term_months <= MAX_TERM_MONTHS:
                errors['term_months'] = f"Term must be between 1 and {MAX_TERM_MONTHS} months"
            elif loan_type is not None and not loan_type.is_term_valid(term_months):
                errors['term_months'] = (
                    f"{loan_type.name} terms run from {loan_type.min_term_months} "
                    f"to {loan_type.max_term_months} months"
                )

        if not purpose or not str(purpose).strip():
            errors['purpose'] = "Loan purpose is required"

        if loan_type is None:
            errors['loan_type'] = "Loan type is required"
        elif not loan_type.is_active:
            errors['loan_type'] = f"{loan_type.name} is not currently offered"

        if errors:
            raise ValidationError(errors)
        return amount, term_months

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def submit(self, member, loan_type, amount, term_months, purpose,
               guarantors=(), collaterals=(), requested_by=None, today=None):
        """
        Args:
            guarantors: GuarantorPledge records
            collaterals: dicts with collateral_type, description, estimated_value

        Returns:
            ApplicationResult

        Raises:
            ValidationError: bad input
            EligibilityError: the member fails one or more rules
            WorkflowInitiationError: saved but not routed (`.loan` is set)
        """
        amount, term_months = self.validate(loan_type, amount, term_months, purpose)
        guarantors = list(guarantors)
        routing_error = None
        workflow = None

        with transaction.atomic():
            member = Member.objects.select_for_update().get(pk=member.pk)

            violations = self.evaluator.evaluate(member.pk, amount, loan_type, guarantors, today=today)
            if violations:
                logger.info(f"Loan application by {member.member_number} refused: {[v.rule for v in violations]}")
                raise EligibilityError(violations)

            loan = Loan.objects.create(
                member=member,
                loan_type=loan_type,
                principal=amount,
                interest_rate=loan_type.interest_rate,
                term_months=term_months,
                purpose=str(purpose).strip(),
                created_by=requested_by,
            )

            pledges, _ = self.evaluator.eligible_pledges(member, guarantors)
            for pledge in pledges:
                Guarantor.objects.create(
                    loan=loan,
                    guarantor_id=pledge.member_id,
                    guarantee_amount=pledge.amount,
                )
            if len(pledges) < len(guarantors):
                logger.info(f"Loan {loan.reference}: {len(guarantors) - len(pledges)} ineligible guarantor(s) ignored")

            for data in collaterals:
                collateral = Collateral(loan=loan, **data)
                collateral.full_clean()
                collateral.save()

            try:
                with transaction.atomic():
                    workflow = self.router.start(
                        EntityType.LOAN,
                        loan.pk,
                        amount,
                        risk_class=loan_type.risk_class,
                        requested_by=requested_by,
                    )
            except WorkflowInitiationError as exc:
                routing_error = exc
                logger.warning(f"Loan {loan.reference} saved without a workflow: {exc}")
                transaction.on_commit(lambda: self.notifier.workflow_failed(loan, str(routing_error)), robust=True)

            transaction.on_commit(lambda: self.notifier.loan_submitted(loan), robust=True)
            if pledges:
                transaction.on_commit(lambda: self.signoffs.request_signoffs(loan), robust=True)

        loan.refresh_from_db()
        logger.info(f"Loan application {loan.reference} submitted by {member.member_number}")

        if routing_error is not None:
            raise WorkflowInitiationError(str(routing_error), loan=loan) from routing_error

        return ApplicationResult(loan=loan, reference=loan.reference, workflow=workflow)

    def retry_workflow(self, loan, requested_by=None):
        """
        Start routing again for a pending loan without a live workflow

        Raises:
            WorkflowStateError: loan not pending or already routed
            WorkflowInitiationError: routing still fails
        """
        with transaction.atomic():
            loan = Loan.objects.select_for_update().select_related('loan_type').get(pk=loan.pk)
            if loan.status != Loan.Status.PENDING:
                raise WorkflowStateError(f"Loan {loan.reference} is {loan.status}, not pending")

            live = WorkflowApproval.objects.for_entity(EntityType.LOAN, loan.pk).filter(
                status__in=[WorkflowApproval.Status.PENDING, WorkflowApproval.Status.APPROVED]
            )
            if live.exists():
                raise WorkflowStateError(f"Loan {loan.reference} already has an approval workflow")

            try:
                workflow = self.router.start(
                    EntityType.LOAN,
                    loan.pk,
                    loan.principal,
                    risk_class=loan.loan_type.risk_class,
                    requested_by=requested_by or loan.created_by,
                )
            except WorkflowInitiationError as exc:
                raise WorkflowInitiationError(str(exc), loan=loan) from exc

        loan.refresh_from_db()
        logger.info(f"Workflow {workflow.pk} started on retry for loan {loan.reference}")
        return workflow
