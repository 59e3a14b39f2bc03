"""
Approval Workflow Router
========================

Assigns an approval pipeline to an application and moves it through its
levels.

Lifecycle of a WorkflowApproval:
    pending (level 1) -> pending (level n) -> approved
                      -> rejected | changes_requested | timeout

Small loans (up to auto_approval_limit) are approved immediately without a
template. Terminal states are final and levels only move forward.
"""

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import Count, Exists, OuterRef
from django.utils import timezone
from datetime import timedelta
from decimal import Decimal
import logging

from cooperative.exceptions import WorkflowInitiationError, WorkflowStateError
from cooperative.models import (
    ApprovalAction, ApprovalLevel, EntityType, Loan, LoanType, User,
    WorkflowApproval, WorkflowTemplate,
)
from cooperative.notifications import NotificationDispatcher
from cooperative.permissions import PermissionChecker
from cooperative.utils.money import MoneyCalculator


logger = logging.getLogger(__name__)


class WorkflowRouter:
    """
    Usage:
        router = WorkflowRouter(get_business_config())
        workflow = router.start('loan', loan.pk, loan.principal, risk_class='standard')
        router.process(workflow, request.user, 'approve', 'Checked guarantors')
    """

    def __init__(self, config, notifier=None):
        self.config = config
        self.notifier = notifier or NotificationDispatcher()

    # =========================================================================
    # TEMPLATE SELECTION
    # =========================================================================

    @staticmethod
    def _specificity(template):
        floor = template.min_amount if template.min_amount is not None else Decimal('-Infinity')
        return (bool(template.risk_class), floor)

    def select_template(self, entity_type, amount, risk_class=None):
        """
        Most specific active template covering `amount`

        Risk-specific templates win over generic ones, then the narrowest
        band (highest min_amount). Returns None when nothing matches.
        """
        entity_type = EntityType.normalize(entity_type)
        amount = MoneyCalculator.to_decimal(amount) if amount is not None else None
        risk_class = LoanType.RiskClass.normalize(risk_class) if risk_class else ''

        candidates = [
            template
            for template in WorkflowTemplate.objects.filter(entity_type=entity_type, is_active=True)
            if template.covers_amount(amount)
            and (not template.risk_class or template.risk_class == risk_class)
        ]
        if not candidates:
            return None

        candidates.sort(key=lambda t: t.name)
        return max(candidates, key=self._specificity)

    # =========================================================================
    # START
    # =========================================================================

    def start(self, entity_type, entity_id, amount=None, risk_class=None, requested_by=None):
        """
        Create the workflow for an entity

        Raises:
            WorkflowInitiationError: no template, no levels or no approver for level 1
        """
        entity_type = EntityType.normalize(entity_type)
        amount = MoneyCalculator.to_decimal(amount) if amount is not None else None
        now = timezone.now()

        limit = self.config.auto_approval_limit
        if entity_type == EntityType.LOAN and amount is not None and limit > 0 and amount <= limit:
            workflow = WorkflowApproval.objects.create(
                entity_type=entity_type,
                entity_id=str(entity_id),
                status=WorkflowApproval.Status.APPROVED,
                auto_approved=True,
                amount=amount,
                requested_by=requested_by,
                completed_at=now,
                final_comments="Approved automatically within the auto-approval limit",
            )
            logger.info(f"Workflow {workflow.pk} auto-approved for {entity_type} {entity_id}")
            self._complete(workflow)
            return workflow

        template = self.select_template(entity_type, amount, risk_class)
        if template is None:
            amount_text = MoneyCalculator.format_currency(amount) if amount is not None else "this request"
            raise WorkflowInitiationError(f"No approval workflow is configured for {entity_type} of {amount_text}")

        levels = list(template.levels.order_by('level_number'))
        if not levels:
            raise WorkflowInitiationError(f"Workflow template {template.name} has no approval levels")

        first = levels[0]
        approvers = list(User.objects.with_role(first.required_role))
        if not approvers:
            raise WorkflowInitiationError(
                f"No active user holds the {first.get_required_role_display()} role needed for {first.name}"
            )

        workflow = WorkflowApproval.objects.create(
            entity_type=entity_type,
            entity_id=str(entity_id),
            template=template,
            current_level=first.level_number,
            total_levels=len(levels),
            amount=amount,
            requested_by=requested_by,
            level_started_at=now,
        )
        logger.info(f"Workflow {workflow.pk} started on {template.name} for {entity_type} {entity_id}")

        loan = workflow.subject()
        transaction.on_commit(lambda: self.notifier.approval_requested(workflow, approvers, loan), robust=True)
        return workflow

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def process(self, workflow, approver, action, comments=''):
        """
        Record a decision on the workflow's current level

        Raises:
            ValidationError: unknown action
            WorkflowStateError: workflow already closed
            PermissionDenied: approver lacks the level's role
        """
        try:
            action = ApprovalAction.Action.normalize(action)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        with transaction.atomic():
            workflow = (
                WorkflowApproval.objects.select_for_update()
                .select_related('template')
                .get(pk=workflow.pk)
            )
            if workflow.is_terminal:
                raise WorkflowStateError(f"Workflow is already {workflow.get_status_display().lower()}")

            level = workflow.current_level_definition()
            if not PermissionChecker(approver).can_act_on_level(level):
                raise PermissionDenied("You are not an approver for this level")

            ApprovalAction.objects.create(
                workflow=workflow,
                approver=approver,
                action=action,
                level_number=workflow.current_level,
                comments=comments,
            )

            now = timezone.now()
            if action == ApprovalAction.Action.APPROVE:
                next_level = (
                    workflow.template.levels
                    .filter(level_number__gt=workflow.current_level)
                    .order_by('level_number')
                    .first()
                )
                if next_level is not None:
                    workflow.current_level = next_level.level_number
                    workflow.level_started_at = now
                    workflow.save(update_fields=['current_level', 'level_started_at', 'updated_at'])
                    logger.info(f"Workflow {workflow.pk} advanced to level {next_level.level_number}")
                    self._request_level(workflow, next_level)
                    return workflow
                workflow.status = WorkflowApproval.Status.APPROVED
            elif action == ApprovalAction.Action.REJECT:
                workflow.status = WorkflowApproval.Status.REJECTED
            else:
                workflow.status = WorkflowApproval.Status.CHANGES_REQUESTED

            workflow.completed_at = now
            workflow.final_comments = comments
            workflow.save(update_fields=['status', 'completed_at', 'final_comments', 'updated_at'])
            logger.info(f"Workflow {workflow.pk} closed as {workflow.status} by {approver}")
            self._complete(workflow)

        return workflow

    def _request_level(self, workflow, level):
        approvers = list(User.objects.with_role(level.required_role))
        if not approvers:
            logger.warning(f"Workflow {workflow.pk}: no active approver for level {level.level_number}")
            return
        loan = workflow.subject()
        transaction.on_commit(lambda: self.notifier.approval_requested(workflow, approvers, loan), robust=True)

    def _complete(self, workflow):
        """Apply a closed workflow's outcome to its subject"""
        loan = workflow.subject()
        if loan is None:
            return

        now = timezone.now()
        outcome = {
            WorkflowApproval.Status.APPROVED: (Loan.Status.APPROVED, 'approved_at'),
            WorkflowApproval.Status.REJECTED: (Loan.Status.REJECTED, 'rejected_at'),
            WorkflowApproval.Status.CHANGES_REQUESTED: (Loan.Status.REVISION_REQUESTED, None),
        }.get(workflow.status)

        if outcome is None:
            transaction.on_commit(lambda: self.notifier.workflow_timed_out(workflow, loan), robust=True)
            return

        if loan.status != Loan.Status.PENDING:
            logger.warning(f"Loan {loan.reference} is {loan.status}; workflow outcome {workflow.status} not applied")
            return

        status, timestamp = outcome
        loan.status = status
        update_fields = ['status', 'updated_at']
        if timestamp:
            setattr(loan, timestamp, now)
            update_fields.append(timestamp)
        loan.save(update_fields=update_fields)
        logger.info(f"Loan {loan.reference} -> {status}")

        transaction.on_commit(lambda: self.notifier.workflow_completed(workflow, loan), robust=True)

    # =========================================================================
    # TIMEOUTS
    # =========================================================================

    def process_timeouts(self, now=None):
        """
        Close pending workflows whose current level ran out of time

        Returns:
            int: number of workflows closed
        """
        now = now or timezone.now()
        closed = 0

        for workflow in WorkflowApproval.objects.pending().exclude(template=None).select_related('template'):
            level = workflow.current_level_definition()
            if level is None or not level.timeout_hours:
                continue
            started = workflow.level_started_at or workflow.created_at
            if started + timedelta(hours=level.timeout_hours) >= now:
                continue

            with transaction.atomic():
                locked = WorkflowApproval.objects.select_for_update().get(pk=workflow.pk)
                if locked.is_terminal or locked.current_level != workflow.current_level:
                    continue
                locked.status = WorkflowApproval.Status.TIMEOUT
                locked.completed_at = now
                locked.final_comments = f"Timed out at level {locked.current_level} ({level.name})"
                locked.save(update_fields=['status', 'completed_at', 'final_comments', 'updated_at'])
                self._complete(locked)

            logger.info(f"Workflow {workflow.pk} timed out at level {workflow.current_level}")
            closed += 1

        return closed

    # =========================================================================
    # QUERIES
    # =========================================================================

    def pending_for(self, user):
        """Pending workflows whose current level the user may decide"""
        checker = PermissionChecker(user)
        if not checker.can_act_on_workflows():
            return WorkflowApproval.objects.none()

        queryset = WorkflowApproval.objects.pending().exclude(template=None).select_related('template')
        if checker.is_admin():
            return queryset

        matching_level = ApprovalLevel.objects.filter(
            template=OuterRef('template'),
            level_number=OuterRef('current_level'),
            required_role=checker.role,
        )
        return queryset.filter(Exists(matching_level))

    def stats(self, entity_type=None, date_from=None, date_to=None):
        """
        Returns:
            dict: total, by_status counts, auto_approved, average_completion_hours
        """
        queryset = WorkflowApproval.objects.created_between(date_from, date_to)
        if entity_type:
            queryset = queryset.filter(entity_type=EntityType.normalize(entity_type))

        by_status = {status: 0 for status in WorkflowApproval.Status.values}
        for row in queryset.order_by().values('status').annotate(count=Count('id')):
            by_status[row['status']] = row['count']

        durations = [
            (completed - created).total_seconds()
            for created, completed in queryset.completed()
            .exclude(completed_at=None)
            .values_list('created_at', 'completed_at')
        ]
        average = round(sum(durations) / len(durations) / 3600, 2) if durations else None

        return {
            'total': sum(by_status.values()),
            'by_status': by_status,
            'auto_approved': queryset.filter(auto_approved=True).count(),
            'average_completion_hours': average,
        }
