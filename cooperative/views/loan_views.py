"""
Loan Views
==========

JSON endpoints for eligibility checks, loan applications, workflow retries,
credit scores and loan exports
"""

from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date
from django.views.decorators.http import require_GET, require_POST
import logging

from cooperative.exceptions import (
    DependencyUnavailable, EligibilityError, WorkflowInitiationError, WorkflowStateError,
)
from cooperative.forms.loan_forms import (
    LoanEligibilityForm, LoanApplicationForm, GuarantorFormSet, CollateralFormSet,
)
from cooperative.models import Loan
from cooperative.permissions import PermissionChecker, permission_required
from cooperative.services.aggregators import SavingsAggregator
from cooperative.services.applications import LoanApplicationService
from cooperative.services.config import get_business_config
from cooperative.services.credit import CreditScorer
from cooperative.services.eligibility import EligibilityEvaluator, GuarantorPledge
from cooperative.utils.excel_export import export_loans_excel
from cooperative.utils.money import MoneyCalculator
from .helpers import (
    request_payload, formset_payload, form_errors, error_response, current_member, money,
)


logger = logging.getLogger(__name__)


def _pledges(formset):
    return [
        GuarantorPledge(form.cleaned_data['guarantor'].pk, form.cleaned_data['guarantee_amount'])
        for form in formset.forms
        if form.cleaned_data.get('guarantor')
    ]


# =============================================================================
# ELIGIBILITY
# =============================================================================

@login_required
@require_POST
def loan_eligibility(request):
    """
    Check whether the logged-in member may apply

    Body: loan_type, amount and optional guarantors
    Returns success, errors (messages), violations (rule + message) and the
    effective loan limit.
    """
    member = current_member(request)
    if member is None:
        return error_response(["No member record is linked to this account"], status=404)

    payload = request_payload(request)
    if payload is None:
        return error_response(["Request body must be a JSON object"])

    form = LoanEligibilityForm(payload)
    guarantors = GuarantorFormSet(
        formset_payload(request, payload, 'guarantors'),
        prefix='guarantors',
        form_kwargs={'member': member},
    )
    if not (form.is_valid() and guarantors.is_valid()):
        return error_response(form_errors(form, guarantors))

    config = get_business_config()
    evaluator = EligibilityEvaluator(config)
    loan_type = form.cleaned_data['loan_type']

    violations = evaluator.evaluate(
        member.pk,
        form.cleaned_data['amount'],
        loan_type,
        _pledges(guarantors),
    )
    savings = SavingsAggregator().summarize(member.pk)
    limit = evaluator.effective_loan_limit(savings.total, loan_type)

    return JsonResponse({
        'success': not violations,
        'errors': [v.message for v in violations],
        'violations': [v._asdict() for v in violations],
        'effective_limit': money(limit),
        'effective_limit_display': MoneyCalculator.format_currency(limit),
    })


# =============================================================================
# APPLICATION
# =============================================================================

@login_required
@require_POST
def loan_apply(request):
    """
    Submit a loan application for the logged-in member

    201: saved and routed (or auto-approved)
    202: saved but approval routing failed; staff can retry routing
    400: validation or eligibility errors, all reported together
    """
    member = current_member(request)
    if member is None:
        return error_response(["No member record is linked to this account"], status=404)

    payload = request_payload(request)
    if payload is None:
        return error_response(["Request body must be a JSON object"])

    form = LoanApplicationForm(payload)
    guarantors = GuarantorFormSet(
        formset_payload(request, payload, 'guarantors'),
        prefix='guarantors',
        form_kwargs={'member': member},
    )
    collaterals = CollateralFormSet(
        formset_payload(request, payload, 'collaterals'),
        prefix='collaterals',
    )

    forms_valid = [form.is_valid(), guarantors.is_valid(), collaterals.is_valid()]
    if not all(forms_valid):
        return error_response(form_errors(form, guarantors, collaterals))

    service = LoanApplicationService(get_business_config())

    try:
        result = service.submit(
            member,
            form.cleaned_data['loan_type'],
            form.cleaned_data['amount'],
            form.cleaned_data['term_months'],
            form.cleaned_data['purpose'],
            guarantors=_pledges(guarantors),
            collaterals=[f.cleaned_data for f in collaterals.forms if f.cleaned_data],
            requested_by=request.user,
        )
    except ValidationError as exc:
        return error_response(exc.messages)
    except EligibilityError as exc:
        return error_response(
            exc.messages,
            violations=[v._asdict() for v in exc.violations],
        )
    except WorkflowInitiationError as exc:
        return JsonResponse({
            'success': True,
            'reference': exc.loan.reference,
            'loan_id': str(exc.loan.pk),
            'status': exc.loan.status,
            'workflow_started': False,
            'message': "Application saved. Approval routing is pending; staff have been notified.",
        }, status=202)

    workflow = result.workflow
    return JsonResponse({
        'success': True,
        'reference': result.reference,
        'loan_id': str(result.loan.pk),
        'status': result.loan.status,
        'monthly_payment': money(result.loan.monthly_payment),
        'total_repayable': money(result.loan.total_repayable),
        'workflow_started': True,
        'workflow_id': str(workflow.pk),
        'auto_approved': workflow.auto_approved,
    }, status=201)


@login_required
@require_POST
@permission_required('can_retry_workflows')
def loan_retry_workflow(request, loan_id):
    """Route a saved application whose workflow could not be started"""
    loan = get_object_or_404(Loan, id=loan_id)
    service = LoanApplicationService(get_business_config())

    try:
        workflow = service.retry_workflow(loan, requested_by=request.user)
    except WorkflowStateError as exc:
        return error_response([str(exc)], status=409)
    except WorkflowInitiationError as exc:
        return error_response([str(exc)], status=409, workflow_started=False)

    return JsonResponse({
        'success': True,
        'reference': loan.reference,
        'workflow_started': True,
        'workflow_id': str(workflow.pk),
        'auto_approved': workflow.auto_approved,
    })


# =============================================================================
# CREDIT SCORE
# =============================================================================

@login_required
@require_GET
def credit_score(request):
    """Credit score of the logged-in member"""
    member = current_member(request)
    if member is None:
        return error_response(["No member record is linked to this account"], status=404)

    try:
        result = CreditScorer(get_business_config()).score(member.pk)
    except DependencyUnavailable as exc:
        return error_response([str(exc)], status=503)

    return JsonResponse({
        'success': True,
        'score': result.score,
        'rating': result.rating,
        'total_payments': result.total_payments,
        'on_time_percentage': float(result.on_time_percentage),
    })


# =============================================================================
# EXPORT
# =============================================================================

@login_required
@require_GET
@permission_required('can_export_loans')
def loan_export(request):
    """
    Excel workbook of loan applications

    Query: status, date_from, date_to (YYYY-MM-DD)
    """
    checker = PermissionChecker(request.user)
    loans = checker.filter_loans(
        Loan.objects.select_related('member', 'loan_type').order_by('-application_date')
    )

    status = request.GET.get('status')
    if status:
        try:
            loans = loans.filter(status=Loan.Status.normalize(status))
        except ValueError as exc:
            return error_response([str(exc)])

    date_from = parse_date(request.GET.get('date_from') or '')
    date_to = parse_date(request.GET.get('date_to') or '')
    if date_from:
        loans = loans.filter(application_date__date__gte=date_from)
    if date_to:
        loans = loans.filter(application_date__date__lte=date_to)

    logger.info(f"Loan export by {request.user}: {loans.count()} rows")
    return export_loans_excel(loans)
