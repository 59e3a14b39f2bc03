"""
Workflow Views
==============

JSON endpoints for approvers: pending queue, decisions and statistics
"""

from django.contrib.auth.decorators import login_required
from django.core.exceptions import PermissionDenied, ValidationError
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date
from django.views.decorators.http import require_GET, require_POST

from cooperative.exceptions import WorkflowStateError
from cooperative.forms.loan_forms import WorkflowActionForm
from cooperative.models import WorkflowApproval
from cooperative.permissions import permission_required
from cooperative.services.config import get_business_config
from cooperative.services.workflow import WorkflowRouter
from .helpers import request_payload, form_errors, error_response, money


def workflow_json(workflow):
    level = workflow.current_level_definition()
    loan = workflow.subject()
    return {
        'id': str(workflow.pk),
        'entity_type': workflow.entity_type,
        'entity_id': workflow.entity_id,
        'status': workflow.status,
        'current_level': workflow.current_level,
        'total_levels': workflow.total_levels,
        'level_name': level.name if level else None,
        'required_role': level.required_role if level else None,
        'amount': money(workflow.amount),
        'template': workflow.template.name if workflow.template_id else None,
        'loan_reference': loan.reference if loan else None,
        'member': loan.member.get_full_name() if loan else None,
        'created_at': workflow.created_at.isoformat(),
        'level_started_at': workflow.level_started_at.isoformat() if workflow.level_started_at else None,
    }


@login_required
@require_GET
def workflow_pending(request):
    """Workflows waiting on the logged-in user's role"""
    router = WorkflowRouter(get_business_config())
    workflows = router.pending_for(request.user).order_by('level_started_at')
    return JsonResponse({
        'success': True,
        'workflows': [workflow_json(workflow) for workflow in workflows],
    })


@login_required
@require_POST
def workflow_action(request, workflow_id):
    """
    Approve, reject or request changes on the current level

    403 when the user does not hold the level's role, 409 when the workflow
    is already closed.
    """
    workflow = get_object_or_404(WorkflowApproval, id=workflow_id)

    payload = request_payload(request)
    if payload is None:
        return error_response(["Request body must be a JSON object"])

    form = WorkflowActionForm(payload)
    if not form.is_valid():
        return error_response(form_errors(form))

    router = WorkflowRouter(get_business_config())
    try:
        workflow = router.process(
            workflow,
            request.user,
            form.cleaned_data['action'],
            form.cleaned_data['comments'],
        )
    except PermissionDenied as exc:
        return error_response([str(exc) or "Permission denied"], status=403)
    except WorkflowStateError as exc:
        return error_response([str(exc)], status=409)
    except ValidationError as exc:
        return error_response(exc.messages)

    return JsonResponse({'success': True, 'workflow': workflow_json(workflow)})


@login_required
@require_GET
@permission_required('can_view_workflow_stats')
def workflow_stats(request):
    """
    Workflow counts by status and average completion time

    Query: entity_type, date_from, date_to (YYYY-MM-DD)
    """
    router = WorkflowRouter(get_business_config())
    try:
        stats = router.stats(
            entity_type=request.GET.get('entity_type') or None,
            date_from=parse_date(request.GET.get('date_from') or ''),
            date_to=parse_date(request.GET.get('date_to') or ''),
        )
    except ValueError as exc:
        return error_response([str(exc)])

    return JsonResponse({'success': True, 'stats': stats})
