"""
Guarantor Views
===============

JSON endpoints for members asked to guarantee a loan
"""

from django.contrib.auth.decorators import login_required
from django.core.exceptions import PermissionDenied
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST

from cooperative.exceptions import SignoffStateError
from cooperative.forms.loan_forms import GuarantorResponseForm
from cooperative.models import Guarantor
from cooperative.services.guarantors import GuarantorSignoffService
from .helpers import request_payload, form_errors, error_response, current_member, money


def guarantee_json(guarantee):
    loan = guarantee.loan
    return {
        'id': str(guarantee.pk),
        'loan_reference': loan.reference,
        'borrower': loan.member.get_full_name(),
        'loan_amount': money(loan.principal),
        'guarantee_amount': money(guarantee.guarantee_amount),
        'status': guarantee.status,
        'responded_at': guarantee.responded_at.isoformat() if guarantee.responded_at else None,
    }


@login_required
@require_GET
def guarantor_pending(request):
    """Sign-off requests waiting on the logged-in member"""
    member = current_member(request)
    if member is None:
        return error_response(["No member record is linked to this account"], status=404)

    guarantees = GuarantorSignoffService().pending_for(member)
    return JsonResponse({
        'success': True,
        'guarantees': [guarantee_json(guarantee) for guarantee in guarantees],
    })


@login_required
@require_POST
def guarantor_respond(request, guarantee_id):
    """
    Accept or decline a guarantee

    Body: decision ('accept' or 'decline') and optional comments
    403 when the user is not the named guarantor, 409 when already answered.
    """
    guarantee = get_object_or_404(Guarantor, id=guarantee_id)

    payload = request_payload(request)
    if payload is None:
        return error_response(["Request body must be a JSON object"])

    form = GuarantorResponseForm(payload)
    if not form.is_valid():
        return error_response(form_errors(form))

    try:
        guarantee = GuarantorSignoffService().respond(
            guarantee,
            request.user,
            accept=form.cleaned_data['decision'],
            comments=form.cleaned_data['comments'],
        )
    except PermissionDenied as exc:
        return error_response([str(exc)], status=403)
    except SignoffStateError as exc:
        return error_response([str(exc)], status=409)

    return JsonResponse({'success': True, 'guarantee': guarantee_json(guarantee)})
