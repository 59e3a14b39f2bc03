"""
Shared helpers for the JSON views
"""

from django.http import JsonResponse
import json

from cooperative.forms.loan_forms import formset_data


def is_json(request):
    return request.content_type == 'application/json'


def request_payload(request):
    """Request body as a dict: decoded JSON or POST data"""
    if is_json(request):
        try:
            payload = json.loads(request.body or b'{}')
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None
    return request.POST


def formset_payload(request, payload, prefix):
    """Bound data for a formset, tolerating a missing management form"""
    if is_json(request):
        return formset_data(prefix, payload.get(prefix))
    if f'{prefix}-TOTAL_FORMS' in payload:
        return payload
    return formset_data(prefix, [])


def form_errors(*forms):
    """Flatten form and formset errors into messages"""
    messages = []
    for form in forms:
        if hasattr(form, 'non_form_errors'):
            messages.extend(form.non_form_errors())
            for subform in form.forms:
                messages.extend(form_errors(subform))
            continue
        for field, errors in form.errors.items():
            label = '' if field == '__all__' else f"{form.fields[field].label or field}: "
            messages.extend(f"{label}{error}" for error in errors)
    return messages


def error_response(errors, status=400, **extra):
    return JsonResponse({'success': False, 'errors': list(errors), **extra}, status=status)


def current_member(request):
    """The Member linked to the logged-in user, or None"""
    return getattr(request.user, 'member', None)


def money(value):
    return f"{value:.2f}" if value is not None else None
