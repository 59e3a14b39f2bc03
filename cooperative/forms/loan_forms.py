"""
Loan Forms
==========

Forms for eligibility checks, loan applications (with guarantor and
collateral formsets) and workflow decisions
"""

from django import forms
from django.core.exceptions import ValidationError
from django.forms import formset_factory, BaseFormSet
from decimal import Decimal

from cooperative.models import ApprovalAction, Collateral, LoanType, Member
from cooperative.services.applications import MAX_TERM_MONTHS


AMOUNT_FIELD_KWARGS = {
    'max_digits': 15,
    'decimal_places': 2,
    'min_value': Decimal('0.01'),
}


def formset_data(prefix, rows):
    """
    Build bound formset data from a list of dicts (JSON payloads)

    Example:
        formset_data('guarantors', [{'guarantor': id, 'guarantee_amount': '250000'}])
    """
    rows = list(rows or [])
    data = {
        f'{prefix}-TOTAL_FORMS': str(len(rows)),
        f'{prefix}-INITIAL_FORMS': '0',
    }
    for index, row in enumerate(rows):
        for key, value in row.items():
            data[f'{prefix}-{index}-{key}'] = '' if value is None else str(value)
    return data


class LoanEligibilityForm(forms.Form):
    """Pre-application eligibility check for the logged-in member"""

    loan_type = forms.ModelChoiceField(queryset=LoanType.objects.none())
    amount = forms.DecimalField(**AMOUNT_FIELD_KWARGS)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['loan_type'].queryset = LoanType.objects.filter(is_active=True)


class LoanApplicationForm(LoanEligibilityForm):
    """
    Loan application

    Only the shape of the request is checked here; business rules run in
    LoanApplicationService.
    """

    term_months = forms.IntegerField(min_value=1, max_value=MAX_TERM_MONTHS)
    purpose = forms.CharField(max_length=255)

    def clean_purpose(self):
        purpose = self.cleaned_data['purpose'].strip()
        if not purpose:
            raise ValidationError("Loan purpose is required")
        return purpose

    def clean(self):
        cleaned_data = super().clean()
        loan_type = cleaned_data.get('loan_type')
        term_months = cleaned_data.get('term_months')

        if loan_type and term_months and not loan_type.is_term_valid(term_months):
            self.add_error(
                'term_months',
                f"{loan_type.name} terms run from {loan_type.min_term_months} "
                f"to {loan_type.max_term_months} months"
            )

        return cleaned_data


class GuarantorForm(forms.Form):
    """One guarantor pledge; the applicant cannot guarantee their own loan"""

    guarantor = forms.ModelChoiceField(queryset=Member.objects.none())
    guarantee_amount = forms.DecimalField(**AMOUNT_FIELD_KWARGS)

    def __init__(self, *args, **kwargs):
        self.member = kwargs.pop('member', None)
        super().__init__(*args, **kwargs)

        queryset = Member.objects.active()
        if self.member is not None:
            queryset = queryset.exclude(pk=self.member.pk)
        self.fields['guarantor'].queryset = queryset


class BaseGuarantorFormSet(BaseFormSet):

    def clean(self):
        if any(self.errors):
            return
        seen = set()
        for form in self.forms:
            guarantor = form.cleaned_data.get('guarantor')
            if guarantor is None:
                continue
            if guarantor.pk in seen:
                raise ValidationError(f"{guarantor.get_full_name()} is listed more than once")
            seen.add(guarantor.pk)


GuarantorFormSet = formset_factory(
    GuarantorForm,
    formset=BaseGuarantorFormSet,
    extra=0,
    max_num=10,
    validate_max=True,
)


class CollateralForm(forms.ModelForm):
    """Asset pledged with an application"""

    class Meta:
        model = Collateral
        fields = ['collateral_type', 'description', 'estimated_value']


CollateralFormSet = formset_factory(CollateralForm, extra=0, max_num=10, validate_max=True)


class WorkflowActionForm(forms.Form):
    """Approve, reject or send back the current workflow level"""

    action = forms.ChoiceField(choices=ApprovalAction.Action.choices)
    comments = forms.CharField(required=False, max_length=2000)

    def clean(self):
        cleaned_data = super().clean()
        action = cleaned_data.get('action')
        comments = (cleaned_data.get('comments') or '').strip()

        if action in (ApprovalAction.Action.REJECT, ApprovalAction.Action.REQUEST_CHANGES):
            if len(comments) < 10:
                self.add_error('comments',
                    "Please explain the decision (minimum 10 characters)")

        cleaned_data['comments'] = comments
        return cleaned_data


class GuarantorResponseForm(forms.Form):
    """Guarantor accepts or declines a sign-off request"""

    DECISION_CHOICES = [
        ('accept', 'Accept'),
        ('decline', 'Decline'),
    ]

    decision = forms.ChoiceField(choices=DECISION_CHOICES)
    comments = forms.CharField(required=False, max_length=2000)

    def clean_decision(self):
        return self.cleaned_data['decision'] == 'accept'
