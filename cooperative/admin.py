from django import forms
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin
from .models import (
    User, Member, Contribution, LoanType, Loan, LoanRepayment,
    Guarantor, Collateral, SystemConfig, WorkflowTemplate, ApprovalLevel,
    WorkflowApproval, ApprovalAction, Notification,
)

# ==============================================================================
# CORE MODELS
# ==============================================================================

@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    list_display = ['username', 'email', 'get_full_name', 'role', 'is_active']
    list_filter = ['role', 'is_active', 'is_staff']
    search_fields = ['username', 'email', 'first_name', 'last_name']

    fieldsets = DjangoUserAdmin.fieldsets + (
        ('Cooperative', {
            'fields': ('role', 'phone')
        }),
    )


@admin.register(Member)
class MemberAdmin(admin.ModelAdmin):
    list_display = ['member_number', 'get_full_name', 'email', 'membership_type',
                    'status', 'join_date']
    list_filter = ['status', 'membership_type']
    search_fields = ['member_number', 'first_name', 'last_name', 'email', 'phone']
    readonly_fields = ['member_number', 'created_at', 'updated_at']

    def get_readonly_fields(self, request, obj=None):
        if obj is not None:
            return self.readonly_fields + ['join_date']
        return self.readonly_fields


# ==============================================================================
# SAVINGS LEDGER
# ==============================================================================

@admin.register(Contribution)
class ContributionAdmin(admin.ModelAdmin):
    list_display = ['reference', 'member', 'contribution_type', 'amount', 'status',
                    'transaction_date']
    list_filter = ['contribution_type', 'status']
    search_fields = ['reference', 'member__member_number', 'member__last_name']
    readonly_fields = ['reference', 'created_at', 'updated_at']
    date_hierarchy = 'transaction_date'

    def get_readonly_fields(self, request, obj=None):
        if obj is not None:
            return self.readonly_fields + ['member', 'amount', 'contribution_type', 'transaction_date']
        return self.readonly_fields

    def has_delete_permission(self, request, obj=None):
        return False


# ==============================================================================
# LOANS
# ==============================================================================

@admin.register(LoanType)
class LoanTypeAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'interest_rate', 'min_amount', 'max_amount',
                    'requires_guarantor', 'risk_class', 'is_active']
    list_filter = ['is_active', 'risk_class', 'requires_guarantor']
    search_fields = ['code', 'name']


class GuarantorInline(admin.TabularInline):
    model = Guarantor
    fk_name = 'loan'
    extra = 0
    autocomplete_fields = ['guarantor']
    readonly_fields = ['responded_at', 'response_comments']


class CollateralInline(admin.TabularInline):
    model = Collateral
    extra = 0


class LoanRepaymentInline(admin.TabularInline):
    model = LoanRepayment
    extra = 0
    readonly_fields = ['installment_number', 'due_date', 'amount_due', 'amount_paid',
                       'paid_date', 'status']
    can_delete = False


@admin.register(Loan)
class LoanAdmin(admin.ModelAdmin):
    list_display = ['reference', 'member', 'loan_type', 'principal', 'term_months',
                    'status', 'application_date']
    list_filter = ['status', 'loan_type']
    search_fields = ['reference', 'member__member_number', 'member__last_name']
    readonly_fields = ['reference', 'monthly_payment', 'total_repayable', 'amount_paid',
                       'approved_at', 'rejected_at', 'disbursed_at', 'created_by',
                       'created_at', 'updated_at']
    inlines = [GuarantorInline, CollateralInline, LoanRepaymentInline]


# ==============================================================================
# CONFIGURATION
# ==============================================================================

class SystemConfigAdminForm(forms.ModelForm):

    class Meta:
        model = SystemConfig
        fields = '__all__'

    def clean(self):
        cleaned_data = super().clean()
        value = cleaned_data.get('value')
        if value is None:
            return cleaned_data

        candidate = SystemConfig(
            value_type=cleaned_data.get('value_type') or SystemConfig.ValueType.STRING,
            min_value=cleaned_data.get('min_value'),
            max_value=cleaned_data.get('max_value'),
        )
        try:
            cleaned_data['value'] = candidate.serialize(value)
        except ValueError as exc:
            self.add_error('value', str(exc))
        return cleaned_data


@admin.register(SystemConfig)
class SystemConfigAdmin(admin.ModelAdmin):
    form = SystemConfigAdminForm
    list_display = ['key', 'value', 'value_type', 'category', 'is_editable', 'updated_at']
    list_filter = ['category', 'value_type', 'is_editable']
    search_fields = ['key', 'description']
    readonly_fields = ['updated_by', 'updated_at']

    def get_readonly_fields(self, request, obj=None):
        if obj is not None and not obj.is_editable:
            return self.readonly_fields + ['value']
        return self.readonly_fields

    def save_model(self, request, obj, form, change):
        obj.updated_by = request.user
        super().save_model(request, obj, form, change)


# ==============================================================================
# WORKFLOW
# ==============================================================================

class ApprovalLevelInline(admin.TabularInline):
    model = ApprovalLevel
    extra = 0
    ordering = ['level_number']


@admin.register(WorkflowTemplate)
class WorkflowTemplateAdmin(admin.ModelAdmin):
    list_display = ['name', 'entity_type', 'min_amount', 'max_amount', 'risk_class', 'is_active']
    list_filter = ['entity_type', 'risk_class', 'is_active']
    search_fields = ['name']
    inlines = [ApprovalLevelInline]


class ApprovalActionInline(admin.TabularInline):
    model = ApprovalAction
    extra = 0
    readonly_fields = ['approver', 'action', 'level_number', 'comments', 'created_at']
    can_delete = False


@admin.register(WorkflowApproval)
class WorkflowApprovalAdmin(admin.ModelAdmin):
    list_display = ['entity_type', 'entity_id', 'template', 'current_level', 'total_levels',
                    'status', 'auto_approved', 'created_at']
    list_filter = ['status', 'entity_type', 'auto_approved']
    search_fields = ['entity_id']
    readonly_fields = ['entity_type', 'entity_id', 'template', 'current_level', 'total_levels',
                       'status', 'requested_by', 'amount', 'auto_approved', 'level_started_at',
                       'completed_at', 'final_comments', 'created_at', 'updated_at']
    inlines = [ApprovalActionInline]


# ==============================================================================
# SUPPORTING MODELS
# ==============================================================================

@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['title', 'recipient', 'member', 'notification_type', 'is_read', 'created_at']
    list_filter = ['notification_type', 'is_read']
    search_fields = ['title', 'message']
