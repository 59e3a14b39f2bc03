from django.urls import path

from cooperative.views import (
    loan_eligibility,
    loan_apply,
    loan_retry_workflow,
    credit_score,
    loan_export,
    workflow_pending,
    workflow_action,
    workflow_stats,
    guarantor_pending,
    guarantor_respond,
)


app_name = "cooperative"

urlpatterns = [
    # =========================================================================
    # LOANS
    # =========================================================================
    path('loans/eligibility/', loan_eligibility, name='loan_eligibility'),
    path('loans/apply/', loan_apply, name='loan_apply'),
    path('loans/<uuid:loan_id>/retry-workflow/', loan_retry_workflow, name='loan_retry_workflow'),
    path('loans/credit-score/', credit_score, name='credit_score'),
    path('loans/export/', loan_export, name='loan_export'),

    # =========================================================================
    # WORKFLOWS
    # =========================================================================
    path('workflows/pending/', workflow_pending, name='workflow_pending'),
    path('workflows/<uuid:workflow_id>/action/', workflow_action, name='workflow_action'),
    path('workflows/stats/', workflow_stats, name='workflow_stats'),

    # =========================================================================
    # GUARANTORS
    # =========================================================================
    path('guarantees/pending/', guarantor_pending, name='guarantor_pending'),
    path('guarantees/<uuid:guarantee_id>/respond/', guarantor_respond, name='guarantor_respond'),
]
