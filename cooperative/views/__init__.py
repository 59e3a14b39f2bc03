from .loan_views import (
    loan_eligibility,
    loan_apply,
    loan_retry_workflow,
    credit_score,
    loan_export,
)

from .workflow_views import (
    workflow_pending,
    workflow_action,
    workflow_stats,
)

from .guarantor_views import (
    guarantor_pending,
    guarantor_respond,
)
