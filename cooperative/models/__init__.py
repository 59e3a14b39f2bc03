"""
Cooperative Portal - Models Package
===================================

This file imports and exposes all models for Django.
"""

# First, import base classes and utilities
from .base import (
    BaseModel,
    NormalizedChoices,
    StatusField,
)

# Import all models from the consolidated models module
from .all_models import (
    # Core Models
    User,
    UserManager,
    Member,

    # Savings
    Contribution,

    # Loans
    LoanType,
    Loan,
    LoanRepayment,
    Guarantor,
    Collateral,

    # Configuration
    SystemConfig,

    # Workflow
    EntityType,
    WorkflowTemplate,
    ApprovalLevel,
    WorkflowApproval,
    ApprovalAction,

    # Supporting Models
    Notification,
)

__all__ = [
    'BaseModel',
    'NormalizedChoices',
    'StatusField',
    'User',
    'UserManager',
    'Member',
    'Contribution',
    'LoanType',
    'Loan',
    'LoanRepayment',
    'Guarantor',
    'Collateral',
    'SystemConfig',
    'EntityType',
    'WorkflowTemplate',
    'ApprovalLevel',
    'WorkflowApproval',
    'ApprovalAction',
    'Notification',
]
