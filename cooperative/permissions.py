"""
Permission System: Role-based Access Control
==============================================

Roles (lowest → highest):   member  →  loan_officer  →  manager  →  committee  →  president  →  admin

Every view that mutates state should:
    checker = PermissionChecker(request.user)
    if not checker.<method>(...):  raise PermissionDenied
"""

from functools import wraps
from django.core.exceptions import PermissionDenied


# =============================================================================
# CONSTANTS
# =============================================================================

class Roles:
    ADMIN        = 'admin'
    PRESIDENT    = 'president'
    COMMITTEE    = 'committee'
    MANAGER      = 'manager'
    LOAN_OFFICER = 'loan_officer'
    MEMBER       = 'member'


STAFF_ROLES = [Roles.ADMIN, Roles.PRESIDENT, Roles.COMMITTEE, Roles.MANAGER, Roles.LOAN_OFFICER]


class Permissions:
    """Single source of truth.  Views must never hard-code role lists."""

    # ── visibility ───────────────────────────────────────────────────
    CAN_VIEW_ALL_LOANS      = STAFF_ROLES
    CAN_VIEW_WORKFLOW_STATS = [Roles.ADMIN, Roles.PRESIDENT, Roles.MANAGER]

    # ── approvals ────────────────────────────────────────────────────
    CAN_ACT_ON_WORKFLOWS = STAFF_ROLES

    # ── management ───────────────────────────────────────────────────
    CAN_MANAGE_MEMBERS       = [Roles.ADMIN]
    CAN_MANAGE_CONFIGURATION = [Roles.ADMIN]
    CAN_RETRY_WORKFLOWS      = [Roles.ADMIN, Roles.MANAGER, Roles.LOAN_OFFICER]

    # ── reporting ────────────────────────────────────────────────────
    CAN_EXPORT_LOANS = [Roles.ADMIN, Roles.PRESIDENT, Roles.MANAGER, Roles.LOAN_OFFICER]


# =============================================================================
# PERMISSION CHECKER
# =============================================================================

class PermissionChecker:

    def __init__(self, user):
        self.user = user
        authenticated = user is not None and user.is_authenticated
        if authenticated and user.is_superuser:
            self.role = Roles.ADMIN
        else:
            self.role = getattr(user, 'role', None) if authenticated else None

    # ── role helpers ─────────────────────────────────────────────────
    def is_admin(self):  return self.role == Roles.ADMIN
    def is_member(self): return self.role == Roles.MEMBER
    def is_staff(self):  return self.role in STAFF_ROLES

    def has_role(self, role):
        """Admins hold every approval role"""
        if self.role is None:
            return False
        return self.is_admin() or self.role == role

    # =========================================================================
    # VIEW / READ
    # =========================================================================

    def can_view_all_loans(self):
        return self.role in Permissions.CAN_VIEW_ALL_LOANS

    def can_view_loan(self, loan):
        if self.can_view_all_loans():
            return True
        member = getattr(self.user, 'member', None) if self.role else None
        return member is not None and loan.member_id == member.pk

    def can_view_workflow_stats(self):
        return self.role in Permissions.CAN_VIEW_WORKFLOW_STATS

    # =========================================================================
    # WORKFLOW
    # =========================================================================

    def can_act_on_workflows(self):
        return self.role in Permissions.CAN_ACT_ON_WORKFLOWS

    def can_act_on_level(self, level):
        """Whether the user may decide `level` (an ApprovalLevel)"""
        if level is None or not self.can_act_on_workflows():
            return False
        return self.has_role(level.required_role)

    def can_retry_workflows(self):
        return self.role in Permissions.CAN_RETRY_WORKFLOWS

    # =========================================================================
    # MANAGEMENT
    # =========================================================================

    def can_manage_members(self):       return self.role in Permissions.CAN_MANAGE_MEMBERS
    def can_manage_configuration(self): return self.role in Permissions.CAN_MANAGE_CONFIGURATION
    def can_export_loans(self):         return self.role in Permissions.CAN_EXPORT_LOANS

    # =========================================================================
    # QUERYSET FILTERS
    # =========================================================================

    def filter_loans(self, queryset):
        if self.can_view_all_loans():
            return queryset
        member = getattr(self.user, 'member', None) if self.role else None
        if member is not None:
            return queryset.filter(member=member)
        return queryset.none()


# =============================================================================
# DECORATORS
# =============================================================================

def permission_required(permission_check):
    """Guard a view with a PermissionChecker method; expects login_required outside"""
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            checker = PermissionChecker(request.user)
            if not getattr(checker, permission_check)():
                raise PermissionDenied("You do not have permission to perform this action.")
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator
