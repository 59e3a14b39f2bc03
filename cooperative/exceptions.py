"""
Cooperative Exceptions
======================

Domain errors raised by the services. Input problems use Django's
ValidationError and authorisation uses PermissionDenied.
"""


class CooperativeError(Exception):
    """Base class for cooperative domain errors"""


class EligibilityError(CooperativeError):
    """The member fails one or more eligibility rules"""

    def __init__(self, violations):
        self.violations = list(violations)
        super().__init__("; ".join(v.message for v in self.violations) or "Not eligible")

    @property
    def messages(self):
        return [v.message for v in self.violations]


class DependencyUnavailable(CooperativeError):
    """Storage or another collaborator failed and no safe fallback exists"""


class WorkflowInitiationError(CooperativeError):
    """
    No approval pipeline could be started

    `loan` is set when the application itself was saved, so the caller can
    retry routing instead of resubmitting.
    """

    def __init__(self, message, loan=None):
        self.loan = loan
        super().__init__(message)


class WorkflowStateError(CooperativeError):
    """Action attempted on a workflow that no longer accepts it"""


class SignoffStateError(CooperativeError):
    """Guarantor response on a guarantee that is no longer awaiting sign-off"""


class ConfigurationError(CooperativeError):
    """Invalid business configuration write"""
