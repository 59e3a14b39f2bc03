"""
Business Configuration Provider
===============================

Typed access to the SystemConfig table with a time-based cache.

One BusinessConfig is built by the app config at start-up and handed to the
services that need it; tests build their own.
"""

from django.apps import apps
from django.db import DatabaseError
from decimal import Decimal
import logging
import threading
import time

from cooperative.exceptions import ConfigurationError
from cooperative.utils.money import MoneyCalculator


logger = logging.getLogger(__name__)


DEFAULT_TTL = 300


# key, value, value_type, category, description, min, max
SETTING_DEFINITIONS = [
    # Savings
    ('min_mandatory_savings', '5000.00', 'decimal', 'savings',
     'Minimum mandatory savings before a member may borrow', '0', None),
    ('max_mandatory_savings', '200000.00', 'decimal', 'savings',
     'Largest single mandatory contribution', '0', None),
    ('savings_interest_rate', '6.00', 'decimal', 'savings',
     'Annual interest paid on savings (percent)', '0', '100'),
    ('savings_interest_frequency', 'monthly', 'string', 'savings',
     'How often savings interest is credited: monthly, quarterly or annually', None, None),
    ('withdrawal_max_percentage', '80.00', 'decimal', 'savings',
     'Share of voluntary savings that may be withdrawn (percent)', '0', '100'),
    ('minimum_transaction_amount', '100.00', 'decimal', 'savings',
     'Smallest accepted savings transaction', '0', None),
    ('savings_window_months', '0', 'integer', 'savings',
     'Trailing months counted for mandatory savings (0 = whole history)', '0', '120'),

    # Loans
    ('loan_to_savings_multiplier', '3', 'decimal', 'loans',
     'Loan limit as a multiple of total savings', '0', '100'),
    ('max_loan_amount', '5000000.00', 'decimal', 'loans',
     'Absolute loan ceiling', '0', None),
    ('min_membership_months', '6', 'integer', 'loans',
     'Whole months of membership before a member may borrow', '0', '600'),
    ('max_active_loans', '3', 'integer', 'loans',
     'Open loans (pending to active) allowed per member', '1', '50'),
    ('default_interest_rate', '12.00', 'decimal', 'loans',
     'Annual interest rate for new loan types (percent)', '0', '100'),

    # Guarantors
    ('guarantor_threshold', '500000.00', 'decimal', 'guarantors',
     'Loan amount from which guarantors are required', '0', None),
    ('min_guarantors_required', '2', 'integer', 'guarantors',
     'Guarantors required at or above the threshold', '0', '20'),

    # Workflow
    ('auto_approval_limit', '100000.00', 'decimal', 'workflow',
     'Loans up to this amount are approved without a workflow (0 disables)', '0', None),
    ('approval_timeout_days', '7', 'integer', 'workflow',
     'Default days before a pending approval level times out', '1', '365'),

    # Penalties
    ('loan_penalty_rate', '2.00', 'decimal', 'penalties',
     'Monthly penalty on an overdue installment (percent of the payment)', '0', '100'),
    ('grace_period_days', '7', 'integer', 'penalties',
     'Days after the due date before penalties accrue', '0', '365'),
]


def _default_value(raw, value_type):
    if value_type == 'integer':
        return int(raw)
    if value_type == 'decimal':
        return Decimal(raw)
    return raw


DEFAULTS = {
    key: _default_value(raw, value_type)
    for key, raw, value_type, *_ in SETTING_DEFINITIONS
}


def load_system_config():
    """Read every SystemConfig row into {key: typed value}"""
    SystemConfig = apps.get_model('cooperative', 'SystemConfig')
    values = {}
    for row in SystemConfig.objects.all():
        try:
            values[row.key] = row.typed_value
        except (ValueError, ArithmeticError):
            logger.warning(f"Ignoring unreadable configuration value {row.key}={row.value!r}")
    return values


class BusinessConfig:
    """
    Cached business configuration

    Lookups fall back to DEFAULTS for keys that have no row. A failed
    load keeps whatever was cached before (or the defaults) and sets
    `last_load_failed`; the next attempt happens after `ttl` seconds or on
    `reload()`.
    """

    def __init__(self, ttl=DEFAULT_TTL, loader=None, clock=time.monotonic):
        self.ttl = ttl
        self._loader = loader or load_system_config
        self._clock = clock
        self._values = None
        self._loaded_at = None
        self._lock = threading.Lock()
        self.last_load_failed = False

    # =========================================================================
    # CACHE
    # =========================================================================

    def _is_stale(self):
        if self._loaded_at is None:
            return True
        return self._clock() - self._loaded_at >= self.ttl

    def _load(self):
        try:
            values = self._loader()
        except DatabaseError:
            logger.exception("Could not load business configuration; using cached values")
            self.last_load_failed = True
        else:
            self._values = values
            self.last_load_failed = False
            logger.info(f"Loaded {len(values)} business configuration values")
        self._loaded_at = self._clock()

    def _snapshot(self):
        with self._lock:
            if self._is_stale():
                self._load()
            return self._values or {}

    def reload(self):
        """Reload from storage now"""
        with self._lock:
            self._load()

    def clear(self):
        """Drop the cache; the next lookup reloads"""
        with self._lock:
            self._values = None
            self._loaded_at = None

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get(self, key, default=None):
        values = self._snapshot()
        if key in values:
            return values[key]
        if key in DEFAULTS:
            return DEFAULTS[key]
        return default

    def as_dict(self):
        """Effective configuration: defaults overlaid with stored values"""
        return {**DEFAULTS, **self._snapshot()}

    def set(self, key, value, user=None):
        """
        Validate and persist a setting, then reload

        Raises:
            ConfigurationError: unknown or locked key, invalid value
        """
        SystemConfig = apps.get_model('cooperative', 'SystemConfig')

        try:
            row = SystemConfig.objects.get(pk=key)
        except SystemConfig.DoesNotExist:
            raise ConfigurationError(f"Unknown configuration key: {key}")

        if not row.is_editable:
            raise ConfigurationError(f"Configuration key {key} is not editable")

        try:
            row.value = row.serialize(value)
        except ValueError as exc:
            raise ConfigurationError(f"{key}: {exc}") from exc

        row.updated_by = user
        row.save()
        logger.info(f"Configuration {key} set to {row.value} by {user}")
        self.reload()
        return row.typed_value

    def _decimal(self, key):
        return MoneyCalculator.to_decimal(self.get(key))

    def _int(self, key):
        return int(self.get(key))

    # =========================================================================
    # TYPED ACCESSORS
    # =========================================================================

    @property
    def min_mandatory_savings(self):
        return self._decimal('min_mandatory_savings')

    @property
    def max_mandatory_savings(self):
        return self._decimal('max_mandatory_savings')

    @property
    def savings_interest_rate(self):
        return self._decimal('savings_interest_rate')

    @property
    def savings_interest_frequency(self):
        return str(self.get('savings_interest_frequency')).strip().lower()

    @property
    def withdrawal_max_percentage(self):
        return self._decimal('withdrawal_max_percentage')

    @property
    def minimum_transaction_amount(self):
        return self._decimal('minimum_transaction_amount')

    @property
    def savings_window_months(self):
        return self._int('savings_window_months')

    @property
    def loan_to_savings_multiplier(self):
        return self._decimal('loan_to_savings_multiplier')

    @property
    def max_loan_amount(self):
        return self._decimal('max_loan_amount')

    @property
    def min_membership_months(self):
        return self._int('min_membership_months')

    @property
    def max_active_loans(self):
        return self._int('max_active_loans')

    @property
    def default_interest_rate(self):
        return self._decimal('default_interest_rate')

    @property
    def guarantor_threshold(self):
        return self._decimal('guarantor_threshold')

    @property
    def min_guarantors_required(self):
        return self._int('min_guarantors_required')

    @property
    def auto_approval_limit(self):
        return self._decimal('auto_approval_limit')

    @property
    def approval_timeout_days(self):
        return self._int('approval_timeout_days')

    @property
    def loan_penalty_rate(self):
        return self._decimal('loan_penalty_rate')

    @property
    def grace_period_days(self):
        return self._int('grace_period_days')


def get_business_config():
    """The instance built by the cooperative app at start-up"""
    return apps.get_app_config('cooperative').business_config
