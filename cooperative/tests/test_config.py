from decimal import Decimal

import pytest
from django.db import DatabaseError

from cooperative.exceptions import ConfigurationError
from cooperative.models import SystemConfig
from cooperative.services.config import DEFAULTS, SETTING_DEFINITIONS, BusinessConfig, get_business_config


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CountingLoader:
    def __init__(self, values=None):
        self.values = dict(values or {})
        self.calls = 0
        self.fail = False

    def __call__(self):
        self.calls += 1
        if self.fail:
            raise DatabaseError("database is locked")
        return dict(self.values)


def stored_setting(key):
    for definition in SETTING_DEFINITIONS:
        if definition[0] == key:
            key, value, value_type, category, description, minimum, maximum = definition
            return SystemConfig.objects.create(
                key=key,
                value=value,
                value_type=value_type,
                category=category,
                description=description,
                min_value=Decimal(minimum) if minimum is not None else None,
                max_value=Decimal(maximum) if maximum is not None else None,
            )
    raise KeyError(key)


class TestBusinessConfigCache:

    def test_defaults_fill_missing_keys(self):
        config = BusinessConfig(loader=CountingLoader())
        assert config.max_active_loans == 3
        assert config.loan_to_savings_multiplier == Decimal('3')
        assert config.auto_approval_limit == Decimal('100000.00')
        assert config.get('no_such_key', 'fallback') == 'fallback'

    def test_every_setting_has_a_default(self):
        assert set(DEFAULTS) == {definition[0] for definition in SETTING_DEFINITIONS}

    def test_stored_values_override_defaults(self):
        config = BusinessConfig(loader=CountingLoader({'max_active_loans': 5}))
        assert config.max_active_loans == 5
        assert config.as_dict()['max_active_loans'] == 5
        assert config.as_dict()['min_membership_months'] == 6

    def test_values_are_cached_until_ttl(self):
        loader = CountingLoader({'max_active_loans': 5})
        clock = Clock()
        config = BusinessConfig(ttl=60, loader=loader, clock=clock)

        assert config.max_active_loans == 5
        loader.values['max_active_loans'] = 7
        clock.now += 59
        assert config.max_active_loans == 5
        assert loader.calls == 1

        clock.now += 1
        assert config.max_active_loans == 7
        assert loader.calls == 2

    def test_reload_refreshes_immediately(self):
        loader = CountingLoader({'grace_period_days': 7})
        config = BusinessConfig(loader=loader, clock=Clock())
        assert config.grace_period_days == 7

        loader.values['grace_period_days'] = 10
        config.reload()
        assert config.grace_period_days == 10

    def test_clear_forces_next_lookup_to_load(self):
        loader = CountingLoader()
        config = BusinessConfig(loader=loader, clock=Clock())
        config.as_dict()
        config.clear()
        config.as_dict()
        assert loader.calls == 2

    def test_failed_load_keeps_last_good_values(self):
        loader = CountingLoader({'max_active_loans': 5})
        clock = Clock()
        config = BusinessConfig(ttl=60, loader=loader, clock=clock)
        assert config.max_active_loans == 5

        loader.fail = True
        clock.now += 60
        assert config.max_active_loans == 5
        assert config.last_load_failed

        loader.fail = False
        loader.values['max_active_loans'] = 4
        clock.now += 60
        assert config.max_active_loans == 4
        assert not config.last_load_failed

    def test_failed_first_load_uses_defaults(self):
        loader = CountingLoader()
        loader.fail = True
        config = BusinessConfig(loader=loader, clock=Clock())
        assert config.min_membership_months == DEFAULTS['min_membership_months']
        assert config.last_load_failed


@pytest.mark.django_db
class TestStoredConfiguration:

    def test_typed_values_are_loaded(self):
        stored_setting('max_active_loans')
        stored_setting('guarantor_threshold')
        config = BusinessConfig()
        assert config.get('max_active_loans') == 3
        assert config.get('guarantor_threshold') == Decimal('500000.00')

    def test_set_validates_and_persists(self, admin_user):
        stored_setting('max_active_loans')
        config = BusinessConfig()

        assert config.set('max_active_loans', 5, user=admin_user) == 5
        row = SystemConfig.objects.get(pk='max_active_loans')
        assert row.value == '5'
        assert row.updated_by == admin_user
        assert config.max_active_loans == 5

    def test_set_rejects_out_of_range(self):
        stored_setting('max_active_loans')
        with pytest.raises(ConfigurationError):
            BusinessConfig().set('max_active_loans', 0)
        with pytest.raises(ConfigurationError):
            BusinessConfig().set('max_active_loans', '2.5')
        assert SystemConfig.objects.get(pk='max_active_loans').value == '3'

    def test_set_rejects_unknown_and_locked_keys(self):
        with pytest.raises(ConfigurationError):
            BusinessConfig().set('not_a_setting', 1)

        row = stored_setting('grace_period_days')
        row.is_editable = False
        row.save()
        with pytest.raises(ConfigurationError):
            BusinessConfig().set('grace_period_days', 3)

    def test_unreadable_row_falls_back_to_default(self):
        SystemConfig.objects.create(key='max_active_loans', value='many', value_type='integer')
        assert BusinessConfig().max_active_loans == DEFAULTS['max_active_loans']

    def test_saving_a_row_reloads_the_shared_config(self, django_capture_on_commit_callbacks):
        shared = get_business_config()
        assert shared.max_active_loans == 3

        with django_capture_on_commit_callbacks(execute=True):
            SystemConfig.objects.create(key='max_active_loans', value='6', value_type='integer')

        assert shared.max_active_loans == 6


class TestSystemConfigValues:

    def test_parse_by_type(self):
        assert SystemConfig.parse('12', 'integer') == 12
        assert SystemConfig.parse('12.50', 'Decimal') == Decimal('12.50')
        assert SystemConfig.parse('yes', 'boolean') is True
        assert SystemConfig.parse('{"a": 1}', 'json') == {'a': 1}
        assert SystemConfig.parse('monthly', 'string') == 'monthly'

    def test_serialize_decimal_rounds_to_cents(self):
        row = SystemConfig(key='rate', value='0', value_type='decimal', min_value=Decimal('0'))
        assert row.serialize('2.5') == '2.50'
        with pytest.raises(ValueError):
            row.serialize('-1')
        with pytest.raises(ValueError):
            row.serialize('abc')
