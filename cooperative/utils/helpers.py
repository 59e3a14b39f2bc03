from django.utils import timezone
from django.utils.crypto import get_random_string
from dateutil.relativedelta import relativedelta


REFERENCE_ALPHABET = '0123456789ABCDEFGHJKLMNPQRSTUVWXYZ'


# =============================================================================
# DATE HELPERS
# =============================================================================

def local_today():
    """Today's date in the configured time zone"""
    return timezone.localdate()


def months_between(start, end):
    """
    Whole calendar months elapsed from `start` to `end`

    A month only counts once the day of month has been reached:
    2024-01-31 -> 2024-02-29 is 0 months, 2024-01-15 -> 2024-03-15 is 2.
    Returns 0 when `end` is before `start`.
    """
    if start is None or end is None or end < start:
        return 0
    months = (end.year - start.year) * 12 + end.month - start.month
    if end.day < start.day:
        months -= 1
    return months


def add_months(value, months):
    """Shift a date by calendar months, clamping to month end"""
    return value + relativedelta(months=months)


def month_window_start(today, months):
    """First day covered by a trailing window of `months` months ending today"""
    if not months:
        return None
    return today - relativedelta(months=months)


# =============================================================================
# REFERENCE NUMBERS
# =============================================================================

def generate_reference(prefix, model, field='reference', length=6):
    """
    Generate a unique human readable reference: PREFIX-YYYYMMDD-XXXXXX

    Args:
        prefix: Reference prefix (e.g. 'LN')
        model: Model class used for the uniqueness check
        field: Field holding the reference
        length: Length of the random suffix
    """
    datestamp = timezone.now().strftime('%Y%m%d')
    reference = f"{prefix}-{datestamp}-{get_random_string(length, REFERENCE_ALPHABET)}"
    while model._default_manager.filter(**{field: reference}).exists():
        reference = f"{prefix}-{datestamp}-{get_random_string(length, REFERENCE_ALPHABET)}"
    return reference
