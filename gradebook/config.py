"""
Configuration settings for the gradebook app.

These values can be overridden in Django settings by prefixing with GRADEBOOK_.
For example, to change MAX_BATCH_SIZE:
    GRADEBOOK_MAX_BATCH_SIZE = 1000

All configuration values are lazily loaded to avoid Django setup issues.
"""
from decimal import Decimal


def _get_setting(name, default):
    """Get a gradebook setting from Django settings or use default."""
    from django.conf import settings
    return getattr(settings, f'GRADEBOOK_{name}', default)


# Define defaults as constants for direct use when Django settings are not needed
_DEFAULTS = {
    # Category caps on the season summary
    'EXERCISES_CAP': Decimal('10'),
    'MONTHLY_EXAM_CAP': Decimal('20'),
    'ATTENDANCE_CAP': Decimal('5'),
    'BEHAVIOUR_CAP': Decimal('5'),
    'SEASON_EXAM_CAP': Decimal('60'),
    'TOTAL_CAP': Decimal('100'),

    # Weight used when an exercise has no positive degree
    'DEFAULT_EXERCISE_WEIGHT': Decimal('10'),

    # Bulk operation settings
    'MAX_BATCH_SIZE': 500,

    # Listing limits
    'LEDGER_LIST_LIMIT': 100,
    'LEDGER_LIST_MAX_LIMIT': 1000,

    # Celery task settings
    'TASK_MAX_RETRIES': 3,
    'TASK_RETRY_DELAY': 60,  # seconds
    'TASK_SOFT_TIME_LIMIT': 600,
    'TASK_TIME_LIMIT': 900,
}


class _ConfigProxy:
    """
    Lazy configuration proxy that loads settings only when accessed.
    This avoids Django setup issues during module import.
    """

    def __getattr__(self, name):
        if name in _DEFAULTS:
            return _get_setting(name, _DEFAULTS[name])
        raise AttributeError(f"Unknown config setting: {name}")


# Module-level proxy object for attribute access
_config = _ConfigProxy()


def __getattr__(name):
    """Enable module-level attribute access via the config proxy."""
    return getattr(_config, name)
