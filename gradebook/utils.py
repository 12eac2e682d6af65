"""
Score arithmetic shared by the ledger and summary stores.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from . import config

TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0')


def to_decimal(value):
    """
    Coerce a submitted score into a Decimal.

    Raises ValueError for None, booleans, blanks and anything that is not a
    finite number.
    """
    if value is None or isinstance(value, bool):
        raise ValueError('A numeric value is required')
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f'{value!r} is not a number')
    if not result.is_finite():
        raise ValueError(f'{value!r} is not a number')
    return result


def clamp(value, cap):
    """Clamp a non-negative value into [0, cap], rounded to two places."""
    value = min(Decimal(value), Decimal(cap))
    value = max(value, ZERO)
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def monthly_contribution(monthly_exams):
    """Mean of two monthly exams, the single value of one, 0 when none."""
    values = [Decimal(v) for v in monthly_exams if v is not None]
    if not values:
        return ZERO
    return sum(values, ZERO) / len(values)


def compute_total(season_exam=0, exercises=0, attendance=0, behaviour=0, monthly_exams=()):
    """
    Season total out of 100.

    The monthly contribution is capped at the monthly exam cap before it is
    added, and the grand total is capped at TOTAL_CAP.
    """
    monthly = min(monthly_contribution(monthly_exams), Decimal(config.MONTHLY_EXAM_CAP))
    total = (
        Decimal(season_exam or 0)
        + Decimal(exercises or 0)
        + Decimal(attendance or 0)
        + Decimal(behaviour or 0)
        + monthly
    )
    return clamp(total, config.TOTAL_CAP)
