"""Second/millisecond conversions and interval checks.

Intervals are half-open ``[start, end)``: two intervals that only touch at a
boundary do not overlap.
"""

import math
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP


def _decimal(value):
    if isinstance(value, bool) or value is None:
        raise ValueError(f"not a number: {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value!r}")
    # str() keeps the shortest repr, so 1.0005 stays 1.0005 and not 1.000499...
    return Decimal(str(number))


def seconds_to_ms(seconds):
    """round(seconds * 1000), halves rounded away from zero."""
    return int((_decimal(seconds) * 1000).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def score_to_fixed(score):
    """floor(score * 1000)"""
    return int((_decimal(score) * 1000).to_integral_value(rounding=ROUND_FLOOR))


def ms_to_seconds(ms):
    return ms / 1000


def overlaps(start, end, other_start, other_end):
    return start < other_end and other_start < end


def find_overlap(start, end, intervals):
    """First ``(start, end, ...)`` tuple from ``intervals`` overlapping ``[start, end)``."""
    for item in intervals:
        if overlaps(start, end, item[0], item[1]):
            return item
    return None
