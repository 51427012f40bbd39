"""
Numeric coercion for loosely-typed upstream JSON.

Statistics APIs send numbers as numbers, as strings (``"100"``, ``" 3.5 "``),
as placeholders (``""``, ``"."``, ``"n/a"``) or not at all.  Every helper
here returns ``None`` instead of raising, so callers can filter rows without
wrapping each field access in ``try``.
"""

import math
import numbers
import re
from typing import Any, Optional

MIN_YEAR = 1000
MAX_YEAR = 9999

# yyyy, yyyymm, or yyyy followed by a separator (-, Q, M, ...)
_PERIOD = re.compile(r"^\s*(\d{4})(?:\d{2})?(?:$|\D)")


def coerce_finite_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or None.

    Accepts real numbers and numeric strings (surrounding whitespace is
    ignored).  Booleans, empty strings, non-numeric strings, NaN and
    infinities all map to None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        try:
            number = float(value)
        except (OverflowError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_int(value: Any) -> Optional[int]:
    """Return ``value`` as an int when it is a whole finite number, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Integral):
        return int(value)
    number = coerce_finite_number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def coerce_year(value: Any) -> Optional[int]:
    """Return a 4-digit calendar year, or None.

    Plain integers and integer strings are taken as-is.  Period values such
    as ``"2024-Q1"``, ``"2019-12-31"``, ``"202001"`` or ``202001`` fall back
    to their leading four digits.  Other digit runs (``"12345"``) are not
    periods and give None.
    """
    year = coerce_int(value)
    if year is not None and MIN_YEAR <= year <= MAX_YEAR:
        return year
    if year is not None:
        # only yyyymm-sized numbers can be periods
        if not 0 < year < 1_000_000:
            return None
        text = str(year)
    elif isinstance(value, str):
        text = value
    else:
        return None
    match = _PERIOD.match(text)
    if match and int(match.group(1)) >= MIN_YEAR:
        return int(match.group(1))
    return None
