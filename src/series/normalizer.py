"""
Series normalization.

Turns the year/value payloads of the upstream statistics APIs into one
canonical shape: a list of :class:`Observation` sorted ascending by year,
one entry per year.  The latest usable point is derived from that list
rather than stored next to it.

Accepted record shapes:

- mappings with a year-like key (``year``, ``date``, ``period``,
  ``TIME_PERIOD``, ``@TIME_PERIOD``, ``time``) and a value-like key
  (``value``, ``OBS_VALUE``, ``@OBS_VALUE``, ``val``)
- ``[period, value]`` pairs, as EIA sends them
- :class:`Observation` instances, so normalizing twice is a no-op

A mapping passed as the whole payload is read as ``{year: value}``.
"""

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .coerce import coerce_finite_number, coerce_year

logger = logging.getLogger("series.normalizer")

YEAR_KEYS = ("year", "Year", "date", "period", "TIME_PERIOD", "@TIME_PERIOD", "time")
VALUE_KEYS = ("value", "Value", "OBS_VALUE", "@OBS_VALUE", "val")


@dataclass(frozen=True)
class Observation:
    """One yearly data point.  ``value`` is None when the source has no data."""

    year: int
    value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"year": self.year, "value": self.value}


Series = List[Observation]


def _first_present(record: Mapping, keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in record:
            return record[key]
    return None


def _split_record(record: Any) -> Tuple[Any, Any]:
    """Pull the raw (year, value) pair out of one upstream record."""
    if isinstance(record, Observation):
        return record.year, record.value
    if isinstance(record, Mapping):
        return _first_present(record, YEAR_KEYS), _first_present(record, VALUE_KEYS)
    if isinstance(record, (list, tuple)) and len(record) >= 2:
        return record[0], record[1]
    return None, None


def normalize(raw: Any) -> Series:
    """Build a canonical Series from an arbitrary upstream payload.

    Records whose year cannot be read are dropped.  Values that are missing,
    empty or non-numeric become None; the row is kept so that callers can
    tell "no value that year" from "no such year".  When a year appears more
    than once the last record in upstream order wins.

    Never raises: anything that is not a collection of records yields ``[]``.
    """
    if raw is None or isinstance(raw, (str, bytes)):
        return []
    if isinstance(raw, Mapping):
        raw = raw.items()
    if not isinstance(raw, Iterable):
        return []

    by_year: Dict[int, Observation] = {}
    dropped = 0
    for record in raw:
        year_raw, value_raw = _split_record(record)
        year = coerce_year(year_raw)
        if year is None:
            dropped += 1
            continue
        by_year[year] = Observation(year, coerce_finite_number(value_raw))

    if dropped:
        logger.debug("Dropped %d record(s) without a usable year", dropped)

    return [by_year[year] for year in sorted(by_year)]


def latest_of(series: Series) -> Optional[Observation]:
    """Return the most recent observation that has a finite value.

    None means "no data", which callers must keep distinct from zero.
    """
    for obs in reversed(series):
        if obs.value is not None and math.isfinite(obs.value):
            return obs
    return None


def series_to_frame(series: Series) -> pd.DataFrame:
    """Series as a ``year``/``value`` DataFrame (NaN where value is None)."""
    df = pd.DataFrame(
        [obs.to_dict() for obs in series], columns=["year", "value"]
    )
    df["value"] = pd.to_numeric(df["value"], errors="coerce")
    return df
