"""Time-series normalization."""

from .coerce import coerce_finite_number, coerce_int, coerce_year
from .normalizer import Observation, Series, latest_of, normalize, series_to_frame

__all__ = [
    "Observation",
    "Series",
    "normalize",
    "latest_of",
    "series_to_frame",
    "coerce_finite_number",
    "coerce_int",
    "coerce_year",
]
