"""Metric registry and stats hub."""

from .hub import StatSeries, StatsHub, validate_iso3
from .metrics import (
    METRIC_KEYS,
    METRICS,
    EiaSpec,
    FaostatSpec,
    ImfSpec,
    Metric,
    OecdSpec,
    SeriesSpec,
    WorldBankSpec,
    spec_cache_key,
)

__all__ = [
    "METRICS",
    "METRIC_KEYS",
    "EiaSpec",
    "FaostatSpec",
    "ImfSpec",
    "Metric",
    "OecdSpec",
    "SeriesSpec",
    "StatSeries",
    "StatsHub",
    "WorldBankSpec",
    "spec_cache_key",
    "validate_iso3",
]
