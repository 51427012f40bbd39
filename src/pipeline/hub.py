"""
Stats hub.

Registers one client per data source, fetches series through the shared
coalescing cache, and assembles the per-country bundles the dashboard
pages show (series + latest point + metric metadata).
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ..cache import CoalescingCache, get_default_cache
from ..config import Settings
from ..extractors import (
    BaseClient,
    EiaClient,
    FaostatClient,
    ImfClient,
    OecdClient,
    WorldBankClient,
)
from ..series import Observation, Series, latest_of
from .metrics import (
    METRICS,
    EiaSpec,
    FaostatSpec,
    ImfSpec,
    OecdSpec,
    SeriesSpec,
    WorldBankSpec,
    is_metric_key,
    spec_cache_key,
)

logger = logging.getLogger("pipeline.hub")

_ISO3 = re.compile(r"^[A-Za-z]{3}$")


def validate_iso3(value: Any) -> str:
    """Return ``value`` upper-cased, or raise ValueError if it is not ISO3."""
    if not isinstance(value, str) or not _ISO3.match(value):
        raise ValueError("iso3 must be a 3-letter ISO3 code")
    return value.upper()


@dataclass
class StatSeries:
    """One metric for one country, ready for a stat card or chart."""

    meta: Dict[str, Any]
    series: Series
    latest: Optional[Observation]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meta": self.meta,
            "series": [obs.to_dict() for obs in self.series],
            "latest": self.latest.to_dict() if self.latest else None,
        }


class StatsHub:
    """Fetch and bundle indicator series across sources.

    Usage::

        hub = StatsHub.from_settings()
        bundle = hub.get_stats_for_geo(["POPULATION", "GDP_CURRENT_USD"], "pak")
        for key, stat in bundle.items():
            print(key, stat.latest)
    """

    def __init__(
        self,
        cache: Optional[CoalescingCache] = None,
        ttl: Optional[float] = None,
        max_workers: int = 8,
    ):
        self._cache = cache if cache is not None else get_default_cache()
        self._ttl = ttl if ttl is not None else Settings().cache_ttl
        self._max_workers = max_workers
        self._clients: Dict[str, BaseClient] = {}

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "StatsHub":
        """Hub with every source registered; EIA only when a key is configured."""
        settings = settings or Settings()
        hub = cls(ttl=settings.cache_ttl)
        client_kwargs = {"timeout": settings.http_timeout, "fetch_timeout": settings.fetch_timeout}
        hub.register(WorldBankSpec.source, WorldBankClient(**client_kwargs))
        hub.register(FaostatSpec.source, FaostatClient(**client_kwargs))
        hub.register(ImfSpec.source, ImfClient(**client_kwargs))
        hub.register(OecdSpec.source, OecdClient(**client_kwargs))
        if settings.has_eia():
            hub.register(
                EiaSpec.source, EiaClient(api_key=settings.eia_api_key, **client_kwargs)
            )
        return hub

    # --- Registration ---------------------------------------------------------

    def register(self, source: str, client: BaseClient) -> None:
        """Register the client that serves specs of ``source`` (e.g. 'WB')."""
        self._clients[source] = client

    def list_sources(self) -> List[str]:
        """Return the names of all registered sources."""
        return list(self._clients.keys())

    # --- Series ---------------------------------------------------------------

    def fetch_series(self, spec: SeriesSpec) -> Series:
        """Normalized series for ``spec``, cached under the spec's key.

        Raises:
            KeyError: If no client is registered for the spec's source.
            UpstreamError: If the upstream fetch fails or times out.
        """
        if spec.source not in self._clients:
            raise KeyError(f"Source '{spec.source}' is not registered")
        client = self._clients[spec.source]
        return self._cache.get_or_fetch(
            spec_cache_key(spec), self._ttl, lambda: self._dispatch(client, spec)
        )

    @staticmethod
    def _dispatch(client: Any, spec: SeriesSpec) -> Series:
        if isinstance(spec, WorldBankSpec):
            return client.fetch_series(spec.code, spec.geo)
        if isinstance(spec, FaostatSpec):
            return client.fetch_series(spec.dataset_path, spec.params)
        if isinstance(spec, EiaSpec):
            return client.fetch_series(spec.series_id)
        if isinstance(spec, ImfSpec):
            return client.fetch_series(spec.database, spec.indicator, spec.country, spec.freq)
        if isinstance(spec, OecdSpec):
            return client.fetch_series(spec.dataset, spec.filter_path)
        raise TypeError(f"Unsupported series spec: {spec!r}")

    def _map(self, fn: Callable[[Any], Any], items: Sequence[Any]) -> List[Any]:
        """Run ``fn`` over ``items`` concurrently; the first failure propagates."""
        if len(items) <= 1:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            return list(pool.map(fn, items))

    # --- Country bundles ------------------------------------------------------

    def get_stats_for_geo(
        self,
        metric_keys: Iterable[Any],
        iso3: Any,
        include_series: bool = True,
    ) -> Dict[str, StatSeries]:
        """Series, latest point and metadata for several metrics of one country.

        Unknown metric keys are ignored.

        Raises:
            ValueError: If ``iso3`` is invalid or no known metric key is given.
        """
        iso3 = validate_iso3(iso3)
        keys = list(dict.fromkeys(k for k in metric_keys if is_metric_key(k)))
        if not keys:
            raise ValueError("No valid metric keys provided")

        all_series = self._map(
            lambda key: self.fetch_series(METRICS[key].to_spec(iso3)), keys
        )

        bundle: Dict[str, StatSeries] = {}
        for key, series in zip(keys, all_series):
            bundle[key] = StatSeries(
                meta=METRICS[key].meta(key),
                series=series if include_series else [],
                latest=latest_of(series),
            )
        logger.debug("Built %d stat(s) for %s", len(bundle), iso3)
        return bundle

    def get_latest_for_geo(
        self, metric_keys: Iterable[Any], iso3: Any
    ) -> Dict[str, Optional[float]]:
        """Latest value per metric (None where the country has no data)."""
        bundle = self.get_stats_for_geo(metric_keys, iso3, include_series=False)
        return {
            key: stat.latest.value if stat.latest else None
            for key, stat in bundle.items()
        }

    def get_latest_for_many(
        self, metric_key: str, iso3_list: Iterable[Any]
    ) -> List[Dict[str, Any]]:
        """One metric across many countries, e.g. for a hotspot map.

        Returns:
            ``[{"iso3": ..., "year": ..., "latest": ...}]`` in input order;
            ``latest``/``year`` are None for countries without data.
        """
        if not is_metric_key(metric_key):
            raise KeyError(f"Unknown metric '{metric_key}'")
        metric = METRICS[metric_key]
        codes = [validate_iso3(iso3) for iso3 in iso3_list]

        latest_points = self._map(
            lambda iso3: latest_of(self.fetch_series(metric.to_spec(iso3))), codes
        )
        return [
            {
                "iso3": iso3,
                "year": point.year if point else None,
                "latest": point.value if point else None,
            }
            for iso3, point in zip(codes, latest_points)
        ]

    # --- Telemetry ------------------------------------------------------------

    def get_telemetry(self) -> Dict[str, Any]:
        """Aggregate telemetry across all registered clients and the cache."""
        per_source = {}
        totals = {"api_calls": 0, "cache_hits": 0, "errors": 0}

        for name, client in self._clients.items():
            t = client.get_telemetry()
            per_source[name] = t
            totals["api_calls"] += t["api_calls"]
            totals["cache_hits"] += t["cache_hits"]
            totals["errors"] += t["errors"]

        return {
            "totals": totals,
            "per_source": per_source,
            "cache": self._cache.get_telemetry(),
        }

    def close(self) -> None:
        """Close every registered client."""
        for client in self._clients.values():
            client.close()
