"""
RPC backend client.

The dashboard database exposes its queries as stored procedures, called by
name over HTTP (``POST {RPC_URL}/rest/v1/rpc/{function}``) with a JSON
parameter object.  Every wrapper below caches its result under a key built
from the function name and all of its parameters, so identical concurrent
requests share one call.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import requests

from ..cache import make_key
from ..config import Settings
from ..errors import RpcError
from ..series import Observation, Series, coerce_finite_number, coerce_int, latest_of, normalize
from .base_client import BaseClient
from .payload import Payload, decode_payload

RANKING_LIMIT_DEFAULT = 250
RANKING_LIMIT_MIN = 10
RANKING_LIMIT_MAX = 500

WEO_VINTAGE_DEFAULT = "WEO_2025_10"
WEO_FIRST_YEAR = 1980
WEO_LAST_YEAR = 2030

FAO_DATASETS = ("production", "sua")
FAO_MODULE_KINDS = ("top-production", "top-import", "top-export")

# first entry is the fallback
ENERGY_METRICS = (
    "renewables_share_energy",
    "fossil_share_energy",
    "low_carbon_share_energy",
    "electricity_generation",
    "electricity_demand",
    "primary_energy_consumption",
    "energy_per_capita",
    "energy_per_gdp",
    "carbon_intensity_elec",
    "solar_share_elec",
    "wind_share_elec",
    "hydro_share_elec",
    "nuclear_share_elec",
    "coal_share_elec",
    "gas_share_elec",
    "oil_share_elec",
    "greenhouse_gas_emissions",
    "population",
    "gdp",
)


@dataclass(frozen=True)
class RankingRow:
    country_code: str
    country_name: str
    region: Optional[str]
    year: Optional[int]
    value: Optional[float]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RankingRow":
        return cls(
            country_code=str(row.get("country_code") or row.get("iso3") or ""),
            country_name=str(row.get("country_name") or row.get("country") or ""),
            region=row.get("region"),
            year=coerce_int(row.get("year")),
            value=coerce_finite_number(row.get("value")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SelectedRank:
    """Where one country sits in an indicator ranking."""

    rank: int
    total_in_scope: int
    year: Optional[int]
    value: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CoverageRow:
    """How many countries in a region report an indicator."""

    indicator_code: str
    region: Optional[str]
    countries_in_scope: int = 0
    countries_with_data: int = 0
    coverage_pct: float = 0.0
    missing_countries: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MapSafeIndicator:
    indicator_code: str
    indicator_name: str
    coverage_pct: float
    countries_with_data: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CountrySeries:
    """One WDI indicator for one country, finite points only."""

    iso3: str
    country: Optional[str]
    region: Optional[str]
    indicator_code: str
    indicator_label: Optional[str]
    unit: Optional[str]
    series: Series = field(default_factory=list)

    @property
    def latest(self) -> Optional[Observation]:
        return latest_of(self.series)

    def to_dict(self) -> Dict[str, Any]:
        latest = self.latest
        return {
            "iso3": self.iso3,
            "country": self.country,
            "region": self.region,
            "indicator": {
                "code": self.indicator_code,
                "label": self.indicator_label,
                "unit": self.unit,
            },
            "latest": latest.to_dict() if latest else None,
            "series": [o.to_dict() for o in self.series],
        }


@dataclass(frozen=True)
class EnergyCoverage:
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    points: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class EnergyRankPack:
    """Top ten for a metric and year, plus where one country sits."""

    top10: List[Dict[str, Any]] = field(default_factory=list)
    country_rank: Optional[int] = None
    total_countries: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FaoItem:
    item: str
    value: Optional[float]
    unit: Optional[str]


@dataclass(frozen=True)
class FaoModule:
    """A country's top traded or produced items."""

    iso3: str
    kind: str
    country: Optional[str] = None
    latest_year: Optional[int] = None
    items: List[FaoItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FaoProduct:
    dataset: str
    item_code: str
    item: str
    unit: Optional[str]
    value: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LandingStat:
    key: str
    label: str
    value: float = 0.0
    unit: Optional[str] = None


@dataclass(frozen=True)
class LandingSection:
    id: str
    title: str
    subtitle: Optional[str] = None
    stats: List[LandingStat] = field(default_factory=list)


@dataclass(frozen=True)
class Landing:
    """Headline stat cards for the landing page."""

    generated_at: Optional[str] = None
    sections: List[LandingSection] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _count(value: Any) -> int:
    return coerce_int(value) or 0


def _pct(value: Any) -> float:
    # numeric columns may come back as strings
    return coerce_finite_number(value) or 0.0


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _clamp(value: Any, default: int, low: int, high: int) -> int:
    number = coerce_int(value)
    if number is None:
        return default
    return max(low, min(number, high))


def _required_iso3(iso3: Optional[str]) -> str:
    iso3 = (iso3 or "").strip().upper()
    if not iso3:
        raise ValueError("iso3 is required")
    return iso3


def _fao_dataset(dataset: Optional[str]) -> str:
    return (dataset or "").strip().lower()


def clamp_ranking_limit(limit: Any) -> int:
    """Ranking size from a loosely-typed value, clamped to 10..500."""
    return _clamp(limit, RANKING_LIMIT_DEFAULT, RANKING_LIMIT_MIN, RANKING_LIMIT_MAX)


def energy_metric(metric: Optional[str]) -> str:
    """Known energy metric key, or the renewables share when unknown."""
    metric = (metric or "").strip()
    return metric if metric in ENERGY_METRICS else ENERGY_METRICS[0]


def _landing_from(payload: Any) -> Landing:
    if not isinstance(payload, dict):
        return Landing()
    sections = []
    for s in payload.get("sections") or []:
        if not isinstance(s, dict):
            continue
        stats = [
            LandingStat(
                key=str(st.get("key") or ""),
                label=str(st.get("label") or ""),
                value=coerce_finite_number(st.get("value")) or 0.0,
                unit=_text(st.get("unit")),
            )
            for st in s.get("stats") or []
            if isinstance(st, dict)
        ]
        sections.append(LandingSection(
            id=str(s.get("id") or ""),
            title=str(s.get("title") or ""),
            subtitle=_text(s.get("subtitle")),
            stats=stats,
        ))
    return Landing(generated_at=_text(payload.get("generated_at")), sections=sections)


class RpcClient(BaseClient):
    """Client for the dashboard's stored-procedure backend.

    Usage::

        rpc = RpcClient()  # RPC_URL / RPC_ANON_KEY from the environment
        rows = rpc.fetch_wdi_ranking("SP.POP.TOTL", region="South Asia")
        rank = rpc.fetch_wdi_selected_rank("SP.POP.TOTL", "PAK", None)
    """

    source_name = "rpc"
    rate_limit = 300

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        cache_ttl: float = 600,
        **kwargs,
    ):
        settings = Settings()
        if url:
            settings.rpc_url = url.rstrip("/")
        if key:
            settings.rpc_key = key
        settings.validate_rpc()

        self._base_url = settings.rpc_url
        super().__init__(cache_ttl=cache_ttl, **kwargs)
        self._session.headers.update({
            "apikey": settings.rpc_key,
            "Authorization": f"Bearer {settings.rpc_key}",
            "Content-Type": "application/json",
        })

    @property
    def base_url(self) -> str:
        return self._base_url

    # --- Transport ------------------------------------------------------------

    def call(self, function: str, params: Optional[Dict[str, Any]] = None) -> Payload:
        """Invoke a stored procedure by name (uncached).

        Raises:
            RpcError: The backend answered with an error object.
            UpstreamError: Transport failure or malformed response.
        """
        raw = self._post(f"/rest/v1/rpc/{function}", json_body=params or {})
        return decode_payload(raw)

    def call_cached(self, function: str, params: Optional[Dict[str, Any]] = None) -> Payload:
        """Invoke a stored procedure through the coalescing cache."""
        params = params or {}
        key = make_key(f"rpc:{function}", **params)
        return self._cached(key, lambda: self.call(function, params))

    def _error_from_response(self, resp: requests.Response) -> RpcError:
        """Error objects look like ``{"message": ..., "details": ..., "hint": ...}``."""
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            return RpcError(
                str(body["message"]),
                details=body.get("details"),
                status_code=resp.status_code,
            )
        return RpcError(
            f"rpc: HTTP {resp.status_code}",
            details=resp.text[:500] if resp.text else None,
            status_code=resp.status_code,
        )

    # --- WDI rankings ---------------------------------------------------------

    def fetch_wdi_metric_ranking(
        self,
        indicator_code: str,
        limit: int = RANKING_LIMIT_DEFAULT,
        region: Optional[str] = None,
    ) -> List[RankingRow]:
        """Countries ordered by their latest value of ``indicator_code``."""
        payload = self.call_cached("fetch_wdi_metric_ranking", {
            "p_indicator_code": indicator_code,
            "p_limit": limit,
            "p_region": region,
        })
        return [RankingRow.from_row(r) for r in payload.rows() if isinstance(r, dict)]

    def fetch_wdi_ranking(
        self,
        indicator: str,
        region: Optional[str] = None,
        limit: Any = RANKING_LIMIT_DEFAULT,
    ) -> List[Dict[str, Any]]:
        """Ranking rows as the backend returns them; ``limit`` is clamped to 10..500."""
        indicator = (indicator or "").strip()
        if not indicator:
            raise ValueError("Missing indicator")
        payload = self.call_cached("fetch_wdi_ranking", {
            "p_indicator": indicator,
            "p_region": (region or "").strip() or None,
            "p_limit": clamp_ranking_limit(limit),
        })
        return [r for r in payload.rows() if isinstance(r, dict)]

    def fetch_wdi_selected_rank(
        self, indicator_code: str, iso3: str, region: Optional[str]
    ) -> Optional[SelectedRank]:
        """Rank of one country, or None when it is not ranked."""
        payload = self.call_cached("fetch_wdi_selected_rank", {
            "p_indicator_code": indicator_code,
            "p_iso3": iso3.upper(),
            "p_region": region,
        })
        row = payload.first()
        if not isinstance(row, dict):
            return None
        return SelectedRank(
            rank=_count(row.get("rank")),
            total_in_scope=_count(row.get("total_in_scope")),
            year=coerce_int(row.get("year")),
            value=coerce_finite_number(row.get("value")),
        )

    # --- Coverage -------------------------------------------------------------

    def fetch_wdi_coverage(self, indicator_code: str, region: Optional[str]) -> CoverageRow:
        """Coverage of one indicator in one region (None = world).

        An empty result is reported as zero coverage.
        """
        payload = self.call_cached("fetch_wdi_coverage", {
            "p_indicator": indicator_code,
            "p_region": region,
        })
        row = payload.first()
        if not isinstance(row, dict):
            return CoverageRow(indicator_code=indicator_code, region=region)
        return CoverageRow(
            indicator_code=str(row.get("indicator_code") or indicator_code),
            region=row.get("region", region),
            countries_in_scope=_count(row.get("countries_in_scope")),
            countries_with_data=_count(row.get("countries_with_data")),
            coverage_pct=_pct(row.get("coverage_pct")),
            missing_countries=_count(row.get("missing_countries")),
        )

    def fetch_map_safe_indicators(
        self, region: str, min_coverage_pct: float = 70
    ) -> List[MapSafeIndicator]:
        """Indicators with at least ``min_coverage_pct`` coverage in ``region``."""
        payload = self.call_cached("fetch_map_safe_indicators", {
            "p_region": region,
            "p_min_coverage_pct": min_coverage_pct,
        })
        return [
            MapSafeIndicator(
                indicator_code=str(r.get("indicator_code") or ""),
                indicator_name=str(r.get("indicator_name") or ""),
                coverage_pct=_pct(r.get("coverage_pct")),
                countries_with_data=_count(r.get("countries_with_data")),
            )
            for r in payload.rows()
            if isinstance(r, dict)
        ]

    # --- FAOSTAT --------------------------------------------------------------

    def fetch_faostat_country_profile(self, iso3: str, top: int = 10) -> Any:
        """Country food-balance profile as a JSON object or array."""
        iso3 = (iso3 or "").strip().upper()
        if not iso3:
            raise ValueError("iso3 is required")
        payload = self.call_cached("fetch_faostat_country_profile", {
            "p_iso3": iso3,
            "p_top": top,
        })
        return payload.as_json()

    def fetch_faostat_overview_iso3(self, iso3: str) -> Dict[str, Any]:
        payload = self.call_cached("fetch_faostat_overview_iso3", {
            "p_iso3": _required_iso3(iso3),
        })
        row = payload.first()
        return row if isinstance(row, dict) else {}

    def fetch_faostat_module(self, iso3: str, kind: str, top: Any = 10) -> FaoModule:
        """Top ``top`` items of one kind (production, import, export) for a country."""
        iso3 = _required_iso3(iso3)
        if kind not in FAO_MODULE_KINDS:
            raise ValueError(f"kind must be one of {', '.join(FAO_MODULE_KINDS)}")
        payload = self.call_cached("fetch_faostat_module", {
            "p_iso3": iso3,
            "p_kind": kind,
            "p_top": max(coerce_int(top) or 10, 1),
        })
        row = payload.first()
        if not isinstance(row, dict):
            return FaoModule(iso3=iso3, kind=kind)
        return FaoModule(
            iso3=str(row.get("iso3") or iso3),
            kind=str(row.get("kind") or kind),
            country=_text(row.get("country")),
            latest_year=coerce_int(row.get("latest_year")),
            items=[
                FaoItem(
                    item=str(i.get("item") or ""),
                    value=coerce_finite_number(i.get("value")),
                    unit=_text(i.get("unit")),
                )
                for i in row.get("items") or []
                if isinstance(i, dict)
            ],
        )

    def fao_products_slice(
        self,
        dataset: str,
        element: str,
        year: Any,
        area_code: Any,
        limit: Any = 100,
        offset: Any = 0,
    ) -> List[FaoProduct]:
        """One page of item values for an area, element and year."""
        dataset = _fao_dataset(dataset)
        element = (element or "").strip()
        area_code = str(area_code or "").strip()
        year = coerce_int(year)
        if dataset not in FAO_DATASETS or not element or not year or not area_code:
            raise ValueError("dataset, element, year, area_code are required")
        payload = self.call_cached("fao_products_slice", {
            "p_dataset": dataset,
            "p_element": element,
            "p_year": year,
            "p_area_code": area_code,
            "p_limit": _clamp(limit, 100, 1, 500),
            "p_offset": max(coerce_int(offset) or 0, 0),
        })
        return [
            FaoProduct(
                dataset=str(r.get("dataset") or dataset),
                item_code=str(r.get("item_code") or ""),
                item=str(r.get("item") or ""),
                unit=_text(r.get("unit")),
                value=coerce_finite_number(r.get("value")),
            )
            for r in payload.rows()
            if isinstance(r, dict)
        ]

    def fao_product_top_areas(
        self, dataset: str, item_code: Any, element: str, year: Any, topn: Any = 10
    ) -> List[Dict[str, Any]]:
        """Leading areas for one item; ``topn`` is clamped to 1..50."""
        dataset = _fao_dataset(dataset)
        item_code = str(item_code or "").strip()
        element = (element or "").strip()
        year = coerce_int(year)
        if dataset not in FAO_DATASETS or not item_code or not element or not year:
            raise ValueError("dataset, item_code, element, year are required")
        payload = self.call_cached("fao_product_top_areas", {
            "p_dataset": dataset,
            "p_item_code": item_code,
            "p_element": element,
            "p_year": year,
            "p_topn": _clamp(topn, 10, 1, 50),
        })
        return [r for r in payload.rows() if isinstance(r, dict)]

    def fao_area_list(
        self, dataset: str = "production", q: str = "", limit: Any = 50
    ) -> List[Dict[str, Any]]:
        """Areas matching ``q``; an unknown dataset searches production."""
        dataset = _fao_dataset(dataset)
        payload = self.call_cached("fao_area_list", {
            "dataset": dataset if dataset in FAO_DATASETS else "production",
            "q": (q or "").strip(),
            "lim": _clamp(limit, 50, 5, 200),
        })
        return [r for r in payload.rows() if isinstance(r, dict)]

    # --- WDI country ----------------------------------------------------------

    def fetch_wdi_country_series(
        self, iso3: str, indicator: str, window: int = 25
    ) -> CountrySeries:
        """Last ``window`` years of one indicator; non-finite points are dropped."""
        iso3 = _required_iso3(iso3)
        indicator = (indicator or "").strip()
        if not indicator:
            raise ValueError("indicator is required")
        payload = self.call_cached("fetch_wdi_country_series", {
            "p_iso3": iso3,
            "p_indicator": indicator,
            "p_window": window,
        })
        rows = [r for r in payload.rows() if isinstance(r, dict)]
        first = rows[0] if rows else {}
        return CountrySeries(
            iso3=iso3,
            country=_text(first.get("country")) or iso3,
            region=_text(first.get("region")),
            indicator_code=indicator,
            indicator_label=_text(first.get("indicator_label")) or indicator,
            unit=_text(first.get("unit")),
            series=[o for o in normalize(rows) if o.value is not None],
        )

    # --- IMF WEO --------------------------------------------------------------

    def weo_latest_vintage(self) -> str:
        """Newest loaded WEO release, e.g. ``WEO_2025_10``."""
        row = self.call_cached("weo_latest_vintage").first()
        if isinstance(row, dict) and row.get("vintage"):
            return str(row["vintage"])
        return WEO_VINTAGE_DEFAULT

    def weo_country_series(self, iso3: str, indicator: str, vintage: str) -> Series:
        iso3 = _required_iso3(iso3)
        if not indicator or not vintage:
            raise ValueError("indicator and vintage are required")
        payload = self.call_cached("weo_country_series", {
            "p_iso3": iso3,
            "p_indicator": indicator,
            "p_vintage": vintage,
        })
        return normalize(payload.rows())

    def weo_debt_rank(
        self,
        year: int,
        region: Optional[str] = None,
        top: int = 50,
        vintage: Optional[str] = None,
    ) -> List[RankingRow]:
        """Government debt (% of GDP) ranking for one year."""
        payload = self.call_cached("weo_debt_rank", {
            "in_region": region,
            "in_year": year,
            "in_top": top,
            "in_vintage": vintage,
        })
        return [RankingRow.from_row(r) for r in payload.rows() if isinstance(r, dict)]

    def weo_debt_series(
        self,
        iso3: str,
        start: int = WEO_FIRST_YEAR,
        end: int = WEO_LAST_YEAR,
        vintage: Optional[str] = None,
    ) -> Series:
        payload = self.call_cached("weo_debt_series", {
            "in_country": _required_iso3(iso3),
            "in_from": start,
            "in_to": end,
            "in_vintage": vintage,
        })
        return normalize(payload.rows())

    def weo_metric_rank_series(
        self,
        indicator_code: str,
        year: Optional[int] = None,
        region: Optional[str] = None,
        top: int = 50,
        iso3: Optional[str] = None,
        start: int = WEO_FIRST_YEAR,
        end: int = WEO_LAST_YEAR,
        vintage: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Ranking plus one country's series for any WEO indicator.

        A ``series`` list in the result is normalized; other keys are
        passed through.
        """
        payload = self.call_cached("weo_metric_rank_series", {
            "in_indicator_code": indicator_code,
            "in_region": region,
            "in_year": year,
            "in_top": top,
            "in_country": iso3.strip().upper() if iso3 else None,
            "in_from": start,
            "in_to": end,
            "in_vintage": vintage,
        })
        result = payload.first()
        if not isinstance(result, dict):
            return {}
        result = dict(result)
        if "series" in result:
            result["series"] = normalize(result["series"])
        return result

    # --- Energy ---------------------------------------------------------------

    def energy_country_list(self, metric: str, q: str = "", limit: int = 400) -> List[str]:
        """Countries that report ``metric``."""
        payload = self.call_cached("energy_country_list", {
            "in_metric": energy_metric(metric),
            "in_q": (q or "").strip(),
            "in_lim": limit,
        })
        return [str(r["country"]) for r in payload.rows() if isinstance(r, dict) and r.get("country")]

    def energy_coverage(self, country: str, metric: str) -> EnergyCoverage:
        payload = self.call_cached("energy_coverage", {
            "in_country": country,
            "in_metric": energy_metric(metric),
        })
        row = payload.first()
        if not isinstance(row, dict):
            return EnergyCoverage()
        return EnergyCoverage(
            min_year=coerce_int(row.get("min_year")),
            max_year=coerce_int(row.get("max_year")),
            points=_count(row.get("points")),
        )

    def energy_latest(self, country: str, metric: str) -> Optional[Observation]:
        """Latest non-null point, or None."""
        payload = self.call_cached("energy_latest", {
            "in_country": country,
            "in_metric": energy_metric(metric),
        })
        return latest_of(normalize(payload.rows()))

    def energy_series(
        self,
        country: str,
        metric: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> Series:
        """Yearly series; an open bound means the country's full coverage."""
        payload = self.call_cached("energy_series", {
            "in_country": country,
            "in_metric": energy_metric(metric),
            "in_from": start,
            "in_to": end,
        })
        return normalize(payload.rows())

    def energy_rank_pack(self, metric: str, year: int, country: str) -> EnergyRankPack:
        payload = self.call_cached("energy_rank_pack", {
            "in_metric": energy_metric(metric),
            "in_year": year,
            "in_country": country,
        })
        row = payload.first()
        if not isinstance(row, dict):
            return EnergyRankPack()
        top10 = row.get("top10")
        return EnergyRankPack(
            top10=[r for r in top10 if isinstance(r, dict)] if isinstance(top10, list) else [],
            country_rank=coerce_int(row.get("country_rank")),
            total_countries=coerce_int(row.get("total_countries")),
        )

    # --- Landing --------------------------------------------------------------

    def fetch_landing(self) -> Landing:
        """Landing-page sections; a malformed payload gives no sections."""
        return _landing_from(self.call_cached("fetch_landing").first())
