"""
Metric registry and series specifications.

A ``SeriesSpec`` says where one series lives (source plus the parameters
that source needs).  A ``Metric`` is a named, labelled indicator that can
build the spec for any country.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Union

from ..cache import make_key


@dataclass(frozen=True)
class WorldBankSpec:
    code: str
    geo: str
    source = "WB"


@dataclass(frozen=True)
class FaostatSpec:
    dataset_path: str
    params: Dict[str, Union[str, int]] = field(default_factory=dict)
    source = "FAO"


@dataclass(frozen=True)
class EiaSpec:
    series_id: str
    source = "EIA"


@dataclass(frozen=True)
class ImfSpec:
    database: str
    indicator: str
    country: str
    freq: str = "A"
    source = "IMF"


@dataclass(frozen=True)
class OecdSpec:
    dataset: str
    filter_path: str
    source = "OECD"


SeriesSpec = Union[WorldBankSpec, FaostatSpec, EiaSpec, ImfSpec, OecdSpec]


def spec_cache_key(spec: SeriesSpec) -> str:
    """Cache key covering the source and every field of ``spec``."""
    return make_key(f"series:{spec.source}", **asdict(spec))


@dataclass(frozen=True)
class Metric:
    """A curated indicator shown on country pages."""

    code: str
    label: str
    unit: str
    topic: str
    source: str = "WB"

    def to_spec(self, iso3: str) -> SeriesSpec:
        return WorldBankSpec(code=self.code, geo=iso3)

    def meta(self, key: str) -> Dict[str, Any]:
        return {
            "key": key,
            "label": self.label,
            "unit": self.unit,
            "topic": self.topic,
            "source": self.source,
        }


TOPICS = ("demographics", "economy", "health", "energy", "environment", "agriculture")

# Curated World Bank set
METRICS: Dict[str, Metric] = {
    # Demographics
    "POPULATION": Metric("SP.POP.TOTL", "Population", "people", "demographics"),
    "FERTILITY_RATE": Metric(
        "SP.DYN.TFRT.IN", "Fertility rate (births per woman)", "births/woman", "demographics"
    ),
    "LIFE_EXPECTANCY": Metric(
        "SP.DYN.LE00.IN", "Life expectancy at birth", "years", "demographics"
    ),
    # Economy
    "GDP_CURRENT_USD": Metric("NY.GDP.MKTP.CD", "GDP (current US$)", "US$", "economy"),
    "INFLATION_CPI": Metric("FP.CPI.TOTL.ZG", "Inflation (CPI, annual %)", "%", "economy"),
    "UNEMPLOYMENT_RATE": Metric(
        "SL.UEM.TOTL.ZS", "Unemployment rate", "% of labor force", "economy"
    ),
    # Health
    "INFANT_MORTALITY": Metric(
        "SP.DYN.IMRT.IN", "Infant mortality rate", "per 1,000 births", "health"
    ),
    "HEALTH_EXP_PCT_GDP": Metric(
        "SH.XPD.CHEX.GD.ZS", "Current health expenditure", "% of GDP", "health"
    ),
    # Energy
    "ELECTRICITY_CONS_PC": Metric(
        "EG.USE.ELEC.KH.PC", "Electric power consumption", "kWh per capita", "energy"
    ),
    "RENEWABLE_ENERGY_PCT": Metric(
        "EG.FEC.RNEW.ZS", "Renewable energy consumption", "% of final energy use", "energy"
    ),
    # Environment
    "CO2_TOTAL_KT": Metric("EN.ATM.CO2E.KT", "CO₂ emissions", "kt", "environment"),
    "CO2_PER_CAPITA": Metric(
        "EN.ATM.CO2E.PC", "CO₂ emissions per capita", "metric tons", "environment"
    ),
    # Agriculture
    "CEREAL_YIELD": Metric("AG.YLD.CREL.KG", "Cereal yield", "kg per hectare", "agriculture"),
    "FERTILIZER_USE": Metric(
        "AG.CON.FERT.ZS", "Fertilizer consumption", "kg/ha of arable land", "agriculture"
    ),
}

METRIC_KEYS = list(METRICS)


def is_metric_key(value: Any) -> bool:
    return isinstance(value, str) and value in METRICS
