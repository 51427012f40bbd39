"""
IMF SDMX-JSON (CompactData) client.

URL pattern::

    /CompactData/{database}/{freq}.{country}.{indicator}

e.g. database ``IFS``, indicator ``PCPIPCH``, country ``PK``, freq ``A``.
"""

from typing import Any
from urllib.parse import quote

from ..series import Series, normalize
from .base_client import BaseClient

FREQUENCIES = ("A", "Q", "M")


class ImfClient(BaseClient):
    """Client for the IMF data services SDMX-JSON API."""

    source_name = "imf"
    base_url = "https://dataservices.imf.org/REST/SDMX_JSON.svc"
    rate_limit = 10

    def fetch_series(
        self, database: str, indicator: str, country: str, freq: str = "A"
    ) -> Series:
        """Series for one indicator and country, reduced to one point per year."""
        if freq not in FREQUENCIES:
            raise ValueError(f"freq must be one of {FREQUENCIES}, got {freq!r}")
        key = f"{freq}.{country}.{indicator}"
        raw = self._get(f"/CompactData/{quote(database, safe='')}/{quote(key, safe='')}")
        return normalize(self._observations(raw))

    @staticmethod
    def _observations(raw: Any) -> list:
        """Dig ``CompactData.DataSet.Series.Obs`` out of the response."""
        if not isinstance(raw, dict):
            return []
        dataset = (raw.get("CompactData") or {}).get("DataSet") or {}
        series = dataset.get("Series") if isinstance(dataset, dict) else None
        if isinstance(series, list):
            series = series[0] if series else None
        if not isinstance(series, dict):
            return []

        obs = series.get("Obs")
        # A single observation is sent as an object, not a list
        if isinstance(obs, dict):
            return [obs]
        return obs if isinstance(obs, list) else []
