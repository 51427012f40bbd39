"""
World Bank Indicators API client.

Fetches WDI series from api.worldbank.org.  The API answers with
``[metadata, rows]``; an invalid request comes back as
``[{"message": [...]}]`` with HTTP 200, which is treated as an error.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pandas as pd

from ..errors import UpstreamError
from ..series import Observation, Series, coerce_year, latest_of, normalize
from .base_client import BaseClient
from .result import ExtractionResult


class WorldBankClient(BaseClient):
    """Client for the World Bank Indicators API.

    Usage::

        client = WorldBankClient()
        series = client.fetch_series("SP.POP.TOTL", "PAK")
        latest = client.fetch_latest("SP.POP.TOTL", "PAK")

        result = client.extract(
            countries=["USA", "GBR", "JPN"],
            indicators=["NY.GDP.PCAP.CD"],
            start_year=2018,
            end_year=2023,
        )
        print(result.data.head())
    """

    source_name = "world_bank"
    base_url = "https://api.worldbank.org/v2"
    rate_limit = 60

    PER_PAGE = 20000

    DEFAULT_COUNTRIES = ["USA", "GBR", "JPN", "DEU", "FRA", "CAN", "AUS", "BRA", "IND", "CHN"]
    DEFAULT_INDICATORS = [
        "NY.GDP.PCAP.CD",   # GDP per capita (current US$)
        "SP.POP.TOTL",       # Total population
    ]

    # --- Single series --------------------------------------------------------

    def fetch_series(self, indicator: str, iso3: str) -> Series:
        """Full yearly history of one indicator for one country."""
        raw = self._get(
            f"/country/{iso3}/indicator/{indicator}",
            params={"format": "json", "per_page": self.PER_PAGE},
        )
        _, rows = self._split_payload(raw, indicator)
        return normalize(rows)

    def fetch_latest(self, indicator: str, iso3: str) -> Optional[Observation]:
        """Most recent non-null observation, or None when the country has no data."""
        return latest_of(self.fetch_series(indicator, iso3))

    def fetch_all_countries(self, indicator: str) -> pd.DataFrame:
        """Latest non-null value of ``indicator`` for every country.

        Returns:
            DataFrame with ``iso3``, ``country``, ``year`` and ``value``,
            one row per ISO3 code.  Aggregates without an ISO3 code are
            skipped.
        """
        raw = self._get(
            f"/country/all/indicator/{indicator}",
            params={"format": "json", "per_page": self.PER_PAGE},
        )
        _, rows = self._split_payload(raw, indicator)
        df = self._parse_records(rows or [])
        df = df.rename(columns={"country_code": "iso3", "country_name": "country"})
        df = df.dropna(subset=["value", "year"])
        df = df[df["iso3"].fillna("").str.len() == 3]
        if df.empty:
            return pd.DataFrame(columns=["iso3", "country", "year", "value"])

        df = df.assign(iso3=df["iso3"].str.upper())
        df = df.sort_values("year", ascending=False, kind="stable")
        df = df.drop_duplicates(subset="iso3", keep="first")
        df = df.assign(year=df["year"].astype(int))
        return df[["iso3", "country", "year", "value"]].reset_index(drop=True)

    # --- Batch extraction -----------------------------------------------------

    def extract(
        self,
        countries: Optional[List[str]] = None,
        indicators: Optional[List[str]] = None,
        start_year: int = 2018,
        end_year: int = 2023,
        **kwargs,
    ) -> ExtractionResult:
        """Fetch economic indicators for given countries and years.

        One failing indicator does not fail the batch; it is listed in
        ``result.failed`` instead.

        Args:
            countries: ISO3 (or ISO2) country codes.
            indicators: World Bank indicator codes.
            start_year: Start of date range.
            end_year: End of date range.

        Returns:
            ExtractionResult with a DataFrame of indicator values.
        """
        started = datetime.now(timezone.utc)
        self.reset_telemetry()

        if countries is None:
            countries = self.DEFAULT_COUNTRIES
        if indicators is None:
            indicators = self.DEFAULT_INDICATORS

        try:
            frames = []
            failed: Dict[str, str] = {}
            country_str = ";".join(countries)

            for indicator in indicators:
                try:
                    frames.append(
                        self._fetch_indicator(country_str, indicator, start_year, end_year)
                    )
                except UpstreamError as exc:
                    self._log.warning("Indicator %s failed: %s", indicator, exc)
                    failed[indicator] = str(exc)

            if failed and not frames:
                return self._build_error("; ".join(failed.values()), started)

            combined = pd.concat(frames, ignore_index=True) if frames else self._parse_records([])
            return self._build_result(combined, started, failed=failed)
        except Exception as exc:
            return self._build_error(str(exc), started)

    # --- Internal helpers -----------------------------------------------------

    @staticmethod
    def _split_payload(raw: Any, indicator: str):
        """Return ``(metadata, rows)`` from a ``[metadata, rows]`` payload."""
        if isinstance(raw, list) and raw and isinstance(raw[0], dict) and "message" in raw[0]:
            messages = raw[0]["message"] or []
            text = "; ".join(
                str(m.get("value", m)) if isinstance(m, dict) else str(m)
                for m in messages
            )
            raise UpstreamError(
                f"world_bank: {indicator}: {text or 'request rejected'}",
                details=messages,
            )
        if not isinstance(raw, list) or len(raw) < 2:
            return {}, None
        metadata = raw[0] if isinstance(raw[0], dict) else {}
        rows = raw[1] if isinstance(raw[1], list) else None
        return metadata, rows

    def _fetch_indicator(
        self,
        country_str: str,
        indicator: str,
        start_year: int,
        end_year: int,
    ) -> pd.DataFrame:
        """Fetch all pages for a single indicator."""
        all_records: list = []
        page = 1

        while True:
            params = {
                "format": "json",
                "date": f"{start_year}:{end_year}",
                "per_page": 100,
                "page": page,
            }

            path = f"/country/{country_str}/indicator/{indicator}"
            metadata, data = self._split_payload(self._get(path, params=params), indicator)
            if data is None:
                break

            all_records.extend(data)

            total_pages = metadata.get("pages", 1)
            if page >= total_pages:
                break
            page += 1

        return self._parse_records(all_records)

    def _parse_records(self, records: list) -> pd.DataFrame:
        """Parse World Bank JSON records into a DataFrame."""
        records = [rec for rec in records if isinstance(rec, dict)]
        if not records:
            return pd.DataFrame(
                columns=[
                    "country_code", "country_name",
                    "indicator_code", "indicator_name",
                    "year", "value",
                ]
            )

        rows = []
        for rec in records:
            country = rec.get("country") or {}
            indicator = rec.get("indicator") or {}
            rows.append({
                "country_code": rec.get("countryiso3code") or country.get("id"),
                "country_name": country.get("value"),
                "indicator_code": indicator.get("id"),
                "indicator_name": indicator.get("value"),
                "year": coerce_year(rec.get("date")),
                "value": rec.get("value"),
            })

        df = pd.DataFrame(rows)
        df["value"] = pd.to_numeric(df["value"], errors="coerce")
        return df
