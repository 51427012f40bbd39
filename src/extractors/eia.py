"""
EIA (U.S. Energy Information Administration) series client.

Series ids look like ``"INTL.4708-GB.A"``.  Data points arrive as
``[period, value]`` pairs where period is ``"2020"`` or ``"202001"``.
"""

from typing import Dict, Optional

from ..cache import make_key
from ..config import Settings
from ..series import Series, normalize
from .base_client import BaseClient


class EiaClient(BaseClient):
    """Client for the EIA series API.  Requires an API key."""

    source_name = "eia"
    base_url = "https://api.eia.gov"
    rate_limit = 60

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        self._api_key = api_key or Settings().eia_api_key
        if not self._api_key:
            raise ValueError(
                "EIA_API_KEY not set. Get one at: https://www.eia.gov/opendata/register.php"
            )
        super().__init__(**kwargs)

    def _cache_key(self, url: str, params: Optional[Dict] = None) -> str:
        """Cache key without the API key in it."""
        public = {k: v for k, v in (params or {}).items() if k != "api_key"}
        return make_key(f"{self.source_name}:GET", url=url, params=public)

    def fetch_series(self, series_id: str) -> Series:
        """Yearly history for one EIA series id."""
        raw = self._get(
            "/series/",
            params={"api_key": self._api_key, "series_id": series_id},
        )
        series = raw.get("series") if isinstance(raw, dict) else None
        if not isinstance(series, list) or not series or not isinstance(series[0], dict):
            return []
        return normalize(series[0].get("data"))
