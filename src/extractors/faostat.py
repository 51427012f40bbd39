"""
FAOSTAT API client.

Datasets are addressed by domain path (e.g. ``"FAOSTAT/Production_Crops"``)
plus dataset-specific filters such as ``area_code``, ``item_code`` and
``element_code``.  Rows come back under ``data``.
"""

from typing import Dict, Union
from urllib.parse import quote

from ..series import Series, normalize
from .base_client import BaseClient


class FaostatClient(BaseClient):
    """Client for the FAOSTAT data API.

    Usage::

        client = FaostatClient()
        series = client.fetch_series(
            "FAOSTAT/Production_Crops",
            {"area_code": 165, "item_code": 15, "element_code": 5510},
        )
    """

    source_name = "faostat"
    base_url = "https://fenixservices.fao.org/faostat/api/v1/en"
    rate_limit = 30

    PAGE_SIZE = 5000

    def fetch_series(
        self, dataset_path: str, params: Dict[str, Union[str, int]]
    ) -> Series:
        """Yearly series for one dataset and filter combination."""
        query = {key: str(value) for key, value in params.items()}
        query.update({"page": "1", "pagesize": str(self.PAGE_SIZE)})

        raw = self._get(f"/{quote(dataset_path, safe='/')}", params=query)
        rows = raw.get("data") if isinstance(raw, dict) else None
        return normalize(rows)
