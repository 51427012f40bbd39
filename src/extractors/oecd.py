"""
OECD SDMX-JSON client.

Observations are keyed ``"0:1:...:t"`` where the last index points into
the time dimension's values.  Only the pieces needed to rebuild a yearly
series are read; a response without them yields an empty series.
"""

from typing import Any, List, Optional, Tuple
from urllib.parse import quote

from ..series import Series, normalize
from .base_client import BaseClient

TIME_DIMENSION_IDS = ("TIME_PERIOD", "TIME", "Time")


class OecdClient(BaseClient):
    """Client for stats.oecd.org SDMX-JSON data."""

    source_name = "oecd"
    base_url = "https://stats.oecd.org/sdmx-json/data"
    rate_limit = 20

    def fetch_series(self, dataset: str, filter_path: str) -> Series:
        """Series for one dataset and SDMX key path (e.g. ``"PAK.IXOB.AMPLSA"``)."""
        raw = self._get(
            f"/{quote(dataset, safe='')}/{quote(filter_path, safe='')}/all",
            params={"contentType": "application/json"},
        )
        return normalize(self._records(raw))

    @staticmethod
    def _time_dimension(structure: dict) -> Optional[dict]:
        """Prefer an explicit time dimension, else the last observation dimension."""
        dims = [d for d in structure["dimensions"]["observation"] if isinstance(d, dict)]
        for dim in dims:
            if dim.get("id") in TIME_DIMENSION_IDS:
                return dim
        return dims[-1] if dims else None

    @classmethod
    def _records(cls, raw: Any) -> List[Tuple[str, Any]]:
        """Turn an SDMX-JSON payload into ``(time_id, value)`` pairs."""
        if not isinstance(raw, dict):
            return []
        data_sets = raw.get("dataSets")
        structure = raw.get("structure")
        try:
            time_dim = cls._time_dimension(structure)
        except (KeyError, TypeError):
            return []
        if not isinstance(data_sets, list) or not data_sets or time_dim is None:
            return []

        time_values = time_dim.get("values") or []
        first = data_sets[0] if isinstance(data_sets[0], dict) else {}
        observations = first.get("observations")
        if not isinstance(observations, dict):
            return []

        records = []
        for key, arr in observations.items():
            try:
                t_idx = int(str(key).split(":")[-1])
                time_id = time_values[t_idx].get("id", "")
            except (ValueError, IndexError, AttributeError):
                continue
            # [value, status flag, ...]
            value = arr[0] if isinstance(arr, list) and arr else None
            records.append((time_id, value))
        return records
