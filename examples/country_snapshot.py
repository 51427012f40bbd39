"""
Country snapshot demo (showcase).

Builds the stat cards for one country through the StatsHub: every
curated metric, fetched concurrently, each reduced to its latest
non-null point.  A second call shows the cache serving the same bundle.

    python examples/country_snapshot.py PAK
"""

import logging
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.errors import UpstreamError
from src.pipeline import METRIC_KEYS, StatsHub


def main(iso3: str = "PAK"):
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    print("=" * 70)
    print(f"Country Snapshot: {iso3.upper()}")
    print("=" * 70)
    print()

    hub = StatsHub.from_settings()
    print(f"Registered sources: {', '.join(hub.list_sources())}")
    print()

    try:
        start = time.monotonic()
        bundle = hub.get_stats_for_geo(METRIC_KEYS, iso3, include_series=False)
        cold = time.monotonic() - start
    except (ValueError, UpstreamError) as exc:
        print(f"Error: {exc}")
        hub.close()
        return

    topic = None
    for key, stat in bundle.items():
        if stat.meta["topic"] != topic:
            topic = stat.meta["topic"]
            print(f"--- {topic.title()} ---")
        if stat.latest is None:
            print(f"  {stat.meta['label']:42s}  no data")
        else:
            print(
                f"  {stat.meta['label']:42s}  {stat.latest.value:>16,.2f} "
                f"{stat.meta['unit']}  ({stat.latest.year})"
            )
    print()

    start = time.monotonic()
    hub.get_stats_for_geo(METRIC_KEYS, iso3, include_series=False)
    warm = time.monotonic() - start

    telemetry = hub.get_telemetry()
    print("--- Telemetry ---")
    print(f"  Cold fetch:   {cold:.2f}s")
    print(f"  Cached fetch: {warm:.3f}s")
    print(f"  API calls:    {telemetry['totals']['api_calls']}")
    print(f"  Cache:        {telemetry['cache']}")

    hub.close()


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else "PAK")
