"""Tests for the metric registry and StatsHub bundles."""

import threading
from unittest.mock import MagicMock

import pytest

from src.errors import UpstreamError
from src.pipeline import (
    METRIC_KEYS,
    METRICS,
    EiaSpec,
    FaostatSpec,
    ImfSpec,
    OecdSpec,
    StatsHub,
    WorldBankSpec,
    spec_cache_key,
    validate_iso3,
)
from src.series import Observation


POP_SERIES = [Observation(2021, 231402117.0), Observation(2022, 235824862.0), Observation(2023, None)]


def make_client(series=None, name="stub"):
    client = MagicMock()
    client.fetch_series.return_value = series if series is not None else []
    client.get_telemetry.return_value = {
        "source": name, "api_calls": 2, "cache_hits": 1, "errors": 0, "avg_latency": 0.1,
    }
    return client


@pytest.fixture
def hub(cache):
    return StatsHub(cache=cache, ttl=60)


class TestMetricRegistry:

    def test_curated_keys(self):
        assert "POPULATION" in METRIC_KEYS
        assert METRICS["POPULATION"].code == "SP.POP.TOTL"
        assert len(set(m.code for m in METRICS.values())) == len(METRICS)

    def test_to_spec(self):
        assert METRICS["POPULATION"].to_spec("PAK") == WorldBankSpec(code="SP.POP.TOTL", geo="PAK")

    def test_spec_keys_are_distinct(self):
        keys = {
            spec_cache_key(WorldBankSpec("SP.POP.TOTL", "PAK")),
            spec_cache_key(WorldBankSpec("SP.POP.TOTL", "IND")),
            spec_cache_key(ImfSpec("IFS", "PCPIPCH", "PK")),
            spec_cache_key(ImfSpec("IFS", "PCPIPCH", "PK", freq="Q")),
            spec_cache_key(FaostatSpec("FAOSTAT/QCL", {"area_code": 165})),
            spec_cache_key(EiaSpec("INTL.4708-GB.A")),
            spec_cache_key(OecdSpec("MEI", "PAK.IXOB")),
        }
        assert len(keys) == 7

    def test_faostat_param_order_irrelevant(self):
        a = FaostatSpec("FAOSTAT/QCL", {"area_code": 165, "item_code": 15})
        b = FaostatSpec("FAOSTAT/QCL", {"item_code": 15, "area_code": 165})
        assert spec_cache_key(a) == spec_cache_key(b)


class TestValidateIso3:

    def test_upper_cases(self):
        assert validate_iso3("pak") == "PAK"

    @pytest.mark.parametrize("raw", ["PK", "PAKI", "P4K", "", None, 123])
    def test_rejects(self, raw):
        with pytest.raises(ValueError, match="3-letter"):
            validate_iso3(raw)


class TestRegistration:

    def test_register_and_list(self, hub):
        hub.register("WB", make_client())
        hub.register("IMF", make_client())
        assert hub.list_sources() == ["WB", "IMF"]

    def test_unregistered_source(self, hub):
        with pytest.raises(KeyError, match="not registered"):
            hub.fetch_series(EiaSpec("INTL.4708-GB.A"))

    def test_from_settings_skips_eia_without_key(self):
        hub = StatsHub.from_settings()
        try:
            assert hub.list_sources() == ["WB", "FAO", "IMF", "OECD"]
        finally:
            hub.close()

    def test_from_settings_with_eia(self, monkeypatch):
        monkeypatch.setenv("EIA_API_KEY", "k")
        hub = StatsHub.from_settings()
        try:
            assert "EIA" in hub.list_sources()
        finally:
            hub.close()


class TestFetchSeries:

    @pytest.mark.parametrize("spec,expected_args", [
        (WorldBankSpec("SP.POP.TOTL", "PAK"), ("SP.POP.TOTL", "PAK")),
        (FaostatSpec("FAOSTAT/QCL", {"area_code": 165}), ("FAOSTAT/QCL", {"area_code": 165})),
        (EiaSpec("INTL.4708-GB.A"), ("INTL.4708-GB.A",)),
        (ImfSpec("IFS", "PCPIPCH", "PK"), ("IFS", "PCPIPCH", "PK", "A")),
        (OecdSpec("MEI", "PAK.IXOB"), ("MEI", "PAK.IXOB")),
    ])
    def test_dispatch(self, hub, spec, expected_args):
        client = make_client([Observation(2020, 1.0)])
        hub.register(spec.source, client)

        assert hub.fetch_series(spec) == [Observation(2020, 1.0)]
        client.fetch_series.assert_called_once_with(*expected_args)

    def test_cached_within_ttl(self, hub, clock):
        client = make_client(POP_SERIES)
        hub.register("WB", client)
        spec = WorldBankSpec("SP.POP.TOTL", "PAK")

        hub.fetch_series(spec)
        clock.advance(59)
        hub.fetch_series(spec)
        assert client.fetch_series.call_count == 1

        clock.advance(2)
        hub.fetch_series(spec)
        assert client.fetch_series.call_count == 2

    def test_concurrent_fetches_coalesce(self, hub, cache, release):
        calls = []

        def slow_fetch(code, geo):
            calls.append(geo)
            release.wait(5)
            return POP_SERIES

        client = MagicMock()
        client.fetch_series.side_effect = slow_fetch
        hub.register("WB", client)

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(hub.fetch_series(WorldBankSpec("SP.POP.TOTL", "PAK"))))
            for _ in range(3)
        ]
        for t in threads:
            t.start()
        for _ in range(200):
            if cache.get_telemetry()["coalesced"] == 2:
                break
            threading.Event().wait(0.01)
        release.set()
        for t in threads:
            t.join(2)

        assert calls == ["PAK"]
        assert results == [POP_SERIES] * 3

    def test_failure_propagates_and_is_not_cached(self, hub):
        client = make_client(POP_SERIES)
        client.fetch_series.side_effect = [UpstreamError("world_bank: HTTP 503"), POP_SERIES]
        hub.register("WB", client)
        spec = WorldBankSpec("SP.POP.TOTL", "PAK")

        with pytest.raises(UpstreamError, match="503"):
            hub.fetch_series(spec)
        assert hub.fetch_series(spec) == POP_SERIES


class TestCountryBundles:

    def test_get_stats_for_geo(self, hub):
        client = make_client(POP_SERIES)
        hub.register("WB", client)

        bundle = hub.get_stats_for_geo(["POPULATION", "NOT_A_METRIC", "POPULATION"], "pak")

        assert list(bundle) == ["POPULATION"]
        stat = bundle["POPULATION"]
        assert stat.series == POP_SERIES
        assert stat.latest == Observation(2022, 235824862.0)
        assert stat.meta == {
            "key": "POPULATION",
            "label": "Population",
            "unit": "people",
            "topic": "demographics",
            "source": "WB",
        }
        client.fetch_series.assert_called_once_with("SP.POP.TOTL", "PAK")

    def test_bundle_to_dict(self, hub):
        hub.register("WB", make_client(POP_SERIES))
        body = hub.get_stats_for_geo(["POPULATION"], "PAK")["POPULATION"].to_dict()
        assert body["latest"] == {"year": 2022, "value": 235824862.0}
        assert body["series"][-1] == {"year": 2023, "value": None}

    def test_several_metrics(self, hub):
        client = MagicMock()
        client.fetch_series.side_effect = lambda code, geo: (
            POP_SERIES if code == "SP.POP.TOTL" else [Observation(2022, 3.4)]
        )
        hub.register("WB", client)

        bundle = hub.get_stats_for_geo(["POPULATION", "FERTILITY_RATE"], "PAK")
        assert list(bundle) == ["POPULATION", "FERTILITY_RATE"]
        assert bundle["FERTILITY_RATE"].latest == Observation(2022, 3.4)

    def test_without_series(self, hub):
        hub.register("WB", make_client(POP_SERIES))
        stat = hub.get_stats_for_geo(["POPULATION"], "PAK", include_series=False)["POPULATION"]
        assert stat.series == []
        assert stat.latest == Observation(2022, 235824862.0)

    def test_no_valid_keys(self, hub):
        hub.register("WB", make_client())
        with pytest.raises(ValueError, match="No valid metric keys"):
            hub.get_stats_for_geo(["NOPE", 42], "PAK")

    def test_invalid_iso3(self, hub):
        with pytest.raises(ValueError, match="3-letter"):
            hub.get_stats_for_geo(["POPULATION"], "PK")

    def test_one_failing_metric_fails_the_bundle(self, hub):
        def fetch(code, geo):
            if code == "SP.POP.TOTL":
                return POP_SERIES
            raise UpstreamError("world_bank: HTTP 503")

        client = MagicMock()
        client.fetch_series.side_effect = fetch
        hub.register("WB", client)
        with pytest.raises(UpstreamError):
            hub.get_stats_for_geo(["POPULATION", "FERTILITY_RATE"], "PAK")

    def test_get_latest_for_geo(self, hub):
        client = MagicMock()
        client.fetch_series.side_effect = lambda code, geo: (
            POP_SERIES if code == "SP.POP.TOTL" else [Observation(2020, None)]
        )
        hub.register("WB", client)

        latest = hub.get_latest_for_geo(["POPULATION", "INFLATION_CPI"], "PAK")
        assert latest == {"POPULATION": 235824862.0, "INFLATION_CPI": None}

    def test_get_latest_for_many(self, hub):
        client = MagicMock()
        client.fetch_series.side_effect = lambda code, geo: (
            POP_SERIES if geo == "PAK" else []
        )
        hub.register("WB", client)

        rows = hub.get_latest_for_many("POPULATION", ["pak", "BTN"])
        assert rows == [
            {"iso3": "PAK", "year": 2022, "latest": 235824862.0},
            {"iso3": "BTN", "year": None, "latest": None},
        ]

    def test_get_latest_for_many_unknown_metric(self, hub):
        with pytest.raises(KeyError, match="Unknown metric"):
            hub.get_latest_for_many("NOPE", ["PAK"])


class TestTelemetry:

    def test_aggregates_clients_and_cache(self, hub):
        hub.register("WB", make_client(POP_SERIES, name="world_bank"))
        hub.register("IMF", make_client(name="imf"))
        hub.fetch_series(WorldBankSpec("SP.POP.TOTL", "PAK"))
        hub.fetch_series(WorldBankSpec("SP.POP.TOTL", "PAK"))

        telemetry = hub.get_telemetry()
        assert telemetry["totals"]["api_calls"] == 4
        assert telemetry["totals"]["cache_hits"] == 2
        assert set(telemetry["per_source"]) == {"WB", "IMF"}
        assert telemetry["cache"]["hits"] == 1
        assert telemetry["cache"]["misses"] == 1

    def test_close_closes_clients(self, hub):
        client = make_client()
        hub.register("WB", client)
        hub.close()
        client.close.assert_called_once()
