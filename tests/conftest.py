"""Shared test fixtures and path setup."""
import sys
import threading
from pathlib import Path

# Add project root to sys.path so tests can import src.*
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from src.cache import CoalescingCache


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Coalescing cache on a fake clock."""
    c = CoalescingCache(clock=clock, fetch_timeout=5.0)
    yield c
    c.shutdown()


@pytest.fixture
def release():
    """Event that blocked fetches wait on; always set on teardown."""
    event = threading.Event()
    yield event
    event.set()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep a developer's .env from leaking into settings under test."""
    for name in (
        "RPC_URL", "RPC_ANON_KEY", "EIA_API_KEY", "CACHE_TTL",
        "FETCH_TIMEOUT", "HTTP_TIMEOUT", "SERVE_STALE_ON_ERROR",
    ):
        monkeypatch.delenv(name, raising=False)


# --- Upstream payload fixtures (World Bank, FAOSTAT, EIA, IMF, OECD) ---

@pytest.fixture
def mock_worldbank():
    """Sample World Bank paginated response (page 1 of 1)."""
    return [
        {"page": 1, "pages": 1, "per_page": 100, "total": 3},
        [
            {"indicator": {"id": "NY.GDP.PCAP.CD", "value": "GDP per capita"}, "country": {"id": "US", "value": "United States"}, "countryiso3code": "USA", "date": "2023", "value": 80034.567},
            {"indicator": {"id": "NY.GDP.PCAP.CD", "value": "GDP per capita"}, "country": {"id": "GB", "value": "United Kingdom"}, "countryiso3code": "GBR", "date": "2023", "value": 48913.234},
            {"indicator": {"id": "NY.GDP.PCAP.CD", "value": "GDP per capita"}, "country": {"id": "JP", "value": "Japan"}, "countryiso3code": "JPN", "date": "2023", "value": 33950.789},
        ],
    ]


@pytest.fixture
def mock_worldbank_series():
    """One country, latest-first as the API sends it, newest year still null."""
    return [
        {"page": 1, "pages": 1, "per_page": 20000, "total": 4},
        [
            {"indicator": {"id": "SP.POP.TOTL"}, "country": {"id": "PK", "value": "Pakistan"}, "countryiso3code": "PAK", "date": "2023", "value": None},
            {"indicator": {"id": "SP.POP.TOTL"}, "country": {"id": "PK", "value": "Pakistan"}, "countryiso3code": "PAK", "date": "2022", "value": 235824862},
            {"indicator": {"id": "SP.POP.TOTL"}, "country": {"id": "PK", "value": "Pakistan"}, "countryiso3code": "PAK", "date": "2021", "value": 231402117},
            {"indicator": {"id": "SP.POP.TOTL"}, "country": {"id": "PK", "value": "Pakistan"}, "countryiso3code": "PAK", "date": "2020", "value": 227196741},
        ],
    ]


@pytest.fixture
def mock_worldbank_all():
    """All-countries response with an aggregate row and null values."""
    return [
        {"page": 1, "pages": 1, "per_page": 20000, "total": 6},
        [
            {"country": {"id": "1W", "value": "World"}, "countryiso3code": "", "date": "2023", "value": 8.0e9},
            {"country": {"id": "PK", "value": "Pakistan"}, "countryiso3code": "PAK", "date": "2023", "value": None},
            {"country": {"id": "PK", "value": "Pakistan"}, "countryiso3code": "PAK", "date": "2022", "value": 235824862},
            {"country": {"id": "PK", "value": "Pakistan"}, "countryiso3code": "PAK", "date": "2021", "value": 231402117},
            {"country": {"id": "IN", "value": "India"}, "countryiso3code": "IND", "date": "2023", "value": 1428627663},
            {"country": {"id": "IN", "value": "India"}, "countryiso3code": "IND", "date": "2022", "value": 1417173173},
        ],
    ]


@pytest.fixture
def mock_faostat():
    return {
        "data": [
            {"Area": "Pakistan", "Item": "Wheat", "year": "2021", "value": "27464081"},
            {"Area": "Pakistan", "Item": "Wheat", "year": "2019", "value": "24348983"},
            {"Area": "Pakistan", "Item": "Wheat", "year": "2020", "value": ""},
        ]
    }


@pytest.fixture
def mock_eia():
    return {
        "series": [
            {
                "series_id": "INTL.4708-GB.A",
                "data": [["2021", 9.1], ["2019", 8.7], ["2020", None], ["bad", 1.0]],
            }
        ]
    }


@pytest.fixture
def mock_imf():
    return {
        "CompactData": {
            "DataSet": {
                "Series": {
                    "@FREQ": "A",
                    "@REF_AREA": "PK",
                    "Obs": [
                        {"@TIME_PERIOD": "2022", "@OBS_VALUE": "12.15"},
                        {"@TIME_PERIOD": "2021", "@OBS_VALUE": "9.5"},
                    ],
                }
            }
        }
    }


@pytest.fixture
def mock_oecd():
    return {
        "dataSets": [
            {"observations": {"0:0:0": [101.2, None], "0:0:1": [99.8, None], "0:0:2": [None]}}
        ],
        "structure": {
            "dimensions": {
                "observation": [
                    {"id": "LOCATION", "values": [{"id": "PAK"}]},
                    {"id": "SUBJECT", "values": [{"id": "IXOB"}]},
                    {"id": "TIME_PERIOD", "values": [{"id": "2021"}, {"id": "2022-Q1"}, {"id": "2023"}]},
                ]
            }
        },
    }


# --- RPC fixtures ---

@pytest.fixture
def rpc_env(monkeypatch):
    monkeypatch.setenv("RPC_URL", "https://db.example.com/")
    monkeypatch.setenv("RPC_ANON_KEY", "anon-key")
