"""Tests for numeric coercion, series normalization and latest-point resolution."""

import math

import pytest

from src.series import (
    Observation,
    coerce_finite_number,
    coerce_int,
    coerce_year,
    latest_of,
    normalize,
    series_to_frame,
)


class TestCoercion:
    """Shared coercion helpers."""

    @pytest.mark.parametrize("raw,expected", [
        (100, 100.0),
        (2.5, 2.5),
        ("100", 100.0),
        (" 3.25 ", 3.25),
        ("-4e3", -4000.0),
    ])
    def test_finite_numbers(self, raw, expected):
        assert coerce_finite_number(raw) == expected

    @pytest.mark.parametrize("raw", [
        None, "", "   ", ".", "n/a", "1,000", True, False,
        float("nan"), float("inf"), "nan", "-inf", {}, [1],
    ])
    def test_non_numbers_become_none(self, raw):
        assert coerce_finite_number(raw) is None

    def test_oversized_int_is_not_a_number(self):
        """json.loads turns long digit runs into ints too big for a float."""
        assert coerce_finite_number(10 ** 400) is None
        assert coerce_finite_number(-(10 ** 400)) is None

    def test_coerce_int(self):
        assert coerce_int("2019") == 2019
        assert coerce_int(2019.0) == 2019
        assert coerce_int("2019.0") == 2019
        assert coerce_int(2019.5) is None
        assert coerce_int(True) is None
        assert coerce_int("abc") is None

    @pytest.mark.parametrize("raw,expected", [
        (2019, 2019),
        ("2019", 2019),
        ("2024-Q1", 2024),
        ("202001", 2020),
        ("2019-12-31", 2019),
        (2019.0, 2019),
        (202001, 2020),
        (202001.0, 2020),
        ("2020M01", 2020),
    ])
    def test_year_forms(self, raw, expected):
        assert coerce_year(raw) == expected

    @pytest.mark.parametrize("raw", [
        None, "", "abc", 19, 2019.5, True, "0999", -2019,
        "12345", 12345, "2019123", "20200101T00", 10 ** 400,
    ])
    def test_invalid_years(self, raw):
        assert coerce_year(raw) is None


class TestNormalize:
    """normalize(): filtering, ordering, de-duplication."""

    def test_mixed_types_example(self):
        """String years and values are coerced; null values are kept."""
        raw = [
            {"year": "2019", "value": "100"},
            {"year": 2020, "value": None},
            {"year": 2018, "value": 90},
        ]
        series = normalize(raw)

        assert series == [
            Observation(2018, 90.0),
            Observation(2019, 100.0),
            Observation(2020, None),
        ]
        assert latest_of(series) == Observation(2019, 100.0)

    def test_empty_input(self):
        assert normalize([]) == []
        assert latest_of(normalize([])) is None

    @pytest.mark.parametrize("raw", [None, "not a series", 42, b"bytes"])
    def test_non_collections_yield_empty(self, raw):
        assert normalize(raw) == []

    def test_drops_rows_without_year(self):
        raw = [
            {"year": "abc", "value": 1},
            {"value": 2},
            {"year": None, "value": 3},
            "garbage",
            {"year": 2000, "value": 4},
        ]
        assert normalize(raw) == [Observation(2000, 4.0)]

    def test_non_numeric_values_become_none(self):
        raw = [
            {"date": "2001", "value": ""},
            {"date": "2002", "value": "."},
            {"date": "2003", "value": float("nan")},
            {"date": "2004", "value": "12.5"},
        ]
        series = normalize(raw)
        assert [o.value for o in series] == [None, None, None, 12.5]

    def test_duplicate_years_last_occurrence_wins(self):
        raw = [
            {"year": 2010, "value": 1},
            {"year": 2011, "value": 2},
            {"year": "2010", "value": 3},
        ]
        assert normalize(raw) == [Observation(2010, 3.0), Observation(2011, 2.0)]

    def test_duplicate_year_later_null_wins(self):
        """The last record is kept even when its value is missing."""
        raw = [{"year": 2010, "value": 5}, {"year": 2010, "value": None}]
        assert normalize(raw) == [Observation(2010, None)]

    def test_pair_records(self):
        """EIA-style [period, value] pairs."""
        raw = [["2021", 9.1], ["202001", "8.0"], ("2019", None)]
        assert normalize(raw) == [
            Observation(2019, None),
            Observation(2020, 8.0),
            Observation(2021, 9.1),
        ]

    def test_oversized_value_becomes_none(self):
        raw = [{"year": 2020, "value": 10 ** 400}, {"year": 2021, "value": 7}]
        assert normalize(raw) == [Observation(2020, None), Observation(2021, 7.0)]

    def test_numeric_monthly_periods(self):
        """EIA may send periods as numbers; 202001 is January 2020."""
        raw = [[202001, 1.0], [202112, 2.0], [12345, 3.0]]
        assert normalize(raw) == [Observation(2020, 1.0), Observation(2021, 2.0)]

    def test_sdmx_keys(self):
        raw = [{"@TIME_PERIOD": "2022", "@OBS_VALUE": "12.15"}]
        assert normalize(raw) == [Observation(2022, 12.15)]

    def test_mapping_payload_read_as_year_to_value(self):
        assert normalize({"2021": 1.5, "2020": "2"}) == [
            Observation(2020, 2.0),
            Observation(2021, 1.5),
        ]

    def test_generator_input(self):
        series = normalize({"year": y, "value": y} for y in (2003, 2001, 2002))
        assert [o.year for o in series] == [2001, 2002, 2003]

    def test_output_sorted_and_unique(self):
        raw = [{"year": 2000 + (i * 7) % 13, "value": i} for i in range(40)]
        years = [o.year for o in normalize(raw)]
        assert years == sorted(set(years))

    def test_idempotent(self):
        raw = [
            {"year": "2019", "value": "100"},
            {"year": 2020, "value": None},
            {"year": 2018, "value": 90},
            {"year": 2018, "value": 95},
        ]
        once = normalize(raw)
        assert normalize(once) == once


class TestLatestOf:
    """latest_of(): most recent finite value."""

    def test_skips_trailing_nulls(self):
        series = [Observation(2019, 5.0), Observation(2020, None), Observation(2021, None)]
        assert latest_of(series) == Observation(2019, 5.0)

    def test_all_null_is_none(self):
        assert latest_of([Observation(2019, None), Observation(2020, None)]) is None

    def test_zero_is_a_value(self):
        """Zero is data, not 'no data'."""
        assert latest_of([Observation(2020, 0.0)]) == Observation(2020, 0.0)

    def test_matches_max_year_with_value(self):
        raw = [{"year": 1990 + i, "value": None if i % 3 else i} for i in range(20)]
        series = normalize(raw)
        with_values = [o for o in series if o.value is not None and math.isfinite(o.value)]
        expected = max(with_values, key=lambda o: o.year)
        assert latest_of(series) == expected


class TestSeriesToFrame:

    def test_columns_and_nan(self):
        df = series_to_frame([Observation(2019, 1.0), Observation(2020, None)])
        assert list(df.columns) == ["year", "value"]
        assert df["value"].isna().tolist() == [False, True]

    def test_empty(self):
        df = series_to_frame([])
        assert df.empty
        assert list(df.columns) == ["year", "value"]
