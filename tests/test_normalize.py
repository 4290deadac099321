"""Tests for the shared unit and value normalisation helpers."""

import pytest

from device_clinic.services.normalize import (
    battery_status,
    build_iso_date,
    calculate_remaining_shocks,
    coerce_bpm_from_interval,
    coerce_rate,
    convert_threshold,
    format_energy,
    format_shock_count,
    month_number,
    months_to_years,
    ms_to_bpm,
    split_lines,
    strip_units,
    to_iso_date,
    to_rfc3339_utc,
)


class TestMsToBpm:
    def test_one_second_is_sixty(self):
        assert ms_to_bpm(1000) == 60

    def test_rounds_to_nearest(self):
        assert ms_to_bpm(462) == 130
        assert ms_to_bpm(333) == 180

    @pytest.mark.parametrize("ms", [1, 7, 250, 401, 857, 1500, 2000])
    def test_matches_definition(self, ms):
        assert ms_to_bpm(ms) == round(60000 / ms)

    @pytest.mark.parametrize("bpm", [30, 40, 50, 60, 70, 85, 100, 120, 150, 170, 200, 240])
    def test_rate_interval_round_trip(self, bpm):
        assert abs(ms_to_bpm(round(60000 / bpm)) - bpm) <= 1

    @pytest.mark.parametrize("ms", [0, -400])
    def test_rejects_non_positive(self, ms):
        with pytest.raises(ValueError):
            ms_to_bpm(ms)

    def test_interval_helper_leaves_bad_values_unset(self):
        assert coerce_bpm_from_interval("0") is None
        assert coerce_bpm_from_interval("abc") is None
        assert coerce_bpm_from_interval("1000") == 60


class TestCoerceRate:
    def test_interval_with_ms_unit_is_inverted(self):
        assert coerce_rate("1000 ms") == 60

    def test_bpm_values_pass_through(self):
        assert coerce_rate("130 bpm") == 130
        assert coerce_rate("70") == 70

    def test_unusable_rate(self):
        assert coerce_rate("Off") is None
        assert coerce_rate(None) is None


class TestConvertThreshold:
    def test_scales_to_volts(self):
        assert convert_threshold("2500") == "2.500"
        assert convert_threshold("750") == "0.750"

    def test_non_numeric_unchanged(self):
        assert convert_threshold("N/A") == "N/A"

    def test_none(self):
        assert convert_threshold(None) is None


class TestMonths:
    @pytest.mark.parametrize("name,number", [
        ("Jan", 1), ("Sep", 9), ("Sept", 9), ("sept", 9), ("December", 12),
    ])
    def test_month_number(self, name, number):
        assert month_number(name) == number

    def test_unknown_month(self):
        with pytest.raises(ValueError):
            month_number("Smarch")

    def test_build_iso_date_defaults_day(self):
        assert build_iso_date("2019", "5") == "2019-05-01"
        assert build_iso_date("2024", "Mar", "14") == "2024-03-14"

    def test_build_iso_date_invalid(self):
        assert build_iso_date("2019", "13", "1") is None
        assert build_iso_date("2019", "Foo", "1") is None


class TestDates:
    @pytest.mark.parametrize("value,expected", [
        ("1970-01-01", "1970-01-01"),
        ("1/1/1970", "1970-01-01"),
        ("19700101", "1970-01-01"),
        ("2019-05-14T08:30:00", "2019-05-14"),
    ])
    def test_to_iso_date(self, value, expected):
        assert to_iso_date(value) == expected

    def test_to_iso_date_unrecognised(self):
        assert to_iso_date("sometime") is None

    @pytest.mark.parametrize("value,expected", [
        ("3/14/2024 10:22:05 AM", "2024-03-14T10:22:05Z"),
        ("3/14/2024 1:02:03 PM", "2024-03-14T13:02:03Z"),
        ("2024-03-14T10:22:05+01:00", "2024-03-14T09:22:05Z"),
        ("2024-03-14T10:22:05Z", "2024-03-14T10:22:05Z"),
        ("20240314T102205", "2024-03-14T10:22:05Z"),
    ])
    def test_to_rfc3339_utc(self, value, expected):
        assert to_rfc3339_utc(value) == expected


class TestUnitsAndFormatting:
    @pytest.mark.parametrize("value,expected", [
        ("2.98 V", "2.98"),
        ("450 Ohm", "450"),
        ("23 %", "23"),
        ("3.2 mV", "3.2"),
        ("36 J", "36"),
        ("DDDR", "DDDR"),
    ])
    def test_strip_units(self, value, expected):
        assert strip_units(value) == expected

    def test_format_energy(self):
        assert format_energy("25") == "25 J"
        assert format_energy("25 J") == "25 J"
        assert format_energy("Off") is None

    def test_format_shock_count(self):
        assert format_shock_count("6") == "x 6"
        assert format_shock_count("x 4") == "x 4"
        assert format_shock_count("Off") == "Off"

    def test_battery_status(self):
        assert battery_status("Beginning of Life") == "BOL"
        assert battery_status("Elective Replacement") == "ERI"
        assert battery_status("End of Service") == "EOL"
        assert battery_status("Something New") == "Something New"

    def test_months_to_years(self):
        assert months_to_years("102") == "8.5 years"
        assert months_to_years("n/a") is None


class TestRemainingShocks:
    def test_budget_minus_configured(self):
        assert calculate_remaining_shocks("VT1", "6", ["25", "31"]) == "x 4"

    def test_all_zero_is_off(self):
        assert calculate_remaining_shocks("VT1", "6", ["0", "0"]) == "Off"

    def test_missing_energies_count_as_zero(self):
        assert calculate_remaining_shocks("VT", "5", [None, None]) == "Off"

    def test_clamped_at_zero(self):
        assert calculate_remaining_shocks("VF", "1", ["41", "41"]) == "x 0"

    def test_missing_budget_treated_as_zero(self):
        assert calculate_remaining_shocks("VF", None, ["41", "0"]) == "x 0"


class TestSplitLines:
    def test_only_line_breaks_split(self):
        assert split_lines("302\x1cBase Rate\x1c1000 ms\r\n202\x1cSerial\x1c42") == [
            "302\x1cBase Rate\x1c1000 ms",
            "202\x1cSerial\x1c42",
        ]

    def test_mixed_endings_and_trailing_newline(self):
        assert split_lines("a\rb\nc\r\n") == ["a", "b", "c"]

    def test_keeps_form_feed_and_nel(self):
        assert split_lines("a\x0cb\x85c") == ["a\x0cb\x85c"]

    def test_empty(self):
        assert split_lines("") == []
