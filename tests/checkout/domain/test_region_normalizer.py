"""Tests for region normalization and postal-code format rules."""

import pytest

from checkout.address.normalizer import (
    known_regions,
    normalize_region,
    state_required,
    validate_postal_code,
)


class TestNormalizeRegion:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("California", "CA"),
            ("california", "CA"),
            ("  New York ", "NY"),
            ("Ontario", "ON"),
            ("British Columbia", "BC"),
            ("Newfoundland and Labrador", "NL"),
        ],
    )
    def test_full_names_map_to_codes(self, value, expected):
        assert normalize_region(value) == expected

    def test_codes_pass_through(self):
        assert normalize_region("TX") == "TX"
        assert normalize_region("QC") == "QC"

    def test_unknown_value_is_returned_unchanged(self):
        assert normalize_region("Bavaria") == "Bavaria"

    def test_empty_values(self):
        assert normalize_region("") == ""
        assert normalize_region(None) == ""

    def test_lowercase_code_is_looked_up_not_passed_through(self):
        assert normalize_region("ca") == "ca"

    def test_idempotent(self):
        once = normalize_region("Texas")
        assert normalize_region(once) == once


class TestStateRequired:
    @pytest.mark.parametrize("country", ["US", "CA", "AU", "JP"])
    def test_required(self, country):
        assert state_required(country)

    @pytest.mark.parametrize("country", ["GB", "DE", "", None])
    def test_not_required(self, country):
        assert not state_required(country)


class TestKnownRegions:
    def test_us_states_exclude_provinces(self):
        codes = {code for code, _ in known_regions("US")}
        assert "CA" in codes
        assert "ON" not in codes
        assert len(codes) == 50

    def test_canadian_provinces(self):
        regions = dict(known_regions("CA"))
        assert regions["ON"] == "Ontario"
        assert regions["NL"] == "Newfoundland and Labrador"
        assert "TX" not in regions

    def test_other_countries_have_none(self):
        assert known_regions("GB") == []


class TestValidatePostalCode:
    @pytest.mark.parametrize(
        "code,country",
        [
            ("90210", "US"),
            ("90210-1234", "US"),
            ("M5V 3A8", "CA"),
            ("m5v3a8", "CA"),
            ("SW1A 1AA", "GB"),
            ("10115", "DE"),
            ("2000", "AU"),
        ],
    )
    def test_valid_codes(self, code, country):
        assert validate_postal_code(code, country).valid

    def test_invalid_us_code_names_expected_format(self):
        check = validate_postal_code("9021", "US")
        assert not check.valid
        assert check.message.startswith("Invalid US postal code format")
        assert "90210" in check.message

    def test_invalid_canadian_code(self):
        assert not validate_postal_code("12345", "CA").valid

    def test_unknown_country_accepts_any_code(self):
        assert validate_postal_code("anything", "ZZ").valid

    def test_missing_code_or_country(self):
        assert not validate_postal_code("", "US").valid
        assert not validate_postal_code("90210", "").valid
        assert validate_postal_code("   ", "US").message == "ZIP code and country are required"

    def test_country_is_case_insensitive(self):
        assert validate_postal_code("90210", "us").valid
