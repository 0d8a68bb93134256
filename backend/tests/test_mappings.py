"""
Unit Tests for service/country mapping tables

Unmapped internal codes must resolve to each provider's documented
default instead of raising.

Run with: pytest tests/test_mappings.py -v
"""

import pytest

from sms_rental.mappings import (
    ANOSIM_DEFAULT_COUNTRY_ID,
    GOGETSMS_DEFAULT_RENT_HOURS,
    SMSPVA_COUNTRIES,
    anosim_price_band,
    anosim_service_for_product,
    gogetsms_numeric_country,
    normalize_gogetsms_hours,
    resolve_anosim_country,
    resolve_anosim_product,
    resolve_gogetsms_activation_country,
    resolve_gogetsms_rental_country,
    resolve_gogetsms_service,
    resolve_smspva_country,
    resolve_smspva_service,
)
from sms_rental.gogetsms import detect_optimal_mode
from sms_rental.smspva import prolong_units, rent_units


class TestSmspvaMappings:
    """Test SMSPVA code resolution."""

    def test_known_country(self):
        assert resolve_smspva_country("12") == "US"

    def test_two_letter_code_passes_through(self):
        assert resolve_smspva_country("fr") == "FR"

    def test_unknown_country_defaults_to_ru(self):
        assert resolve_smspva_country("9999") == "RU"

    def test_known_service(self):
        assert resolve_smspva_service("wa") == "opt20"

    def test_opt_code_passes_through(self):
        assert resolve_smspva_service("opt99") == "opt99"

    def test_unknown_service_defaults_to_other(self):
        assert resolve_smspva_service("nope") == "opt142"

    def test_tables_are_read_only(self):
        with pytest.raises(TypeError):
            SMSPVA_COUNTRIES["999"] = "XX"

    def test_rent_units_round_up_to_weeks(self):
        assert rent_units(4) == ("week", 1)
        assert rent_units(169) == ("week", 2)

    def test_prolong_units(self):
        assert prolong_units(24) == ("week", 1)
        assert prolong_units(720) == ("month", 1)


class TestAnosimMappings:
    """Test Anosim code resolution."""

    def test_unknown_country_defaults_to_germany(self):
        assert resolve_anosim_country("xx") == ANOSIM_DEFAULT_COUNTRY_ID == 98

    def test_uk(self):
        assert resolve_anosim_country("uk") == 286

    def test_direct_country_id(self):
        assert resolve_anosim_country("165") == 165

    def test_unknown_service_defaults_to_other(self):
        assert resolve_anosim_product("zz") == "Other"

    def test_known_service(self):
        assert resolve_anosim_product("tg") == "Telegram"

    def test_product_to_service(self):
        assert anosim_service_for_product("WhatsApp") == "wa"
        assert anosim_service_for_product("Gmail") == "go"
        assert anosim_service_for_product("Unheard") == "ot"

    def test_price_band(self):
        assert anosim_price_band(24) == (3.5, 4.5)
        assert anosim_price_band(5) == (10.0, 12.0)


class TestGoGetSmsMappings:
    """Test GoGetSMS code resolution."""

    def test_unknown_service_defaults_to_other(self):
        assert resolve_gogetsms_service("zz") == "1"

    def test_numeric_service_passes_through(self):
        assert resolve_gogetsms_service("42") == "42"

    def test_rental_country(self):
        assert resolve_gogetsms_rental_country("43") == "DE"
        assert resolve_gogetsms_rental_country("999") == "GB"

    def test_activation_country(self):
        assert resolve_gogetsms_activation_country("US") == "187"
        assert resolve_gogetsms_activation_country("999") == "16"

    def test_numeric_country(self):
        assert gogetsms_numeric_country("gb") == "16"
        assert gogetsms_numeric_country("ZZ") == "16"

    @pytest.mark.parametrize("hours,expected", [
        (4, 4), (24, 24), (720, 720), (5, GOGETSMS_DEFAULT_RENT_HOURS), ("abc", GOGETSMS_DEFAULT_RENT_HOURS),
    ])
    def test_rent_hours(self, hours, expected):
        assert normalize_gogetsms_hours(hours) == expected

    def test_mode_detection(self):
        assert detect_optimal_mode("wa", 4) == "activation"
        assert detect_optimal_mode("wa", 168) == "rental"
        assert detect_optimal_mode("full_uk", 4) == "rental"
        assert detect_optimal_mode("xx", 2) == "activation"
