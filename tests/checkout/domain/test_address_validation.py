"""Tests for contact and shipping-address validation."""

from checkout.address.validation import (
    as_messages,
    can_fetch_shipping_rates,
    missing_required_fields,
    phone_digits,
    required_field_errors,
    summarize,
    validate_customer_info,
    validate_shipping_address,
)
from checkout.session.session import CustomerInfo

COMPLETE = {
    "name": "Jane Doe",
    "email": "jane@example.com",
    "phone": "(310) 555-1234",
    "address1": "9641 Sunset Blvd",
    "address2": "",
    "city": "Beverly Hills",
    "state": "CA",
    "zip": "90210",
    "country": "US",
}


class TestRequiredFields:
    def test_complete_info_has_nothing_missing(self):
        assert missing_required_fields(COMPLETE) == []

    def test_blank_and_whitespace_fields_are_missing(self):
        info = {**COMPLETE, "name": "   ", "city": ""}
        assert missing_required_fields(info) == ["name", "city"]

    def test_error_messages_use_labels(self):
        errors = required_field_errors({**COMPLETE, "zip": ""})
        assert [error.message for error in errors] == ["ZIP/Postal code is required"]

    def test_accepts_value_object(self):
        info = CustomerInfo(name="Jane Doe", email="jane@example.com")
        assert "phone" in missing_required_fields(info)
        assert "name" not in missing_required_fields(info)

    def test_address2_and_state_are_not_required_here(self):
        assert missing_required_fields({**COMPLETE, "address2": "", "state": ""}) == []


class TestPhoneDigits:
    def test_strips_formatting(self):
        assert phone_digits("+1 (310) 555-1234") == "13105551234"

    def test_none(self):
        assert phone_digits(None) == ""


class TestCustomerInfo:
    def test_valid(self):
        assert validate_customer_info(COMPLETE) == []

    def test_short_name_and_bad_email(self):
        errors = validate_customer_info({**COMPLETE, "name": "J", "email": "not-an-email"})
        assert {error.field for error in errors} == {"name", "email"}


class TestShippingAddress:
    def test_valid(self):
        assert validate_shipping_address(COMPLETE) == []

    def test_state_required_for_us(self):
        errors = validate_shipping_address({**COMPLETE, "state": ""})
        assert [error.message for error in errors] == ["State/Province is required for US"]

    def test_state_not_required_for_germany(self):
        info = {**COMPLETE, "country": "DE", "state": "", "zip": "10115"}
        assert validate_shipping_address(info) == []

    def test_short_phone(self):
        errors = validate_shipping_address({**COMPLETE, "phone": "555-12"})
        assert errors[0].field == "phone"
        assert "at least 7 digits" in errors[0].message

    def test_phone_optional_when_not_required(self):
        assert validate_shipping_address({**COMPLETE, "phone": ""}, require_phone=False) == []

    def test_bad_postal_code(self):
        errors = validate_shipping_address({**COMPLETE, "zip": "ABCDE"})
        assert errors[0].field == "zip"


class TestCanFetchShippingRates:
    def test_complete_address(self):
        assert can_fetch_shipping_rates(COMPLETE)

    def test_name_is_not_needed_for_a_quote(self):
        assert can_fetch_shipping_rates({**COMPLETE, "name": ""})

    def test_missing_state_for_us_blocks_quote(self):
        assert not can_fetch_shipping_rates({**COMPLETE, "state": ""})

    def test_missing_country_blocks_quote(self):
        assert not can_fetch_shipping_rates({**COMPLETE, "country": ""})

    def test_missing_street_blocks_quote(self):
        assert not can_fetch_shipping_rates({**COMPLETE, "address1": ""})


class TestSummaries:
    def test_single_error_is_returned_as_is(self):
        errors = required_field_errors({**COMPLETE, "email": ""})
        assert summarize(errors) == "Email is required"

    def test_multiple_errors_are_bulleted(self):
        errors = required_field_errors({**COMPLETE, "email": "", "city": ""})
        assert summarize(errors) == "Please fix the following:\n• Email is required\n• City is required"

    def test_as_messages_groups_by_field(self):
        errors = required_field_errors({**COMPLETE, "email": "", "city": ""})
        assert as_messages(errors) == {"email": ["Email is required"], "city": ["City is required"]}

    def test_empty(self):
        assert summarize([]) == ""
