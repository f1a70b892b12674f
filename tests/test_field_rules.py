"""
Tests for the field validation rules.

Every rule is pure, so these tests call them directly with literal inputs.
"""

from datetime import date

import pytest

from validation.field_rules import (
    IMMIGRATION_DOCUMENTS,
    NONE_OF_THESE_DOCUMENT,
    SIGNATURE_INPUT_ERROR,
    ErrorKind,
    ValidationSeverity,
    age_eligibility,
    calculate_age,
    citizenship_document,
    date_of_birth,
    email_format,
    employer_phone,
    format_date,
    income_source_complete,
    incarceration_disposition,
    name_format,
    parse_date,
    phone10,
    sanitize_name_input,
    sanitize_signature_input,
    signature_match,
    ssn9,
    state_supported,
    supported_zip,
    zip5,
)


TODAY = date(2025, 1, 1)


# =============================================================================
# DATES
# =============================================================================

class TestDates:
    """MM/DD/YYYY parsing is strict and round-trips."""

    def test_round_trip(self):
        assert format_date(parse_date("04/12/1985")) == "04/12/1985"
        assert parse_date(format_date(date(2000, 2, 29))) == date(2000, 2, 29)

    def test_impossible_day_is_rejected(self):
        assert parse_date("02/30/2000") is None
        result = date_of_birth("02/30/2000", today=TODAY)
        assert not result.valid
        assert result.reason == ErrorKind.FORMAT

    @pytest.mark.parametrize("raw", ["1985-04-12", "4/12/1985", "04/12/85", "", None, "abc"])
    def test_wrong_shape_is_rejected(self, raw):
        assert parse_date(raw) is None

    def test_date_objects_pass_through(self):
        assert parse_date(date(1990, 5, 5)) == date(1990, 5, 5)

    def test_future_date_of_birth(self):
        result = date_of_birth("01/02/2025", today=TODAY)
        assert result.reason == ErrorKind.RANGE

    def test_missing_date_of_birth(self):
        assert date_of_birth("  ", today=TODAY).reason == ErrorKind.REQUIRED

    def test_age_counts_only_passed_birthdays(self):
        assert calculate_age(date(2010, 1, 2), TODAY) == 14
        assert calculate_age(date(2010, 1, 1), TODAY) == 15


# =============================================================================
# AGE ELIGIBILITY
# =============================================================================

class TestAgeEligibility:

    def test_under_19(self):
        result = age_eligibility(date(2010, 1, 2), "spouse", TODAY)
        assert result.age == 14
        assert result.is_under_19
        assert not result.is_over_65
        assert not result.blocks_progress

    def test_over_65(self):
        result = age_eligibility(date(1959, 1, 1), "dependent", TODAY)
        assert result.age == 66
        assert result.is_over_65
        assert not result.is_eligible

    def test_bounds_are_inclusive(self):
        assert age_eligibility(date(2006, 1, 1), "spouse", TODAY).is_eligible  # 19
        assert age_eligibility(date(1960, 1, 1), "spouse", TODAY).is_eligible  # 65

    def test_primary_out_of_range_blocks(self):
        young = age_eligibility(date(2008, 6, 15), "primary", TODAY)
        assert young.blocks_progress
        assert young.message == "You must be 19 or older to enroll"

        old = age_eligibility(date(1950, 6, 15), "primary", TODAY)
        assert old.blocks_progress
        assert old.message == "You must be 65 or younger to enroll"

    def test_custom_window(self):
        result = age_eligibility(date(2008, 6, 15), "spouse", TODAY, min_age=16, max_age=70)
        assert result.is_eligible


# =============================================================================
# TEXT, CONTACT AND IDENTITY
# =============================================================================

class TestTextRules:

    def test_names(self):
        assert name_format("Mary-Jane O'Neil", "first_name", "First name").valid
        bad = name_format("J4ne", "first_name", "First name")
        assert bad.reason == ErrorKind.FORMAT
        assert name_format("", "first_name", "First name").reason == ErrorKind.REQUIRED

    def test_name_input_drops_digits(self):
        assert sanitize_name_input("Ja1ne2") == "Jane"

    def test_email(self):
        assert email_format("jane@example.com").valid
        assert not email_format("jane@example").valid
        assert email_format(None).reason == ErrorKind.REQUIRED


class TestPhoneRules:

    @pytest.mark.parametrize("raw", ["3055550100", "(305) 555-0100", "305.555.0100"])
    def test_contact_phone_valid(self, raw):
        assert phone10(raw).valid

    @pytest.mark.parametrize("raw", ["555-123", "305555010", "30555501000", "305555010a"])
    def test_contact_phone_invalid(self, raw):
        assert not phone10(raw).valid

    def test_employer_phone_needs_nine_digits(self):
        assert not employer_phone("555-123").valid
        assert employer_phone("555-123-456").valid
        assert employer_phone("555-123-4567").valid


class TestSsn:

    def test_valid(self):
        assert ssn9("123456789").valid
        assert ssn9(" 123456789 ").valid

    @pytest.mark.parametrize("raw", ["12345678", "12a456789", "1234567890", "123-45-6789", "123-456-789"])
    def test_invalid(self, raw):
        assert ssn9(raw).reason == ErrorKind.FORMAT


class TestLocation:

    def test_zip_shape(self):
        assert zip5("33101").valid
        assert zip5("3310").reason == ErrorKind.FORMAT

    def test_service_area(self):
        assert supported_zip("33101").valid
        assert supported_zip("30301").valid
        outside = supported_zip("90210")
        assert outside.reason == ErrorKind.UNSUPPORTED
        assert outside.message == "Coverage is not yet available in your area"

    def test_state(self):
        assert state_supported("fl", ["FL"]).valid
        assert state_supported("GA", ["FL"]).reason == ErrorKind.UNSUPPORTED


class TestConditionalRules:

    def test_citizens_need_no_document(self):
        assert citizenship_document("yes", None).valid

    def test_non_citizen_document_required(self):
        assert citizenship_document("no", "").reason == ErrorKind.REQUIRED
        assert citizenship_document("no", IMMIGRATION_DOCUMENTS[0]).valid
        assert citizenship_document("no", "Library card").reason == ErrorKind.FORMAT

    def test_none_of_these_is_a_warning(self):
        result = citizenship_document("no", NONE_OF_THESE_DOCUMENT)
        assert result.valid
        assert result.severity == ValidationSeverity.WARNING

    def test_disposition_only_when_incarcerated(self):
        assert incarceration_disposition("no", None).valid
        assert not incarceration_disposition("yes", None).valid
        assert incarceration_disposition("yes", "no").valid


# =============================================================================
# SIGNATURE
# =============================================================================

class TestSignature:

    def test_surrounding_whitespace_is_ignored(self):
        assert signature_match(" Jane Doe ", "Jane Doe").valid

    def test_case_matters(self):
        result = signature_match("jane doe", "Jane Doe")
        assert result.reason == ErrorKind.MISMATCH
        assert result.message == "Signature must exactly match your full name: Jane Doe"

    def test_input_filter(self):
        assert sanitize_signature_input("Jane Doe") == ("Jane Doe", False)
        assert sanitize_signature_input("Jane D0e!") == ("Jane De", True)
        assert SIGNATURE_INPUT_ERROR == "Signature cannot contain numbers or special characters"


# =============================================================================
# INCOME SOURCES
# =============================================================================

class TestIncomeSourceComplete:

    def test_complete_job(self):
        source = {
            "type": "job", "amount": 1000, "frequency": "weekly",
            "employer_name": "Acme", "employer_phone": "555-123-4567",
        }
        assert income_source_complete(source) == []

    def test_short_employer_phone(self):
        source = {
            "type": "job", "amount": 1000, "frequency": "weekly",
            "employer_name": "Acme", "employer_phone": "555-123",
        }
        failures = income_source_complete(source, 2)
        assert [f.field for f in failures] == ["income_sources[2].employer_phone"]

    def test_unemployed_needs_nothing(self):
        assert income_source_complete({"type": "unemployed"}) == []

    def test_missing_amount_and_frequency(self):
        fields = {f.field for f in income_source_complete({"type": "other"})}
        assert fields == {"income_sources[0].amount", "income_sources[0].frequency"}

    def test_unemployment_expiration(self):
        source = {"type": "unemployment", "amount": 300, "frequency": "weekly",
                  "expiration_date": "13/01/2025"}
        failures = income_source_complete(source)
        assert failures[0].field == "income_sources[0].expiration_date"
        assert failures[0].reason == ErrorKind.FORMAT

    def test_unknown_type(self):
        failures = income_source_complete({"type": "lottery"})
        assert failures[0].field == "income_sources[0].type"
