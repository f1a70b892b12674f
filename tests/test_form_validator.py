"""
Tests for per-step form validation.

Covers role-specific field visibility, conditional fields, the age rule on
personal information, and per-source income errors.
"""

from datetime import date

import pytest

from validation.field_rules import ErrorKind
from validation.forms import STEP_FORMS, FormValidator


TODAY = date(2025, 1, 1)


@pytest.fixture
def validator():
    return FormValidator()


def _personal(dob: str) -> dict:
    return {
        "first_name": "Jane",
        "last_name": "Doe",
        "date_of_birth": dob,
        "gender": "female",
        "tobacco_usage": "non-smoker",
    }


class TestPersonalInformation:
    """Age window on the personal information step."""

    def test_valid_adult(self, validator):
        result = validator.validate("personal-information", _personal("04/12/1985"), "primary", TODAY)
        assert result.valid
        assert result.age.age == 39

    def test_primary_under_19_is_blocked(self, validator):
        result = validator.validate("personal-information", _personal("06/15/2008"), "primary", TODAY)
        assert not result.valid
        assert result.errors[0].reason == ErrorKind.AGE_INELIGIBLE
        assert "must be 19 or older" in result.errors[0].message
        assert result.error_map()["date_of_birth"] == "You must be 19 or older to enroll"

    def test_family_member_out_of_range_only_warns(self, validator):
        result = validator.validate("personal-information", _personal("01/01/1955"), "spouse", TODAY)
        assert result.valid
        assert result.warnings[0].field == "date_of_birth"
        assert result.age.is_over_65

    def test_impossible_date(self, validator):
        result = validator.validate("personal-information", _personal("02/30/2000"), "primary", TODAY)
        assert "date_of_birth" in result.error_map()
        assert result.age is None

    def test_missing_fields_are_reported(self, validator):
        result = validator.validate("personal-information", {}, "dependent", TODAY)
        assert set(result.error_map()) == {
            "first_name", "last_name", "date_of_birth", "gender", "tobacco_usage",
        }


class TestRoleVisibility:

    def test_address_is_primary_only(self, validator):
        assert not validator.validate("address-information", {}, "primary", TODAY).valid
        assert validator.validate("address-information", {}, "spouse", TODAY).valid

    def test_unsupported_state(self, validator):
        values = {"street": "1 Main St", "city": "Atlanta", "state": "GA", "zip": "30301"}
        result = validator.validate("address-information", values, "primary", TODAY)
        assert result.error_map().keys() == {"state"}

    def test_configured_states(self):
        validator = FormValidator(supported_states=["FL", "GA"])
        values = {"street": "1 Main St", "city": "Atlanta", "state": "GA", "zip": "30301"}
        assert validator.validate("address-information", values, "primary", TODAY).valid


class TestConditionalFields:

    def test_document_hidden_for_citizens(self, validator):
        result = validator.validate("citizenship-information", {"is_us_citizen": "yes"}, "spouse", TODAY)
        assert result.valid

    def test_document_required_for_non_citizens(self, validator):
        result = validator.validate("citizenship-information", {"is_us_citizen": "no"}, "spouse", TODAY)
        assert "immigration_document_type" in result.error_map()

    def test_none_of_these_warns(self, validator):
        values = {"is_us_citizen": "no", "immigration_document_type": "None of these"}
        result = validator.validate("citizenship-information", values, "primary", TODAY)
        assert result.valid
        assert len(result.warnings) == 1

    def test_disposition_needed_when_incarcerated(self, validator):
        result = validator.validate("incarceration-status", {"is_incarcerated": "yes"}, "primary", TODAY)
        assert "is_pending_disposition" in result.error_map()

    def test_tobacco_last_used(self, validator):
        assert not validator.validate("tobacco-usage", {"is_tobacco_user": "yes"}, "primary", TODAY).valid
        values = {"is_tobacco_user": "yes", "last_used_date": "06/01/2024"}
        assert validator.validate("tobacco-usage", values, "primary", TODAY).valid
        assert validator.validate("tobacco-usage", {"is_tobacco_user": "no"}, "primary", TODAY).valid


class TestAccountAndAgreements:

    def test_password_confirmation(self, validator):
        values = {"email": "jane@example.com", "password": "supersecret", "confirm_password": "other"}
        result = validator.validate("create-account", values, "primary", TODAY)
        assert result.errors[0].reason == ErrorKind.MISMATCH
        assert result.errors[0].field == "confirm_password"

    def test_tax_attestation_needs_every_statement(self, validator):
        answers = {"tax-eligibility": "agree", "tax-filing": "agree", "tax-dependent": "agree"}
        result = validator.validate(
            "agreements-tax-attestation", {"tax_attestation": answers}, "primary", TODAY
        )
        assert not result.valid

    @pytest.mark.parametrize("answers", [["agree"], "agree", 1])
    def test_tax_attestation_must_be_a_mapping(self, validator, answers):
        result = validator.validate(
            "agreements-tax-attestation", {"tax_attestation": answers}, "primary", TODAY
        )
        assert list(result.error_map()) == ["tax_attestation"]
        assert result.errors[0].reason == ErrorKind.FORMAT

    def test_signature_must_match_full_name(self, validator):
        values = {"notification": "agree", "medicare_option": "allow", "signature": "jane doe"}
        result = validator.validate(
            "agreements-sign-submit", values, "primary", TODAY, full_name="Jane Doe"
        )
        assert result.error_map().keys() == {"signature"}

        values["signature"] = " Jane Doe "
        assert validator.validate(
            "agreements-sign-submit", values, "primary", TODAY, full_name="Jane Doe"
        ).valid


class TestIncomeStep:

    def test_at_least_one_source(self, validator):
        result = validator.validate("income", {"income_sources": []}, "primary", TODAY)
        assert "income_sources" in result.error_map()

    def test_per_source_errors(self, validator):
        values = {"income_sources": [
            {"type": "unemployed"},
            {"type": "job", "amount": 100, "frequency": "weekly",
             "employer_name": "Acme", "employer_phone": "555-123"},
        ]}
        result = validator.validate("income", values, "primary", TODAY)
        assert list(result.error_map()) == ["income_sources[1].employer_phone"]

    @pytest.mark.parametrize("sources", ["abc", ["job"], {"type": "job"}, [{"type": "job"}, 3]])
    def test_malformed_sources(self, validator, sources):
        result = validator.validate("income", {"income_sources": sources}, "primary", TODAY)
        assert list(result.error_map()) == ["income_sources"]
        assert result.errors[0].reason == ErrorKind.FORMAT

    def test_unemployed_update_is_zeroed(self):
        update = STEP_FORMS["income"].record_update(
            {"income_sources": [{"type": "unemployed", "amount": 500, "frequency": "weekly"}]}
        )
        assert update == {"income_sources": [{"type": "unemployed", "amount": 0}]}


class TestUnknownStep:

    def test_unknown_step_is_invalid(self, validator):
        result = validator.validate("nonexistent", {}, "primary", TODAY)
        assert not result.valid
        assert result.errors[0].reason == ErrorKind.UNSUPPORTED
