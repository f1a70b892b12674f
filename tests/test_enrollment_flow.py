"""
End-to-end tests for EnrollmentFlow.

Walks the primary applicant and family members through their routes the
way the pages do: submit a step, follow ``next_url``, go back, skip.
"""

from datetime import date

import pytest

from database.session_storage import MemorySessionStorage
from enrollment.errors import (
    EnrollmentValidationError,
    NotFoundError,
    RecordNotFoundError,
    StorageError,
    UnknownStepError,
)
from enrollment.flow import EnrollmentFlow
from enrollment.record_store import ApplicantRecordStore
from enrollment.steps import StepId
from models.applicant import StepStatus
from validation.field_rules import ErrorKind


def _walk(flow, steps, member_id=None):
    outcome = None
    for step, values in steps:
        outcome = flow.submit_step(step, values, member_id=member_id)
        assert outcome.accepted, (step, [e.to_dict() for e in outcome.errors])
    return outcome


def _error_fields(outcome):
    return [e.field for e in outcome.errors]


# =============================================================================
# PRIMARY APPLICANT
# =============================================================================

class TestPrimaryWalkthrough:

    def test_full_enrollment(self, flow, primary_steps, agreement_steps):
        outcome = _walk(flow, primary_steps)
        assert outcome.next_step == StepId.REVIEW
        assert outcome.next_url == "/enroll/review?planId=plan-1"

        review = flow.submit_step("review", {})
        assert review.accepted
        assert review.next_url == "/enroll/agreements/renewal?planId=plan-1"

        final = _walk(flow, agreement_steps)
        assert final.next_step == StepId.COMPLETE
        assert final.next_url == "/enroll/complete?planId=plan-1"

        payload = flow.submission_payload()
        assert payload["household_size"] == 1
        assert payload["household_annual_income"] == 52_000
        assert payload["zip_code"] == "33101"
        assert payload["agreements"]["renewal"] == "agree"
        assert payload["agreements"]["tax_attestation"]["tax-changes"] == "agree"

    def test_next_url_after_each_step(self, flow, primary_steps):
        outcome = flow.submit_step(*primary_steps[0])
        assert outcome.next_url == "/enroll/personal-information?planId=plan-1"
        outcome = flow.submit_step(*primary_steps[1])
        assert outcome.next_url == "/enroll/contact-information?planId=plan-1"

    def test_saved_values(self, flow, store, primary_steps):
        _walk(flow, primary_steps[:5])
        primary = store.primary
        assert primary.date_of_birth == date(1985, 4, 12)
        assert primary.phone_number == "3055550100"
        assert primary.address.state == "FL"
        assert primary.ssn == "123456789"

    def test_smoker_gets_tobacco_step(self, flow, primary_steps):
        steps = list(primary_steps)
        steps[1] = ("personal-information", dict(steps[1][1], tobacco_usage="smoker"))
        outcome = _walk(flow, steps)
        assert outcome.next_step == StepId.TOBACCO_USAGE

        outcome = flow.submit_step(
            "tobacco-usage", {"is_tobacco_user": "yes", "last_used_date": "12/01/2024"}
        )
        assert outcome.next_step == StepId.REVIEW
        assert flow.store.primary.tobacco_last_used == date(2024, 12, 1)
        assert flow.go_back("review") == "/enroll/tobacco-usage?planId=plan-1"

    def test_complete_is_accepted_without_values(self, flow):
        outcome = flow.submit_step("complete", {})
        assert outcome.accepted
        assert outcome.next_step is None


class TestPrimaryAgeBlock:

    def test_under_19_cannot_continue(self, flow, store, primary_personal):
        values = dict(primary_personal, date_of_birth="06/15/2008")
        outcome = flow.submit_step("personal-information", values)

        assert not outcome.accepted
        assert outcome.errors[0].reason == ErrorKind.AGE_INELIGIBLE
        assert "must be 19 or older" in outcome.errors[0].message
        assert outcome.next_url is None
        assert store.primary.date_of_birth is None
        assert store.primary.step_status(StepId.PERSONAL_INFORMATION) == StepStatus.IN_PROGRESS

    def test_over_65_cannot_continue(self, flow, primary_personal):
        outcome = flow.submit_step(
            "personal-information", dict(primary_personal, date_of_birth="01/01/1950")
        )
        assert outcome.errors[0].message == "You must be 65 or younger to enroll"


class TestIncomeScenarios:

    def test_unemployed_totals_zero(self, flow, coordinator, store, primary_steps):
        _walk(flow, primary_steps[:8])
        outcome = flow.submit_step("income", {"income_sources": [{"type": "unemployed"}]})
        assert outcome.accepted
        assert outcome.next_step == StepId.REVIEW
        assert coordinator.total_annual_income(store.primary.id) == 0

    def test_short_employer_phone_blocks_until_fixed(self, flow, store, primary_steps):
        _walk(flow, primary_steps[:8])
        job = {
            "type": "job", "amount": 800, "frequency": "biweekly",
            "employer_name": "Acme", "employer_phone": "555-123",
        }
        outcome = flow.submit_step("income", {"income_sources": [job]})
        assert not outcome.accepted
        assert _error_fields(outcome) == ["income_sources[0].employer_phone"]
        assert store.primary.step_status(StepId.INCOME) == StepStatus.IN_PROGRESS
        assert store.primary.income_sources == []

        job["employer_phone"] = "555-123-4567"
        outcome = flow.submit_step("income", {"income_sources": [job]})
        assert outcome.accepted
        assert store.primary.annual_income() == 20_800


class TestSignature:

    def _sign(self, flow, primary_steps, agreement_steps, signature):
        _walk(flow, primary_steps)
        _walk(flow, [("review", {})] + agreement_steps[:2])
        values = dict(agreement_steps[2][1], signature=signature)
        return flow.submit_step("agreements-sign-submit", values)

    def test_padded_signature_matches(self, flow, primary_steps, agreement_steps):
        outcome = self._sign(flow, primary_steps, agreement_steps, " Jane Doe ")
        assert outcome.accepted
        assert flow.store.primary.signature == "Jane Doe"

    def test_wrong_case_is_rejected(self, flow, primary_steps, agreement_steps):
        outcome = self._sign(flow, primary_steps, agreement_steps, "jane doe")
        assert not outcome.accepted
        assert outcome.errors[0].reason == ErrorKind.MISMATCH

    def test_name_change_invalidates_signature(self, flow, store, primary_steps, agreement_steps):
        assert self._sign(flow, primary_steps, agreement_steps, "Jane Doe").accepted
        store.upsert_record(store.primary.id, {"last_name": "Smith"})
        with pytest.raises(EnrollmentValidationError):
            flow.submission_payload()

    def test_submission_requires_signing(self, flow):
        with pytest.raises(EnrollmentValidationError):
            flow.submission_payload()

    def test_keystroke_filter(self, flow, primary_steps):
        _walk(flow, primary_steps[:2])
        filtered = flow.filter_signature("Jane D0e")
        assert filtered["value"] == "Jane De"
        assert filtered["input_error"] == "Signature cannot contain numbers or special characters"
        assert not filtered["matches"]

        exact = flow.filter_signature("Jane Doe")
        assert exact == {"value": "Jane Doe", "input_error": None, "matches": True, "message": None}


# =============================================================================
# FAMILY MEMBERS
# =============================================================================

class TestFamilyMembers:

    def test_family_urls(self, flow, coordinator, family_personal):
        spouse = coordinator.add_member("spouse")
        outcome = flow.submit_step(
            "personal-information", family_personal("John", "01/01/1980"), member_id=spouse.id
        )
        assert outcome.accepted
        assert outcome.next_url == (
            "/enroll/family-member/contact-information"
            f"?planId=plan-1&familyMemberId={spouse.id}&type=spouse"
        )
        assert flow.go_back("contact-information", spouse.id) == (
            "/enroll/family-member/personal-information"
            f"?planId=plan-1&familyMemberId={spouse.id}&type=spouse"
        )

    def test_over_65_spouse_is_excluded_until_rechecked(
        self, flow, coordinator, store, memory_storage, family_personal
    ):
        spouse = coordinator.add_member("spouse")
        outcome = flow.submit_step(
            "personal-information", family_personal("John", "01/01/1955"), member_id=spouse.id
        )
        assert outcome.accepted
        assert [w.field for w in outcome.warnings] == ["date_of_birth"]
        assert store.get_record(spouse.id).included_in_coverage is False

        coordinator.set_coverage_inclusion(spouse.id, True)
        reloaded = ApplicantRecordStore(store.session_id, storage=memory_storage)
        record = reloaded.get_record(spouse.id)
        assert record.included_in_coverage is True
        assert record.skip_age_validation is True

        flow.submit_step(
            "personal-information", family_personal("John", "01/01/1955"), member_id=spouse.id
        )
        assert store.get_record(spouse.id).included_in_coverage is True

    def test_family_tobacco_branch_needs_coverage(self, flow, coordinator, family_personal):
        spouse = coordinator.add_member("spouse")
        flow.submit_step(
            "personal-information",
            family_personal("John", "01/01/1980", tobacco="smoker"),
            member_id=spouse.id,
        )
        income = {"income_sources": [{"type": "unemployed"}]}
        outcome = flow.submit_step("income", income, member_id=spouse.id)
        assert outcome.next_step == StepId.TOBACCO_USAGE

        coordinator.set_coverage_inclusion(spouse.id, False)
        outcome = flow.submit_step("income", income, member_id=spouse.id)
        assert outcome.next_step == StepId.REVIEW
        assert outcome.next_url == "/enroll/review?planId=plan-1"

    def test_not_applying_member_can_skip(self, flow, coordinator, store):
        spouse = coordinator.add_member("spouse")
        coordinator.mark_not_applying(spouse.id)

        outcome = flow.skip_step("contact-information", spouse.id)
        assert outcome.accepted
        assert outcome.errors == []
        assert outcome.next_step == StepId.SSN_INFORMATION
        assert store.get_record(spouse.id).step_status(StepId.CONTACT_INFORMATION) == StepStatus.COMPLETED

    def test_applying_member_cannot_skip(self, flow, coordinator):
        spouse = coordinator.add_member("spouse")
        with pytest.raises(EnrollmentValidationError):
            flow.skip_step("contact-information", spouse.id)

        coordinator.mark_not_applying(spouse.id)
        with pytest.raises(EnrollmentValidationError):
            flow.skip_step("personal-information", spouse.id)

    def test_review_waits_for_family(self, flow, coordinator, primary_steps):
        _walk(flow, primary_steps)
        spouse = coordinator.add_member("spouse", first_name="John", last_name="Doe",
                                        tobacco_usage="non-smoker")

        outcome = flow.submit_step("review", {})
        assert not outcome.accepted
        assert _error_fields(outcome) == ["members"]
        assert "John Doe" in outcome.errors[0].message

        for step in coordinator.required_steps(spouse):
            coordinator.complete_step(spouse.id, step)
        assert flow.submit_step("review", {}).accepted

    def test_review_reports_age_warnings(self, flow, coordinator, primary_steps):
        _walk(flow, primary_steps)
        coordinator.add_member("dependent", first_name="Kid", last_name="Doe",
                               date_of_birth=date(2015, 1, 1))
        outcome = flow.submit_step("review", {})
        assert outcome.accepted
        assert "Kid Doe" in outcome.warnings[0].message

    def test_resume_step(self, flow, coordinator, family_personal):
        spouse = coordinator.add_member("spouse")
        assert flow.resume_step(spouse.id) == StepId.PERSONAL_INFORMATION
        flow.submit_step(
            "personal-information", family_personal("John", "01/01/1980"), member_id=spouse.id
        )
        assert flow.resume_step(spouse.id) == StepId.CONTACT_INFORMATION


# =============================================================================
# NAVIGATION ERRORS
# =============================================================================

class TestNavigationErrors:

    def test_unknown_step(self, flow):
        with pytest.raises(UnknownStepError) as exc_info:
            flow.submit_step("bogus", {})
        assert exc_info.value.fallback_url == "/enroll/create-account?planId=plan-1"

    def test_step_not_on_family_route(self, flow, coordinator):
        spouse = coordinator.add_member("spouse")
        with pytest.raises(NotFoundError) as exc_info:
            flow.submit_step("address-information", {}, member_id=spouse.id)
        assert exc_info.value.fallback_url.startswith(
            "/enroll/family-member/personal-information?planId=plan-1"
        )

    def test_unknown_member(self, flow):
        with pytest.raises(RecordNotFoundError) as exc_info:
            flow.submit_step("personal-information", {}, member_id="ghost")
        assert exc_info.value.fallback_url == "/enroll/review?planId=plan-1"
        assert exc_info.value.to_dict()["details"]["record_id"] == "ghost"

    def test_go_back_from_start(self, flow):
        assert flow.go_back("create-account") is None
        assert flow.go_back("contact-information") == "/enroll/personal-information?planId=plan-1"

    def test_unsupported_zip(self, store):
        with pytest.raises(EnrollmentValidationError) as exc_info:
            EnrollmentFlow(store).begin("90210", "plan-1")
        assert exc_info.value.message == "Coverage is not yet available in your area"
        assert store.context.zip_code is None


class TestStorageFailures:

    class BrokenStorage(MemorySessionStorage):
        def save(self, session_id, payload):
            raise StorageError("connection refused")

    def test_writes_survive_storage_errors(self, today, primary_steps):
        store = ApplicantRecordStore("s1", storage=self.BrokenStorage(), today_fn=lambda: today)
        flow = EnrollmentFlow(store)
        outcome = flow.submit_step(*primary_steps[1])

        assert outcome.accepted
        assert outcome.storage_warnings
        assert store.primary.first_name == "Jane"
