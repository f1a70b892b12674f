"""
Enrollment Flow

The operations a page (or the HTTP API) calls: start a session, submit a
step, skip a step, go back, and build the final submission payload. Each
operation wires the form validator, the record store, the step graph and
the family member coordinator together.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from models.applicant import ApplicantRecord, MemberRole, StepStatus
from validation.field_rules import (
    SIGNATURE_INPUT_ERROR,
    ErrorKind,
    ValidationResult,
    ValidationSeverity,
    error,
    sanitize_signature_input,
    signature_match,
    supported_zip,
)
from validation.forms import FormValidator

from .coordinator import FamilyMemberCoordinator
from .errors import (
    EnrollmentValidationError,
    RecordNotFoundError,
    UnknownStepError,
)
from .record_store import ApplicantRecordStore
from .steps import StepGraph, StepId, get_step_graph

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """What happened when a step was submitted or skipped."""
    accepted: bool
    step: StepId
    member_id: str
    next_step: Optional[StepId] = None
    next_url: Optional[str] = None
    errors: List[ValidationResult] = field(default_factory=list)
    warnings: List[ValidationResult] = field(default_factory=list)
    storage_warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "step": self.step.value,
            "member_id": self.member_id,
            "next_step": self.next_step.value if self.next_step else None,
            "next_url": self.next_url,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "storage_warnings": self.storage_warnings,
        }


class EnrollmentFlow:
    """
    Drives one household through the enrollment steps.

    Example:
        flow = EnrollmentFlow(store)
        flow.begin("33101", plan_id="plan-123")
        outcome = flow.submit_step("personal-information", {
            "first_name": "Jane", "last_name": "Doe",
            "date_of_birth": "04/12/1985", "gender": "female",
            "tobacco_usage": "non-smoker",
        })
        outcome.next_url   # "/enroll/contact-information?planId=plan-123"
    """

    def __init__(
        self,
        store: ApplicantRecordStore,
        coordinator: Optional[FamilyMemberCoordinator] = None,
        graph: Optional[StepGraph] = None,
        validator: Optional[FormValidator] = None,
        supported_states: Optional[List[str]] = None,
    ):
        self.store = store
        self.graph = graph or get_step_graph()
        self.coordinator = coordinator or FamilyMemberCoordinator(store, self.graph)
        self.validator = validator or FormValidator(
            min_age=store.min_age,
            max_age=store.max_age,
            supported_states=supported_states,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @property
    def plan_id(self) -> Optional[str]:
        return self.store.context.plan_id

    def _resolve_record(self, member_id: Optional[str]) -> ApplicantRecord:
        if member_id is None:
            return self.store.primary
        record = self.store.find_record(member_id)
        if record is None:
            raise RecordNotFoundError(member_id).with_fallback_url(
                self.graph.step_url(StepId.REVIEW, self.plan_id)
            )
        return record

    def _resolve_step(self, step: Any, record: ApplicantRecord) -> StepId:
        step_id = StepId.parse(step)
        if step_id == StepId.UNKNOWN or not self.graph.contains(step_id, record.role):
            entry = self.graph.entry_step(record.role)
            member = record if record.role != MemberRole.PRIMARY else None
            raise UnknownStepError(step, fallback_step=entry.value).with_fallback_url(
                self.graph.step_url(entry, self.plan_id, member)
            )
        return step_id

    def _url_for(self, step: Optional[StepId], record: ApplicantRecord) -> Optional[str]:
        if step is None or step == StepId.UNKNOWN:
            return None
        member = record if record.role != MemberRole.PRIMARY else None
        return self.graph.step_url(step, self.plan_id, member)

    # -------------------------------------------------------------------------
    # Session start
    # -------------------------------------------------------------------------

    def begin(self, zip_code: str, plan_id: Optional[str] = None) -> None:
        """Record the ZIP code and plan a session starts from."""
        result = supported_zip(zip_code, "zip_code")
        if not result.valid:
            raise EnrollmentValidationError(result.message, errors=[result.to_dict()])
        self.store.update_context(zip_code=zip_code.strip(), plan_id=plan_id)
        logger.info("Enrollment session started", extra={"plan_id": plan_id})

    # -------------------------------------------------------------------------
    # Step operations
    # -------------------------------------------------------------------------

    def submit_step(
        self,
        step: Any,
        values: Mapping[str, Any],
        member_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> StepOutcome:
        """
        Validate and save one step's values, then resolve where to go next.

        Validation failures come back on the outcome; nothing is written
        and the step is not marked completed.

        Raises:
            RecordNotFoundError: ``member_id`` does not exist.
            UnknownStepError: ``step`` is not on the member's route.
        """
        record = self._resolve_record(member_id)
        step_id = self._resolve_step(step, record)
        today = today or self.store.today_fn()
        outcome = StepOutcome(accepted=False, step=step_id, member_id=record.id)

        if step_id == StepId.COMPLETE:
            outcome.accepted = True
            return outcome

        self.coordinator.start_step(record.id, step_id)

        result = self.validator.validate(
            step_id,
            values,
            record.role,
            today=today,
            full_name=self.store.primary.full_name,
        )
        outcome.errors.extend(result.errors)
        outcome.warnings.extend(result.warnings)

        if step_id == StepId.REVIEW:
            self._check_review(outcome, today)

        if outcome.errors:
            outcome.storage_warnings = self.store.drain_warnings()
            return outcome

        form = self.validator.form_for(step_id)
        update = form.record_update(values) if form else {}
        try:
            if update:
                self.store.upsert_record(record.id, update)
            self._apply_household_values(step_id, values)
        except EnrollmentValidationError as e:
            outcome.errors.extend(
                error(ErrorKind.FORMAT, item.get("message", e.message), item.get("field"))
                for item in (e.errors or [{"message": e.message}])
            )
            outcome.storage_warnings = self.store.drain_warnings()
            return outcome

        if step_id == StepId.PERSONAL_INFORMATION and record.role != MemberRole.PRIMARY:
            self.coordinator.apply_age_defaults(record.id, today)

        record = self.coordinator.complete_step(record.id, step_id)
        outcome.accepted = True
        outcome.next_step = self.graph.next_step(step_id, record, self.store.context)
        outcome.next_url = self._url_for(outcome.next_step, record)
        outcome.storage_warnings = self.store.drain_warnings()

        logger.info(
            "Step completed",
            extra={
                "step": step_id.value,
                "role": record.role.value,
                "next_step": outcome.next_step.value if outcome.next_step else None,
            },
        )
        return outcome

    def _apply_household_values(self, step_id: StepId, values: Mapping[str, Any]) -> None:
        if step_id == StepId.AGREEMENTS_RENEWAL:
            self.store.update_context(agreements={"renewal": values.get("renewal")})
        elif step_id == StepId.AGREEMENTS_TAX_ATTESTATION:
            self.store.update_context(
                agreements={"tax_attestation": dict(values.get("tax_attestation") or {})}
            )
        elif step_id == StepId.AGREEMENTS_SIGN_SUBMIT:
            self.store.update_context(agreements={
                "notification": values.get("notification"),
                "medicare_option": values.get("medicare_option"),
            })

    def _check_review(self, outcome: StepOutcome, today: date) -> None:
        """The household can only leave review once every member is enrolled."""
        eligibility = self.coordinator.recompute_household_eligibility(today)
        for warning in eligibility.age_warnings:
            outcome.warnings.append(ValidationResult(
                valid=True,
                reason=ErrorKind.AGE_INELIGIBLE,
                message=f"{warning.name or 'Family member'}: {warning.message}",
                severity=ValidationSeverity.WARNING,
                field=f"members.{warning.member_id}",
            ))

        pending = self.coordinator.pending_members()
        if pending:
            names = ", ".join(r.full_name or r.id for r in pending)
            outcome.errors.append(error(
                ErrorKind.REQUIRED,
                f"Please complete enrollment for all family members before continuing: {names}",
                "members",
            ))

    def skip_step(self, step: Any, member_id: str) -> StepOutcome:
        """
        Mark a step completed for a member who is not applying, without
        validating anything.

        Raises:
            EnrollmentValidationError: the step cannot be skipped for this member.
        """
        record = self._resolve_record(member_id)
        step_id = self._resolve_step(step, record)
        if not self.graph.can_skip(step_id, record, self.store.context):
            raise EnrollmentValidationError(
                f"Step {step_id.value} cannot be skipped for this member"
            )

        record = self.coordinator.skip_step(record.id, step_id)
        next_step = self.graph.next_step(step_id, record, self.store.context)
        return StepOutcome(
            accepted=True,
            step=step_id,
            member_id=record.id,
            next_step=next_step,
            next_url=self._url_for(next_step, record),
            storage_warnings=self.store.drain_warnings(),
        )

    def go_back(self, step: Any, member_id: Optional[str] = None) -> Optional[str]:
        """URL of the step before ``step`` for this member, None at the start."""
        record = self._resolve_record(member_id)
        step_id = self._resolve_step(step, record)
        previous = self.graph.previous_step(step_id, record.role, record, self.store.context)
        return self._url_for(previous, record)

    def resume_step(self, member_id: Optional[str] = None) -> StepId:
        """First step on the member's route that is not yet completed."""
        record = self._resolve_record(member_id)
        for step_id in self.coordinator.required_steps(record):
            if record.step_status(step_id) != StepStatus.COMPLETED:
                return step_id
        return StepId.REVIEW if record.role != MemberRole.PRIMARY else StepId.COMPLETE

    def filter_signature(self, raw: str) -> Dict[str, Any]:
        """Keystroke filter for the signature box plus the live match verdict."""
        filtered, rejected = sanitize_signature_input(raw)
        match = signature_match(filtered, self.store.primary.full_name)
        return {
            "value": filtered,
            "input_error": SIGNATURE_INPUT_ERROR if rejected else None,
            "matches": match.valid,
            "message": None if match.valid else match.message,
        }

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def submission_payload(self) -> Dict[str, Any]:
        """
        The full household, ready for the submission backend.

        Raises:
            EnrollmentValidationError: the sign-and-submit step is not done, or
                the stored signature no longer matches the applicant's name.
        """
        primary = self.store.primary
        if primary.step_status(StepId.AGREEMENTS_SIGN_SUBMIT) != StepStatus.COMPLETED:
            raise EnrollmentValidationError("Enrollment has not been signed and submitted")

        signature = signature_match(primary.signature, primary.full_name)
        if not signature.valid:
            raise EnrollmentValidationError(signature.message, errors=[signature.to_dict()])

        payload = self.store.context.to_submission_payload()
        logger.info(
            "Submission payload built",
            extra={"household_size": payload["household_size"], "plan_id": self.plan_id},
        )
        return payload
