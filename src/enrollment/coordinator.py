"""
Family Member Coordinator

Tracks the spouse and dependents alongside the primary applicant: adding
and removing members, who is not applying, who is included in coverage,
per-step progress, and household-wide eligibility and income.

All writes go through the ApplicantRecordStore.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from models.applicant import ApplicantRecord, MemberRole, StepStatus
from validation.field_rules import age_eligibility

from .errors import EnrollmentValidationError
from .record_store import ApplicantRecordStore
from .steps import StepGraph, StepId, get_step_graph

logger = logging.getLogger(__name__)


@dataclass
class AgeWarning:
    """A family member whose age falls outside the coverage window."""
    member_id: str
    name: str
    reason: str  # "under_19" or "over_65"
    age: int
    included_in_coverage: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "member_id": self.member_id,
            "name": self.name,
            "reason": self.reason,
            "age": self.age,
            "included_in_coverage": self.included_in_coverage,
            "message": self.message,
        }


@dataclass
class HouseholdEligibility:
    total_included_members: int
    household_size: int
    age_warnings: List[AgeWarning] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_included_members": self.total_included_members,
            "household_size": self.household_size,
            "age_warnings": [w.to_dict() for w in self.age_warnings],
        }


class FamilyMemberCoordinator:
    """
    Coordinates N parallel applicant records within one household.

    Step progress moves pending -> in_progress -> completed. A step is only
    marked completed after its values were validated and written, or when a
    not-applying member skips it.
    """

    def __init__(self, store: ApplicantRecordStore, graph: Optional[StepGraph] = None):
        self.store = store
        self.graph = graph or get_step_graph()

    def _today(self, today: Optional[date]) -> date:
        return today or self.store.today_fn()

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    def add_member(self, role: Any, today: Optional[date] = None, **fields: Any) -> ApplicantRecord:
        """Add a spouse or dependent with a fresh id and empty progress."""
        role = MemberRole(getattr(role, "value", role))
        if role == MemberRole.PRIMARY:
            raise EnrollmentValidationError("A household has exactly one primary applicant")
        if role == MemberRole.SPOUSE and self.store.context.spouse() is not None:
            raise EnrollmentValidationError("A household can only include one spouse")

        member_id = uuid.uuid4().hex
        fields.pop("step_progress", None)
        record = self.store.upsert_record(member_id, fields, role=role)
        logger.info("Added household member", extra={"member_id": member_id, "role": role.value})

        if record.date_of_birth is not None:
            record = self.apply_age_defaults(member_id, today)
        return record

    def remove_member(self, member_id: str) -> None:
        self.store.delete_record(member_id)

    def mark_not_applying(self, member_id: str) -> None:
        self.store.set_not_applying(member_id, True)

    def unmark_not_applying(self, member_id: str) -> None:
        self.store.set_not_applying(member_id, False)

    def is_not_applying(self, member_id: str) -> bool:
        return member_id in self.store.context.not_applying

    # -------------------------------------------------------------------------
    # Coverage and eligibility
    # -------------------------------------------------------------------------

    def set_coverage_inclusion(self, member_id: str, included: bool) -> ApplicantRecord:
        """
        Record an explicit user choice to include or exclude a member.

        The choice sets the age-validation override so later age checks
        never undo it.
        """
        record = self.store.get_record(member_id)
        if record.role == MemberRole.PRIMARY:
            raise EnrollmentValidationError("The primary applicant is always included")
        updated = self.store.upsert_record(
            member_id,
            {"included_in_coverage": included, "skip_age_validation": True},
        )
        logger.info(
            "Coverage inclusion set by user",
            extra={"member_id": member_id, "included": included},
        )
        return updated

    def apply_age_defaults(self, member_id: str, today: Optional[date] = None) -> ApplicantRecord:
        """
        Default a member's inclusion from their age unless the user overrode it.

        Out-of-range members are excluded; in-range members are included.
        """
        record = self.store.get_record(member_id)
        if (
            record.role == MemberRole.PRIMARY
            or record.skip_age_validation
            or record.date_of_birth is None
        ):
            return record

        eligibility = age_eligibility(
            record.date_of_birth,
            record.role,
            self._today(today),
            self.store.min_age,
            self.store.max_age,
        )
        if record.included_in_coverage != eligibility.is_eligible:
            record = self.store.upsert_record(
                member_id, {"included_in_coverage": eligibility.is_eligible}
            )
        return record

    def recompute_household_eligibility(self, today: Optional[date] = None) -> HouseholdEligibility:
        """Re-apply age defaults to every member and summarise the household."""
        today = self._today(today)
        warnings: List[AgeWarning] = []

        for member in self.store.list_members():
            record = self.apply_age_defaults(member.id, today)
            if record.date_of_birth is None:
                continue
            eligibility = age_eligibility(
                record.date_of_birth, record.role, today, self.store.min_age, self.store.max_age
            )
            if eligibility.is_eligible:
                continue
            warnings.append(AgeWarning(
                member_id=record.id,
                name=record.full_name,
                reason="under_19" if eligibility.is_under_19 else "over_65",
                age=eligibility.age,
                included_in_coverage=record.included_in_coverage,
                message=eligibility.message or "",
            ))

        context = self.store.context
        included = 1 + sum(
            1 for r in context.family_members()
            if r.included_in_coverage and r.id not in context.not_applying
        )
        return HouseholdEligibility(
            total_included_members=included,
            household_size=context.household_size,
            age_warnings=warnings,
        )

    # -------------------------------------------------------------------------
    # Income
    # -------------------------------------------------------------------------

    def total_annual_income(self, member_id: str) -> float:
        return self.store.get_record(member_id).annual_income()

    def household_annual_income(self) -> float:
        return sum(r.annual_income() for r in self.store.context.members.values())

    # -------------------------------------------------------------------------
    # Step progress
    # -------------------------------------------------------------------------

    def _set_status(self, member_id: str, step: Any, status: StepStatus) -> ApplicantRecord:
        step_id = StepId.parse(step)
        revision = self.store.next_revision()
        return self.store.upsert_record(
            member_id,
            {"step_progress": {step_id.value: {"status": status, "revision": revision}}},
        )

    def start_step(self, member_id: str, step: Any) -> ApplicantRecord:
        """Mark a step in progress unless it is already completed."""
        record = self.store.get_record(member_id)
        if record.step_status(step) != StepStatus.PENDING:
            return record
        return self._set_status(member_id, step, StepStatus.IN_PROGRESS)

    def complete_step(self, member_id: str, step: Any) -> ApplicantRecord:
        return self._set_status(member_id, step, StepStatus.COMPLETED)

    def skip_step(self, member_id: str, step: Any) -> ApplicantRecord:
        """Mark a step completed without validating anything."""
        logger.debug("Skipping step", extra={"member_id": member_id, "step": str(step)})
        return self._set_status(member_id, step, StepStatus.COMPLETED)

    def stale_completed_steps(self, member_id: str) -> List[StepId]:
        """
        Completed steps written before a later edit to an earlier step.

        A step is stale when an earlier step on the member's route was
        completed again at a higher revision than the step itself.
        """
        record = self.store.get_record(member_id)
        stale: List[StepId] = []
        latest_earlier = -1
        for step_id in self.graph.steps_for(record.role):
            progress = record.step_progress.get(step_id.value)
            if progress is None or progress.status != StepStatus.COMPLETED:
                continue
            if progress.revision < latest_earlier:
                stale.append(step_id)
            latest_earlier = max(latest_earlier, progress.revision)
        return stale

    def required_steps(self, record: ApplicantRecord) -> List[StepId]:
        """Route steps a family member must finish before they count as enrolled."""
        context = self.store.context
        steps = []
        for step_id in self.graph.steps_for(record.role):
            if step_id in (StepId.REVIEW, StepId.COMPLETE):
                continue
            if step_id in self.graph.branch_targets(record.role):
                previous = self.graph.previous_step(step_id, record.role)
                if self.graph.next_step(previous, record, context) != step_id:
                    continue
            steps.append(step_id)
        return steps

    def is_enrolled(self, member_id: str) -> bool:
        record = self.store.get_record(member_id)
        return all(
            record.step_status(step) == StepStatus.COMPLETED
            for step in self.required_steps(record)
        )

    def members_needing_step(self, step: Any) -> List[ApplicantRecord]:
        step_id = StepId.parse(step)
        return [
            r for r in self.store.list_members(incomplete_step=step_id)
            if self.graph.contains(step_id, r.role)
        ]

    def pending_members(self) -> List[ApplicantRecord]:
        """Family members who still have to finish their steps."""
        return [
            r for r in self.store.list_members()
            if not (r.role == MemberRole.DEPENDENT and not r.included_in_coverage)
            and not self.is_enrolled(r.id)
        ]

    def all_members_enrolled(self) -> bool:
        """Every member is enrolled, except dependents left out of coverage."""
        return not self.pending_members()
