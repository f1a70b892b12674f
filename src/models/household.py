"""
Household context model.

The HouseholdContext is the single typed value behind an enrollment
session: every applicant record, who is not applying, the plan and ZIP the
session started with, and the signed agreements.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from models.applicant import ApplicantRecord, MemberRole


class AgreementChoice(str, Enum):
    AGREE = "agree"
    DISAGREE = "disagree"


class MedicareOption(str, Enum):
    """Whether Medicare data may be checked for the household."""
    ALLOW = "allow"
    DENY = "deny"


# Statements on the tax attestation page, all of which must be agreed to.
TAX_ATTESTATION_STATEMENTS = (
    "tax-eligibility",
    "tax-filing",
    "tax-dependent",
    "tax-changes",
)


class Agreements(BaseModel):
    renewal: Optional[AgreementChoice] = None
    tax_attestation: Dict[str, AgreementChoice] = Field(default_factory=dict)
    notification: Optional[AgreementChoice] = None
    medicare_option: Optional[MedicareOption] = None


def _utcnow() -> datetime:
    return datetime.utcnow()


class HouseholdContext(BaseModel):
    """All enrollment state for one session."""

    session_id: str
    primary_id: str
    members: Dict[str, ApplicantRecord] = Field(
        default_factory=dict, description="Every record, the primary included"
    )
    not_applying: Set[str] = Field(default_factory=set)
    zip_code: Optional[str] = None
    plan_id: Optional[str] = None
    agreements: Agreements = Field(default_factory=Agreements)
    revision: int = Field(default=0, ge=0, description="Bumped on every step write")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def new(cls, session_id: str, **primary_fields: Any) -> "HouseholdContext":
        """Start a household holding only a fresh primary applicant."""
        primary = ApplicantRecord(role=MemberRole.PRIMARY, **primary_fields)
        return cls(
            session_id=session_id,
            primary_id=primary.id,
            members={primary.id: primary},
        )

    @property
    def primary(self) -> ApplicantRecord:
        return self.members[self.primary_id]

    def family_members(self) -> List[ApplicantRecord]:
        """Records other than the primary, in insertion order."""
        return [r for rid, r in self.members.items() if rid != self.primary_id]

    def spouse(self) -> Optional[ApplicantRecord]:
        for record in self.family_members():
            if record.role == MemberRole.SPOUSE:
                return record
        return None

    @property
    def household_size(self) -> int:
        return 1 + len(self.family_members())

    def next_revision(self) -> int:
        self.revision += 1
        self.updated_at = _utcnow()
        return self.revision

    def to_submission_payload(self) -> Dict[str, Any]:
        """JSON-ready dump of the whole context, handed to the submission backend."""
        payload = self.model_dump(mode="json")
        payload["not_applying"] = sorted(self.not_applying)
        payload["household_size"] = self.household_size
        payload["household_annual_income"] = sum(
            record.annual_income() for record in self.members.values()
        )
        return payload
