"""
Applicant record models.

One ApplicantRecord exists per person in an enrollment household: the
primary applicant, an optional spouse, and any dependents. Records are
created once with a stable id and updated through partial merges.
"""

import uuid
from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.income import IncomeSource, total_annual_income


class MemberRole(str, Enum):
    """Household role of an applicant."""
    PRIMARY = "primary"
    SPOUSE = "spouse"
    DEPENDENT = "dependent"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class TobaccoUsage(str, Enum):
    SMOKER = "smoker"
    NON_SMOKER = "non-smoker"


class YesNo(str, Enum):
    YES = "yes"
    NO = "no"


class StepStatus(str, Enum):
    """Progress of one applicant through one step."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Address(BaseModel):
    """Residential address."""
    street: str = Field(default="", description="Street address")
    unit: Optional[str] = Field(default=None, description="Apartment, suite, unit")
    city: str = Field(default="", description="City")
    state: str = Field(default="", description="Two-letter state code")
    zip: str = Field(default="", description="5-digit ZIP code")


class Citizenship(BaseModel):
    is_us_citizen: Optional[YesNo] = None
    immigration_document_type: Optional[str] = Field(
        default=None, description="Required when is_us_citizen is 'no'"
    )


class Incarceration(BaseModel):
    is_incarcerated: Optional[YesNo] = None
    is_pending_disposition: Optional[YesNo] = Field(
        default=None, description="Required when is_incarcerated is 'yes'"
    )


class StepProgress(BaseModel):
    """Status of a step plus the household revision it was last written at."""
    status: StepStatus = StepStatus.PENDING
    revision: int = Field(default=0, ge=0)


def _new_record_id() -> str:
    return uuid.uuid4().hex


class ApplicantRecord(BaseModel):
    """
    Everything collected about one person during enrollment.

    Signature validity is never stored here; it is re-derived from
    ``signature`` and the current name each time it is needed.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=_new_record_id, description="Stable opaque identifier")
    role: MemberRole

    # Personal information
    first_name: str = ""
    last_name: str = ""
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    tobacco_usage: Optional[TobaccoUsage] = None
    tobacco_last_used: Optional[date] = None

    # Contact
    email: Optional[str] = None
    phone_number: Optional[str] = None

    # Identity and eligibility
    ssn: Optional[str] = Field(default=None, description="9 digits, never logged")
    address: Optional[Address] = None
    citizenship: Citizenship = Field(default_factory=Citizenship)
    incarceration: Incarceration = Field(default_factory=Incarceration)

    # Demographics
    hispanic_origin: Optional[str] = None
    race: Optional[str] = None

    income_sources: List[IncomeSource] = Field(default_factory=list)

    # Coverage
    included_in_coverage: bool = True
    skip_age_validation: bool = Field(
        default=False,
        description="Set when the user explicitly toggled coverage inclusion",
    )

    signature: Optional[str] = None

    step_progress: Dict[str, StepProgress] = Field(default_factory=dict)

    @field_validator("ssn", mode="before")
    @classmethod
    def strip_ssn_formatting(cls, v):
        if isinstance(v, str):
            return "".join(ch for ch in v if ch not in "- ") or None
        return v

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def masked_ssn(self) -> Optional[str]:
        """SSN with all but the last four digits hidden, e.g. •••-••-6789."""
        if not self.ssn:
            return None
        return f"•••-••-{self.ssn[-4:]}"

    @property
    def is_smoker(self) -> bool:
        return self.tobacco_usage == TobaccoUsage.SMOKER

    def annual_income(self) -> float:
        return total_annual_income(self.income_sources)

    def step_status(self, step_id: str) -> StepStatus:
        progress = self.step_progress.get(getattr(step_id, "value", step_id))
        return progress.status if progress else StepStatus.PENDING

    def public_view(self) -> dict:
        """JSON-ready dump with the SSN replaced by its masked form."""
        data = self.model_dump(mode="json")
        data["ssn"] = self.masked_ssn
        return data
