"""Income source models.

Income sources form a closed discriminated union keyed on ``type``. Each
variant carries only the fields its kind needs; ``unemployed`` is pinned to
an amount of zero and has no pay frequency.
"""

import uuid
from enum import Enum
from typing import Annotated, Dict, Iterable, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


class IncomeFrequency(str, Enum):
    """How often an income amount is received."""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class IncomeSourceType(str, Enum):
    """Kinds of income source an applicant can report."""
    JOB = "job"
    SELF_EMPLOYED = "self-employed"
    UNEMPLOYMENT = "unemployment"
    UNEMPLOYED = "unemployed"
    OTHER = "other"


FREQUENCY_MULTIPLIERS: Dict[IncomeFrequency, int] = {
    IncomeFrequency.WEEKLY: 52,
    IncomeFrequency.BIWEEKLY: 26,
    IncomeFrequency.MONTHLY: 12,
    IncomeFrequency.YEARLY: 1,
}


def _new_source_id() -> str:
    return uuid.uuid4().hex[:12]


class _IncomeSourceBase(BaseModel):
    id: str = Field(default_factory=_new_source_id, description="Stable source identifier")
    amount: float = Field(default=0.0, ge=0, description="Amount received per period")
    frequency: Optional[IncomeFrequency] = Field(
        default=None, description="Pay period; treated as yearly when missing"
    )

    def annualized_amount(self) -> float:
        """Amount scaled to a full year."""
        multiplier = FREQUENCY_MULTIPLIERS.get(self.frequency, 1)
        return self.amount * multiplier


class JobIncome(_IncomeSourceBase):
    """Wages from an employer."""
    type: Literal["job"] = "job"
    employer_name: Optional[str] = Field(default=None, description="Employer name")
    employer_phone: Optional[str] = Field(default=None, description="Employer phone number")


class SelfEmployedIncome(_IncomeSourceBase):
    """Net earnings from self-employment."""
    type: Literal["self-employed"] = "self-employed"
    job_type: Optional[str] = Field(default=None, description="Kind of work performed")


class UnemploymentIncome(_IncomeSourceBase):
    """Unemployment benefits, which run until an expiration date."""
    type: Literal["unemployment"] = "unemployment"
    expiration_date: Optional[str] = Field(
        default=None, description="Benefit end date, MM/DD/YYYY"
    )


class UnemployedIncome(_IncomeSourceBase):
    """No income. The amount is always zero and there is no frequency."""
    type: Literal["unemployed"] = "unemployed"

    @field_validator("amount", mode="before")
    @classmethod
    def force_zero_amount(cls, v) -> float:
        return 0.0

    @field_validator("frequency", mode="before")
    @classmethod
    def drop_frequency(cls, v) -> None:
        return None


class OtherIncome(_IncomeSourceBase):
    """Any other income, with an optional description."""
    type: Literal["other"] = "other"
    description: Optional[str] = Field(default=None, description="What the income is")


IncomeSource = Annotated[
    Union[JobIncome, SelfEmployedIncome, UnemploymentIncome, UnemployedIncome, OtherIncome],
    Field(discriminator="type"),
]

_income_source_adapter = TypeAdapter(IncomeSource)


def parse_income_source(data: dict) -> IncomeSource:
    """Build the right income variant from a raw mapping."""
    return _income_source_adapter.validate_python(data)


def total_annual_income(sources: Iterable[_IncomeSourceBase]) -> float:
    """Sum of every source's annualized amount."""
    return sum(source.annualized_amount() for source in sources)


__all__ = [
    "IncomeFrequency",
    "IncomeSourceType",
    "FREQUENCY_MULTIPLIERS",
    "JobIncome",
    "SelfEmployedIncome",
    "UnemploymentIncome",
    "UnemployedIncome",
    "OtherIncome",
    "IncomeSource",
    "parse_income_source",
    "total_annual_income",
]
