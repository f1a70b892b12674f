"""Data models for enrollment applicants and households."""

from .income import (
    FREQUENCY_MULTIPLIERS,
    IncomeFrequency,
    IncomeSource,
    IncomeSourceType,
    JobIncome,
    OtherIncome,
    SelfEmployedIncome,
    UnemployedIncome,
    UnemploymentIncome,
    parse_income_source,
    total_annual_income,
)
from .applicant import (
    Address,
    ApplicantRecord,
    Citizenship,
    Gender,
    Incarceration,
    MemberRole,
    StepProgress,
    StepStatus,
    TobaccoUsage,
    YesNo,
)
from .household import (
    TAX_ATTESTATION_STATEMENTS,
    AgreementChoice,
    Agreements,
    HouseholdContext,
    MedicareOption,
)

__all__ = [
    # Income
    "FREQUENCY_MULTIPLIERS",
    "IncomeFrequency",
    "IncomeSource",
    "IncomeSourceType",
    "JobIncome",
    "OtherIncome",
    "SelfEmployedIncome",
    "UnemployedIncome",
    "UnemploymentIncome",
    "parse_income_source",
    "total_annual_income",
    # Applicant
    "Address",
    "ApplicantRecord",
    "Citizenship",
    "Gender",
    "Incarceration",
    "MemberRole",
    "StepProgress",
    "StepStatus",
    "TobaccoUsage",
    "YesNo",
    # Household
    "TAX_ATTESTATION_STATEMENTS",
    "AgreementChoice",
    "Agreements",
    "HouseholdContext",
    "MedicareOption",
]
