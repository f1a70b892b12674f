"""
Enrollment step-flow engine.

Tracks what has been collected for each household member, validates each
step, decides which step comes next, and keeps family members' parallel
progress consistent. Session bundles live in ``enrollment.session``.
"""

from .errors import (
    EnrollmentError,
    EnrollmentValidationError,
    InvariantViolation,
    LookupFailure,
    LookupTimeoutError,
    NotFoundError,
    RecordNotFoundError,
    StorageError,
    UnknownStepError,
)
from .steps import Step, StepGraph, StepId, get_step_graph
from .record_store import ApplicantRecordStore, deep_merge
from .coordinator import AgeWarning, FamilyMemberCoordinator, HouseholdEligibility
from .flow import EnrollmentFlow, StepOutcome
from .legacy import household_from_legacy_items

__all__ = [
    # Errors
    "EnrollmentError",
    "EnrollmentValidationError",
    "InvariantViolation",
    "LookupFailure",
    "LookupTimeoutError",
    "NotFoundError",
    "RecordNotFoundError",
    "StorageError",
    "UnknownStepError",
    # Steps
    "Step",
    "StepGraph",
    "StepId",
    "get_step_graph",
    # Records and household
    "ApplicantRecordStore",
    "deep_merge",
    "AgeWarning",
    "FamilyMemberCoordinator",
    "HouseholdEligibility",
    # Flow
    "EnrollmentFlow",
    "StepOutcome",
    "household_from_legacy_items",
]
