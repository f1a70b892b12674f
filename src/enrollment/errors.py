"""
Enrollment error hierarchy.

Validation problems are reported inline to the user. Missing records and
unknown steps carry a fallback step to redirect to. Storage and lookup
failures are caught at their boundaries and never abort the flow.
"""

from typing import Any, Dict, List, Optional


class EnrollmentError(Exception):
    """Base class for enrollment engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class EnrollmentValidationError(EnrollmentError):
    """Submitted values failed one or more field rules."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, {"errors": errors or []})
        self.errors = errors or []


class NotFoundError(EnrollmentError):
    """A referenced record or step does not exist.

    ``fallback_step`` names where the caller should send the user instead.
    """

    def __init__(self, message: str, fallback_step: Optional[str] = None, **details: Any):
        super().__init__(message, dict(details, fallback_step=fallback_step))
        self.fallback_step = fallback_step
        self.fallback_url: Optional[str] = None

    def with_fallback_url(self, url: Optional[str]) -> "NotFoundError":
        self.fallback_url = url
        self.details["fallback_url"] = url
        return self


class RecordNotFoundError(NotFoundError):
    """No applicant record with the requested id."""

    def __init__(self, record_id: str, fallback_step: Optional[str] = "review"):
        super().__init__(
            f"Applicant record not found: {record_id}",
            fallback_step=fallback_step,
            record_id=record_id,
        )
        self.record_id = record_id


class UnknownStepError(NotFoundError):
    """A step id that the step graph cannot resolve."""

    def __init__(self, step_id: Any, fallback_step: Optional[str] = None):
        super().__init__(
            f"Unknown enrollment step: {step_id}",
            fallback_step=fallback_step,
            step_id=str(step_id),
        )
        self.step_id = step_id


class StorageError(EnrollmentError):
    """Reading or writing the session storage backend failed."""


class LookupFailure(EnrollmentError):
    """An external lookup service returned an error."""


class LookupTimeoutError(LookupFailure):
    """An external lookup did not answer within the client timeout."""


class InvariantViolation(EnrollmentError):
    """Stored state broke a household invariant and was corrected."""
