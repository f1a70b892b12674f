"""
Field validation rules for enrollment forms.

Every rule is a pure function of its inputs and returns a ValidationResult.
Nothing here reads session state or caches earlier answers, so callers can
re-run a rule on every keystroke or submit and always get a fresh verdict.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple


class ValidationSeverity(str, Enum):
    """Validation message severity."""
    ERROR = "error"        # Blocks submission
    WARNING = "warning"    # Allows submission, shown to the user
    INFO = "info"          # Informational only


class ErrorKind(str, Enum):
    """Why a rule failed."""
    REQUIRED = "required"
    FORMAT = "format"
    RANGE = "range"
    AGE_INELIGIBLE = "age_ineligible"
    MISMATCH = "mismatch"
    UNSUPPORTED = "unsupported"


@dataclass
class ValidationResult:
    """Result of a validation check."""
    valid: bool
    reason: Optional[ErrorKind] = None
    message: Optional[str] = None
    severity: ValidationSeverity = ValidationSeverity.ERROR
    field: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "severity": self.severity.value,
        }


def ok(field: Optional[str] = None) -> ValidationResult:
    return ValidationResult(valid=True, field=field)


def error(reason: ErrorKind, message: str, field: Optional[str] = None) -> ValidationResult:
    return ValidationResult(valid=False, reason=reason, message=message, field=field)


def warning(message: str, field: Optional[str] = None) -> ValidationResult:
    """A passing result that still carries a message for the user."""
    return ValidationResult(
        valid=True, message=message, severity=ValidationSeverity.WARNING, field=field
    )


# =============================================================================
# CONSTANTS
# =============================================================================

DATE_FORMAT = "%m/%d/%Y"
MIN_COVERAGE_AGE = 19
MAX_COVERAGE_AGE = 65
MIN_PASSWORD_LENGTH = 8
MIN_EMPLOYER_PHONE_DIGITS = 9

_DATE_PATTERN = re.compile(r"^\d{2}/\d{2}/\d{4}$")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ZIP_PATTERN = re.compile(r"^\d{5}$")
_SSN_PATTERN = re.compile(r"^\d{9}$")
_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z\s\-']*$")
_SIGNATURE_DISALLOWED = re.compile(r"[^a-zA-Z\s\-']")

SIGNATURE_INPUT_ERROR = "Signature cannot contain numbers or special characters"

# Service area, inclusive ZIP ranges.
SUPPORTED_ZIP_RANGES: Tuple[Tuple[int, int], ...] = (
    (32000, 34999),
    (30000, 31999),
)

NONE_OF_THESE_DOCUMENT = "None of these"

IMMIGRATION_DOCUMENTS: Tuple[str, ...] = (
    'Permanent Resident Card ("Green Card", I-551)',
    "Reentry Permit (I-327)",
    "Refugee Travel Document (I-571)",
    "Employment Authorization Document (I-766)",
    "Machine Readable Immigrant Visa (with temporary I-551 language)",
    "Temporary I-551 Stamp (on passport or I-94/I-94A)",
    "Arrival/Departure Record (I-94/I-94A)",
    "Arrival/Departure Record in foreign passport (I-94)",
    "Foreign Passport",
    "Certificate of Eligibility for Nonimmigrant Student Status (I-20)",
    "Certificate of Eligibility for Exchange Visitor Status (DS-2019)",
    "Notice of Action (I-797)",
    "Document indicating membership in a federally recognized Indian tribe "
    "or American Indian born in Canada",
    "Certification from U.S. Department of Health and Human Services (HHS) "
    "Office of Refugee Resettlement (ORR)",
    "Document indicating withholding of removal",
    "Office of Refugee Resettlement (ORR) eligibility letter (if under 18)",
    "Alien number (also called alien registration number or USCIS number) or I-94 number",
    "USCIS Acknowledgement of Receipt (I-797C)",
    NONE_OF_THESE_DOCUMENT,
)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _digits(value: Any) -> str:
    return re.sub(r"\D", "", str(value or ""))


# =============================================================================
# TEXT AND CONTACT RULES
# =============================================================================

def required_text(value: Any, field: str, label: Optional[str] = None) -> ValidationResult:
    if _blank(value):
        return error(ErrorKind.REQUIRED, f"{label or field} is required", field)
    return ok(field)


def name_format(value: Any, field: str, label: str) -> ValidationResult:
    """Names may contain letters, spaces, hyphens and apostrophes."""
    if _blank(value):
        return error(ErrorKind.REQUIRED, f"{label} is required", field)
    if not _NAME_PATTERN.match(str(value).strip()):
        return error(
            ErrorKind.FORMAT,
            f"{label} can only contain letters, spaces, hyphens, and apostrophes",
            field,
        )
    return ok(field)


def sanitize_name_input(raw: str) -> str:
    """Strip digits from a name as it is typed."""
    return re.sub(r"\d", "", raw or "")


def email_format(value: Any, field: str = "email") -> ValidationResult:
    if _blank(value):
        return error(ErrorKind.REQUIRED, "Email is required", field)
    if not _EMAIL_PATTERN.match(str(value).strip()):
        return error(ErrorKind.FORMAT, "Please enter a valid email address", field)
    return ok(field)


def password_strength(value: Any, field: str = "password") -> ValidationResult:
    if _blank(value):
        return error(ErrorKind.REQUIRED, "Password is required", field)
    if len(str(value)) < MIN_PASSWORD_LENGTH:
        return error(
            ErrorKind.FORMAT,
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            field,
        )
    return ok(field)


def phone10(value: Any, field: str = "phone_number") -> ValidationResult:
    """Contact phone numbers need exactly 10 digits, formatting ignored."""
    if _blank(value):
        return error(ErrorKind.REQUIRED, "Phone number is required", field)
    if re.search(r"[A-Za-z]", str(value)) or len(_digits(value)) != 10:
        return error(ErrorKind.FORMAT, "Please enter a valid 10-digit phone number", field)
    return ok(field)


def employer_phone(value: Any, field: str = "employer_phone") -> ValidationResult:
    if _blank(value):
        return error(ErrorKind.REQUIRED, "Employer phone number is required", field)
    if len(_digits(value)) < MIN_EMPLOYER_PHONE_DIGITS:
        return error(
            ErrorKind.FORMAT,
            f"Employer phone number must have at least {MIN_EMPLOYER_PHONE_DIGITS} digits",
            field,
        )
    return ok(field)


# =============================================================================
# IDENTITY AND LOCATION RULES
# =============================================================================

def ssn9(value: Any, field: str = "ssn") -> ValidationResult:
    """Exactly nine digits; the SSN box strips everything else as it is typed."""
    if _blank(value):
        return error(ErrorKind.REQUIRED, "Social Security Number is required", field)
    if not _SSN_PATTERN.match(str(value).strip()):
        return error(ErrorKind.FORMAT, "Please enter a valid 9-digit SSN", field)
    return ok(field)


def zip5(value: Any, field: str = "zip") -> ValidationResult:
    if _blank(value):
        return error(ErrorKind.REQUIRED, "ZIP code is required", field)
    if not _ZIP_PATTERN.match(str(value).strip()):
        return error(ErrorKind.FORMAT, "ZIP code must be 5 digits", field)
    return ok(field)


def supported_zip(value: Any, field: str = "zip") -> ValidationResult:
    """Check a ZIP code falls inside the service area."""
    result = zip5(value, field)
    if not result.valid:
        return result
    number = int(str(value).strip())
    for low, high in SUPPORTED_ZIP_RANGES:
        if low <= number <= high:
            return ok(field)
    return error(
        ErrorKind.UNSUPPORTED,
        "Coverage is not yet available in your area",
        field,
    )


def state_supported(value: Any, supported_states: List[str], field: str = "state") -> ValidationResult:
    if _blank(value):
        return error(ErrorKind.REQUIRED, "State is required", field)
    if str(value).strip().upper() not in {s.upper() for s in supported_states}:
        return error(
            ErrorKind.UNSUPPORTED,
            f"Enrollment is only available in: {', '.join(supported_states)}",
            field,
        )
    return ok(field)


def citizenship_document(is_us_citizen: Any, document: Any, field: str = "immigration_document_type") -> ValidationResult:
    """A document is required only for applicants who are not citizens."""
    if is_us_citizen != "no":
        return ok(field)
    if _blank(document):
        return error(ErrorKind.REQUIRED, "Please select an immigration document type", field)
    if document not in IMMIGRATION_DOCUMENTS:
        return error(ErrorKind.FORMAT, "Please select a document from the list", field)
    if document == NONE_OF_THESE_DOCUMENT:
        return warning(
            "Without an eligible immigration document this applicant may not "
            "qualify for coverage",
            field,
        )
    return ok(field)


def incarceration_disposition(is_incarcerated: Any, disposition: Any, field: str = "is_pending_disposition") -> ValidationResult:
    if is_incarcerated != "yes":
        return ok(field)
    if disposition not in ("yes", "no"):
        return error(
            ErrorKind.REQUIRED,
            "Please indicate whether charges are pending disposition",
            field,
        )
    return ok(field)


def choice(value: Any, allowed: Tuple[str, ...], field: str, label: str) -> ValidationResult:
    if _blank(value):
        return error(ErrorKind.REQUIRED, f"{label} is required", field)
    if value not in allowed:
        return error(ErrorKind.FORMAT, f"{label} must be one of: {', '.join(allowed)}", field)
    return ok(field)


# =============================================================================
# DATES AND AGE
# =============================================================================

def parse_date(value: Any) -> Optional[date]:
    """
    Parse an ``MM/DD/YYYY`` string.

    Returns None for anything that is not exactly that shape or that names
    a day the calendar does not have (02/30/2000 is rejected, not rolled
    forward). Dates pass through unchanged.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_PATTERN.match(value.strip()):
        return None
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def calculate_age(dob: date, today: Optional[date] = None) -> int:
    """Whole years elapsed, one less if this year's birthday is still ahead."""
    today = today or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def date_of_birth(value: Any, field: str = "date_of_birth", today: Optional[date] = None) -> ValidationResult:
    if _blank(value):
        return error(ErrorKind.REQUIRED, "Date of birth is required", field)
    parsed = parse_date(value)
    if parsed is None:
        return error(ErrorKind.FORMAT, "Please enter a valid date (MM/DD/YYYY)", field)
    if parsed > (today or date.today()):
        return error(ErrorKind.RANGE, "Date of birth cannot be in the future", field)
    return ok(field)


@dataclass
class AgeEligibility:
    """Age-derived coverage eligibility for one applicant."""
    age: int
    is_under_19: bool
    is_over_65: bool
    blocks_progress: bool
    message: Optional[str] = None

    @property
    def is_eligible(self) -> bool:
        return not (self.is_under_19 or self.is_over_65)


def age_eligibility(
    dob: date,
    role: str,
    today: Optional[date] = None,
    min_age: int = MIN_COVERAGE_AGE,
    max_age: int = MAX_COVERAGE_AGE,
) -> AgeEligibility:
    """
    Evaluate the coverage age window for ``dob`` as of ``today``.

    Both bounds are inclusive. An out-of-window primary applicant cannot
    continue; spouses and dependents only get a warning and default to
    being left out of coverage.
    """
    age = calculate_age(dob, today)
    under = age < min_age
    over = age > max_age
    is_primary = getattr(role, "value", role) == "primary"

    message = None
    if is_primary and under:
        message = f"You must be {min_age} or older to enroll"
    elif is_primary and over:
        message = f"You must be {max_age} or younger to enroll"
    elif under:
        message = f"Family members under {min_age} are not eligible for this plan"
    elif over:
        message = f"Family members over {max_age} are not eligible for this plan"

    return AgeEligibility(
        age=age,
        is_under_19=under,
        is_over_65=over,
        blocks_progress=is_primary and (under or over),
        message=message,
    )


# =============================================================================
# SIGNATURE
# =============================================================================

def sanitize_signature_input(raw: str) -> Tuple[str, bool]:
    """
    Filter a signature as it is typed.

    Returns the text with disallowed characters removed and whether any were
    removed, so the caller can show SIGNATURE_INPUT_ERROR.
    """
    raw = raw or ""
    filtered = _SIGNATURE_DISALLOWED.sub("", raw)
    return filtered, filtered != raw


def signature_match(signature: Any, full_name: str, field: str = "signature") -> ValidationResult:
    """The trimmed signature must equal the trimmed full name exactly."""
    if _blank(signature):
        return error(ErrorKind.REQUIRED, "Signature is required", field)
    expected = (full_name or "").strip()
    if str(signature).strip() != expected:
        return error(
            ErrorKind.MISMATCH,
            f"Signature must exactly match your full name: {expected}",
            field,
        )
    return ok(field)


# =============================================================================
# INCOME
# =============================================================================

_INCOME_TYPES = ("job", "self-employed", "unemployment", "unemployed", "other")
_FREQUENCIES = ("weekly", "biweekly", "monthly", "yearly")


def income_source_complete(source: Mapping[str, Any], index: int = 0) -> List[ValidationResult]:
    """
    Check one income source mapping for the fields its type requires.

    Returns only failing results; an empty list means the source is complete.
    """
    prefix = f"income_sources[{index}]"
    failures: List[ValidationResult] = []
    kind = source.get("type")

    if kind not in _INCOME_TYPES:
        return [error(ErrorKind.REQUIRED, "Please select an income type", f"{prefix}.type")]

    if kind == "unemployed":
        return failures

    amount = source.get("amount")
    if amount is None or amount == "":
        failures.append(error(ErrorKind.REQUIRED, "Amount is required", f"{prefix}.amount"))
    else:
        try:
            if float(amount) < 0:
                failures.append(
                    error(ErrorKind.RANGE, "Amount cannot be negative", f"{prefix}.amount")
                )
        except (TypeError, ValueError):
            failures.append(
                error(ErrorKind.FORMAT, "Amount must be a number", f"{prefix}.amount")
            )

    if source.get("frequency") not in _FREQUENCIES:
        failures.append(
            error(ErrorKind.REQUIRED, "Please select how often you receive this income",
                  f"{prefix}.frequency")
        )

    if kind == "job":
        name = required_text(source.get("employer_name"), f"{prefix}.employer_name", "Employer name")
        if not name.valid:
            failures.append(name)
        phone = employer_phone(source.get("employer_phone"), f"{prefix}.employer_phone")
        if not phone.valid:
            failures.append(phone)
    elif kind == "self-employed":
        job = required_text(source.get("job_type"), f"{prefix}.job_type", "Type of work")
        if not job.valid:
            failures.append(job)
    elif kind == "unemployment":
        expires = source.get("expiration_date")
        if _blank(expires):
            failures.append(
                error(ErrorKind.REQUIRED, "Benefit expiration date is required",
                      f"{prefix}.expiration_date")
            )
        elif parse_date(expires) is None:
            failures.append(
                error(ErrorKind.FORMAT, "Please enter a valid date (MM/DD/YYYY)",
                      f"{prefix}.expiration_date")
            )

    return failures


def agreement_accepted(value: Any, field: str, label: str) -> ValidationResult:
    if value != "agree":
        return error(ErrorKind.REQUIRED, f"You must agree to the {label} to continue", field)
    return ok(field)
