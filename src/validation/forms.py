"""
Per-step form validation.

Each enrollment step has one StepForm: a table of FieldSpec entries saying
which fields the step collects, which roles see them, and when they are
visible. Hidden fields are never validated. The same tables serve the
primary applicant and family members; role-specific differences live in
the ``roles`` and ``visible_if`` columns rather than in copies of the form.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional

from .field_rules import (
    AgeEligibility,
    ErrorKind,
    ValidationResult,
    ValidationSeverity,
    age_eligibility,
    agreement_accepted,
    choice,
    citizenship_document,
    date_of_birth,
    email_format,
    error,
    incarceration_disposition,
    income_source_complete,
    name_format,
    parse_date,
    password_strength,
    phone10,
    required_text,
    signature_match,
    ssn9,
    state_supported,
    zip5,
    MAX_COVERAGE_AGE,
    MIN_COVERAGE_AGE,
)

logger = logging.getLogger(__name__)

ALL_ROLES: FrozenSet[str] = frozenset({"primary", "spouse", "dependent"})
PRIMARY_ONLY: FrozenSet[str] = frozenset({"primary"})

HISPANIC_ORIGIN_OPTIONS = ("yes", "no", "decline")
RACE_OPTIONS = (
    "decline",
    "american-indian",
    "asian-indian",
    "black",
    "chinese",
    "filipino",
    "guamanian",
    "japanese",
    "korean",
    "native-hawaiian",
    "samoan",
    "vietnamese",
    "white",
    "asian-other",
    "pacific-islander-other",
    "other",
)
TAX_ATTESTATION_IDS = ("tax-eligibility", "tax-filing", "tax-dependent", "tax-changes")


@dataclass
class RuleContext:
    """Inputs a rule may need besides the submitted values."""
    role: str
    today: date
    full_name: str = ""
    min_age: int = MIN_COVERAGE_AGE
    max_age: int = MAX_COVERAGE_AGE
    supported_states: List[str] = field(default_factory=lambda: ["FL"])


Check = Callable[[Any, Mapping[str, Any], RuleContext], ValidationResult]


@dataclass
class FieldSpec:
    """One field on a step form."""
    name: str
    check: Check
    roles: FrozenSet[str] = ALL_ROLES
    visible_if: Optional[Callable[[Mapping[str, Any]], bool]] = None

    def is_visible(self, role: str, values: Mapping[str, Any]) -> bool:
        if role not in self.roles:
            return False
        if self.visible_if is not None:
            return bool(self.visible_if(values))
        return True


@dataclass
class FormValidationResult:
    """Outcome of validating a whole step form."""
    valid: bool
    errors: List[ValidationResult] = field(default_factory=list)
    warnings: List[ValidationResult] = field(default_factory=list)
    age: Optional[AgeEligibility] = None

    def error_map(self) -> Dict[str, str]:
        return {e.field or "_form": e.message or "" for e in self.errors}


@dataclass
class StepForm:
    """Fields plus the mapping from validated values to a record update."""
    step_id: str
    fields: List[FieldSpec]
    record_update: Callable[[Mapping[str, Any]], Dict[str, Any]] = lambda values: {}

    def visible_fields(self, role: str, values: Mapping[str, Any]) -> List[FieldSpec]:
        return [f for f in self.fields if f.is_visible(role, values)]


# =============================================================================
# FIELD CHECK ADAPTERS
# =============================================================================

def _name(label: str) -> Check:
    return lambda v, values, ctx: name_format(v, "", label)


def _required(label: str) -> Check:
    return lambda v, values, ctx: required_text(v, "", label)


def _choice(allowed, label: str) -> Check:
    return lambda v, values, ctx: choice(v, tuple(allowed), "", label)


def _dob(v, values, ctx: RuleContext) -> ValidationResult:
    return date_of_birth(v, "", today=ctx.today)


def _confirm_password(v, values, ctx) -> ValidationResult:
    if not v:
        return error(ErrorKind.REQUIRED, "Please confirm your password")
    if v != values.get("password"):
        return error(ErrorKind.MISMATCH, "Passwords do not match")
    return ValidationResult(valid=True)


def _state(v, values, ctx: RuleContext) -> ValidationResult:
    return state_supported(v, ctx.supported_states, "")


def _citizenship_doc(v, values, ctx) -> ValidationResult:
    return citizenship_document(values.get("is_us_citizen"), v, "")


def _disposition(v, values, ctx) -> ValidationResult:
    return incarceration_disposition(values.get("is_incarcerated"), v, "")


def income_source_list(v: Any) -> bool:
    return isinstance(v, list) and all(isinstance(source, Mapping) for source in v)


def _income_sources(v, values, ctx) -> ValidationResult:
    # Per-source completeness is reported separately, one entry per field.
    if not v:
        return error(ErrorKind.REQUIRED, "Please add at least one income source")
    if not income_source_list(v):
        return error(ErrorKind.FORMAT, "Income sources must be a list of entries")
    return ValidationResult(valid=True)


def _last_used(v, values, ctx: RuleContext) -> ValidationResult:
    if not v:
        return error(ErrorKind.REQUIRED, "Please enter the date you last used tobacco")
    parsed = parse_date(v)
    if parsed is None:
        return error(ErrorKind.FORMAT, "Please enter a valid date (MM/DD/YYYY)")
    if parsed > ctx.today:
        return error(ErrorKind.RANGE, "Date cannot be in the future")
    return ValidationResult(valid=True)


def _tax_attestation(v, values, ctx) -> ValidationResult:
    answers = v or {}
    if not isinstance(answers, Mapping):
        return error(ErrorKind.FORMAT, "Please answer each tax attestation statement")
    for statement in TAX_ATTESTATION_IDS:
        result = agreement_accepted(answers.get(statement), "", "tax attestation statements")
        if not result.valid:
            return result
    return ValidationResult(valid=True)


def _signature(v, values, ctx: RuleContext) -> ValidationResult:
    return signature_match(v, ctx.full_name, "")


# =============================================================================
# RECORD UPDATE MAPPINGS
# =============================================================================

def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _digits_only(value: Any) -> Optional[str]:
    if value is None:
        return None
    return "".join(ch for ch in str(value) if ch.isdigit())


def _personal_update(values: Mapping[str, Any]) -> Dict[str, Any]:
    update = {
        "first_name": _strip(values.get("first_name")),
        "last_name": _strip(values.get("last_name")),
        "date_of_birth": parse_date(values.get("date_of_birth")),
        "gender": values.get("gender"),
    }
    if values.get("tobacco_usage"):
        update["tobacco_usage"] = values["tobacco_usage"]
    return update


def _income_update(values: Mapping[str, Any]) -> Dict[str, Any]:
    sources = []
    for source in values.get("income_sources") or []:
        cleaned = {k: v for k, v in source.items() if v is not None and v != ""}
        if cleaned.get("type") == "unemployed":
            cleaned.pop("frequency", None)
            cleaned["amount"] = 0
        sources.append(cleaned)
    return {"income_sources": sources}


def _tobacco_update(values: Mapping[str, Any]) -> Dict[str, Any]:
    if values.get("is_tobacco_user") == "yes":
        return {
            "tobacco_usage": "smoker",
            "tobacco_last_used": parse_date(values.get("last_used_date")),
        }
    return {"tobacco_usage": "non-smoker", "tobacco_last_used": None}


def _is_tobacco_user(values: Mapping[str, Any]) -> bool:
    return values.get("is_tobacco_user") == "yes"


STEP_FORMS: Dict[str, StepForm] = {
    "create-account": StepForm(
        step_id="create-account",
        fields=[
            FieldSpec("email", lambda v, values, ctx: email_format(v, ""), PRIMARY_ONLY),
            FieldSpec("password", lambda v, values, ctx: password_strength(v, ""), PRIMARY_ONLY),
            FieldSpec("confirm_password", _confirm_password, PRIMARY_ONLY),
        ],
        record_update=lambda values: {"email": _strip(values.get("email"))},
    ),
    "personal-information": StepForm(
        step_id="personal-information",
        fields=[
            FieldSpec("first_name", _name("First name")),
            FieldSpec("last_name", _name("Last name")),
            FieldSpec("date_of_birth", _dob),
            FieldSpec("gender", _choice(("male", "female"), "Gender")),
            FieldSpec("tobacco_usage", _choice(("smoker", "non-smoker"), "Tobacco usage")),
        ],
        record_update=_personal_update,
    ),
    "contact-information": StepForm(
        step_id="contact-information",
        fields=[
            FieldSpec("email", lambda v, values, ctx: email_format(v, "")),
            FieldSpec("phone_number", lambda v, values, ctx: phone10(v, "")),
        ],
        record_update=lambda values: {
            "email": _strip(values.get("email")),
            "phone_number": _digits_only(values.get("phone_number")),
        },
    ),
    "address-information": StepForm(
        step_id="address-information",
        fields=[
            FieldSpec("street", _required("Street address"), PRIMARY_ONLY),
            FieldSpec("city", _required("City"), PRIMARY_ONLY),
            FieldSpec("state", _state, PRIMARY_ONLY),
            FieldSpec("zip", lambda v, values, ctx: zip5(v, ""), PRIMARY_ONLY),
        ],
        record_update=lambda values: {
            "address": {
                "street": _strip(values.get("street")),
                "unit": _strip(values.get("unit")) or None,
                "city": _strip(values.get("city")),
                "state": _strip(values.get("state") or "").upper(),
                "zip": _strip(values.get("zip")),
            }
        },
    ),
    "ssn-information": StepForm(
        step_id="ssn-information",
        fields=[FieldSpec("ssn", lambda v, values, ctx: ssn9(v, ""))],
        record_update=lambda values: {"ssn": _digits_only(values.get("ssn"))},
    ),
    "citizenship-information": StepForm(
        step_id="citizenship-information",
        fields=[
            FieldSpec("is_us_citizen", _choice(("yes", "no"), "Citizenship status")),
            FieldSpec(
                "immigration_document_type",
                _citizenship_doc,
                visible_if=lambda values: values.get("is_us_citizen") == "no",
            ),
        ],
        record_update=lambda values: {
            "citizenship": {
                "is_us_citizen": values.get("is_us_citizen"),
                "immigration_document_type": (
                    values.get("immigration_document_type")
                    if values.get("is_us_citizen") == "no" else None
                ),
            }
        },
    ),
    "incarceration-status": StepForm(
        step_id="incarceration-status",
        fields=[
            FieldSpec("is_incarcerated", _choice(("yes", "no"), "Incarceration status")),
            FieldSpec(
                "is_pending_disposition",
                _disposition,
                visible_if=lambda values: values.get("is_incarcerated") == "yes",
            ),
        ],
        record_update=lambda values: {
            "incarceration": {
                "is_incarcerated": values.get("is_incarcerated"),
                "is_pending_disposition": (
                    values.get("is_pending_disposition")
                    if values.get("is_incarcerated") == "yes" else None
                ),
            }
        },
    ),
    "demographics": StepForm(
        step_id="demographics",
        fields=[
            FieldSpec("hispanic_origin", _choice(HISPANIC_ORIGIN_OPTIONS, "Hispanic origin")),
            FieldSpec("race", _choice(RACE_OPTIONS, "Race")),
        ],
        record_update=lambda values: {
            "hispanic_origin": values.get("hispanic_origin"),
            "race": values.get("race"),
        },
    ),
    "income": StepForm(
        step_id="income",
        fields=[FieldSpec("income_sources", _income_sources)],
        record_update=_income_update,
    ),
    "tobacco-usage": StepForm(
        step_id="tobacco-usage",
        fields=[
            FieldSpec("is_tobacco_user", _choice(("yes", "no"), "Tobacco use")),
            FieldSpec("last_used_date", _last_used, visible_if=_is_tobacco_user),
        ],
        record_update=_tobacco_update,
    ),
    "review": StepForm(step_id="review", fields=[]),
    "agreements-renewal": StepForm(
        step_id="agreements-renewal",
        fields=[
            FieldSpec(
                "renewal",
                lambda v, values, ctx: agreement_accepted(v, "", "renewal terms"),
                PRIMARY_ONLY,
            ),
        ],
    ),
    "agreements-tax-attestation": StepForm(
        step_id="agreements-tax-attestation",
        fields=[FieldSpec("tax_attestation", _tax_attestation, PRIMARY_ONLY)],
    ),
    "agreements-sign-submit": StepForm(
        step_id="agreements-sign-submit",
        fields=[
            FieldSpec(
                "notification",
                lambda v, values, ctx: agreement_accepted(v, "", "notification terms"),
                PRIMARY_ONLY,
            ),
            FieldSpec("medicare_option", _choice(("allow", "deny"), "Medicare option"), PRIMARY_ONLY),
            FieldSpec("signature", _signature, PRIMARY_ONLY),
        ],
        record_update=lambda values: {"signature": _strip(values.get("signature"))},
    ),
}


class FormValidator:
    """
    Validates submitted step values for a given role.

    Results are recomputed on every call; nothing is cached between
    submissions.
    """

    def __init__(
        self,
        min_age: int = MIN_COVERAGE_AGE,
        max_age: int = MAX_COVERAGE_AGE,
        supported_states: Optional[List[str]] = None,
    ):
        self.min_age = min_age
        self.max_age = max_age
        self.supported_states = supported_states or ["FL"]

    def form_for(self, step: Any) -> Optional[StepForm]:
        return STEP_FORMS.get(getattr(step, "value", step))

    def validate(
        self,
        step: Any,
        values: Mapping[str, Any],
        role: Any,
        today: Optional[date] = None,
        full_name: str = "",
    ) -> FormValidationResult:
        """Validate every visible field of ``step`` and apply the age rule."""
        role = getattr(role, "value", role)
        form = self.form_for(step)
        if form is None:
            return FormValidationResult(
                valid=False,
                errors=[error(ErrorKind.UNSUPPORTED, f"Unknown step: {step}")],
            )

        ctx = RuleContext(
            role=role,
            today=today or date.today(),
            full_name=full_name,
            min_age=self.min_age,
            max_age=self.max_age,
            supported_states=self.supported_states,
        )

        result = FormValidationResult(valid=True)
        for spec in form.visible_fields(role, values):
            outcome = spec.check(values.get(spec.name), values, ctx)
            outcome.field = outcome.field or spec.name
            if not outcome.valid:
                result.errors.append(outcome)
            elif outcome.severity == ValidationSeverity.WARNING:
                result.warnings.append(outcome)

        sources = values.get("income_sources")
        if form.step_id == "income" and income_source_list(sources):
            for index, source in enumerate(sources):
                result.errors.extend(income_source_complete(source, index))

        if form.step_id == "personal-information":
            self._apply_age_rule(values, ctx, result)

        result.valid = not result.errors
        if result.errors:
            logger.debug(
                "Step %s failed validation for %s: %s",
                form.step_id, role, [e.field for e in result.errors],
            )
        return result

    def _apply_age_rule(
        self, values: Mapping[str, Any], ctx: RuleContext, result: FormValidationResult
    ) -> None:
        dob = parse_date(values.get("date_of_birth"))
        if dob is None or dob > ctx.today:
            return
        eligibility = age_eligibility(dob, ctx.role, ctx.today, ctx.min_age, ctx.max_age)
        result.age = eligibility
        if eligibility.blocks_progress:
            result.errors.append(
                error(ErrorKind.AGE_INELIGIBLE, eligibility.message, "date_of_birth")
            )
        elif eligibility.message:
            result.warnings.append(
                ValidationResult(
                    valid=True,
                    reason=ErrorKind.AGE_INELIGIBLE,
                    message=eligibility.message,
                    severity=ValidationSeverity.WARNING,
                    field="date_of_birth",
                )
            )
