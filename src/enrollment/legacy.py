"""
Import of the legacy flat session keys.

Earlier versions of the wizard kept every answer as its own camelCase key
(``firstName``, ``incomeSources_<memberId>``, ``familyMembers`` ...), with
JSON strings for anything structured. This module reads such a mapping once
and builds an equivalent HouseholdContext. Nothing here writes the old keys.
"""

import json
import logging
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from models.applicant import ApplicantRecord, MemberRole, StepProgress, StepStatus
from models.household import Agreements, HouseholdContext
from validation.field_rules import parse_date

from .steps import StepId, get_step_graph

logger = logging.getLogger(__name__)

# Legacy "lastStep" markers on familyMemberEnrollmentProgress.
_LAST_STEP_MARKERS = {
    "personal": StepId.PERSONAL_INFORMATION,
    "contact": StepId.CONTACT_INFORMATION,
    "ssn": StepId.SSN_INFORMATION,
    "citizenship": StepId.CITIZENSHIP_INFORMATION,
    "incarceration": StepId.INCARCERATION_STATUS,
    "demographics": StepId.DEMOGRAPHICS,
    "income": StepId.INCOME,
    "tobacco": StepId.TOBACCO_USAGE,
}

_INCOME_KEYS = {
    "employerName": "employer_name",
    "employerPhone": "employer_phone",
    "jobType": "job_type",
    "expirationDate": "expiration_date",
}


def _json(items: Mapping[str, Any], key: str, default: Any) -> Any:
    raw = items.get(key)
    if raw is None or raw == "":
        return default
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Skipping malformed legacy value for {key}")
        return default


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _legacy_date(value: Any) -> Optional[date]:
    """Legacy dates are either MM/DD/YYYY or an ISO timestamp."""
    if not value:
        return None
    parsed = parse_date(value)
    if parsed is not None:
        return parsed
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning("Ignoring unparseable legacy date")
        return None


def _tobacco(value: Any) -> Optional[str]:
    if value in ("yes", "smoker", True):
        return "smoker"
    if value in ("no", "non-smoker", False):
        return "non-smoker"
    return None


def _yes_no(value: Any) -> Optional[str]:
    if value in ("yes", "no"):
        return value
    if isinstance(value, bool):
        return "yes" if value else "no"
    return None


def _income_sources(raw: Any) -> List[Dict[str, Any]]:
    sources = []
    for source in _list(raw):
        if not isinstance(source, Mapping) or not source.get("type"):
            continue
        converted = {_INCOME_KEYS.get(k, k): v for k, v in source.items() if v not in (None, "")}
        if converted.get("type") == "unemployed":
            converted["amount"] = 0
            converted.pop("frequency", None)
        sources.append(converted)
    return sources


def _person_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Shared camelCase to record mapping for primary and family entries."""
    fields: Dict[str, Any] = {
        "first_name": _text(data.get("firstName")),
        "last_name": _text(data.get("lastName")),
        "date_of_birth": _legacy_date(data.get("dateOfBirth")),
        "gender": data.get("gender") or None,
        "tobacco_usage": _tobacco(data.get("tobaccoUsage")),
        "email": data.get("email") or data.get("userEmail") or None,
        "phone_number": "".join(ch for ch in str(data.get("phoneNumber") or "") if ch.isdigit()) or None,
        "ssn": data.get("ssn") or None,
        "citizenship": {
            "is_us_citizen": _yes_no(data.get("isUSCitizen")),
            "immigration_document_type": data.get("immigrationDocumentType") or None,
        },
        "incarceration": {
            "is_incarcerated": _yes_no(data.get("isIncarcerated")),
            "is_pending_disposition": _yes_no(data.get("isPendingDisposition")),
        },
        "hispanic_origin": data.get("hispanicOrigin") or None,
        "race": data.get("race") or None,
    }
    return fields


def _build_dropping_invalid(build: Callable[..., Any], fields: Dict[str, Any], label: str) -> Any:
    """
    Call ``build(**fields)``, dropping each top-level field pydantic rejects.

    Raises ValidationError only when the failure is not tied to one of
    ``fields`` (for example a bad id or role).
    """
    fields = dict(fields)
    while True:
        try:
            return build(**fields)
        except ValidationError as e:
            bad = {err["loc"][0] for err in e.errors() if err["loc"] and err["loc"][0] in fields}
            if not bad:
                raise
            logger.warning(
                f"Dropping invalid legacy {label} fields",
                extra={"fields": sorted(str(key) for key in bad)},
            )
            for key in bad:
                fields.pop(key)


def _completed(steps: Iterable[StepId], revision: int) -> Dict[str, StepProgress]:
    return {
        step.value: StepProgress(status=StepStatus.COMPLETED, revision=revision)
        for step in steps
    }


def _family_progress(
    member: ApplicantRecord,
    progress: Mapping[str, Any],
    enrolled: bool,
) -> Dict[str, StepProgress]:
    graph = get_step_graph()
    route = [s for s in graph.steps_for(member.role) if s != StepId.REVIEW]
    if enrolled:
        return _completed(route, 1)

    progress = _mapping(progress)
    last_step = progress.get("lastStep")
    marker = _LAST_STEP_MARKERS.get(last_step) if isinstance(last_step, str) else None
    if marker is None or marker not in route:
        if progress.get("personalInfoCompleted"):
            return _completed([StepId.PERSONAL_INFORMATION], 1)
        return {}
    return _completed(route[: route.index(marker) + 1], 1)


def household_from_legacy_items(items: Mapping[str, Any], session_id: str) -> HouseholdContext:
    """
    Build a HouseholdContext from legacy flat session keys.

    Unreadable entries are logged and skipped so one bad key never loses the
    rest of the session.
    """
    primary_fields = _person_fields(items)
    primary_fields["address"] = {
        "street": items.get("address1") or items.get("address") or items.get("addressLine1") or "",
        "unit": items.get("address2") or None,
        "city": items.get("city") or "",
        "state": items.get("state") or "",
        "zip": items.get("zipCode") or "",
    }
    primary_fields["income_sources"] = _income_sources(_json(items, "incomeSources", []))
    primary_fields["signature"] = items.get("signature") or None

    tobacco_data = _json(items, "tobaccoUsageData", {})
    if isinstance(tobacco_data, Mapping) and tobacco_data.get("lastUsageDate"):
        primary_fields["tobacco_last_used"] = _legacy_date(tobacco_data["lastUsageDate"])

    try:
        context = _build_dropping_invalid(
            lambda **fields: HouseholdContext.new(session_id, **fields), primary_fields, "primary"
        )
    except ValidationError as e:
        logger.warning(
            "Legacy primary applicant data was invalid; starting with an empty record",
            extra={"error_count": e.error_count()},
        )
        context = HouseholdContext.new(session_id)

    skipped = {
        str(member_id) for member_id in _list(_json(items, "skippedAgeValidations", []))
        if isinstance(member_id, (str, int))
    }
    progress = _mapping(_json(items, "familyMemberEnrollmentProgress", {}))
    enrolled = _mapping(_json(items, "enrolledFamilyMembers", {}))

    for entry in _list(_json(items, "familyMembers", [])):
        if not isinstance(entry, Mapping) or entry.get("type") not in ("spouse", "dependent"):
            continue
        member_id = str(entry.get("id") or "")
        if not member_id:
            continue
        fields = _person_fields(entry)
        fields["income_sources"] = _income_sources(
            _json(items, f"incomeSources_{member_id}", entry.get("incomeSources") or [])
        )
        fields["included_in_coverage"] = bool(entry.get("includedInCoverage", True))
        fields["skip_age_validation"] = bool(entry.get("skipAgeValidation")) or member_id in skipped

        member_tobacco = _json(items, f"tobaccoUsageData_{member_id}", {})
        if isinstance(member_tobacco, Mapping) and member_tobacco.get("lastUsageDate"):
            fields["tobacco_last_used"] = _legacy_date(member_tobacco["lastUsageDate"])

        try:
            record = _build_dropping_invalid(
                lambda **kept: ApplicantRecord(id=member_id, role=MemberRole(entry["type"]), **kept),
                fields,
                "family member",
            )
        except ValidationError as e:
            logger.warning(
                "Skipping invalid legacy family member",
                extra={"member_id": member_id, "error_count": e.error_count()},
            )
            continue

        record.step_progress = _family_progress(
            record, progress.get(member_id, {}), bool(enrolled.get(member_id))
        )
        context.members[record.id] = record
        if entry.get("notApplying") or entry.get("isApplying") is False:
            context.not_applying.add(record.id)

    sign_submit = _mapping(_json(items, "signSubmitAgreements", {}))
    tax = _mapping(_json(items, "taxAgreements", {}))
    agreements = {
        "renewal": items.get("renewalAgreement") or None,
        "tax_attestation": {k: v for k, v in tax.items() if v in ("agree", "disagree")},
        "notification": sign_submit.get("notification") or None,
        "medicare_option": items.get("medicareOption") or sign_submit.get("medicareOption") or None,
    }
    try:
        context.agreements = Agreements.model_validate(agreements)
    except ValidationError:
        logger.warning("Ignoring invalid legacy agreement answers")

    context.zip_code = _text(items.get("zipCode")) or None
    context.plan_id = str(items.get("planId") or "").strip() or None
    logger.info(
        "Imported legacy session",
        extra={"session_id": session_id, "household_size": context.household_size},
    )
    return context
