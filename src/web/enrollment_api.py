"""
Enrollment API

Endpoints the enrollment pages call:
- Start, read and discard an enrollment session
- Submit, skip and go back on a step
- Add and remove family members, mark them not applying, toggle coverage
- Household eligibility and income totals
- Final submission payload

Validation failures are part of a normal 200 response (``accepted`` is
false and ``errors`` lists the problems). Unknown sessions, members and
steps are 404s carrying a fallback URL.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from enrollment.errors import EnrollmentValidationError
from enrollment.session import EnrollmentSession, SessionRegistry
from models.applicant import MemberRole
from services.logging_config import session_id_var
from validation.field_rules import parse_date

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/enrollment", tags=["enrollment"])


# =============================================================================
# Request/Response Models
# =============================================================================

class CreateSessionRequest(BaseModel):
    """Start a session from the plan page."""
    zip_code: Optional[str] = Field(default=None, description="5-digit ZIP code")
    plan_id: Optional[str] = Field(default=None, description="Selected plan")
    legacy_items: Optional[Dict[str, Any]] = Field(
        default=None, description="Flat session keys from an earlier wizard version"
    )


class StepSubmitRequest(BaseModel):
    values: Dict[str, Any] = Field(default_factory=dict, description="Form values")
    member_id: Optional[str] = Field(default=None, description="Family member; omit for primary")


class StepSkipRequest(BaseModel):
    member_id: str


class AddMemberRequest(BaseModel):
    role: MemberRole
    first_name: str = ""
    last_name: str = ""
    date_of_birth: Optional[str] = Field(default=None, description="MM/DD/YYYY")
    gender: Optional[str] = None
    tobacco_usage: Optional[str] = None


class NotApplyingRequest(BaseModel):
    not_applying: bool


class CoverageRequest(BaseModel):
    included: bool


class SignatureFilterRequest(BaseModel):
    raw: str = ""


class HouseholdView(BaseModel):
    session_id: str
    primary_id: str
    zip_code: Optional[str] = None
    plan_id: Optional[str] = None
    household_size: int
    not_applying: List[str]
    members: List[Dict[str, Any]]
    storage_warnings: List[str] = Field(default_factory=list)


# =============================================================================
# Dependencies
# =============================================================================

def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


async def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> EnrollmentSession:
    session_id_var.set(session_id)
    return registry.get(session_id)


def _household_view(session: EnrollmentSession) -> HouseholdView:
    context = session.store.context
    return HouseholdView(
        session_id=context.session_id,
        primary_id=context.primary_id,
        zip_code=context.zip_code,
        plan_id=context.plan_id,
        household_size=context.household_size,
        not_applying=sorted(context.not_applying),
        members=[record.public_view() for record in context.members.values()],
        storage_warnings=session.store.drain_warnings(),
    )


# =============================================================================
# Sessions
# =============================================================================

@router.post("/sessions", response_model=HouseholdView, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: CreateSessionRequest,
    registry: SessionRegistry = Depends(get_registry),
):
    """Create a session, optionally validating the ZIP code and plan it starts from."""
    session = registry.create(legacy_items=body.legacy_items)
    session_id_var.set(session.session_id)
    if body.zip_code is not None:
        try:
            session.flow.begin(body.zip_code, body.plan_id)
        except EnrollmentValidationError:
            registry.discard(session.session_id)
            raise
    elif body.plan_id:
        session.store.update_context(plan_id=body.plan_id)
    return _household_view(session)


@router.get("/sessions/{session_id}", response_model=HouseholdView)
async def read_session(session: EnrollmentSession = Depends(get_session)):
    return _household_view(session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    registry.discard(session_id)


# =============================================================================
# Steps
# =============================================================================

@router.post("/sessions/{session_id}/steps/{step}")
async def submit_step(
    step: str,
    body: StepSubmitRequest,
    session: EnrollmentSession = Depends(get_session),
):
    """Validate and save one step; the response says where to go next."""
    outcome = session.flow.submit_step(step, body.values, member_id=body.member_id)
    return outcome.to_dict()


@router.post("/sessions/{session_id}/steps/{step}/skip")
async def skip_step(
    step: str,
    body: StepSkipRequest,
    session: EnrollmentSession = Depends(get_session),
):
    outcome = session.flow.skip_step(step, body.member_id)
    return outcome.to_dict()


@router.get("/sessions/{session_id}/steps/{step}/previous")
async def previous_step(
    step: str,
    member_id: Optional[str] = None,
    session: EnrollmentSession = Depends(get_session),
):
    return {"previous_url": session.flow.go_back(step, member_id)}


@router.get("/sessions/{session_id}/resume")
async def resume(member_id: Optional[str] = None, session: EnrollmentSession = Depends(get_session)):
    step = session.flow.resume_step(member_id)
    return {"step": step.value}


@router.post("/sessions/{session_id}/signature/filter")
async def filter_signature(
    body: SignatureFilterRequest,
    session: EnrollmentSession = Depends(get_session),
):
    return session.flow.filter_signature(body.raw)


# =============================================================================
# Family Members
# =============================================================================

@router.post("/sessions/{session_id}/members", status_code=status.HTTP_201_CREATED)
async def add_member(body: AddMemberRequest, session: EnrollmentSession = Depends(get_session)):
    fields: Dict[str, Any] = {"first_name": body.first_name.strip(), "last_name": body.last_name.strip()}
    if body.date_of_birth:
        dob = parse_date(body.date_of_birth)
        if dob is None:
            raise EnrollmentValidationError(
                "Please enter a valid date (MM/DD/YYYY)",
                errors=[{"field": "date_of_birth", "message": "Invalid date"}],
            )
        fields["date_of_birth"] = dob
    if body.gender:
        fields["gender"] = body.gender
    if body.tobacco_usage:
        fields["tobacco_usage"] = body.tobacco_usage

    record = session.coordinator.add_member(body.role, **fields)
    return record.public_view()


@router.delete("/sessions/{session_id}/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(member_id: str, session: EnrollmentSession = Depends(get_session)):
    session.coordinator.remove_member(member_id)


@router.put("/sessions/{session_id}/members/{member_id}/not-applying")
async def set_not_applying(
    member_id: str,
    body: NotApplyingRequest,
    session: EnrollmentSession = Depends(get_session),
):
    if body.not_applying:
        session.coordinator.mark_not_applying(member_id)
    else:
        session.coordinator.unmark_not_applying(member_id)
    return {"member_id": member_id, "not_applying": body.not_applying}


@router.put("/sessions/{session_id}/members/{member_id}/coverage")
async def set_coverage(
    member_id: str,
    body: CoverageRequest,
    session: EnrollmentSession = Depends(get_session),
):
    record = session.coordinator.set_coverage_inclusion(member_id, body.included)
    return record.public_view()


# =============================================================================
# Household
# =============================================================================

@router.get("/sessions/{session_id}/eligibility")
async def household_eligibility(session: EnrollmentSession = Depends(get_session)):
    return session.coordinator.recompute_household_eligibility().to_dict()


@router.get("/sessions/{session_id}/income")
async def household_income(session: EnrollmentSession = Depends(get_session)):
    members = {
        record.id: session.coordinator.total_annual_income(record.id)
        for record in session.store.context.members.values()
    }
    return {
        "members": members,
        "household_total": session.coordinator.household_annual_income(),
    }


@router.get("/sessions/{session_id}/submission")
async def submission(session: EnrollmentSession = Depends(get_session)):
    return session.flow.submission_payload()
