"""
Enrollment Step Graph

Named steps, the default and conditional edges between them, and the URL
each step lives at. The primary applicant and family members walk two
different routes through the same set of step ids; the route is picked by
the record's role.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, TYPE_CHECKING
from urllib.parse import urlencode, urlsplit

if TYPE_CHECKING:
    from models.applicant import ApplicantRecord
    from models.household import HouseholdContext

logger = logging.getLogger(__name__)


class StepId(str, Enum):
    """Every named step of the enrollment wizard."""
    CREATE_ACCOUNT = "create-account"
    PERSONAL_INFORMATION = "personal-information"
    CONTACT_INFORMATION = "contact-information"
    ADDRESS_INFORMATION = "address-information"
    SSN_INFORMATION = "ssn-information"
    CITIZENSHIP_INFORMATION = "citizenship-information"
    INCARCERATION_STATUS = "incarceration-status"
    DEMOGRAPHICS = "demographics"
    INCOME = "income"
    TOBACCO_USAGE = "tobacco-usage"
    REVIEW = "review"
    AGREEMENTS_RENEWAL = "agreements-renewal"
    AGREEMENTS_TAX_ATTESTATION = "agreements-tax-attestation"
    AGREEMENTS_SIGN_SUBMIT = "agreements-sign-submit"
    COMPLETE = "complete"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "StepId":
        """Coerce a raw id, falling back to UNKNOWN instead of raising."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


Predicate = Callable[["ApplicantRecord", "HouseholdContext"], bool]


@dataclass(frozen=True)
class Branch:
    """A conditional edge taken instead of the default when ``when`` holds."""
    target: StepId
    when: Predicate
    description: str = ""


@dataclass(frozen=True)
class Step:
    id: StepId
    path: str
    default_next: Optional[StepId]
    branches: Tuple[Branch, ...] = ()
    skippable_if: Optional[Predicate] = None
    family: bool = False


def _is_smoker(record, context) -> bool:
    return record.is_smoker


def _is_covered_smoker(record, context) -> bool:
    return record.is_smoker and record.included_in_coverage


def _not_applying(record, context) -> bool:
    return record.id in context.not_applying


def _not_applying_or_excluded(record, context) -> bool:
    return record.id in context.not_applying or not record.included_in_coverage


PRIMARY_ROUTE: Tuple[Step, ...] = (
    Step(StepId.CREATE_ACCOUNT, "create-account", StepId.PERSONAL_INFORMATION),
    Step(StepId.PERSONAL_INFORMATION, "personal-information", StepId.CONTACT_INFORMATION),
    Step(StepId.CONTACT_INFORMATION, "contact-information", StepId.ADDRESS_INFORMATION),
    Step(StepId.ADDRESS_INFORMATION, "address-information", StepId.SSN_INFORMATION),
    Step(StepId.SSN_INFORMATION, "ssn-information", StepId.CITIZENSHIP_INFORMATION),
    Step(StepId.CITIZENSHIP_INFORMATION, "citizenship-information", StepId.INCARCERATION_STATUS),
    Step(StepId.INCARCERATION_STATUS, "incarceration-status", StepId.DEMOGRAPHICS),
    Step(StepId.DEMOGRAPHICS, "demographics", StepId.INCOME),
    Step(
        StepId.INCOME,
        "income",
        StepId.REVIEW,
        branches=(Branch(StepId.TOBACCO_USAGE, _is_smoker, "applicant uses tobacco"),),
    ),
    Step(StepId.TOBACCO_USAGE, "tobacco-usage", StepId.REVIEW),
    Step(StepId.REVIEW, "review", StepId.AGREEMENTS_RENEWAL),
    Step(StepId.AGREEMENTS_RENEWAL, "agreements/renewal", StepId.AGREEMENTS_TAX_ATTESTATION),
    Step(
        StepId.AGREEMENTS_TAX_ATTESTATION,
        "agreements/tax-attestation",
        StepId.AGREEMENTS_SIGN_SUBMIT,
    ),
    Step(StepId.AGREEMENTS_SIGN_SUBMIT, "agreements/sign-submit", StepId.COMPLETE),
    Step(StepId.COMPLETE, "complete", None),
)

FAMILY_ROUTE: Tuple[Step, ...] = (
    Step(StepId.PERSONAL_INFORMATION, "personal-information", StepId.CONTACT_INFORMATION,
         family=True),
    Step(StepId.CONTACT_INFORMATION, "contact-information", StepId.SSN_INFORMATION,
         skippable_if=_not_applying, family=True),
    Step(StepId.SSN_INFORMATION, "ssn-information", StepId.CITIZENSHIP_INFORMATION,
         skippable_if=_not_applying, family=True),
    Step(StepId.CITIZENSHIP_INFORMATION, "citizenship-information", StepId.INCARCERATION_STATUS,
         skippable_if=_not_applying, family=True),
    Step(StepId.INCARCERATION_STATUS, "incarceration-status", StepId.DEMOGRAPHICS,
         skippable_if=_not_applying, family=True),
    Step(StepId.DEMOGRAPHICS, "demographics", StepId.INCOME, family=True),
    Step(
        StepId.INCOME,
        "income",
        StepId.REVIEW,
        branches=(
            Branch(StepId.TOBACCO_USAGE, _is_covered_smoker, "covered member uses tobacco"),
        ),
        family=True,
    ),
    Step(StepId.TOBACCO_USAGE, "tobacco-usage", StepId.REVIEW,
         skippable_if=_not_applying_or_excluded, family=True),
    # Family members hand back to the household review page.
    Step(StepId.REVIEW, "review", None),
)

ENROLL_PREFIX = "/enroll/"
FAMILY_PREFIX = "/enroll/family-member/"


def _role_value(role) -> str:
    return getattr(role, "value", role) or "primary"


class StepGraph:
    """
    Resolves next and previous steps for an applicant.

    ``next_step`` is a pure function of the current step, the record and the
    household context: the same inputs always give the same answer.
    """

    def __init__(
        self,
        primary_route: Tuple[Step, ...] = PRIMARY_ROUTE,
        family_route: Tuple[Step, ...] = FAMILY_ROUTE,
    ):
        self._routes: Dict[str, Dict[StepId, Step]] = {
            "primary": {step.id: step for step in primary_route},
            "family": {step.id: step for step in family_route},
        }
        self._order: Dict[str, List[StepId]] = {
            "primary": [step.id for step in primary_route],
            "family": [step.id for step in family_route],
        }

    # -------------------------------------------------------------------------
    # Route lookup
    # -------------------------------------------------------------------------

    @staticmethod
    def route_name(role) -> str:
        return "primary" if _role_value(role) == "primary" else "family"

    def steps_for(self, role) -> List[StepId]:
        return list(self._order[self.route_name(role)])

    def get_step(self, step, role) -> Optional[Step]:
        return self._routes[self.route_name(role)].get(StepId.parse(step))

    def contains(self, step, role) -> bool:
        return self.get_step(step, role) is not None

    def entry_step(self, role) -> StepId:
        """Where to send a user whose requested step cannot be resolved."""
        return self._order[self.route_name(role)][0]

    def branch_targets(self, role) -> List[StepId]:
        route = self._routes[self.route_name(role)]
        return [branch.target for step in route.values() for branch in step.branches]

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def next_step(
        self,
        current,
        record: "ApplicantRecord",
        context: "HouseholdContext",
    ) -> Optional[StepId]:
        """
        Step that follows ``current`` for this record.

        Returns None at the terminal step and StepId.UNKNOWN when ``current``
        is not on the record's route.
        """
        step = self.get_step(current, record.role)
        if step is None:
            logger.warning("Cannot resolve next step from unknown step %r", current)
            return StepId.UNKNOWN
        for branch in step.branches:
            if branch.when(record, context):
                return branch.target
        return step.default_next

    def previous_step(
        self,
        current,
        role,
        record: Optional["ApplicantRecord"] = None,
        context: Optional["HouseholdContext"] = None,
    ) -> Optional[StepId]:
        """
        Inverse of the default edges.

        A branch target goes back to the step it branched from. When a
        record and context are given, going back from a step that a taken
        branch rejoins lands on the branch target instead.
        """
        current = StepId.parse(current)
        route_name = self.route_name(role)
        route = self._routes[route_name]
        if current not in route:
            return StepId.UNKNOWN

        for step in route.values():
            for branch in step.branches:
                if branch.target == current:
                    return step.id

        branch_only = set(self.branch_targets(role))
        mainline = [s for s in self._order[route_name] if s not in branch_only]
        if current not in mainline:
            return None
        index = mainline.index(current)
        if index == 0:
            return None
        previous = route[mainline[index - 1]]

        if record is not None and context is not None:
            for branch in previous.branches:
                target = route.get(branch.target)
                if target and target.default_next == current and branch.when(record, context):
                    return branch.target
        return previous.id

    def can_skip(self, step, record: "ApplicantRecord", context: "HouseholdContext") -> bool:
        resolved = self.get_step(step, record.role)
        if resolved is None or resolved.skippable_if is None:
            return False
        return bool(resolved.skippable_if(record, context))

    # -------------------------------------------------------------------------
    # URLs
    # -------------------------------------------------------------------------

    def step_url(
        self,
        step,
        plan_id: Optional[str] = None,
        member: Optional["ApplicantRecord"] = None,
    ) -> str:
        """Build the page URL for ``step``, carrying plan and member ids."""
        role = member.role if member is not None else "primary"
        resolved = self.get_step(step, role)
        if resolved is None:
            raise ValueError(f"Step {step!r} is not on the {self.route_name(role)} route")

        params: Dict[str, str] = {}
        if plan_id:
            params["planId"] = plan_id
        if resolved.family and member is not None:
            params["familyMemberId"] = member.id
            params["type"] = _role_value(member.role)
            base = FAMILY_PREFIX + resolved.path
        else:
            base = ENROLL_PREFIX + resolved.path
        return f"{base}?{urlencode(params)}" if params else base

    def resolve_path(self, url: str) -> Tuple[StepId, bool]:
        """Map a page URL back to ``(step id, is family route)``."""
        path = urlsplit(url).path.rstrip("/")
        if path.startswith(FAMILY_PREFIX):
            tail, route_name = path[len(FAMILY_PREFIX):], "family"
        elif path.startswith(ENROLL_PREFIX):
            tail, route_name = path[len(ENROLL_PREFIX):], "primary"
        else:
            return StepId.UNKNOWN, False

        for step in self._routes[route_name].values():
            if step.path == tail and (route_name == "primary" or step.family):
                return step.id, route_name == "family"
        return StepId.UNKNOWN, route_name == "family"


_graph: Optional[StepGraph] = None


def get_step_graph() -> StepGraph:
    """Get the shared step graph instance."""
    global _graph
    if _graph is None:
        _graph = StepGraph()
    return _graph
