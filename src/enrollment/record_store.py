"""
Applicant Record Store

Owns the HouseholdContext for one enrollment session. Every read and write
of applicant data goes through this class; nothing else mutates the
context directly.

Writes are applied to the in-memory context first and then persisted to the
session storage backend. The in-memory copy is authoritative: when the
backend fails, the failure is logged and queued on ``warnings`` and the
write still counts.
"""

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from models.applicant import ApplicantRecord, MemberRole, StepStatus
from models.household import HouseholdContext
from validation.field_rules import age_eligibility, MAX_COVERAGE_AGE, MIN_COVERAGE_AGE

from .errors import EnrollmentValidationError, InvariantViolation, RecordNotFoundError, StorageError

if TYPE_CHECKING:
    from database.session_storage import SessionStorage

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def deep_merge(base: Dict[str, Any], update: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge ``update`` into a copy of ``base``.

    Nested mappings merge key by key; every other value, lists included,
    replaces what was there. Keys missing from ``update`` are kept.
    """
    merged = dict(base)
    for key, value in update.items():
        value = _plain(value)
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _validation_errors(exc: ValidationError) -> List[Dict[str, str]]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


class ApplicantRecordStore:
    """
    Single source of truth for one session's applicant records.

    Example:
        store = ApplicantRecordStore("sess-1", storage=MemorySessionStorage())
        store.upsert_record(store.primary.id, {"first_name": "Jane"})
        store.upsert_record(store.primary.id, {"last_name": "Doe"})
        store.get_record(store.primary.id).full_name   # "Jane Doe"
    """

    def __init__(
        self,
        session_id: str,
        storage: Optional["SessionStorage"] = None,
        context: Optional[HouseholdContext] = None,
        today_fn: Callable[[], date] = date.today,
        min_age: int = MIN_COVERAGE_AGE,
        max_age: int = MAX_COVERAGE_AGE,
    ):
        self.session_id = session_id
        self.today_fn = today_fn
        self.min_age = min_age
        self.max_age = max_age
        self.warnings: List[str] = []
        self.dirty = False
        self._storage = storage

        if context is not None:
            self._context = self._adopt(context)
            self._persist()
            return

        loaded = self._load()
        if loaded is None:
            self._context = HouseholdContext.new(session_id)
            self._persist()
        else:
            self._context = loaded

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load(self) -> Optional[HouseholdContext]:
        if self._storage is None:
            return None
        try:
            payload = self._storage.load(self.session_id)
        except StorageError as e:
            self._warn(f"Could not read saved enrollment data: {e}")
            return None
        return self._parse(payload)

    def _parse(self, payload: Optional[Mapping[str, Any]]) -> Optional[HouseholdContext]:
        if payload is None:
            return None
        try:
            return HouseholdContext.model_validate(payload)
        except ValidationError as e:
            logger.error(
                "Discarding unreadable session payload",
                extra={"session_id": self.session_id, "error_count": e.error_count()},
            )
            self._warn("Saved enrollment data was unreadable and has been reset")
            return None

    def _persist(self) -> None:
        if self._storage is None:
            return
        try:
            self._storage.save(self.session_id, self._context.model_dump(mode="json"))
        except StorageError as e:
            self.dirty = True
            self._warn(f"Could not save enrollment data: {e}")
        else:
            self.dirty = False

    def flush(self) -> bool:
        """Retry a save that failed earlier. Returns True once storage is current."""
        if self.dirty:
            self._persist()
        return not self.dirty

    def _warn(self, message: str) -> None:
        logger.error(message, extra={"session_id": self.session_id})
        self.warnings.append(message)

    def drain_warnings(self) -> List[str]:
        """Return and clear queued storage warnings."""
        drained, self.warnings = self.warnings, []
        return drained

    def reload(self) -> HouseholdContext:
        """
        Re-read the context from storage, keeping memory when nothing is stored.

        While an earlier save is still unwritten the stored copy is stale, so
        the save is retried instead and memory is kept.
        """
        if self.dirty:
            self.flush()
            return self._context
        return self.restore(self._load())

    def restore(self, payload: Optional[Mapping[str, Any]]) -> HouseholdContext:
        """Adopt an already-read storage payload unless unsaved changes are pending."""
        if self.dirty:
            return self._context
        loaded = self._parse(payload)
        if loaded is not None:
            self._context = loaded
        return self._context

    def reset(self) -> HouseholdContext:
        """Discard the whole session and start over with an empty primary."""
        if self._storage is not None:
            try:
                self._storage.delete(self.session_id)
            except StorageError as e:
                self._warn(f"Could not clear saved enrollment data: {e}")
        self._context = HouseholdContext.new(self.session_id)
        self._persist()
        logger.info("Enrollment session reset", extra={"session_id": self.session_id})
        return self._context

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def context(self) -> HouseholdContext:
        """The live context. Callers must write through the store."""
        return self._context

    @property
    def primary(self) -> ApplicantRecord:
        return self._context.primary

    def find_record(self, record_id: str) -> Optional[ApplicantRecord]:
        return self._context.members.get(record_id)

    def get_record(self, record_id: str) -> ApplicantRecord:
        record = self._context.members.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def list_members(
        self,
        included_in_coverage: Optional[bool] = None,
        incomplete_step: Optional[Any] = None,
        include_primary: bool = False,
    ) -> List[ApplicantRecord]:
        """Family members, optionally filtered by coverage or an unfinished step."""
        records = list(self._context.members.values()) if include_primary \
            else self._context.family_members()
        if included_in_coverage is not None:
            records = [r for r in records if r.included_in_coverage == included_in_coverage]
        if incomplete_step is not None:
            records = [r for r in records if r.step_status(incomplete_step) != StepStatus.COMPLETED]
        return records

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert_record(
        self,
        record_id: str,
        partial_fields: Mapping[str, Any],
        role: Optional[Any] = None,
    ) -> ApplicantRecord:
        """
        Deep-merge ``partial_fields`` into the record, creating it if needed.

        Fields absent from the update are left untouched. Creating a record
        requires a role, either in ``partial_fields`` or as ``role``.

        Raises:
            EnrollmentValidationError: the merged record is not valid, or the
                update tries to change the id or role.
        """
        update = dict(partial_fields)
        if "id" in update and update.pop("id") != record_id:
            raise EnrollmentValidationError("Record id cannot be changed")

        existing = self._context.members.get(record_id)
        if existing is None:
            new_role = update.pop("role", None) or role
            if new_role is None:
                raise EnrollmentValidationError("A role is required to create a record")
            if getattr(new_role, "value", new_role) == MemberRole.PRIMARY.value:
                raise EnrollmentValidationError("The household already has a primary applicant")
            base: Dict[str, Any] = {"id": record_id, "role": new_role}
        else:
            new_role = update.pop("role", None)
            if new_role is not None and MemberRole(getattr(new_role, "value", new_role)) != existing.role:
                raise EnrollmentValidationError("Record role cannot be changed")
            base = existing.model_dump()

        try:
            record = ApplicantRecord.model_validate(deep_merge(base, update))
        except ValidationError as e:
            raise EnrollmentValidationError(
                "Invalid applicant data", errors=_validation_errors(e)
            ) from e

        record = self._enforce_invariants(record)
        self._context.members[record_id] = record
        self._context.next_revision()
        self._persist()
        return record

    def delete_record(self, record_id: str) -> None:
        if record_id == self._context.primary_id:
            raise EnrollmentValidationError("The primary applicant cannot be removed")
        if record_id not in self._context.members:
            raise RecordNotFoundError(record_id)
        del self._context.members[record_id]
        self._context.not_applying.discard(record_id)
        self._context.next_revision()
        self._persist()
        logger.info("Removed household member", extra={"member_id": record_id})

    def set_not_applying(self, record_id: str, not_applying: bool) -> None:
        self.get_record(record_id)
        if not_applying:
            self._context.not_applying.add(record_id)
        else:
            self._context.not_applying.discard(record_id)
        self._context.next_revision()
        self._persist()

    def update_context(self, **fields: Any) -> HouseholdContext:
        """
        Update household-level fields such as ``zip_code``, ``plan_id`` or
        ``agreements``. Mappings are deep-merged like record updates.
        """
        allowed = {"zip_code", "plan_id", "agreements"}
        unknown = set(fields) - allowed
        if unknown:
            raise EnrollmentValidationError(f"Unknown household fields: {sorted(unknown)}")

        base = self._context.model_dump()
        try:
            updated = HouseholdContext.model_validate(deep_merge(base, fields))
        except ValidationError as e:
            raise EnrollmentValidationError(
                "Invalid household data", errors=_validation_errors(e)
            ) from e
        self._context = updated
        self._context.next_revision()
        self._persist()
        return self._context

    def next_revision(self) -> int:
        """Advance the household revision counter used to stamp step progress."""
        return self._context.next_revision()

    # -------------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------------

    def _adopt(self, context: HouseholdContext) -> HouseholdContext:
        """Apply the coverage invariant to every member of a context built elsewhere."""
        for record_id, record in list(context.members.items()):
            context.members[record_id] = self._enforce_invariants(record)
        return context

    def _enforce_invariants(self, record: ApplicantRecord) -> ApplicantRecord:
        """Out-of-range members may only be covered with an explicit override."""
        if (
            record.role == MemberRole.PRIMARY
            or record.skip_age_validation
            or not record.included_in_coverage
            or record.date_of_birth is None
        ):
            return record

        eligibility = age_eligibility(
            record.date_of_birth, record.role, self.today_fn(), self.min_age, self.max_age
        )
        if eligibility.is_eligible:
            return record

        violation = InvariantViolation(
            "Out-of-range member was included in coverage without an override",
            {"member_id": record.id, "age": eligibility.age},
        )
        logger.warning(violation.message, extra=violation.details)
        return record.model_copy(update={"included_in_coverage": False})
