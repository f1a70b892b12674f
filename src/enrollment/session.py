"""
Enrollment session bundles.

An EnrollmentSession groups the store, coordinator and flow that serve one
session id. The SessionRegistry creates and looks them up, backed by the
configured session storage.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Mapping, Optional

from config.settings import EnrollmentSettings, get_settings
from database.session_storage import SessionStorage, build_session_storage

from .coordinator import FamilyMemberCoordinator
from .errors import NotFoundError, StorageError
from .flow import EnrollmentFlow
from .legacy import household_from_legacy_items
from .record_store import ApplicantRecordStore
from .steps import get_step_graph

logger = logging.getLogger(__name__)


@dataclass
class EnrollmentSession:
    session_id: str
    store: ApplicantRecordStore
    coordinator: FamilyMemberCoordinator
    flow: EnrollmentFlow


class SessionRegistry:
    """Creates, caches and discards enrollment sessions."""

    def __init__(
        self,
        storage: Optional[SessionStorage] = None,
        settings: Optional[EnrollmentSettings] = None,
        today_fn: Callable[[], date] = date.today,
    ):
        self.settings = settings or get_settings()
        self.storage = storage or build_session_storage(self.settings)
        self.today_fn = today_fn
        self._sessions: Dict[str, EnrollmentSession] = {}

    def _bundle(self, session_id: str, store: ApplicantRecordStore) -> EnrollmentSession:
        graph = get_step_graph()
        coordinator = FamilyMemberCoordinator(store, graph)
        flow = EnrollmentFlow(
            store,
            coordinator=coordinator,
            graph=graph,
            supported_states=self.settings.supported_states,
        )
        session = EnrollmentSession(session_id, store, coordinator, flow)
        self._sessions[session_id] = session
        return session

    def _store(self, session_id: str, context=None) -> ApplicantRecordStore:
        return ApplicantRecordStore(
            session_id,
            storage=self.storage,
            context=context,
            today_fn=self.today_fn,
            min_age=self.settings.min_coverage_age,
            max_age=self.settings.max_coverage_age,
        )

    def create(self, legacy_items: Optional[Mapping[str, object]] = None) -> EnrollmentSession:
        """Start a new session, optionally seeded from legacy flat keys."""
        session_id = uuid.uuid4().hex
        context = household_from_legacy_items(legacy_items, session_id) if legacy_items else None
        session = self._bundle(session_id, self._store(session_id, context))
        logger.info("Created enrollment session", extra={"session_id": session_id})
        return session

    def get(self, session_id: str) -> EnrollmentSession:
        """
        Look up a session, re-reading it from storage.

        A cached session with unsaved changes is served from memory and its
        save is retried. Otherwise storage decides: a session it no longer
        holds (expired or cleaned up) is evicted from the cache.

        Raises:
            NotFoundError: no such session in memory or in storage.
        """
        session = self._sessions.get(session_id)
        if session is not None and session.store.dirty:
            session.store.flush()
            return session

        try:
            payload = self.storage.load(session_id)
        except StorageError as e:
            logger.error(f"Could not read session {session_id}: {e}")
            if session is not None:
                return session
            payload = None

        if payload is None:
            if self._sessions.pop(session_id, None) is not None:
                logger.info("Enrollment session expired", extra={"session_id": session_id})
            raise NotFoundError("Enrollment session not found", session_id=session_id)

        if session is not None:
            session.store.restore(payload)
            return session
        return self._bundle(session_id, self._store(session_id))

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        try:
            self.storage.delete(session_id)
        except StorageError as e:
            logger.error(f"Could not delete session {session_id}: {e}")
