"""
Session Storage for enrollment households.

Each enrollment session is stored as one JSON blob keyed by session id.
Two backends share the same interface:

- MemorySessionStorage: process-local dict, gone when the process exits.
- SQLSessionStorage: SQLAlchemy table with a sliding expiry, for
  deployments that run more than one worker.

Usage:
    storage = build_session_storage(get_settings())
    storage.save("sess-1", context.model_dump(mode="json"))
    payload = storage.load("sess-1")
"""

import copy
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Generator, List, Optional, Tuple

from sqlalchemy import JSON, Column, DateTime, Index, String, create_engine, delete, select
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy.types import TypeDecorator

from enrollment.errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_HOURS = 24


class JSONB(TypeDecorator):
    """A portable JSONB type that works with both PostgreSQL and SQLite."""
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_JSONB())
        return dialect.type_descriptor(JSON())


Base = declarative_base()


class HouseholdSessionRecord(Base):
    """One persisted enrollment session."""
    __tablename__ = "household_sessions"

    session_id = Column(String(64), primary_key=True)
    data = Column(JSONB, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_activity = Column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_household_sessions_expires", "expires_at"),
    )


class SessionStorage(ABC):
    """Interface shared by the storage backends."""

    @abstractmethod
    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored payload, or None when missing or expired."""

    @abstractmethod
    def save(self, session_id: str, payload: Dict[str, Any]) -> None:
        """Replace the stored payload and refresh its expiry."""

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Remove a session. Returns True if something was removed."""

    @abstractmethod
    def cleanup_expired(self) -> int:
        """Drop expired sessions and return how many were removed."""


class MemorySessionStorage(SessionStorage):
    """In-process storage. Payloads are deep-copied in and out."""

    def __init__(self, ttl_hours: int = DEFAULT_SESSION_TTL_HOURS):
        self.ttl_hours = ttl_hours
        self._sessions: Dict[str, Tuple[Dict[str, Any], datetime]] = {}

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        payload, expires_at = entry
        if expires_at < datetime.utcnow():
            del self._sessions[session_id]
            return None
        return copy.deepcopy(payload)

    def save(self, session_id: str, payload: Dict[str, Any]) -> None:
        expires_at = datetime.utcnow() + timedelta(hours=self.ttl_hours)
        self._sessions[session_id] = (copy.deepcopy(payload), expires_at)

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def cleanup_expired(self) -> int:
        now = datetime.utcnow()
        expired = [sid for sid, (_, exp) in self._sessions.items() if exp < now]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    def session_ids(self) -> List[str]:
        return list(self._sessions)


class SQLSessionStorage(SessionStorage):
    """
    SQLAlchemy-backed storage.

    Every failure surfaces as StorageError so callers only handle one
    exception type regardless of driver.
    """

    def __init__(self, database_url: str, ttl_hours: int = DEFAULT_SESSION_TTL_HOURS, echo: bool = False):
        self.ttl_hours = ttl_hours
        self.database_url = database_url
        self._engine = self._create_engine(database_url, echo)
        self._session_factory = sessionmaker(
            bind=self._engine,
            expire_on_commit=False,
            autoflush=False,
        )
        Base.metadata.create_all(self._engine)
        logger.info("Session storage ready", extra={"backend": self._engine.dialect.name})

    @staticmethod
    def _create_engine(database_url: str, echo: bool):
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # A single shared connection keeps the in-memory database alive.
            return create_engine(
                database_url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        if database_url.startswith("sqlite"):
            return create_engine(database_url, echo=echo, poolclass=NullPool)
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Session storage failure: {e}") from e
        finally:
            session.close()

    def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._session() as session:
            row = session.get(HouseholdSessionRecord, session_id)
            if row is None:
                return None
            if row.expires_at < datetime.utcnow():
                session.delete(row)
                return None
            return copy.deepcopy(row.data)

    def save(self, session_id: str, payload: Dict[str, Any]) -> None:
        now = datetime.utcnow()
        expires_at = now + timedelta(hours=self.ttl_hours)
        with self._session() as session:
            row = session.get(HouseholdSessionRecord, session_id)
            if row is None:
                session.add(HouseholdSessionRecord(
                    session_id=session_id,
                    data=payload,
                    created_at=now,
                    last_activity=now,
                    expires_at=expires_at,
                ))
            else:
                row.data = payload
                row.last_activity = now
                row.expires_at = expires_at

    def delete(self, session_id: str) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(HouseholdSessionRecord).where(
                    HouseholdSessionRecord.session_id == session_id
                )
            )
            return result.rowcount > 0

    def cleanup_expired(self) -> int:
        with self._session() as session:
            result = session.execute(
                delete(HouseholdSessionRecord).where(
                    HouseholdSessionRecord.expires_at < datetime.utcnow()
                )
            )
            removed = result.rowcount or 0
        if removed:
            logger.info(f"Cleaned up {removed} expired enrollment sessions")
        return removed

    def session_ids(self) -> List[str]:
        with self._session() as session:
            return list(session.scalars(select(HouseholdSessionRecord.session_id)))

    def close(self) -> None:
        self._engine.dispose()


def build_session_storage(settings) -> SessionStorage:
    """Create the backend named by ``settings.storage_backend``."""
    if settings.storage_backend == "sql":
        return SQLSessionStorage(settings.database_url, ttl_hours=settings.session_ttl_hours)
    return MemorySessionStorage(ttl_hours=settings.session_ttl_hours)
