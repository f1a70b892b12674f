"""Session storage backends for enrollment households."""

from .session_storage import (
    Base,
    HouseholdSessionRecord,
    MemorySessionStorage,
    SessionStorage,
    SQLSessionStorage,
    build_session_storage,
)

__all__ = [
    "Base",
    "HouseholdSessionRecord",
    "MemorySessionStorage",
    "SessionStorage",
    "SQLSessionStorage",
    "build_session_storage",
]
