"""
Last-request-wins gating for lookups.

When a user keeps typing, several lookups for the same field can be in
flight at once. Only the most recently started one may deliver results;
older ones resolve as SUPERSEDED and their results are dropped.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from enrollment.errors import LookupFailure, LookupTimeoutError

logger = logging.getLogger(__name__)


class LookupStatus(str, Enum):
    OK = "ok"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    SUPERSEDED = "superseded"


@dataclass
class LookupOutcome:
    status: LookupStatus
    results: List[Any] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status == LookupStatus.OK


class LatestRequestGate:
    """Tracks a generation counter per field key."""

    def __init__(self):
        self._generations: Dict[str, int] = {}

    def _is_current(self, key: str, generation: int) -> bool:
        return self._generations.get(key) == generation

    async def run(self, key: str, call: Callable[[], Awaitable[List[Any]]]) -> LookupOutcome:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation

        try:
            results = await call()
            outcome = LookupOutcome(LookupStatus.OK, list(results))
        except LookupTimeoutError as e:
            outcome = LookupOutcome(LookupStatus.TIMED_OUT, error=e.message)
        except LookupFailure as e:
            outcome = LookupOutcome(LookupStatus.FAILED, error=e.message)

        if not self._is_current(key, generation):
            logger.debug(f"Dropping superseded lookup for {key}")
            return LookupOutcome(LookupStatus.SUPERSEDED)
        return outcome
