"""
HTTP clients for the external lookup services.

Address autocomplete, doctor and medication search, and the AI assistant
are all plain JSON request/response services. Each client maps transport
problems onto LookupTimeoutError or LookupFailure so callers never see
httpx exceptions.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from enrollment.errors import LookupFailure, LookupTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0


class AddressCandidate(BaseModel):
    street_address: str
    city: str = ""
    state: str = ""
    zip_code: str = ""


class ProviderCandidate(BaseModel):
    """A doctor or medication search hit."""
    id: str
    name: str
    detail: Optional[str] = Field(default=None, description="Specialty or dosage")


class LookupClient:
    """Base JSON client with a per-request timeout."""

    service_name = "lookup"

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            logger.warning(f"{self.service_name} request timed out after {self.timeout}s")
            raise LookupTimeoutError(f"{self.service_name} did not respond in time") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"{self.service_name} returned HTTP {e.response.status_code}")
            raise LookupFailure(
                f"{self.service_name} request failed",
                {"status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.warning(f"{self.service_name} connection error: {e}")
            raise LookupFailure(f"Could not reach {self.service_name}") from e
        except ValueError as e:
            raise LookupFailure(f"{self.service_name} returned invalid JSON") from e

    @staticmethod
    def _items(payload: Any) -> List[Dict[str, Any]]:
        if isinstance(payload, dict):
            payload = payload.get("results", [])
        return [item for item in payload or [] if isinstance(item, dict)]


class AddressLookup(LookupClient):
    """Address autocomplete."""

    service_name = "Address lookup"

    def __init__(self, base_url: str, min_query_length: int = 3, **kwargs: Any):
        super().__init__(base_url, **kwargs)
        self.min_query_length = min_query_length

    async def search(self, partial: str) -> List[AddressCandidate]:
        """Suggestions for a partial street address; too-short input returns nothing."""
        query = (partial or "").strip()
        if len(query) < self.min_query_length:
            return []
        payload = await self._request("GET", "", params={"q": query})
        candidates = []
        for item in self._items(payload):
            try:
                candidates.append(AddressCandidate.model_validate(item))
            except ValidationError:
                logger.debug("Dropping malformed address suggestion")
        return candidates


class ProviderLookup(LookupClient):
    """Doctor and medication search."""

    service_name = "Provider search"

    async def _search(self, kind: str, query: str) -> List[ProviderCandidate]:
        query = (query or "").strip()
        if not query:
            return []
        payload = await self._request("GET", f"/{kind}", params={"q": query})
        results = []
        for item in self._items(payload):
            try:
                results.append(ProviderCandidate.model_validate(item))
            except ValidationError:
                logger.debug(f"Dropping malformed {kind} result")
        return results

    async def search_doctors(self, query: str) -> List[ProviderCandidate]:
        return await self._search("doctors", query)

    async def search_medications(self, query: str) -> List[ProviderCandidate]:
        return await self._search("medications", query)


class AssistantChat(LookupClient):
    """The enrollment help assistant."""

    service_name = "Assistant"

    async def create_session(self) -> str:
        payload = await self._request("POST", "/sessions")
        session_id = (payload or {}).get("session_id")
        if not session_id:
            raise LookupFailure("Assistant did not return a session id")
        return session_id

    async def send(self, session_id: str, message: str) -> str:
        payload = await self._request(
            "POST", f"/sessions/{session_id}/messages", json={"message": message}
        )
        return str((payload or {}).get("reply", ""))
