"""
External lookup services used while filling in enrollment forms.

LookupService bundles the clients with a LatestRequestGate so every call
is keyed by the form field that triggered it.
"""

from typing import Optional

import httpx

from config.settings import EnrollmentSettings, get_settings

from .clients import (
    AddressCandidate,
    AddressLookup,
    AssistantChat,
    LookupClient,
    ProviderCandidate,
    ProviderLookup,
)
from .gate import LatestRequestGate, LookupOutcome, LookupStatus


class LookupService:
    """Field-keyed, last-request-wins access to the lookup clients."""

    def __init__(
        self,
        settings: Optional[EnrollmentSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = settings or get_settings()
        timeout = settings.lookup_timeout_seconds
        self.addresses = AddressLookup(
            settings.address_lookup_url,
            min_query_length=settings.address_min_query_length,
            timeout=timeout,
            transport=transport,
        )
        self.providers = ProviderLookup(
            settings.provider_lookup_url, timeout=timeout, transport=transport
        )
        self.assistant = AssistantChat(
            settings.assistant_url, timeout=timeout, transport=transport
        )
        self.gate = LatestRequestGate()

    async def address_suggestions(self, field_key: str, partial: str) -> LookupOutcome:
        return await self.gate.run(field_key, lambda: self.addresses.search(partial))

    async def doctor_search(self, field_key: str, query: str) -> LookupOutcome:
        return await self.gate.run(field_key, lambda: self.providers.search_doctors(query))

    async def medication_search(self, field_key: str, query: str) -> LookupOutcome:
        return await self.gate.run(field_key, lambda: self.providers.search_medications(query))


__all__ = [
    "AddressCandidate",
    "AddressLookup",
    "AssistantChat",
    "LatestRequestGate",
    "LookupClient",
    "LookupOutcome",
    "LookupService",
    "LookupStatus",
    "ProviderCandidate",
    "ProviderLookup",
]
