from __future__ import annotations

import asyncio
from typing import Iterable

from discdesk.core.errors import EnrichmentError, ProviderConfigError
from discdesk.providers.enrichment.base import EnrichmentRequest


_TYPE_SUMMARIES = {
    "D": "direct, results-driven and quick to decide",
    "I": "enthusiastic, persuasive and energized by people",
    "S": "patient, dependable and loyal to a steady pace",
    "C": "analytical, precise and guided by evidence",
}


class FakeEnrichmentProvider:
    def __init__(
        self,
        *,
        fail_client_ids: Iterable[str] | None = None,
        fail_names: Iterable[str] | None = None,
        delay_s: float = 0.0,
    ) -> None:
        # Deterministic prose keeps tests stable without external calls.
        self._fail_client_ids = set(fail_client_ids or ())
        self._fail_names = set(fail_names or ())
        self._delay_s = delay_s
        self.calls: list[EnrichmentRequest] = []

    async def generate(self, request: EnrichmentRequest) -> str:
        self.calls.append(request)
        if self._delay_s:
            await asyncio.sleep(self._delay_s)
        if request.client_id in self._fail_client_ids or request.client_name in self._fail_names:
            raise EnrichmentError(f"Simulated enrichment failure for {request.client_id}")
        summary = _TYPE_SUMMARIES.get(request.disc_type, "balanced across styles")
        scores = ", ".join(f"{key}={value}" for key, value in request.scores.items())
        return (
            f"**Core Characteristics**: {request.client_name} is {summary}.\n"
            f"**DISC Scores**: {scores}."
        )


class DisabledEnrichmentProvider:
    async def generate(self, request: EnrichmentRequest) -> str:
        # Fail every call so runs still complete with zero insights.
        raise ProviderConfigError("Enrichment provider is disabled")
