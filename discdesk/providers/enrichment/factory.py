from __future__ import annotations

from discdesk.core.config import get_settings
from discdesk.providers.enrichment.base import EnrichmentProvider
from discdesk.providers.enrichment.fake import DisabledEnrichmentProvider, FakeEnrichmentProvider
from discdesk.providers.enrichment.http import INTEGRATION_NAME, HttpEnrichmentProvider
from discdesk.services.resilience import CircuitBreaker, get_resilience_redis


async def get_enrichment_provider() -> EnrichmentProvider:
    settings = get_settings()
    provider = (settings.enrichment_provider or "http").lower()

    if provider == "fake":
        return FakeEnrichmentProvider()
    if provider == "none":
        return DisabledEnrichmentProvider()
    # Share breaker state across instances when Redis is reachable.
    redis = await get_resilience_redis()
    return HttpEnrichmentProvider(breaker=CircuitBreaker(INTEGRATION_NAME, redis=redis))
