from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import math
import time
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.core.config import get_settings
from discdesk.domain.models import DiscInsight
from discdesk.providers.enrichment.base import EnrichmentProvider, EnrichmentRequest
from discdesk.services.demo.composer import ComposedClient
from discdesk.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

# Hard ceiling regardless of configuration.
MAX_FAN_OUT = 50

INSIGHT_STATUS_SUCCEEDED = "succeeded"
INSIGHT_STATUS_FAILED = "failed"


@dataclass(frozen=True)
class EnrichmentOutcome:
    client: ComposedClient
    insights: str | None
    error: str | None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class EnrichmentTally:
    attempted: int = 0
    succeeded: int = 0
    outcomes: list[EnrichmentOutcome] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded


def fan_out_width(client_count: int, max_concurrency: int | None = None) -> int:
    configured = max_concurrency if max_concurrency is not None else get_settings().demo_enrichment_max_concurrency
    return max(1, min(client_count, configured, MAX_FAN_OUT))


def enrichment_deadline_s(
    client_count: int,
    *,
    max_concurrency: int | None = None,
    timeout_ms: int | None = None,
) -> float:
    # Worst case: every wave of calls runs into the per-call timeout.
    if client_count <= 0:
        return 0.0
    resolved_timeout_ms = timeout_ms if timeout_ms is not None else get_settings().demo_enrichment_timeout_ms
    waves = math.ceil(client_count / fan_out_width(client_count, max_concurrency))
    return waves * resolved_timeout_ms / 1000.0


async def _enrich_one(
    provider: EnrichmentProvider,
    client: ComposedClient,
    *,
    semaphore: asyncio.Semaphore,
    timeout_s: float,
) -> EnrichmentOutcome:
    request = EnrichmentRequest(
        client_id=client.id,
        disc_type=client.disc_type,
        scores=client.scores,
        client_name=client.name,
    )
    async with semaphore:
        try:
            insights = await asyncio.wait_for(provider.generate(request), timeout=timeout_s)
        except Exception as exc:  # noqa: BLE001 - one client's failure must not abort the batch
            logger.warning(
                "demo_enrichment_failed client_id=%s error=%s",
                client.id,
                type(exc).__name__,
                exc_info=exc,
            )
            increment_counter("demo_enrichment_failures_total")
            message = str(exc) or type(exc).__name__
            return EnrichmentOutcome(client=client, insights=None, error=message)
    return EnrichmentOutcome(client=client, insights=insights, error=None)


async def fan_out_enrichment(
    provider: EnrichmentProvider,
    clients: Sequence[ComposedClient],
    *,
    max_concurrency: int | None = None,
    timeout_ms: int | None = None,
) -> EnrichmentTally:
    """Enrich every client concurrently and wait for all calls to settle.

    Failures, timeouts included, are logged and counted; they never propagate.
    """
    tally = EnrichmentTally(attempted=len(clients))
    if not clients:
        return tally
    settings = get_settings()
    semaphore = asyncio.Semaphore(fan_out_width(len(clients), max_concurrency))
    timeout_s = (timeout_ms if timeout_ms is not None else settings.demo_enrichment_timeout_ms) / 1000.0

    start = time.monotonic()
    outcomes = await asyncio.gather(
        *(_enrich_one(provider, client, semaphore=semaphore, timeout_s=timeout_s) for client in clients)
    )
    tally.outcomes = list(outcomes)
    tally.succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
    logger.info(
        "demo_enrichment_settled attempted=%s succeeded=%s elapsed_ms=%.1f",
        tally.attempted,
        tally.succeeded,
        (time.monotonic() - start) * 1000.0,
    )
    return tally


async def persist_insights(session: AsyncSession, tally: EnrichmentTally, *, tenant_id: str) -> None:
    # Written after the fan-out settles so the session is never shared between tasks.
    if not tally.outcomes:
        return
    rows = [
        DiscInsight(
            client_id=outcome.client.id,
            status=INSIGHT_STATUS_SUCCEEDED if outcome.succeeded else INSIGHT_STATUS_FAILED,
            disc_type=outcome.client.disc_type,
            scores=dict(outcome.client.scores),
            insights=outcome.insights,
            error=outcome.error,
        )
        for outcome in tally.outcomes
    ]
    try:
        session.add_all(rows)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("demo_insights_persist_failed tenant_id=%s rows=%s", tenant_id, len(rows), exc_info=exc)
