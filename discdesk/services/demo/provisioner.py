from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import random
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.core.config import get_settings
from discdesk.domain.archetypes import (
    CATALOG_VERSION,
    CLIENT_ARCHETYPES,
    STAFF_ARCHETYPES,
    ClientArchetype,
    StaffArchetype,
)
from discdesk.persistence.guards import require_tenant_id
from discdesk.providers.enrichment.base import EnrichmentProvider
from discdesk.providers.enrichment.factory import get_enrichment_provider
from discdesk.services.audit import record_event
from discdesk.services.demo.cleanup import CleanupFailure, CleanupReport, cleanup_demo_data
from discdesk.services.demo.composer import CompositionFailure, compose_dataset
from discdesk.services.demo.cooldown import RateLimitedError, check_cooldown
from discdesk.services.demo.enrichment import enrichment_deadline_s, fan_out_enrichment, persist_insights
from discdesk.services.demo.lock import acquire_seed_lock, extend_seed_lock, release_seed_lock
from discdesk.services.demo.seed_log import OUTCOME_FAILED, OUTCOME_SUCCEEDED, append_seed_log
from discdesk.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

ERROR_CODE_CLEANUP_FAILED = "DEMO_CLEANUP_FAILED"
ERROR_CODE_COMPOSITION_FAILED = "DEMO_COMPOSITION_FAILED"


@dataclass(frozen=True)
class ProvisioningSummary:
    success: bool
    message: str
    clients_created: int
    staff_created: int
    assessments_created: int
    insights_generated: int
    cleanup: CleanupReport | None = None


def _success_message(clients: int, staff: int) -> str:
    return (
        f"Successfully created {clients} demo clients and {staff} staff members "
        "with diverse DISC profiles and AI insights"
    )


async def provision_demo_environment(
    session: AsyncSession,
    tenant_id: str,
    *,
    provider: EnrichmentProvider | None = None,
    rng: random.Random | None = None,
    now: datetime | None = None,
    skip_cooldown: bool = False,
    cleanup_scope: str | None = None,
    request_id: str | None = None,
    actor_type: str = "system",
    actor_id: str | None = None,
    actor_role: str | None = None,
    client_archetypes: Sequence[ClientArchetype] = CLIENT_ARCHETYPES,
    staff_archetypes: Sequence[StaffArchetype] = STAFF_ARCHETYPES,
) -> ProvisioningSummary:
    """Reset a tenant's demo environment to the catalog's known state.

    Stages run strictly in order while the tenant lock is held: cooldown check, cleanup,
    composition (clients, staff, assessments), enrichment fan-out, then the log entry.
    RateLimitedError and ProvisioningInProgressError leave no trace. CleanupFailure and
    CompositionFailure are logged as failed attempts and re-raised to the caller. Log entries
    are stamped when the attempt finishes; an injected ``now`` pins every timestamp instead.
    """
    require_tenant_id(tenant_id)
    resolved_now = now or datetime.now(timezone.utc)

    async def _audit(event_type: str, outcome: str, *, metadata: dict, error_code: str | None = None) -> None:
        await record_event(
            session=session,
            tenant_id=tenant_id,
            actor_type=actor_type,
            actor_id=actor_id,
            actor_role=actor_role,
            event_type=event_type,
            outcome=outcome,
            resource_type="demo_environment",
            resource_id=tenant_id,
            request_id=request_id,
            metadata=metadata,
            error_code=error_code,
            commit=True,
        )

    lock_id = await acquire_seed_lock(session, tenant_id, now=resolved_now)
    try:
        if not skip_cooldown:
            try:
                await check_cooldown(session, tenant_id, now=resolved_now)
            except RateLimitedError as exc:
                increment_counter("demo_seed_runs_total.rate_limited")
                await _audit(
                    "demo.seed.rate_limited",
                    "failure",
                    metadata={"retry_after_hours": exc.retry_after_hours},
                    error_code="DEMO_SEED_RATE_LIMITED",
                )
                raise

        logger.info(
            "demo_seed_started tenant_id=%s catalog_version=%s request_id=%s",
            tenant_id,
            CATALOG_VERSION,
            request_id,
        )
        try:
            cleanup = await cleanup_demo_data(session, tenant_id, scope=cleanup_scope)
            dataset = await compose_dataset(
                session,
                tenant_id,
                rng=rng,
                client_archetypes=client_archetypes,
                staff_archetypes=staff_archetypes,
            )
        except (CleanupFailure, CompositionFailure) as exc:
            committed = getattr(exc, "committed", {})
            error_code = ERROR_CODE_CLEANUP_FAILED if isinstance(exc, CleanupFailure) else ERROR_CODE_COMPOSITION_FAILED
            increment_counter("demo_seed_runs_total.failed")
            await append_seed_log(
                session,
                tenant_id,
                outcome=OUTCOME_FAILED,
                counts=committed,
                error_code=error_code,
                error_message=str(exc),
                request_id=request_id,
                now=now,
            )
            await _audit(
                "demo.seed.failed",
                "failure",
                metadata={"stage": exc.stage, "committed": committed},
                error_code=error_code,
            )
            raise

        enrichment_provider = provider or await get_enrichment_provider()
        # Keep the lock alive through the slowest possible fan-out.
        await extend_seed_lock(
            session,
            tenant_id,
            lock_id,
            ttl_s=get_settings().demo_lock_ttl_s + enrichment_deadline_s(len(dataset.clients)),
            now=now,
        )
        tally = await fan_out_enrichment(enrichment_provider, dataset.clients)
        await persist_insights(session, tally, tenant_id=tenant_id)

        counts = {
            "clients": len(dataset.clients),
            "staff": len(dataset.staff_emails),
            "assessments": dataset.assessments_created,
            "insights": tally.succeeded,
        }
        await append_seed_log(
            session,
            tenant_id,
            outcome=OUTCOME_SUCCEEDED,
            counts=counts,
            request_id=request_id,
            now=now,
        )
        increment_counter("demo_seed_runs_total.succeeded")
        await _audit(
            "demo.seed.succeeded",
            "success",
            metadata={"counts": counts, "catalog_version": CATALOG_VERSION, "cleanup_scope": cleanup.scope},
        )
        logger.info(
            "demo_seed_completed tenant_id=%s clients=%s staff=%s assessments=%s insights=%s/%s",
            tenant_id,
            counts["clients"],
            counts["staff"],
            counts["assessments"],
            tally.succeeded,
            tally.attempted,
        )
        return ProvisioningSummary(
            success=True,
            message=_success_message(counts["clients"], counts["staff"]),
            clients_created=counts["clients"],
            staff_created=counts["staff"],
            assessments_created=counts["assessments"],
            insights_generated=tally.succeeded,
            cleanup=cleanup,
        )
    finally:
        await release_seed_lock(session, tenant_id, lock_id)
