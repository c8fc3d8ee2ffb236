from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.apps.api.deps import Principal, get_db, require_role
from discdesk.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from discdesk.apps.api.response import SuccessEnvelope, success_response
from discdesk.providers.enrichment.http import INTEGRATION_NAME as ENRICHMENT_INTEGRATION
from discdesk.services.audit import get_request_context, record_event
from discdesk.services.resilience import get_circuit_breaker_state
from discdesk.services.telemetry import (
    availability,
    counters_snapshot,
    external_latency_by_integration,
    gauges_snapshot,
    p95_latency,
)


router = APIRouter(prefix="/ops", tags=["ops"], responses=DEFAULT_ERROR_RESPONSES)

_WINDOW_S = 3600


@router.get("/metrics", response_model=SuccessEnvelope[dict[str, Any]])
async def ops_metrics(
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role("admin")),
) -> dict:
    # Process-local JSON metrics; each API instance reports only its own samples.
    counters = counters_snapshot()
    payload: dict[str, Any] = {
        "counters": {
            "discdesk_demo_seed_runs_total_succeeded": counters.get("demo_seed_runs_total.succeeded", 0),
            "discdesk_demo_seed_runs_total_failed": counters.get("demo_seed_runs_total.failed", 0),
            "discdesk_demo_seed_runs_total_rate_limited": counters.get("demo_seed_runs_total.rate_limited", 0),
            "discdesk_demo_enrichment_failures_total": counters.get("demo_enrichment_failures_total", 0),
            "discdesk_external_retries_total": counters.get("external_retries_total", 0),
        },
        "telemetry_counters": counters,
        "telemetry_gauges": gauges_snapshot(),
        "availability_pct": availability(_WINDOW_S),
        "p95_latency_ms": {
            "all": p95_latency(_WINDOW_S),
            "demo": p95_latency(_WINDOW_S, path_prefix="/v1/demo"),
        },
        "external_call_latency_ms": external_latency_by_integration(_WINDOW_S),
        "circuit_breaker_state": {
            ENRICHMENT_INTEGRATION: await get_circuit_breaker_state(ENRICHMENT_INTEGRATION),
        },
    }
    request_ctx = get_request_context(request)
    await record_event(
        session=db,
        tenant_id=principal.tenant_id,
        actor_type=principal.auth_method,
        actor_id=principal.api_key_id,
        actor_role=principal.role,
        event_type="ops.viewed",
        outcome="success",
        resource_type="ops",
        resource_id="metrics",
        request_id=request_ctx["request_id"],
        ip_address=request_ctx["ip_address"],
        user_agent=request_ctx["user_agent"],
        metadata={"path": request.url.path},
        commit=True,
    )
    return success_response(request=request, data=payload)
