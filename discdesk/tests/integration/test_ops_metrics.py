from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from discdesk.apps.api.main import create_app
from discdesk.domain.archetypes import CLIENT_ARCHETYPES
from discdesk.domain.models import AuditEvent
from discdesk.persistence.db import SessionLocal
from discdesk.providers.enrichment.factory import get_enrichment_provider
from discdesk.providers.enrichment.fake import FakeEnrichmentProvider
from discdesk.tests.utils.auth import create_test_api_key


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_metrics_require_admin() -> None:
    _raw, headers, _user_id, _key_id = await create_test_api_key(tenant_id="tenant-ops", role="editor")
    app = create_app()
    async with _client(app) as client:
        response = await client.get("/v1/ops/metrics", headers=headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_metrics_report_provisioning_activity() -> None:
    _raw, headers, _user_id, _key_id = await create_test_api_key(tenant_id="tenant-ops", role="admin")
    failing = {CLIENT_ARCHETYPES[0].name, CLIENT_ARCHETYPES[1].name}
    app = create_app()
    app.dependency_overrides[get_enrichment_provider] = lambda: FakeEnrichmentProvider(fail_names=failing)
    async with _client(app) as client:
        seeded = await client.post("/v1/demo/seed", headers=headers)
        assert seeded.status_code == 200
        limited = await client.post("/v1/demo/seed", headers=headers)
        assert limited.status_code == 429

        response = await client.get("/v1/ops/metrics", headers=headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["counters"]["discdesk_demo_seed_runs_total_succeeded"] == 1
    assert data["counters"]["discdesk_demo_seed_runs_total_rate_limited"] == 1
    assert data["counters"]["discdesk_demo_seed_runs_total_failed"] == 0
    assert data["counters"]["discdesk_demo_enrichment_failures_total"] == 2
    # Earlier requests in this process are sampled by the request middleware.
    assert data["availability_pct"] == 100.0
    assert data["p95_latency_ms"]["demo"] is not None
    assert data["circuit_breaker_state"]["enrichment.insights"] in {"closed", "open", "half_open", "unknown"}

    async with SessionLocal() as session:
        viewed = (
            await session.execute(select(AuditEvent).where(AuditEvent.event_type == "ops.viewed"))
        ).scalars().all()
    assert len(viewed) == 1
    assert viewed[0].tenant_id == "tenant-ops"
