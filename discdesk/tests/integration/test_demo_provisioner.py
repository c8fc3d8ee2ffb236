from __future__ import annotations

from datetime import datetime, timedelta, timezone
import random

import pytest
from sqlalchemy import select

from discdesk.core.config import get_settings
from discdesk.domain.archetypes import CLIENT_ARCHETYPES, STAFF_ARCHETYPES
from discdesk.domain.models import (
    SOURCE_DEMO,
    AuditEvent,
    Client,
    DemoSeedLock,
    DemoSeedLog,
    DiscInsight,
    EmailTrackingEvent,
    StaffMember,
)
from discdesk.persistence.db import SessionLocal
from discdesk.persistence.repos.clients import list_assessments_for_tenant, list_clients_by_tenant
from discdesk.persistence.repos.staff import list_staff_by_tenant
from discdesk.providers.enrichment.fake import FakeEnrichmentProvider
from discdesk.services.demo.cleanup import CleanupFailure
from discdesk.services.demo.composer import CompositionFailure
from discdesk.services.demo.cooldown import RateLimitedError, as_utc
from discdesk.services.demo.enrichment import enrichment_deadline_s
from discdesk.services.demo.identity import IDENTITY_KIND_STAFF, generate_identity
from discdesk.services.demo.lock import ProvisioningInProgressError, acquire_seed_lock, extend_seed_lock
from discdesk.services.demo.provisioner import provision_demo_environment
from discdesk.tests.utils.demo import (
    add_seed_log,
    backdate_seed_log,
    drop_seed_log_table,
    fail_deletes_on,
    tenant_counts,
)


async def _provision(tenant_id: str, **kwargs):
    kwargs.setdefault("provider", FakeEnrichmentProvider())
    async with SessionLocal() as session:
        return await provision_demo_environment(session, tenant_id, **kwargs)


async def _identities(tenant_id: str) -> tuple[set[str], set[str]]:
    async with SessionLocal() as session:
        clients = await list_clients_by_tenant(session, tenant_id)
        staff = await list_staff_by_tenant(session, tenant_id)
    return {client.email for client in clients}, {member.email for member in staff}


@pytest.mark.asyncio
async def test_fresh_tenant_gets_full_catalog_then_is_rate_limited() -> None:
    summary = await _provision("tenant-fresh")
    assert summary.success is True
    assert summary.clients_created == 25
    assert summary.staff_created == 25
    assert summary.assessments_created == 25
    assert summary.insights_generated == 25
    assert summary.message == (
        "Successfully created 25 demo clients and 25 staff members with diverse DISC profiles and AI insights"
    )

    with pytest.raises(RateLimitedError) as exc_info:
        await _provision("tenant-fresh")
    assert exc_info.value.retry_after_hours == 24

    counts = await tenant_counts("tenant-fresh")
    assert counts == {"clients": 25, "staff": 25, "assessments": 25, "insights": 25, "logs": 1}


@pytest.mark.asyncio
async def test_backdated_log_entry_allows_a_second_run() -> None:
    await _provision("tenant-reset")
    first_clients, first_staff = await _identities("tenant-reset")

    await backdate_seed_log("tenant-reset", hours=24)
    summary = await _provision("tenant-reset")
    assert summary.clients_created == 25

    second_clients, second_staff = await _identities("tenant-reset")
    assert first_clients == second_clients
    assert first_staff == second_staff
    counts = await tenant_counts("tenant-reset")
    assert counts["clients"] == len(CLIENT_ARCHETYPES)
    assert counts["staff"] == len(STAFF_ARCHETYPES)
    assert counts["assessments"] == len(CLIENT_ARCHETYPES)
    assert counts["insights"] == len(CLIENT_ARCHETYPES)
    assert counts["logs"] == 2


@pytest.mark.asyncio
async def test_recent_log_entry_reports_remaining_hours() -> None:
    now = datetime.now(timezone.utc)
    await add_seed_log("tenant-recent", created_at=now - timedelta(hours=20, minutes=30))
    with pytest.raises(RateLimitedError) as exc_info:
        await _provision("tenant-recent", now=now)
    assert exc_info.value.retry_after_hours == 4
    counts = await tenant_counts("tenant-recent")
    assert counts["clients"] == 0
    # Rejected attempts leave the log untouched.
    assert counts["logs"] == 1


@pytest.mark.asyncio
async def test_every_client_has_one_assessment_with_catalog_scores() -> None:
    await _provision("tenant-scores", rng=random.Random(11))
    async with SessionLocal() as session:
        clients = await list_clients_by_tenant(session, "tenant-scores")
        assessments = await list_assessments_for_tenant(session, "tenant-scores")

    by_client: dict[str, list] = {}
    for assessment in assessments:
        by_client.setdefault(assessment.client_id, []).append(assessment)
    catalog = {archetype.name: archetype for archetype in CLIENT_ARCHETYPES}

    assert len(clients) == 25
    for client in clients:
        assert len(by_client[client.id]) == 1
        assessment = by_client[client.id][0]
        archetype = catalog[client.name]
        assert assessment.scores == archetype.scores.as_dict()
        assert assessment.dominant_type == archetype.disc_type
        assert len(assessment.responses) == get_settings().demo_question_count
        assert client.source == SOURCE_DEMO


@pytest.mark.asyncio
async def test_partial_enrichment_failure_still_succeeds() -> None:
    failing = {CLIENT_ARCHETYPES[0].name, CLIENT_ARCHETYPES[7].name, CLIENT_ARCHETYPES[19].name}
    summary = await _provision("tenant-partial", provider=FakeEnrichmentProvider(fail_names=failing))
    assert summary.success is True
    assert summary.insights_generated == 22

    counts = await tenant_counts("tenant-partial")
    assert counts["clients"] == 25
    assert counts["assessments"] == 25
    async with SessionLocal() as session:
        rows = (
            await session.execute(
                select(DiscInsight, Client.name).join(Client, DiscInsight.client_id == Client.id)
            )
        ).all()
    failed = {name for insight, name in rows if insight.status == "failed"}
    succeeded = [insight for insight, _name in rows if insight.status == "succeeded"]
    assert failed == failing
    assert len(succeeded) == 22
    assert all(insight.insights for insight in succeeded)


@pytest.mark.asyncio
async def test_tenants_never_share_identities() -> None:
    await _provision("tenant-one")
    await _provision("tenant-two")
    one_clients, one_staff = await _identities("tenant-one")
    two_clients, two_staff = await _identities("tenant-two")
    assert (one_clients | one_staff).isdisjoint(two_clients | two_staff)


@pytest.mark.asyncio
async def test_demo_cleanup_scope_keeps_organic_rows() -> None:
    await _provision("tenant-mixed")
    async with SessionLocal() as session:
        organic = Client(tenant_id="tenant-mixed", name="Real Customer", email="real@customer.test")
        session.add(organic)
        await session.flush()
        session.add(EmailTrackingEvent(client_id=organic.id, event_type="open"))
        session.add(StaffMember(tenant_id="tenant-mixed", name="Real Staff", email="staff@customer.test"))
        await session.commit()

    await backdate_seed_log("tenant-mixed", hours=48)
    await _provision("tenant-mixed")

    counts = await tenant_counts("tenant-mixed")
    assert counts["clients"] == 26
    assert counts["staff"] == 26
    async with SessionLocal() as session:
        remaining = (
            await session.execute(select(Client).where(Client.email == "real@customer.test"))
        ).scalar_one()
        events = (await session.execute(select(EmailTrackingEvent))).scalars().all()
    assert remaining.source == "organic"
    assert len(events) == 1


@pytest.mark.asyncio
async def test_tenant_cleanup_scope_sweeps_every_row(monkeypatch) -> None:
    await _provision("tenant-sweep")
    async with SessionLocal() as session:
        session.add(Client(tenant_id="tenant-sweep", name="Real Customer", email="sweep@customer.test"))
        session.add(Client(tenant_id="tenant-other", name="Other Customer", email="other@customer.test"))
        await session.commit()

    monkeypatch.setenv("DEMO_CLEANUP_SCOPE", "tenant")
    get_settings.cache_clear()
    await backdate_seed_log("tenant-sweep", hours=48)
    summary = await _provision("tenant-sweep")
    assert summary.cleanup is not None
    assert summary.cleanup.scope == "tenant"
    assert summary.cleanup.deleted["clients"] == 26

    assert (await tenant_counts("tenant-sweep"))["clients"] == 25
    assert (await tenant_counts("tenant-other"))["clients"] == 1


@pytest.mark.asyncio
async def test_held_lock_rejects_concurrent_run() -> None:
    now = datetime.now(timezone.utc)
    async with SessionLocal() as session:
        session.add(
            DemoSeedLock(
                tenant_id="tenant-busy",
                lock_id="other-run",
                acquired_at=now,
                expires_at=now + timedelta(minutes=5),
            )
        )
        await session.commit()

    with pytest.raises(ProvisioningInProgressError):
        await _provision("tenant-busy", now=now)
    counts = await tenant_counts("tenant-busy")
    assert counts["clients"] == 0
    assert counts["logs"] == 0


@pytest.mark.asyncio
async def test_expired_lock_is_taken_over_and_released() -> None:
    now = datetime.now(timezone.utc)
    async with SessionLocal() as session:
        session.add(
            DemoSeedLock(
                tenant_id="tenant-stale",
                lock_id="crashed-run",
                acquired_at=now - timedelta(hours=1),
                expires_at=now - timedelta(minutes=55),
            )
        )
        await session.commit()

    summary = await _provision("tenant-stale", now=now)
    assert summary.clients_created == 25
    async with SessionLocal() as session:
        locks = (await session.execute(select(DemoSeedLock))).scalars().all()
    assert locks == []


@pytest.mark.asyncio
async def test_staff_stage_failure_reports_committed_counts() -> None:
    # Occupy the address the composer will derive for the fourth staff member.
    taken = generate_identity(STAFF_ARCHETYPES[3].base_email, "tenant-broken", 3, kind=IDENTITY_KIND_STAFF)
    async with SessionLocal() as session:
        session.add(StaffMember(tenant_id="someone-else", name="Squatter", email=taken))
        await session.commit()

    with pytest.raises(CompositionFailure) as exc_info:
        await _provision("tenant-broken")
    assert exc_info.value.stage == "staff"
    assert exc_info.value.committed == {"clients": 25, "staff": 0, "assessments": 0}

    async with SessionLocal() as session:
        entries = (
            await session.execute(select(DemoSeedLog).where(DemoSeedLog.tenant_id == "tenant-broken"))
        ).scalars().all()
        audit = (
            await session.execute(select(AuditEvent).where(AuditEvent.event_type == "demo.seed.failed"))
        ).scalars().all()
    assert [entry.outcome for entry in entries] == ["failed"]
    assert entries[0].error_code == "DEMO_COMPOSITION_FAILED"
    assert entries[0].counts_json == {"clients": 25, "staff": 0, "assessments": 0}
    assert len(audit) == 1
    assert audit[0].metadata_json["stage"] == "staff"


@pytest.mark.asyncio
async def test_skip_cooldown_runs_and_still_logs() -> None:
    await _provision("tenant-force")
    summary = await _provision("tenant-force", skip_cooldown=True)
    assert summary.clients_created == 25
    counts = await tenant_counts("tenant-force")
    assert counts["clients"] == 25
    assert counts["logs"] == 2


@pytest.mark.asyncio
async def test_success_is_audited() -> None:
    await _provision("tenant-audit", request_id="req-123", actor_id="key-1", actor_role="editor")
    async with SessionLocal() as session:
        events = (
            await session.execute(select(AuditEvent).where(AuditEvent.event_type == "demo.seed.succeeded"))
        ).scalars().all()
    assert len(events) == 1
    assert events[0].tenant_id == "tenant-audit"
    assert events[0].request_id == "req-123"
    assert events[0].metadata_json["counts"]["clients"] == 25


class StampingProvider(FakeEnrichmentProvider):
    def __init__(self) -> None:
        super().__init__()
        self.stamps: list[datetime] = []

    async def generate(self, request):
        self.stamps.append(datetime.now(timezone.utc))
        return await super().generate(request)


class LockObservingProvider(FakeEnrichmentProvider):
    # Reads the tenant lock from a separate session on the first enrichment call.
    def __init__(self, tenant_id: str) -> None:
        super().__init__()
        self._tenant_id = tenant_id
        self._observed = False
        self.lock_expires_at: datetime | None = None

    async def generate(self, request):
        if not self._observed:
            self._observed = True
            async with SessionLocal() as session:
                lock = await session.get(DemoSeedLock, self._tenant_id)
            self.lock_expires_at = as_utc(lock.expires_at)
        return await super().generate(request)


async def _client_ids(tenant_id: str) -> set[str]:
    async with SessionLocal() as session:
        rows = await session.execute(select(Client.id).where(Client.tenant_id == tenant_id))
    return set(rows.scalars().all())


@pytest.mark.asyncio
async def test_parent_cleanup_failure_aborts_before_composing(monkeypatch) -> None:
    await _provision("tenant-stuck")
    ids_before = await _client_ids("tenant-stuck")
    await backdate_seed_log("tenant-stuck", hours=48)

    fail_deletes_on(monkeypatch, "clients")
    with pytest.raises(CleanupFailure) as exc_info:
        await _provision("tenant-stuck")
    assert exc_info.value.stage == "clients"

    assert await _client_ids("tenant-stuck") == ids_before
    counts = await tenant_counts("tenant-stuck")
    assert counts["clients"] == 25
    assert counts["staff"] == 25
    assert counts["logs"] == 2
    async with SessionLocal() as session:
        latest = (
            await session.execute(
                select(DemoSeedLog)
                .where(DemoSeedLog.tenant_id == "tenant-stuck")
                .order_by(DemoSeedLog.created_at.desc())
                .limit(1)
            )
        ).scalar_one()
        audit = (
            await session.execute(select(AuditEvent).where(AuditEvent.event_type == "demo.seed.failed"))
        ).scalars().all()
    assert latest.outcome == "failed"
    assert latest.error_code == "DEMO_CLEANUP_FAILED"
    assert latest.counts_json == {}
    assert len(audit) == 1
    assert audit[0].metadata_json["stage"] == "clients"


@pytest.mark.asyncio
async def test_child_cleanup_failure_is_skipped_and_run_succeeds(monkeypatch) -> None:
    await _provision("tenant-orphans")
    await backdate_seed_log("tenant-orphans", hours=48)

    fail_deletes_on(monkeypatch, "disc_insights")
    summary = await _provision("tenant-orphans")
    assert summary.success is True
    assert summary.cleanup is not None
    assert summary.cleanup.skipped == ["insights"]
    assert "insights" not in summary.cleanup.deleted
    assert summary.cleanup.deleted["assessments"] == 25
    assert summary.cleanup.deleted["clients"] == 25

    counts = await tenant_counts("tenant-orphans")
    assert counts["clients"] == 25
    assert counts["insights"] == 25
    assert counts["logs"] == 2


@pytest.mark.asyncio
async def test_seed_log_write_failure_still_returns_summary() -> None:
    await drop_seed_log_table()
    summary = await _provision("tenant-nolog", skip_cooldown=True)
    assert summary.success is True
    assert summary.clients_created == 25
    assert summary.insights_generated == 25

    assert len(await _client_ids("tenant-nolog")) == 25
    async with SessionLocal() as session:
        events = (
            await session.execute(
                select(AuditEvent.event_type).where(AuditEvent.tenant_id == "tenant-nolog")
            )
        ).scalars().all()
    assert events == ["demo.seed.succeeded"]


@pytest.mark.asyncio
async def test_log_entry_is_stamped_after_enrichment_settles() -> None:
    provider = StampingProvider()
    await _provision("tenant-stamp", provider=provider)
    async with SessionLocal() as session:
        entry = (
            await session.execute(select(DemoSeedLog).where(DemoSeedLog.tenant_id == "tenant-stamp"))
        ).scalar_one()
    assert len(provider.stamps) == 25
    assert as_utc(entry.created_at) >= max(provider.stamps)


@pytest.mark.asyncio
async def test_lock_outlives_a_serial_fan_out(monkeypatch) -> None:
    monkeypatch.setenv("DEMO_ENRICHMENT_MAX_CONCURRENCY", "1")
    get_settings.cache_clear()
    settings = get_settings()
    started = datetime.now(timezone.utc)

    provider = LockObservingProvider("tenant-serial")
    summary = await _provision("tenant-serial", provider=provider)
    assert summary.insights_generated == 25

    deadline = enrichment_deadline_s(len(CLIENT_ARCHETYPES))
    assert deadline == 25 * settings.demo_enrichment_timeout_ms / 1000.0
    assert provider.lock_expires_at is not None
    assert provider.lock_expires_at >= started + timedelta(seconds=settings.demo_lock_ttl_s + deadline)


@pytest.mark.asyncio
async def test_extended_lock_keeps_rejecting_other_runs() -> None:
    now = datetime.now(timezone.utc)
    async with SessionLocal() as session:
        lock_id = await acquire_seed_lock(session, "tenant-extend", now=now, ttl_s=60)
        assert await extend_seed_lock(session, "tenant-extend", lock_id, ttl_s=900, now=now) is True
        assert await extend_seed_lock(session, "tenant-extend", "other-run", ttl_s=900, now=now) is False

    # Past the original TTL, the extended lock is still held.
    async with SessionLocal() as session:
        with pytest.raises(ProvisioningInProgressError):
            await acquire_seed_lock(session, "tenant-extend", now=now + timedelta(seconds=120))
    async with SessionLocal() as session:
        lock = await session.get(DemoSeedLock, "tenant-extend")
    assert lock.lock_id == lock_id
    assert as_utc(lock.expires_at) >= now + timedelta(seconds=899)
