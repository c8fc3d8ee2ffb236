from __future__ import annotations

from dataclasses import dataclass, field
import logging

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.core.config import get_settings
from discdesk.domain.models import (
    SOURCE_DEMO,
    Assessment,
    Client,
    DiscInsight,
    EmailTrackingEvent,
    StaffMember,
)
from discdesk.persistence.guards import tenant_predicate
from discdesk.persistence.repos.clients import list_client_ids


logger = logging.getLogger(__name__)

CLEANUP_SCOPE_DEMO = "demo"
CLEANUP_SCOPE_TENANT = "tenant"

STAGE_INSIGHTS = "insights"
STAGE_ASSESSMENTS = "assessments"
STAGE_EMAIL_TRACKING = "email_tracking"
STAGE_CLIENTS = "clients"
STAGE_STAFF = "staff"


class CleanupFailure(RuntimeError):
    # Raised only for parent-stage failures; composing on top of leftover parents breaks uniqueness.
    def __init__(self, *, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage


@dataclass
class CleanupReport:
    scope: str
    deleted: dict[str, int] = field(default_factory=dict)
    # Child stages that failed and were skipped.
    skipped: list[str] = field(default_factory=list)


def resolve_cleanup_scope(scope: str | None = None) -> str:
    resolved = (scope or get_settings().demo_cleanup_scope or CLEANUP_SCOPE_DEMO).strip().lower()
    if resolved not in (CLEANUP_SCOPE_DEMO, CLEANUP_SCOPE_TENANT):
        raise ValueError(f"Unsupported demo cleanup scope: {scope}")
    return resolved


async def _delete_children(
    session: AsyncSession,
    *,
    tenant_id: str,
    stage: str,
    model,
    client_ids: list[str],
    report: CleanupReport,
) -> None:
    if not client_ids:
        report.deleted[stage] = 0
        return
    try:
        result = await session.execute(
            delete(model)
            .where(model.client_id.in_(client_ids))
            .execution_options(synchronize_session=False)
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        # Orphaned children are recoverable clutter; the parent delete cascades them.
        logger.warning("demo_cleanup_child_failed tenant_id=%s stage=%s", tenant_id, stage, exc_info=exc)
        report.skipped.append(stage)
        return
    report.deleted[stage] = int(result.rowcount or 0)
    logger.info("demo_cleanup_step tenant_id=%s stage=%s deleted=%s", tenant_id, stage, report.deleted[stage])


async def _delete_parents(
    session: AsyncSession,
    *,
    tenant_id: str,
    stage: str,
    model,
    scope: str,
    report: CleanupReport,
) -> None:
    stmt = delete(model).where(tenant_predicate(model, tenant_id))
    if scope == CLEANUP_SCOPE_DEMO:
        stmt = stmt.where(model.source == SOURCE_DEMO)
    try:
        result = await session.execute(stmt.execution_options(synchronize_session=False))
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("demo_cleanup_parent_failed tenant_id=%s stage=%s", tenant_id, stage, exc_info=exc)
        raise CleanupFailure(stage=stage, message=f"Failed to remove previous demo {stage}") from exc
    report.deleted[stage] = int(result.rowcount or 0)
    logger.info("demo_cleanup_step tenant_id=%s stage=%s deleted=%s", tenant_id, stage, report.deleted[stage])


async def cleanup_demo_data(
    session: AsyncSession,
    tenant_id: str,
    *,
    scope: str | None = None,
) -> CleanupReport:
    """Delete the tenant's previously provisioned data, children before parents.

    Insight, assessment and email-tracking deletions are best-effort. Client and staff
    deletions raise CleanupFailure so no new dataset is composed over stale parents.
    """
    resolved_scope = resolve_cleanup_scope(scope)
    report = CleanupReport(scope=resolved_scope)
    try:
        client_ids = await list_client_ids(
            session,
            tenant_id,
            source=SOURCE_DEMO if resolved_scope == CLEANUP_SCOPE_DEMO else None,
        )
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("demo_cleanup_lookup_failed tenant_id=%s", tenant_id, exc_info=exc)
        raise CleanupFailure(stage=STAGE_CLIENTS, message="Failed to look up previous demo clients") from exc

    for stage, model in (
        (STAGE_INSIGHTS, DiscInsight),
        (STAGE_ASSESSMENTS, Assessment),
        (STAGE_EMAIL_TRACKING, EmailTrackingEvent),
    ):
        await _delete_children(
            session,
            tenant_id=tenant_id,
            stage=stage,
            model=model,
            client_ids=client_ids,
            report=report,
        )

    await _delete_parents(
        session, tenant_id=tenant_id, stage=STAGE_CLIENTS, model=Client, scope=resolved_scope, report=report
    )
    await _delete_parents(
        session, tenant_id=tenant_id, stage=STAGE_STAFF, model=StaffMember, scope=resolved_scope, report=report
    )
    return report
