from __future__ import annotations

from datetime import datetime, timezone
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.domain.models import DemoSeedLog
from discdesk.persistence.guards import require_tenant_id


logger = logging.getLogger(__name__)

OUTCOME_SUCCEEDED = "succeeded"
OUTCOME_FAILED = "failed"


async def append_seed_log(
    session: AsyncSession,
    tenant_id: str,
    *,
    outcome: str,
    counts: dict[str, int] | None = None,
    error_code: str | None = None,
    error_message: str | None = None,
    request_id: str | None = None,
    now: datetime | None = None,
) -> bool:
    """Append a provisioning attempt to the tenant's log.

    Returns False when the write fails; the failure is logged and never raised, so a
    provisioning result is not lost because its audit trail could not be written.
    """
    require_tenant_id(tenant_id)
    entry = DemoSeedLog(
        tenant_id=tenant_id,
        created_at=now or datetime.now(timezone.utc),
        outcome=outcome,
        counts_json=dict(counts or {}),
        error_code=error_code,
        error_message=error_message,
        request_id=request_id,
    )
    try:
        session.add(entry)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning(
            "demo_seed_log_write_failed tenant_id=%s outcome=%s request_id=%s",
            tenant_id,
            outcome,
            request_id,
            exc_info=exc,
        )
        return False
    return True
