from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.domain.models import DemoSeedLog
from discdesk.persistence.guards import tenant_predicate


async def get_latest_entry(session: AsyncSession, tenant_id: str) -> DemoSeedLog | None:
    # The newest entry alone decides cooldown eligibility.
    result = await session.execute(
        select(DemoSeedLog)
        .where(tenant_predicate(DemoSeedLog, tenant_id))
        .order_by(DemoSeedLog.created_at.desc(), DemoSeedLog.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()

