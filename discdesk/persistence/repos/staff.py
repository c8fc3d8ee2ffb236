from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.domain.models import StaffMember
from discdesk.persistence.guards import tenant_predicate


async def list_staff_by_tenant(session: AsyncSession, tenant_id: str) -> list[StaffMember]:
    result = await session.execute(
        select(StaffMember)
        .where(tenant_predicate(StaffMember, tenant_id))
        .order_by(StaffMember.created_at, StaffMember.id)
    )
    return list(result.scalars().all())


async def count_staff(session: AsyncSession, tenant_id: str, *, source: str | None = None) -> int:
    stmt = select(func.count()).select_from(StaffMember).where(tenant_predicate(StaffMember, tenant_id))
    if source is not None:
        stmt = stmt.where(StaffMember.source == source)
    return int((await session.execute(stmt)).scalar_one())
