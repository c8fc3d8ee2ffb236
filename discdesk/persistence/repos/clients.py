from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.domain.models import Assessment, Client
from discdesk.persistence.guards import tenant_predicate


async def list_client_ids(session: AsyncSession, tenant_id: str, *, source: str | None = None) -> list[str]:
    # Restrict to a source tag when cleanup must leave user-entered rows alone.
    stmt = select(Client.id).where(tenant_predicate(Client, tenant_id))
    if source is not None:
        stmt = stmt.where(Client.source == source)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_clients_by_tenant(session: AsyncSession, tenant_id: str) -> list[Client]:
    # Stable ordering avoids non-deterministic API responses for the same tenant.
    result = await session.execute(
        select(Client)
        .where(tenant_predicate(Client, tenant_id))
        .order_by(Client.created_at, Client.id)
    )
    return list(result.scalars().all())


async def count_clients(session: AsyncSession, tenant_id: str, *, source: str | None = None) -> int:
    stmt = select(func.count()).select_from(Client).where(tenant_predicate(Client, tenant_id))
    if source is not None:
        stmt = stmt.where(Client.source == source)
    return int((await session.execute(stmt)).scalar_one())


async def list_assessments_for_tenant(session: AsyncSession, tenant_id: str) -> list[Assessment]:
    result = await session.execute(
        select(Assessment)
        .join(Client, Assessment.client_id == Client.id)
        .where(tenant_predicate(Client, tenant_id))
    )
    return list(result.scalars().all())
