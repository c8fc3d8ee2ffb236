from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from uuid import uuid4

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.core.config import get_settings
from discdesk.domain.models import DemoSeedLock
from discdesk.persistence.guards import require_tenant_id


logger = logging.getLogger(__name__)


class ProvisioningInProgressError(RuntimeError):
    # Raised when another provisioning run holds the tenant lock.
    def __init__(self, tenant_id: str) -> None:
        super().__init__("Demo data is already being seeded for this account. Please wait for it to finish.")
        self.tenant_id = tenant_id


async def acquire_seed_lock(
    session: AsyncSession,
    tenant_id: str,
    *,
    now: datetime | None = None,
    ttl_s: int | None = None,
) -> str:
    """Take the per-tenant provisioning lock and return its id.

    The tenant id is the primary key, so the insert is a conditional insert: only one
    caller can own the row. A holder that crashed is taken over once its lock expires.
    """
    require_tenant_id(tenant_id)
    resolved_now = now or datetime.now(timezone.utc)
    expires_at = resolved_now + timedelta(seconds=ttl_s if ttl_s is not None else get_settings().demo_lock_ttl_s)
    lock_id = uuid4().hex

    session.add(
        DemoSeedLock(
            tenant_id=tenant_id,
            lock_id=lock_id,
            acquired_at=resolved_now,
            expires_at=expires_at,
        )
    )
    try:
        await session.commit()
        return lock_id
    except IntegrityError:
        await session.rollback()

    # Take over only an expired lock; the WHERE clause keeps this atomic.
    result = await session.execute(
        update(DemoSeedLock)
        .where(
            DemoSeedLock.tenant_id == tenant_id,
            DemoSeedLock.expires_at <= resolved_now,
        )
        .values(lock_id=lock_id, acquired_at=resolved_now, expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    if result.rowcount != 1:
        raise ProvisioningInProgressError(tenant_id)
    logger.warning("demo_seed_lock_taken_over tenant_id=%s lock_id=%s", tenant_id, lock_id)
    return lock_id


async def extend_seed_lock(
    session: AsyncSession,
    tenant_id: str,
    lock_id: str,
    *,
    ttl_s: float,
    now: datetime | None = None,
) -> bool:
    """Push the lock's expiry out to cover the next stage of a long run.

    Returns False when the lock is no longer held by ``lock_id``.
    """
    resolved_now = now or datetime.now(timezone.utc)
    try:
        result = await session.execute(
            update(DemoSeedLock)
            .where(DemoSeedLock.tenant_id == tenant_id, DemoSeedLock.lock_id == lock_id)
            .values(expires_at=resolved_now + timedelta(seconds=ttl_s))
            .execution_options(synchronize_session=False)
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("demo_seed_lock_extend_failed tenant_id=%s lock_id=%s", tenant_id, lock_id, exc_info=exc)
        return False
    if result.rowcount != 1:
        logger.warning("demo_seed_lock_lost tenant_id=%s lock_id=%s", tenant_id, lock_id)
        return False
    return True


async def release_seed_lock(session: AsyncSession, tenant_id: str, lock_id: str) -> None:
    # Best-effort: an unreleased lock expires on its own.
    try:
        await session.execute(
            delete(DemoSeedLock)
            .where(DemoSeedLock.tenant_id == tenant_id, DemoSeedLock.lock_id == lock_id)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.warning("demo_seed_lock_release_failed tenant_id=%s lock_id=%s", tenant_id, lock_id, exc_info=exc)
