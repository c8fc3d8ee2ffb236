from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import math

from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.core.config import get_settings
from discdesk.persistence.repos.demo_seed_log import get_latest_entry


logger = logging.getLogger(__name__)


class RateLimitedError(RuntimeError):
    # Raised before any side effect when the tenant's cooldown window is still open.
    def __init__(self, *, retry_after_hours: int, retry_after_seconds: int, cooldown_hours: int) -> None:
        unit = "hour" if retry_after_hours == 1 else "hours"
        super().__init__(
            f"Demo data can only be seeded once every {cooldown_hours} hours. "
            f"Please try again in {retry_after_hours} {unit}."
        )
        self.retry_after_hours = retry_after_hours
        self.retry_after_seconds = retry_after_seconds


@dataclass(frozen=True)
class CooldownStatus:
    allowed: bool
    last_run_at: datetime | None
    last_outcome: str | None
    retry_after_seconds: int
    retry_after_hours: int


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def evaluate_cooldown(
    last_run_at: datetime | None,
    *,
    now: datetime,
    cooldown: timedelta,
) -> tuple[bool, int, int]:
    """Return (allowed, retry_after_seconds, retry_after_hours) for the last run time."""
    if last_run_at is None:
        return True, 0, 0
    remaining = cooldown - (as_utc(now) - as_utc(last_run_at))
    if remaining <= timedelta(0):
        return True, 0, 0
    seconds = math.ceil(remaining.total_seconds())
    # Round partial hours up so callers never retry too early.
    hours = max(1, math.ceil(remaining.total_seconds() / 3600))
    return False, seconds, hours


async def get_cooldown_status(
    session: AsyncSession,
    tenant_id: str,
    *,
    now: datetime | None = None,
) -> CooldownStatus:
    settings = get_settings()
    resolved_now = now or datetime.now(timezone.utc)
    latest = await get_latest_entry(session, tenant_id)
    last_run_at = as_utc(latest.created_at) if latest is not None else None
    allowed, seconds, hours = evaluate_cooldown(
        last_run_at,
        now=resolved_now,
        cooldown=timedelta(hours=settings.demo_cooldown_hours),
    )
    return CooldownStatus(
        allowed=allowed,
        last_run_at=last_run_at,
        last_outcome=latest.outcome if latest is not None else None,
        retry_after_seconds=seconds,
        retry_after_hours=hours,
    )


async def check_cooldown(
    session: AsyncSession,
    tenant_id: str,
    *,
    now: datetime | None = None,
) -> None:
    # Only the newest log entry decides eligibility, whatever its outcome.
    status = await get_cooldown_status(session, tenant_id, now=now)
    if status.allowed:
        return
    logger.info(
        "demo_seed_rate_limited tenant_id=%s retry_after_hours=%s",
        tenant_id,
        status.retry_after_hours,
    )
    raise RateLimitedError(
        retry_after_hours=status.retry_after_hours,
        retry_after_seconds=status.retry_after_seconds,
        cooldown_hours=get_settings().demo_cooldown_hours,
    )
