from __future__ import annotations

import os

# Settings and the engine are built at import time; configure them before importing discdesk.
os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL", "sqlite+aiosqlite:///./.pytest-discdesk.db"
)
os.environ.setdefault("ENRICHMENT_PROVIDER", "fake")
os.environ.setdefault("AUTH_ENABLED", "true")
os.environ.setdefault("AUTH_DEV_BYPASS", "false")

import pytest

from discdesk.apps.api.deps import reset_auth_cache
from discdesk.core.config import get_settings
from discdesk.domain.models import Base
from discdesk.persistence.db import engine
from discdesk.services.resilience import reset_resilience_state
from discdesk.services.telemetry import reset_telemetry


@pytest.fixture(autouse=True)
async def fresh_schema() -> None:
    # Rebuild the schema per test so provisioning runs never see another test's rows.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_process_state() -> None:
    reset_auth_cache()
    reset_telemetry()
    reset_resilience_state()
    yield
    get_settings.cache_clear()
