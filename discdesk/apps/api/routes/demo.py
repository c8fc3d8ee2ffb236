from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.apps.api.deps import Principal, get_db, require_role
from discdesk.apps.api.openapi import DEFAULT_ERROR_RESPONSES, DEMO_SEED_ERROR_RESPONSES
from discdesk.apps.api.response import SuccessEnvelope, success_response
from discdesk.domain.models import SOURCE_DEMO
from discdesk.persistence.repos.clients import count_clients
from discdesk.persistence.repos.staff import count_staff
from discdesk.providers.enrichment.base import EnrichmentProvider
from discdesk.providers.enrichment.factory import get_enrichment_provider
from discdesk.services.audit import get_request_context
from discdesk.services.demo.cleanup import CleanupFailure
from discdesk.services.demo.composer import CompositionFailure
from discdesk.services.demo.cooldown import RateLimitedError, get_cooldown_status
from discdesk.services.demo.lock import ProvisioningInProgressError
from discdesk.services.demo.provisioner import provision_demo_environment


router = APIRouter(prefix="/demo", tags=["demo"], responses=DEFAULT_ERROR_RESPONSES)


class DemoSeedResponse(BaseModel):
    # Serialized by alias: camelCase fields inside the {data, meta} envelope.
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    clients_created: int = Field(alias="clientsCreated")
    staff_created: int = Field(alias="staffCreated")
    assessments_created: int = Field(alias="assessmentsCreated")
    insights_generated: int = Field(alias="insightsGenerated")


class DemoSeedStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    allowed: bool
    last_run_at: datetime | None = Field(default=None, alias="lastRunAt")
    last_outcome: str | None = Field(default=None, alias="lastOutcome")
    retry_after_hours: int = Field(alias="retryAfterHours")
    demo_clients: int = Field(alias="demoClients")
    demo_staff: int = Field(alias="demoStaff")


@router.post(
    "/seed",
    response_model=SuccessEnvelope[DemoSeedResponse],
    responses=DEMO_SEED_ERROR_RESPONSES,
)
@router.post(
    "/reset",
    response_model=SuccessEnvelope[DemoSeedResponse],
    responses=DEMO_SEED_ERROR_RESPONSES,
)
async def seed_demo_data(
    request: Request,
    principal: Principal = Depends(require_role("editor")),
    db: AsyncSession = Depends(get_db),
    provider: EnrichmentProvider = Depends(get_enrichment_provider),
) -> dict:
    # Tenant comes from the credential only; request bodies are ignored.
    request_ctx = get_request_context(request)
    try:
        summary = await provision_demo_environment(
            db,
            principal.tenant_id,
            provider=provider,
            request_id=request_ctx["request_id"],
            actor_type=principal.auth_method,
            actor_id=principal.api_key_id,
            actor_role=principal.role,
        )
    except RateLimitedError as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "code": "DEMO_SEED_RATE_LIMITED",
                "message": str(exc),
                "retry_after_hours": exc.retry_after_hours,
            },
            headers={"Retry-After": str(exc.retry_after_seconds)},
        ) from exc
    except ProvisioningInProgressError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "DEMO_SEED_IN_PROGRESS", "message": str(exc)},
        ) from exc
    except (CleanupFailure, CompositionFailure) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "DEMO_SEED_FAILED",
                "message": str(exc),
                "stage": exc.stage,
                "committed": getattr(exc, "committed", {}),
            },
        ) from exc

    payload = DemoSeedResponse(
        success=summary.success,
        message=summary.message,
        clients_created=summary.clients_created,
        staff_created=summary.staff_created,
        assessments_created=summary.assessments_created,
        insights_generated=summary.insights_generated,
    )
    return success_response(request=request, data=payload)


@router.get("/seed/status", response_model=SuccessEnvelope[DemoSeedStatusResponse])
async def demo_seed_status(
    request: Request,
    principal: Principal = Depends(require_role("reader")),
    db: AsyncSession = Depends(get_db),
) -> dict:
    cooldown = await get_cooldown_status(db, principal.tenant_id)
    payload = DemoSeedStatusResponse(
        allowed=cooldown.allowed,
        last_run_at=cooldown.last_run_at,
        last_outcome=cooldown.last_outcome,
        retry_after_hours=cooldown.retry_after_hours,
        demo_clients=await count_clients(db, principal.tenant_id, source=SOURCE_DEMO),
        demo_staff=await count_staff(db, principal.tenant_id, source=SOURCE_DEMO),
    )
    return success_response(request=request, data=payload)
