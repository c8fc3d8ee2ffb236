from __future__ import annotations

from dataclasses import dataclass, field
import logging
import random
from typing import Sequence
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.core.config import get_settings
from discdesk.domain.archetypes import (
    CLIENT_ARCHETYPES,
    STAFF_ARCHETYPES,
    ClientArchetype,
    StaffArchetype,
)
from discdesk.domain.models import SOURCE_DEMO, Assessment, Client, StaffMember
from discdesk.persistence.guards import require_tenant_id
from discdesk.services.demo.identity import (
    IDENTITY_KIND_CLIENT,
    IDENTITY_KIND_STAFF,
    generate_identity,
)


logger = logging.getLogger(__name__)

STAGE_CLIENTS = "clients"
STAGE_STAFF = "staff"
STAGE_ASSESSMENTS = "assessments"

# D and I lean towards answer A; S and C towards answer B.
_ALIGNED_ANSWER = {"D": "A", "I": "A", "S": "B", "C": "B"}


class CompositionFailure(RuntimeError):
    """A composition stage failed after earlier stages were already committed.

    Stages are not rolled back across each other; ``committed`` carries the row counts
    already persisted so the next run's cleanup (or an operator) can compensate.
    """

    def __init__(self, *, stage: str, committed: dict[str, int], message: str) -> None:
        super().__init__(message)
        self.stage = stage
        self.committed = dict(committed)


@dataclass(frozen=True)
class ComposedClient:
    id: str
    name: str
    email: str
    disc_type: str
    scores: dict[str, int]


@dataclass
class ComposedDataset:
    clients: list[ComposedClient] = field(default_factory=list)
    staff_emails: list[str] = field(default_factory=list)
    assessments_created: int = 0

    def committed(self) -> dict[str, int]:
        return {
            STAGE_CLIENTS: len(self.clients),
            STAGE_STAFF: len(self.staff_emails),
            STAGE_ASSESSMENTS: self.assessments_created,
        }


def generate_assessment_responses(
    disc_type: str,
    rng: random.Random,
    *,
    question_count: int | None = None,
    alignment: float | None = None,
) -> dict[str, str]:
    # Cosmetic response set: the stored scores always come from the archetype.
    settings = get_settings()
    count = question_count if question_count is not None else settings.demo_question_count
    p_aligned = alignment if alignment is not None else settings.demo_response_alignment
    aligned = _ALIGNED_ANSWER.get(disc_type, "A")
    opposite = "B" if aligned == "A" else "A"
    return {
        f"q{number}": aligned if rng.random() < p_aligned else opposite
        for number in range(1, count + 1)
    }


async def _commit_stage(
    session: AsyncSession,
    *,
    tenant_id: str,
    stage: str,
    rows: list,
    dataset: ComposedDataset,
) -> None:
    try:
        session.add_all(rows)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error(
            "demo_compose_stage_failed tenant_id=%s stage=%s committed=%s",
            tenant_id,
            stage,
            dataset.committed(),
            exc_info=exc,
        )
        raise CompositionFailure(
            stage=stage,
            committed=dataset.committed(),
            message=f"Failed to create demo {stage}",
        ) from exc
    logger.info("demo_compose_stage tenant_id=%s stage=%s rows=%s", tenant_id, stage, len(rows))


async def compose_dataset(
    session: AsyncSession,
    tenant_id: str,
    *,
    rng: random.Random | None = None,
    client_archetypes: Sequence[ClientArchetype] = CLIENT_ARCHETYPES,
    staff_archetypes: Sequence[StaffArchetype] = STAFF_ARCHETYPES,
) -> ComposedDataset:
    """Persist clients, then staff, then one assessment per client; each stage commits on its own."""
    require_tenant_id(tenant_id)
    rng = rng or random.Random()
    dataset = ComposedDataset()

    client_rows: list[Client] = []
    composed_clients: list[ComposedClient] = []
    for index, archetype in enumerate(client_archetypes):
        client_id = uuid4().hex
        email = generate_identity(archetype.base_email, tenant_id, index, kind=IDENTITY_KIND_CLIENT)
        scores = archetype.scores.as_dict()
        client_rows.append(
            Client(
                id=client_id,
                tenant_id=tenant_id,
                name=archetype.name,
                email=email,
                company=archetype.company,
                disc_type=archetype.disc_type,
                disc_scores=scores,
                tags=["demo"],
                source=SOURCE_DEMO,
            )
        )
        composed_clients.append(
            ComposedClient(id=client_id, name=archetype.name, email=email, disc_type=archetype.disc_type, scores=scores)
        )
    await _commit_stage(session, tenant_id=tenant_id, stage=STAGE_CLIENTS, rows=client_rows, dataset=dataset)
    dataset.clients = composed_clients

    staff_rows = [
        StaffMember(
            id=uuid4().hex,
            tenant_id=tenant_id,
            name=archetype.name,
            email=generate_identity(archetype.base_email, tenant_id, index, kind=IDENTITY_KIND_STAFF),
            role=archetype.role,
            disc_type=archetype.disc_type,
            disc_scores=archetype.scores.as_dict(),
            source=SOURCE_DEMO,
        )
        for index, archetype in enumerate(staff_archetypes)
    ]
    await _commit_stage(session, tenant_id=tenant_id, stage=STAGE_STAFF, rows=staff_rows, dataset=dataset)
    dataset.staff_emails = [row.email for row in staff_rows]

    assessment_rows = [
        Assessment(
            id=uuid4().hex,
            client_id=client.id,
            responses=generate_assessment_responses(client.disc_type, rng),
            # Authoritative scores are copied, never derived from the responses.
            scores=dict(client.scores),
            dominant_type=client.disc_type,
        )
        for client in composed_clients
    ]
    await _commit_stage(session, tenant_id=tenant_id, stage=STAGE_ASSESSMENTS, rows=assessment_rows, dataset=dataset)
    dataset.assessments_created = len(assessment_rows)
    return dataset
