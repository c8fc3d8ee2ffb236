from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class EnrichmentRequest:
    client_id: str
    disc_type: str
    scores: dict[str, int]
    client_name: str

    def to_payload(self) -> dict[str, Any]:
        # Match the enrichment service's camelCase request contract.
        return {
            "clientId": self.client_id,
            "discType": self.disc_type,
            "scores": dict(self.scores),
            "clientName": self.client_name,
        }


class EnrichmentProvider(Protocol):
    async def generate(self, request: EnrichmentRequest) -> str:
        ...
