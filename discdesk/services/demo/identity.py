from __future__ import annotations

import base64
import hashlib

from discdesk.core.config import get_settings
from discdesk.persistence.guards import require_tenant_id


IDENTITY_KIND_CLIENT = "c"
IDENTITY_KIND_STAFF = "s"

# DNS labels are limited to 63 octets.
_MAX_LABEL_LENGTH = 63


def tenant_token(tenant_id: str) -> str:
    # Injective encoding of the tenant id into one DNS-safe label; long ids fall back to a digest.
    require_tenant_id(tenant_id)
    raw = tenant_id.encode("utf-8")
    token = base64.b32encode(raw).decode("ascii").rstrip("=").lower()
    if len(token) <= _MAX_LABEL_LENGTH:
        return token
    # Unpadded base32 is never 33 chars long, so digest tokens cannot shadow encoded ones.
    return "h" + hashlib.sha256(raw).hexdigest()[:32]


def generate_identity(
    base_identity: str,
    tenant_id: str,
    index: int,
    *,
    kind: str = IDENTITY_KIND_CLIENT,
    domain: str | None = None,
) -> str:
    """Derive a synthetic contact address unique to (tenant, kind, index).

    The local part of the archetype address stays readable; the tenant is encoded into
    a subdomain of the reserved demo domain so two tenants can never produce the same
    address and no synthetic address can collide with a real one.
    """
    if index < 0:
        raise ValueError("index must be non-negative")
    if kind not in (IDENTITY_KIND_CLIENT, IDENTITY_KIND_STAFF):
        raise ValueError(f"Unsupported identity kind: {kind}")
    local = base_identity.split("@", 1)[0].strip().lower() or "contact"
    resolved_domain = (domain or get_settings().demo_identity_domain).strip(".").lower()
    return f"{local}+{kind}{index}@{tenant_token(tenant_id)}.{resolved_domain}"
