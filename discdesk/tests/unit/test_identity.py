from __future__ import annotations

import pytest

from discdesk.domain.archetypes import CLIENT_ARCHETYPES, STAFF_ARCHETYPES
from discdesk.persistence.guards import TenantPredicateError
from discdesk.services.demo.identity import (
    IDENTITY_KIND_CLIENT,
    IDENTITY_KIND_STAFF,
    generate_identity,
    tenant_token,
)


def _catalog_identities(tenant_id: str) -> set[str]:
    identities = {
        generate_identity(archetype.base_email, tenant_id, index, kind=IDENTITY_KIND_CLIENT)
        for index, archetype in enumerate(CLIENT_ARCHETYPES)
    }
    identities |= {
        generate_identity(archetype.base_email, tenant_id, index, kind=IDENTITY_KIND_STAFF)
        for index, archetype in enumerate(STAFF_ARCHETYPES)
    }
    return identities


def test_identity_is_deterministic_for_tenant_and_index() -> None:
    first = generate_identity("marcus.chen@techcorp.com", "tenant-a", 0)
    second = generate_identity("marcus.chen@techcorp.com", "tenant-a", 0)
    assert first == second
    assert first.startswith("marcus.chen+c0@")
    assert first.endswith(".demo.invalid")


def test_identity_uses_configured_domain(monkeypatch) -> None:
    from discdesk.core.config import get_settings

    monkeypatch.setenv("DEMO_IDENTITY_DOMAIN", "sandbox.example")
    get_settings.cache_clear()
    identity = generate_identity("sophia@brightideas.co", "tenant-a", 5)
    assert identity.endswith(".sandbox.example")


def test_catalog_identities_are_unique_within_a_tenant() -> None:
    identities = _catalog_identities("tenant-a")
    assert len(identities) == len(CLIENT_ARCHETYPES) + len(STAFF_ARCHETYPES)


@pytest.mark.parametrize(
    "tenant_a,tenant_b",
    [
        ("tenant-a", "tenant-b"),
        ("acme", "ACME"),
        ("t1", "t1 "),
        ("org/1", "org-1"),
        ("x" * 200, "x" * 199 + "y"),
        ("münchen", "munchen"),
    ],
)
def test_identities_are_disjoint_across_tenants(tenant_a: str, tenant_b: str) -> None:
    assert _catalog_identities(tenant_a).isdisjoint(_catalog_identities(tenant_b))


def test_identities_are_disjoint_for_large_catalogs() -> None:
    size = 500
    tenants = ["alpha", "beta", "gamma", "alpha-2"]
    seen: set[str] = set()
    for tenant_id in tenants:
        batch = {generate_identity("contact@example.com", tenant_id, index) for index in range(size)}
        assert len(batch) == size
        assert seen.isdisjoint(batch)
        seen |= batch


def test_tenant_token_is_a_valid_dns_label() -> None:
    for tenant_id in ("t1", "Tenant With Spaces", "x" * 500, "ünïcødé"):
        token = tenant_token(tenant_id)
        assert 0 < len(token) <= 63
        assert token == token.lower()
        assert token.isalnum()


def test_identity_rejects_missing_tenant() -> None:
    with pytest.raises(TenantPredicateError):
        generate_identity("marcus.chen@techcorp.com", "", 0)


def test_identity_rejects_unknown_kind_and_negative_index() -> None:
    with pytest.raises(ValueError):
        generate_identity("marcus.chen@techcorp.com", "tenant-a", 0, kind="x")
    with pytest.raises(ValueError):
        generate_identity("marcus.chen@techcorp.com", "tenant-a", -1)
