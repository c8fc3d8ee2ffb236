from __future__ import annotations

import pytest

from discdesk.domain.models import Client
from discdesk.persistence.guards import TenantPredicateError, require_tenant_id, tenant_predicate


@pytest.mark.parametrize("tenant_id", [None, "", "   "])
def test_missing_tenant_is_rejected(tenant_id) -> None:
    with pytest.raises(TenantPredicateError):
        require_tenant_id(tenant_id)


def test_predicate_targets_the_tenant_column() -> None:
    predicate = tenant_predicate(Client, "tenant-a")
    assert "clients.tenant_id" in str(predicate)
