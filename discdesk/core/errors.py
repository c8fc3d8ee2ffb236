from __future__ import annotations


class DiscDeskError(Exception):
    """Base error for DiscDesk."""


class ProviderConfigError(DiscDeskError):
    """Missing or invalid provider configuration."""


class IntegrationUnavailableError(DiscDeskError):
    """External integration is short-circuited by its circuit breaker."""


class EnrichmentError(DiscDeskError):
    """Enrichment provider request failure."""
