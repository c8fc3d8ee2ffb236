from __future__ import annotations

import logging
import time

import httpx

from discdesk.core.config import get_settings
from discdesk.core.errors import EnrichmentError, ProviderConfigError
from discdesk.providers.enrichment.base import EnrichmentRequest
from discdesk.services.resilience import CircuitBreaker, RetryPolicy, retry_async
from discdesk.services.telemetry import record_external_call


logger = logging.getLogger(__name__)

INTEGRATION_NAME = "enrichment.insights"


class EnrichmentStatusError(EnrichmentError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        # Exposed for retry classification of 5xx responses.
        self.status_code = status_code


def _retryable(exc: Exception) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, TimeoutError)):
        return True
    status = getattr(exc, "status_code", None)
    return isinstance(status, int) and status >= 500


class HttpEnrichmentProvider:
    def __init__(
        self,
        *,
        url: str | None = None,
        api_key: str | None = None,
        breaker: CircuitBreaker | None = None,
        policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._url = url or settings.enrichment_url
        self._api_key = api_key if api_key is not None else settings.enrichment_api_key
        # One breaker per provider so a failing fan-out trips it for the remaining calls.
        self._breaker = breaker or CircuitBreaker(INTEGRATION_NAME)
        self._policy = policy or RetryPolicy(
            timeout_ms=settings.ext_call_timeout_ms,
            max_attempts=settings.ext_retry_max_attempts,
            backoff_ms=settings.ext_retry_backoff_ms,
        )
        self._transport = transport

    def _validate_config(self) -> str:
        if not self._url:
            raise ProviderConfigError("Enrichment config missing: set ENRICHMENT_URL in .env.")
        return self._url

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def generate(self, request: EnrichmentRequest) -> str:
        url = self._validate_config()
        await self._breaker.before_call()
        timeout = self._policy.timeout_ms / 1000.0
        start = time.monotonic()

        async def _call() -> str:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(url, json=request.to_payload(), headers=self._headers())
            if response.status_code >= 400:
                raise EnrichmentStatusError(
                    response.status_code,
                    f"Enrichment service responded with status {response.status_code}",
                )
            try:
                body = response.json()
            except ValueError as exc:
                raise EnrichmentError("Enrichment service returned invalid JSON") from exc
            insights = body.get("insights") if isinstance(body, dict) else None
            if not isinstance(insights, str) or not insights.strip():
                raise EnrichmentError("Enrichment service returned no insights")
            return insights

        try:
            insights = await retry_async(_call, policy=self._policy, retryable=_retryable)
        except Exception:
            record_external_call(
                integration=INTEGRATION_NAME,
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            await self._breaker.record_failure()
            raise
        await self._breaker.record_success()
        record_external_call(
            integration=INTEGRATION_NAME,
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=True,
        )
        return insights
