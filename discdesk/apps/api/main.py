from __future__ import annotations

import json
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from discdesk.apps.api.errors import (
    http_exception_handler,
    tenant_predicate_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from discdesk.apps.api.response import API_VERSION, is_versioned_request
from discdesk.apps.api.routes.demo import router as demo_router
from discdesk.apps.api.routes.health import router as health_router
from discdesk.apps.api.routes.ops import router as ops_router
from discdesk.core.config import get_settings
from discdesk.core.logging import configure_logging
from discdesk.persistence.guards import TenantPredicateError
from discdesk.services.telemetry import record_request


_ENVELOPE_EXEMPT_PREFIXES = (
    "/v1/openapi.json",
    "/v1/docs",
)


def _is_enveloped(payload: object) -> bool:
    return (
        isinstance(payload, dict)
        and "data" in payload
        and isinstance(payload.get("meta"), dict)
        and payload["meta"].get("api_version") == API_VERSION
    )


def create_app() -> FastAPI:
    configure_logging()
    title = f"{get_settings().app_name} API"
    app = FastAPI(title=title)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        record_request(
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=(time.monotonic() - start) * 1000.0,
        )
        # Wrap bare versioned JSON payloads in the success envelope.
        raw_body = getattr(response, "body", None)
        if (
            raw_body
            and is_versioned_request(request)
            and not request.url.path.startswith(_ENVELOPE_EXEMPT_PREFIXES)
            and response.status_code < 400
            and response.media_type == "application/json"
        ):
            try:
                payload = json.loads(raw_body)
            except (TypeError, ValueError):
                payload = None
            if payload is not None and not _is_enveloped(payload):
                wrapped_response = JSONResponse(
                    content={"data": payload, "meta": {"request_id": request_id, "api_version": API_VERSION}},
                    status_code=response.status_code,
                )
                for key, value in response.headers.items():
                    if key.lower() in {"content-length", "content-type"}:
                        continue
                    wrapped_response.headers[key] = value
                response = wrapped_response
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(TenantPredicateError, tenant_predicate_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(demo_router, prefix=f"/{API_VERSION}")
    app.include_router(ops_router, prefix=f"/{API_VERSION}")

    @app.get("/v1/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/v1/docs", include_in_schema=False)
    async def v1_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url="/v1/openapi.json", title=f"{title} v1")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url="/v1/docs")

    def custom_openapi() -> dict:
        # Inject bearer auth into every operation except the public health check.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title=title, version=API_VERSION, routes=app.routes)
        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {})["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        public_paths = {"/v1/health"}
        for path, operations in schema.get("paths", {}).items():
            if path in public_paths:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
