from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncGenerator
import asyncio
import time

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from discdesk.core.config import get_settings
from discdesk.domain.models import ApiKey, User
from discdesk.persistence.db import get_session
from discdesk.services.audit import get_request_context, record_event
from discdesk.services.auth.api_keys import hash_api_key, normalize_role, role_allows
from discdesk.services.demo.cooldown import as_utc


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; the context manager closes it on success or error.
    async with get_session() as session:
        yield session


class Principal(BaseModel):
    # Authenticated identity used for tenant scoping and RBAC.
    subject_id: str
    tenant_id: str
    role: str
    api_key_id: str
    auth_method: str = "api_key"


_auth_cache: dict[str, tuple[float, Principal]] = {}
_auth_cache_lock = asyncio.Lock()


def reset_auth_cache() -> None:
    _auth_cache.clear()


def _auth_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "AUTH_FORBIDDEN", "message": message},
    )


def _extract_error_code(exc: HTTPException) -> str | None:
    detail = exc.detail
    if isinstance(detail, dict):
        return detail.get("code")
    return None


def _request_metadata(request: Request) -> dict[str, str]:
    # Path and method only; headers may carry credentials.
    return {"path": request.url.path, "method": request.method}


async def _audit_auth(
    db: AsyncSession,
    request: Request,
    *,
    outcome: str,
    tenant_id: str | None = None,
    actor_type: str = "anonymous",
    actor_id: str | None = None,
    actor_role: str | None = None,
    event_type: str | None = None,
    error: HTTPException | None = None,
    extra: dict[str, object] | None = None,
) -> None:
    request_ctx = get_request_context(request)
    await record_event(
        session=db,
        tenant_id=tenant_id,
        actor_type=actor_type,
        actor_id=actor_id,
        actor_role=actor_role,
        event_type=event_type or f"auth.access.{outcome}",
        outcome=outcome,
        resource_type="auth",
        request_id=request_ctx["request_id"],
        ip_address=request_ctx["ip_address"],
        user_agent=request_ctx["user_agent"],
        metadata={**_request_metadata(request), **(extra or {})},
        error_code=_extract_error_code(error) if error is not None else None,
        commit=True,
        best_effort=True,
    )


async def _get_cached_principal(key_hash: str, ttl_s: int) -> Principal | None:
    # Cache principals briefly to reduce auth DB load between requests.
    if ttl_s <= 0:
        return None
    now = time.time()
    async with _auth_cache_lock:
        entry = _auth_cache.get(key_hash)
        if not entry:
            return None
        expires_at, principal = entry
        if expires_at <= now:
            _auth_cache.pop(key_hash, None)
            return None
        return principal


async def _set_cached_principal(key_hash: str, principal: Principal, ttl_s: int) -> None:
    if ttl_s <= 0:
        return
    async with _auth_cache_lock:
        _auth_cache[key_hash] = (time.time() + ttl_s, principal)


def _parse_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _auth_error("Missing or invalid bearer token")
    return parts[1]


def _principal_from_dev_headers(request: Request) -> Principal:
    # Tenant headers are honored only when AUTH_DEV_BYPASS is set.
    tenant_id = request.headers.get("X-Tenant-Id")
    if not tenant_id:
        raise _auth_error("X-Tenant-Id header is required in dev bypass mode")
    role_header = request.headers.get("X-Role", "admin")
    try:
        role = normalize_role(role_header)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "AUTH_INVALID_ROLE", "message": str(exc)},
        ) from exc
    return Principal(
        subject_id=f"dev-{tenant_id}",
        tenant_id=tenant_id,
        role=role,
        api_key_id="dev-bypass",
        auth_method="dev_bypass",
    )


async def _dev_bypass_principal(request: Request, db: AsyncSession) -> Principal:
    principal = _principal_from_dev_headers(request)
    await _audit_auth(
        db,
        request,
        outcome="success",
        tenant_id=principal.tenant_id,
        actor_type="system",
        actor_id=principal.subject_id,
        actor_role=principal.role,
        extra={"auth_mode": "dev_bypass"},
    )
    return principal


async def _touch_last_used(db: AsyncSession, api_key_id: str) -> None:
    try:
        await db.execute(update(ApiKey).where(ApiKey.id == api_key_id).values(last_used_at=func.now()))
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()


async def get_current_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Resolve the bearer API key to a tenant principal.

    Every outcome is audited best-effort; audit failures never block the request.
    """
    settings = get_settings()
    header_value = request.headers.get(settings.auth_api_key_header)
    try:
        bearer_token = _parse_bearer_token(header_value)
    except HTTPException as exc:
        await _audit_auth(db, request, outcome="failure", error=exc)
        raise

    if not settings.auth_enabled or not bearer_token:
        if settings.auth_dev_bypass:
            return await _dev_bypass_principal(request, db)
        message = (
            "Missing API key"
            if settings.auth_enabled
            else "Authentication disabled; set AUTH_DEV_BYPASS=true for dev access"
        )
        error = _auth_error(message)
        await _audit_auth(db, request, outcome="failure", error=error)
        raise error

    key_hash = hash_api_key(bearer_token)
    cached = await _get_cached_principal(key_hash, settings.auth_cache_ttl_s)
    if cached:
        await _audit_auth(
            db,
            request,
            outcome="success",
            tenant_id=cached.tenant_id,
            actor_type="api_key",
            actor_id=cached.api_key_id,
            actor_role=cached.role,
            extra={"auth_cache": True},
        )
        return cached

    try:
        result = await db.execute(
            select(ApiKey, User)
            .join(User, ApiKey.user_id == User.id)
            .where(ApiKey.key_hash == key_hash)
        )
    except SQLAlchemyError as exc:
        await db.rollback()
        error = HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "AUTH_UNAVAILABLE", "message": "Authentication unavailable"},
        )
        await _audit_auth(db, request, outcome="failure", actor_type="system", error=error)
        raise error from exc

    row = result.first()
    if row is None:
        error = _auth_error("Invalid API key")
        await _audit_auth(db, request, outcome="failure", error=error)
        raise error
    api_key, user = row

    error = None
    event_type = None
    if api_key.revoked_at is not None or not user.is_active:
        error = _auth_error("API key is revoked or inactive")
    elif api_key.expires_at is not None and as_utc(api_key.expires_at) <= datetime.now(timezone.utc):
        error = _auth_error("API key expired")
        event_type = "auth.api_key.expired"
    elif api_key.tenant_id != user.tenant_id:
        error = _forbidden_error("Tenant mismatch for API key")
    if error is not None:
        await _audit_auth(
            db,
            request,
            outcome="failure",
            tenant_id=api_key.tenant_id,
            actor_type="api_key",
            actor_id=api_key.id,
            actor_role=user.role,
            event_type=event_type,
            error=error,
            extra={"user_id": user.id},
        )
        raise error

    try:
        role = normalize_role(user.role)
    except ValueError as exc:
        error = _forbidden_error(str(exc))
        await _audit_auth(
            db,
            request,
            outcome="failure",
            tenant_id=user.tenant_id,
            actor_type="api_key",
            actor_id=api_key.id,
            actor_role=user.role,
            error=error,
            extra={"user_id": user.id},
        )
        raise error from exc

    principal = Principal(
        subject_id=user.id,
        tenant_id=user.tenant_id,
        role=role,
        api_key_id=api_key.id,
    )
    await _set_cached_principal(key_hash, principal, settings.auth_cache_ttl_s)
    await _touch_last_used(db, api_key.id)
    await _audit_auth(
        db,
        request,
        outcome="success",
        tenant_id=principal.tenant_id,
        actor_type="api_key",
        actor_id=principal.api_key_id,
        actor_role=principal.role,
        extra={"user_id": principal.subject_id},
    )
    return principal


def require_role(minimum_role: str):
    # Dependency factory to enforce RBAC at the route level.
    async def _dependency(
        request: Request,
        principal: Principal = Depends(get_current_principal),
        db: AsyncSession = Depends(get_db),
    ) -> Principal:
        if not role_allows(role=principal.role, minimum_role=minimum_role):
            error = _forbidden_error("Insufficient role for this operation")
            await _audit_auth(
                db,
                request,
                outcome="failure",
                tenant_id=principal.tenant_id,
                actor_type="api_key",
                actor_id=principal.api_key_id,
                actor_role=principal.role,
                event_type="rbac.forbidden",
                error=error,
                extra={"required_role": minimum_role},
            )
            raise error
        return principal

    return _dependency
