# pedidos_express/deps.py
from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from pedidos_express.core.database import get_db
from pedidos_express.core.errors import Unauthenticated
from pedidos_express.models.tenant import Tenant
from pedidos_express.models.user import User
from pedidos_express.services.tenant_resolver import (
    TenantResolution,
    TenantResolver,
    extract_api_key,
)

logger = logging.getLogger(__name__)

API_KEY_MISSING = "API_KEY não fornecida no header. Use o header X-API-Key."
API_KEY_INVALID = "API_KEY inválida ou tenant inativo"


def _remember_auth(request: Request, resolution: TenantResolution) -> None:
    # lido pelo ObservabilityMiddleware ao final da requisição
    request.state.tenant_id = resolution.tenant_id
    request.state.auth_source = resolution.source
    if resolution.user is not None:
        request.state.user = resolution.user


def _unauthorized_api_key(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"success": False, "error": "Unauthorized", "message": message},
    )


def get_tenant_resolution(
    request: Request,
    db: Session = Depends(get_db),
) -> TenantResolution:
    resolution = TenantResolver.resolve(db, request)
    _remember_auth(request, resolution)
    return resolution


def require_tenant_id(resolution: TenantResolution = Depends(get_tenant_resolution)) -> str:
    if not resolution.tenant_id:
        raise Unauthenticated().to_http()
    return resolution.tenant_id


def require_stream_tenant_id(request: Request, db: Session = Depends(get_db)) -> str:
    """Resolve o tenant de um stream SSE e devolve a conexão ao pool antes do streaming."""
    try:
        resolution = TenantResolver.resolve(db, request)
    finally:
        db.close()
    _remember_auth(request, resolution)
    if not resolution.tenant_id:
        raise Unauthenticated().to_http()
    return resolution.tenant_id


def require_api_key_tenant(
    request: Request,
    db: Session = Depends(get_db),
) -> Tenant:
    """Valida X-API-Key e retorna o tenant ativo dono da chave."""
    api_key = extract_api_key(request)
    if not api_key:
        logger.warning("API key ausente endpoint=%s %s", request.method, request.url.path)
        raise _unauthorized_api_key(API_KEY_MISSING)

    tenant = TenantResolver.tenant_by_api_key(db, api_key)
    if not tenant:
        logger.warning("API key inválida endpoint=%s %s", request.method, request.url.path)
        raise _unauthorized_api_key(API_KEY_INVALID)

    _remember_auth(request, TenantResolution(tenant_id=tenant.id, source="api_key"))
    return tenant


def get_auth_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """Usuário autenticado por sessão ou Basic Auth. Master (sem tenant) também é aceito."""
    resolution = TenantResolver.resolve(db, request)
    if resolution.user is None:
        raise Unauthenticated().to_http()
    _remember_auth(request, resolution)
    return resolution.user
