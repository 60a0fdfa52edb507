from __future__ import annotations

import base64
import binascii
import hmac
import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from pedidos_express.core.config import INTERNAL_API_TOKEN
from pedidos_express.models.tenant import Tenant
from pedidos_express.models.user import User
from pedidos_express.services.passwords import verify_password
from pedidos_express.services.sessions import SESSION_COOKIE, decode_session_token


logger = logging.getLogger(__name__)

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

API_KEY_HEADER = "x-api-key"
TENANT_ID_HEADER = "x-tenant-id"
INTERNAL_TOKEN_HEADER = "x-internal-token"


@dataclass
class TenantResolution:
    tenant_id: str | None = None
    source: str = "none"
    user: User | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.tenant_id is not None or self.user is not None

    @property
    def is_master(self) -> bool:
        return self.user is not None and getattr(self.user, "tenant_id", None) is None


def is_uuid(value: str | None) -> bool:
    return bool(value) and bool(_UUID_RE.match(value.strip()))


def parse_basic_credentials(authorization: str | None) -> tuple[str, str] | None:
    if not authorization or not authorization.startswith("Basic "):
        return None
    encoded = authorization.split(" ", 1)[1].strip()
    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, sep, password = decoded.partition(":")
    if not sep or not username or not password:
        return None
    return username, password


def extract_api_key(request: Request) -> str | None:
    api_key = (request.headers.get(API_KEY_HEADER) or request.query_params.get("api_key") or "").strip()
    return api_key or None


def has_internal_token(request: Request) -> bool:
    configured = (INTERNAL_API_TOKEN or "").strip()
    incoming = (request.headers.get(INTERNAL_TOKEN_HEADER) or "").strip()
    if not configured or not incoming:
        return False
    return hmac.compare_digest(configured, incoming)


class TenantResolver:
    """Resolve o tenant da requisição: sessão, API key, Basic Auth e X-Tenant-Id, nessa ordem."""

    @staticmethod
    def tenant_by_api_key(db: Session, api_key: str) -> Tenant | None:
        tenant = db.query(Tenant).filter(Tenant.api_key == api_key).first()
        if not tenant or not tenant.is_active:
            return None
        return tenant

    @staticmethod
    def tenant_by_slug(db: Session, slug: str) -> Tenant | None:
        normalized = (slug or "").strip().lower()
        if not normalized:
            return None
        return db.query(Tenant).filter(Tenant.slug == normalized, Tenant.is_active.is_(True)).first()

    @staticmethod
    def verify_credentials(db: Session, username: str, password: str) -> User | None:
        # username é único por tenant, não globalmente
        candidates = (
            db.query(User)
            .filter(User.username == username, User.is_active.is_(True))
            .all()
        )
        for candidate in candidates:
            if verify_password(password, candidate.password_hash):
                return candidate
        return None

    @staticmethod
    def _from_session(db: Session, request: Request) -> Optional[TenantResolution]:
        token = request.cookies.get(SESSION_COOKIE)
        if not token:
            return None
        payload = decode_session_token(token)
        if not payload:
            return None
        user = (
            db.query(User)
            .filter(User.id == str(payload["user_id"]), User.is_active.is_(True))
            .first()
        )
        if not user:
            return None
        return TenantResolution(tenant_id=user.tenant_id, source="session", user=user)

    @classmethod
    def _from_api_key(cls, db: Session, request: Request) -> Optional[TenantResolution]:
        api_key = extract_api_key(request)
        if not api_key:
            return None
        tenant = cls.tenant_by_api_key(db, api_key)
        if not tenant:
            return None
        return TenantResolution(tenant_id=tenant.id, source="api_key")

    @classmethod
    def _from_basic_auth(cls, db: Session, request: Request) -> Optional[TenantResolution]:
        credentials = parse_basic_credentials(request.headers.get("authorization"))
        if not credentials:
            return None
        user = cls.verify_credentials(db, *credentials)
        if not user:
            return None
        return TenantResolution(tenant_id=user.tenant_id, source="basic", user=user)

    @classmethod
    def _from_tenant_header(cls, db: Session, request: Request) -> Optional[TenantResolution]:
        raw = (request.headers.get(TENANT_ID_HEADER) or "").strip()
        if not raw:
            return None

        # Valor secreto: uma API key no header dispensa o token interno.
        tenant = cls.tenant_by_api_key(db, raw)
        if tenant:
            return TenantResolution(tenant_id=tenant.id, source="header")

        if not has_internal_token(request):
            logger.warning("X-Tenant-Id ignored: missing internal token header=%s", raw[:8])
            return None

        if is_uuid(raw):
            return TenantResolution(tenant_id=raw.lower(), source="header")

        tenant = cls.tenant_by_slug(db, raw)
        if tenant:
            return TenantResolution(tenant_id=tenant.id, source="header")
        return None

    @staticmethod
    def first_active_tenant_id(db: Session) -> str | None:
        tenant = (
            db.query(Tenant)
            .filter(Tenant.is_active.is_(True))
            .order_by(Tenant.created_at.asc())
            .first()
        )
        return tenant.id if tenant else None

    @classmethod
    def resolve(
        cls,
        db: Session,
        request: Request,
        *,
        allow_master_fallback: bool = False,
    ) -> TenantResolution:
        steps: tuple[Callable[[Session, Request], Optional[TenantResolution]], ...] = (
            cls._from_session,
            cls._from_api_key,
            cls._from_basic_auth,
            cls._from_tenant_header,
        )
        resolution = TenantResolution()
        for step in steps:
            try:
                result = step(db, request)
            except Exception:
                db.rollback()
                logger.warning("Tenant resolution step failed step=%s", step.__name__, exc_info=True)
                continue
            if result is None:
                continue
            if result.tenant_id:
                if result.user is None:
                    result.user = resolution.user
                return result
            # master autenticado: continua procurando um tenant explícito nos próximos passos
            if resolution.user is None:
                resolution = result

        if allow_master_fallback and resolution.is_master:
            fallback_tenant_id = cls.first_active_tenant_id(db)
            if fallback_tenant_id:
                logger.info("Master user without tenant: falling back to tenant=%s", fallback_tenant_id)
                return TenantResolution(tenant_id=fallback_tenant_id, source="master_fallback", user=resolution.user)

        return resolution
