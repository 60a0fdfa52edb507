from __future__ import annotations

from contextvars import ContextVar


_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("request_id", default=None)
_TENANT_ID_CTX: ContextVar[str | None] = ContextVar("tenant_id", default=None)
_USER_ID_CTX: ContextVar[str | None] = ContextVar("user_id", default=None)
# session | api_key | basic | header | master_fallback
_AUTH_SOURCE_CTX: ContextVar[str | None] = ContextVar("auth_source", default=None)

_ALL_VARS = (_REQUEST_ID_CTX, _TENANT_ID_CTX, _USER_ID_CTX, _AUTH_SOURCE_CTX)


def set_request_context(
    *,
    request_id: str | None = None,
    tenant_id: str | None = None,
    user_id: str | None = None,
    auth_source: str | None = None,
) -> None:
    for var, value in zip(_ALL_VARS, (request_id, tenant_id, user_id, auth_source)):
        if value is not None:
            var.set(value)


def get_request_id() -> str | None:
    return _REQUEST_ID_CTX.get()


def get_tenant_id() -> str | None:
    return _TENANT_ID_CTX.get()


def get_user_id() -> str | None:
    return _USER_ID_CTX.get()


def get_auth_source() -> str | None:
    return _AUTH_SOURCE_CTX.get()


def clear_request_context() -> None:
    for var in _ALL_VARS:
        var.set(None)
