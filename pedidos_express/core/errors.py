from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


class DomainError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Erro interno"

    def __init__(self, message: str | None = None, **detail: Any) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message
        self.detail = detail

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.message)


class Unauthenticated(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Não autenticado"


class TenantForbidden(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Acesso negado"


class OrderNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Pedido não encontrado"


class TenantNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Tenant não encontrado"


class QuotaExceeded(DomainError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Limite de mensagens excedido"


class UpstreamFailure(DomainError):
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Falha no provedor externo"

    def __init__(self, message: str | None = None, *, upstream_status: int | None = None, **detail: Any) -> None:
        super().__init__(message, **detail)
        if upstream_status:
            self.status_code = upstream_status
