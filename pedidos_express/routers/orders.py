from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from pedidos_express.core.database import get_db
from pedidos_express.core.errors import DomainError, QuotaExceeded, Unauthenticated, UpstreamFailure
from pedidos_express.deps import get_auth_user, get_tenant_resolution, require_api_key_tenant, require_tenant_id
from pedidos_express.models.tenant import Tenant
from pedidos_express.models.user import User
from pedidos_express.services import order_status
from pedidos_express.services.delivery_notifications import (
    NotificationResult,
    notify_delivery_in_background,
    send_delivery_notification,
    send_printed_notification,
)
from pedidos_express.services.orders import (
    create_order as create_order_record,
    get_order,
    get_order_for_tenant,
    order_label,
    order_to_dict,
    replace_order_items,
)
from pedidos_express.services.tenant_resolver import TenantResolution

router = APIRouter(prefix="/api", tags=["orders"])
logger = logging.getLogger(__name__)


class OrderItemIn(BaseModel):
    name: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class OrderCreate(BaseModel):
    customer_name: str = ""
    customer_phone: str = Field(..., min_length=1)
    items: List[OrderItemIn] = Field(default_factory=list)
    order_type: Optional[str] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None


class OrderItemsUpdate(BaseModel):
    items: List[OrderItemIn]


class StatusUpdate(BaseModel):
    status: Optional[str] = None


def _server_error(db: Session, tag: str, message: str, exc: Exception) -> JSONResponse:
    db.rollback()
    logger.exception("[%s] %s", tag, message)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": message, "error": str(exc)},
    )


def _quota_response(result: NotificationResult) -> JSONResponse:
    detail = {}
    if result.quota is not None:
        detail = {
            "plan": result.quota.plan_name,
            "current": result.quota.current,
            "limit": result.quota.limit,
            "percentage": result.quota.percentage,
        }
    exc = QuotaExceeded(result.error, **detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, **exc.detail},
    )


def _schedule_delivery_notification(background_tasks: BackgroundTasks, order, previous_status: str | None) -> bool:
    if not order_status.entered_out_for_delivery(order, previous_status):
        return False
    background_tasks.add_task(notify_delivery_in_background, order.id)
    return True


@router.post("/orders", status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreate,
    tenant: Tenant = Depends(require_api_key_tenant),
    db: Session = Depends(get_db),
):
    try:
        order = create_order_record(db, tenant.id, payload.model_dump())
    except Exception as exc:
        return _server_error(db, "CREATE-ORDER", "Erro ao criar pedido", exc)
    return order_to_dict(order)


@router.get("/orders/{order_id}")
def read_order(
    order_id: str,
    tenant_id: str = Depends(require_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        order = get_order_for_tenant(db, order_id, tenant_id)
    except DomainError as exc:
        raise exc.to_http() from exc
    return order_to_dict(order)


@router.patch("/orders/{order_id}")
def update_order_items(
    order_id: str,
    body: OrderItemsUpdate,
    tenant_id: str = Depends(require_tenant_id),
    db: Session = Depends(get_db),
):
    try:
        order = get_order_for_tenant(db, order_id, tenant_id)
        order = replace_order_items(db, order, [item.model_dump() for item in body.items])
    except DomainError as exc:
        raise exc.to_http() from exc
    except Exception as exc:
        return _server_error(db, "UPDATE-ITEMS", "Erro ao atualizar itens do pedido", exc)
    return {"success": True, "order": order_to_dict(order)}


@router.patch("/orders/{order_id}/status")
def update_status(
    order_id: str,
    body: StatusUpdate,
    background_tasks: BackgroundTasks,
    _tenant: Tenant = Depends(require_api_key_tenant),
    db: Session = Depends(get_db),
):
    new_status = (body.status or "").strip()
    if not new_status:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Status é obrigatório")

    try:
        order, previous_status = order_status.update_status(db, order_id, new_status)
    except DomainError as exc:
        raise exc.to_http() from exc
    except Exception as exc:
        return _server_error(db, "UPDATE-STATUS", "Erro ao atualizar status", exc)

    notification_scheduled = _schedule_delivery_notification(background_tasks, order, previous_status)
    return {
        "success": True,
        "order": order_to_dict(order),
        "notification_scheduled": notification_scheduled,
    }


@router.patch("/orders/{order_id}/mark-out-for-delivery")
def mark_out_for_delivery(
    order_id: str,
    background_tasks: BackgroundTasks,
    _tenant: Tenant = Depends(require_api_key_tenant),
    db: Session = Depends(get_db),
):
    try:
        order, previous_status = order_status.mark_out_for_delivery(db, order_id)
    except DomainError as exc:
        raise exc.to_http() from exc
    except Exception as exc:
        return _server_error(db, "MARK-OUT-FOR-DELIVERY", "Erro ao marcar pedido como saiu para entrega", exc)

    notification_scheduled = _schedule_delivery_notification(background_tasks, order, previous_status)
    return {
        "success": True,
        "order": order_to_dict(order),
        "customer_phone": order.customer_phone,
        "display_id": order_label(order),
        "notification_scheduled": notification_scheduled,
    }


@router.patch("/orders/{order_id}/mark-printed")
def mark_printed(
    order_id: str,
    user: User = Depends(get_auth_user),
    db: Session = Depends(get_db),
):
    try:
        order = order_status.mark_printed(db, order_id, user.tenant_id)
    except DomainError as exc:
        if exc.status_code == status.HTTP_403_FORBIDDEN:
            logger.warning("[MARK-PRINTED] acesso negado user=%s order=%s", user.id, order_id)
        raise exc.to_http() from exc
    except Exception as exc:
        return _server_error(db, "MARK-PRINTED", "Erro ao marcar pedido como impresso", exc)
    return {"success": True, "order": order_to_dict(order)}


@router.patch("/orders/{order_id}/request-print")
def request_print(order_id: str, db: Session = Depends(get_db)):
    try:
        order = order_status.request_print(db, order_id)
    except DomainError as exc:
        raise exc.to_http() from exc
    except Exception as exc:
        return _server_error(db, "REQUEST-PRINT", "Erro ao solicitar impressão", exc)
    return {"success": True, "order": order_to_dict(order)}


def _print_scope(resolution: TenantResolution) -> str | None:
    if not order_status.ENFORCE_PRINT_OWNERSHIP:
        return None
    if not resolution.is_authenticated:
        raise Unauthenticated().to_http()
    return resolution.tenant_id


@router.patch("/orders/{order_id}/clear-print-request")
def clear_print_request(
    order_id: str,
    resolution: TenantResolution = Depends(get_tenant_resolution),
    db: Session = Depends(get_db),
):
    scope = _print_scope(resolution)
    try:
        order = order_status.clear_print_request(db, order_id, scope)
    except DomainError as exc:
        raise exc.to_http() from exc
    except Exception as exc:
        return _server_error(db, "CLEAR-PRINT-REQUEST", "Erro ao limpar solicitação de impressão", exc)
    return {"success": True, "order": order_to_dict(order)}


@router.patch("/orders/{order_id}/reprint")
def reprint(
    order_id: str,
    resolution: TenantResolution = Depends(get_tenant_resolution),
    db: Session = Depends(get_db),
):
    scope = _print_scope(resolution)
    try:
        order = order_status.reprint(db, order_id, scope)
    except DomainError as exc:
        raise exc.to_http() from exc
    except Exception as exc:
        return _server_error(db, "REPRINT", "Erro ao reimprimir pedido", exc)
    return {"success": True, "order": order_to_dict(order)}


@router.post("/orders/{order_id}/notify-delivery")
def notify_delivery(
    order_id: str,
    _tenant: Tenant = Depends(require_api_key_tenant),
    db: Session = Depends(get_db),
):
    try:
        order = get_order(db, order_id)
    except DomainError as exc:
        raise exc.to_http() from exc

    if order.status != order_status.OUT_FOR_DELIVERY:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Pedido não está marcado como "saiu para entrega"',
        )

    try:
        result = send_delivery_notification(db, order)
    except Exception as exc:
        return _server_error(db, "NOTIFY-DELIVERY", "Erro ao preparar notificação", exc)

    if result.quota_exceeded:
        return _quota_response(result)

    return {
        "success": True,
        "order_id": order.id,
        "customer_phone": order.customer_phone,
        "display_id": order_label(order),
        "sent": result.sent,
        "note": "Mensagem enviada ao bot WhatsApp" if result.sent else (result.error or "Envio não realizado"),
    }


@router.post("/orders/{order_id}/notify-printed")
def notify_printed(
    order_id: str,
    user: User = Depends(get_auth_user),
    db: Session = Depends(get_db),
):
    try:
        order = get_order_for_tenant(db, order_id, user.tenant_id)
        result = send_printed_notification(db, order)
        if result.quota_exceeded:
            return _quota_response(result)
        if not result.sent:
            raise UpstreamFailure(result.error or "Erro ao enviar", upstream_status=result.status_code)
    except UpstreamFailure as exc:
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})
    except DomainError as exc:
        raise exc.to_http() from exc
    except Exception as exc:
        return _server_error(db, "NOTIFY-PRINTED", "Erro interno", exc)
    return {"success": True}
