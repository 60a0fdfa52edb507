from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy.orm import Session

from pedidos_express.core.config import COUNTRY_CODE
from pedidos_express.core.database import SessionLocal
from pedidos_express.core.metrics import request_metrics
from pedidos_express.models.order import Order
from pedidos_express.services import message_quota
from pedidos_express.services.message_quota import MessageLimitCheck, format_quota_error
from pedidos_express.services.order_status import OUT_FOR_DELIVERY
from pedidos_express.services.orders import order_label
from pedidos_express.whatsapp.base import WhatsAppProvider, record_message_log
from pedidos_express.whatsapp.service import get_provider

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096
LOCAL_PHONE_LENGTHS = (10, 11)

TEMPLATE_DELIVERY = "delivery"
TEMPLATE_PRINTED = "printed"


@dataclass
class NotificationResult:
    sent: bool
    error: str | None = None
    quota_exceeded: bool = False
    status_code: int | None = None
    provider_message_id: str | None = None
    quota: MessageLimitCheck | None = None


def normalize_phone(phone: str | None) -> str:
    digits = re.sub(r"\D", "", phone or "")
    # DDD + número (10 ou 11 dígitos) é local, mesmo com DDD 55
    if len(digits) in LOCAL_PHONE_LENGTHS:
        digits = f"{COUNTRY_CODE}{digits}"
    return digits


def build_delivery_message(order: Order) -> str:
    display_id = order_label(order)
    address_line = ""
    if order.order_type == "delivery" and order.delivery_address:
        address_line = f"📍 Endereço: {order.delivery_address}\n"
    message = (
        f"🚚 *PEDIDO {display_id} SAIU PARA ENTREGA!*\n\n"
        f"Olá {order.customer_name}! 👋\n\n"
        f"Seu pedido {display_id} acabou de sair para entrega e está a caminho!\n\n"
        f"{address_line}Em breve chegará até você!\n\n"
        "Obrigado por escolher Pedidos Express! ❤️"
    )
    return message[:MAX_MESSAGE_LENGTH]


def build_printed_message(order: Order) -> str:
    display_id = order_label(order)
    message = (
        f"✅ *Pedido {display_id} impresso!*\n\n"
        "Seu pedido foi impresso pela cozinha e já já estará na sua casa! 🍔🚀"
    )
    return message[:MAX_MESSAGE_LENGTH]


def _refuse(db: Session, order: Order, to_phone: str, template_name: str, check: MessageLimitCheck) -> NotificationResult:
    error = format_quota_error(check)
    logger.warning(
        "[NOTIFY] envio recusado por cota tenant=%s order=%s %s/%s",
        order.tenant_id,
        order.id,
        check.current,
        check.limit,
        extra={"order_id": order.id},
    )
    record_message_log(
        db,
        tenant_id=order.tenant_id,
        order_id=order.id,
        to_phone=to_phone,
        template_name=template_name,
        payload={"to": to_phone, "template": template_name},
        status="refused",
        error=error,
    )
    request_metrics.increment("notifications.refused")
    return NotificationResult(sent=False, error=error, quota_exceeded=True, status_code=429, quota=check)


def send_through_quota_gate(
    db: Session,
    order: Order,
    text: str,
    *,
    template_name: str,
    provider: WhatsAppProvider | None = None,
) -> NotificationResult:
    to_phone = normalize_phone(order.customer_phone)
    if not to_phone:
        return NotificationResult(sent=False, error="Telefone do cliente inválido")

    check: MessageLimitCheck | None = None
    reserved = False
    refused = False
    try:
        check = message_quota.check_limit(db, order.tenant_id)
        if not check.allowed:
            refused = True
        else:
            reserved = message_quota.try_reserve(db, order.tenant_id, check.limit)
            if not reserved:
                # outro envio concorrente ocupou a última vaga
                check = message_quota.check_limit(db, order.tenant_id)
                refused = True
    except Exception:
        db.rollback()
        logger.exception("[MESSAGE-QUOTA] erro ao verificar limite tenant=%s; envio segue", order.tenant_id)

    if refused and check is not None:
        return _refuse(db, order, to_phone, template_name, check)

    provider = provider or get_provider()
    result = provider.send_text(
        db,
        tenant_id=order.tenant_id,
        to_phone=to_phone,
        text=text,
        order_id=order.id,
        template_name=template_name,
    )

    if result.ok:
        if not reserved:
            try:
                message_quota.increment_usage(db, order.tenant_id)
            except Exception:
                db.rollback()
                logger.exception("[MESSAGE-QUOTA] erro ao incrementar uso tenant=%s", order.tenant_id)
        logger.info("[NOTIFY] mensagem %s enviada order=%s to=%s", template_name, order.id, to_phone)
        request_metrics.increment("notifications.sent")
        return NotificationResult(
            sent=True,
            status_code=result.status_code,
            provider_message_id=result.provider_message_id,
            quota=check,
        )

    request_metrics.increment("notifications.failed")
    if reserved:
        try:
            message_quota.release(db, order.tenant_id)
        except Exception:
            db.rollback()
            logger.exception("[MESSAGE-QUOTA] erro ao devolver reserva tenant=%s", order.tenant_id)
    return NotificationResult(sent=False, error=result.error, status_code=result.status_code, quota=check)


def send_delivery_notification(
    db: Session,
    order: Order,
    *,
    provider: WhatsAppProvider | None = None,
) -> NotificationResult:
    if order.status != OUT_FOR_DELIVERY:
        return NotificationResult(sent=False, error="Pedido não está marcado como saiu para entrega")
    return send_through_quota_gate(
        db,
        order,
        build_delivery_message(order),
        template_name=TEMPLATE_DELIVERY,
        provider=provider,
    )


def send_printed_notification(
    db: Session,
    order: Order,
    *,
    provider: WhatsAppProvider | None = None,
) -> NotificationResult:
    return send_through_quota_gate(
        db,
        order,
        build_printed_message(order),
        template_name=TEMPLATE_PRINTED,
        provider=provider,
    )


def notify_delivery_in_background(order_id: str) -> None:
    """Roda depois da resposta HTTP, com sessão própria."""
    db: Session = SessionLocal()
    try:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            logger.warning("[NOTIFY-DELIVERY] pedido %s sumiu antes do envio", order_id)
            return
        result = send_delivery_notification(db, order)
        if not result.sent:
            logger.warning("[NOTIFY-DELIVERY] não enviado order=%s error=%s", order_id, result.error)
    except Exception:
        db.rollback()
        logger.exception("[NOTIFY-DELIVERY] falha no envio em background order=%s", order_id)
    finally:
        db.close()
