from __future__ import annotations

import logging
import uuid

from sqlalchemy.orm import Session

from pedidos_express.whatsapp.base import WhatsAppProvider, WhatsAppSendResult, record_message_log

logger = logging.getLogger(__name__)


class MockWhatsAppProvider(WhatsAppProvider):
    """Registra a mensagem como enviada sem chamar a Meta (dev / testes)."""

    def __init__(self) -> None:
        self.sent: list[dict[str, str | None]] = []

    def send_text(
        self,
        db: Session,
        *,
        tenant_id: str,
        to_phone: str,
        text: str,
        order_id: str | None = None,
        template_name: str | None = None,
    ) -> WhatsAppSendResult:
        provider_message_id = f"mock-{uuid.uuid4().hex[:10]}"
        payload = {
            "type": "text",
            "to": to_phone,
            "text": {"body": text},
        }
        record_message_log(
            db,
            tenant_id=tenant_id,
            order_id=order_id,
            to_phone=to_phone,
            template_name=template_name,
            payload=payload,
            status="sent",
            provider_message_id=provider_message_id,
        )
        self.sent.append({"to": to_phone, "text": text, "order_id": order_id})
        logger.info("[WHATSAPP-MOCK] mensagem registrada tenant=%s to=%s", tenant_id, to_phone)
        return WhatsAppSendResult(status="sent", provider_message_id=provider_message_id, status_code=200)
