from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from sqlalchemy.orm import Session

from pedidos_express.core.config import (
    META_API_VERSION,
    META_WA_ACCESS_TOKEN,
    META_WA_PHONE_NUMBER_ID,
    WHATSAPP_TIMEOUT_SECONDS,
)
from pedidos_express.whatsapp.base import WhatsAppProvider, WhatsAppSendResult, record_message_log

logger = logging.getLogger(__name__)


def extract_error_message(status_code: int, data: dict[str, Any] | None) -> str:
    message = ((data or {}).get("error") or {}).get("message")
    return message or f"Meta API {status_code}"


class CloudWhatsAppProvider(WhatsAppProvider):
    """Envia pela WhatsApp Cloud API com as credenciais globais do bot. Uma tentativa, sem retry."""

    INTEGRATION_NAME = "whatsapp_cloud"

    def __init__(
        self,
        *,
        access_token: str | None = None,
        phone_number_id: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.access_token = access_token if access_token is not None else META_WA_ACCESS_TOKEN
        self.phone_number_id = phone_number_id if phone_number_id is not None else META_WA_PHONE_NUMBER_ID
        self.api_version = api_version or META_API_VERSION
        self.timeout = timeout or WHATSAPP_TIMEOUT_SECONDS

    @property
    def url(self) -> str:
        return f"https://graph.facebook.com/{self.api_version}/{self.phone_number_id}/messages"

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
        payload = {
            "messaging_product": "whatsapp",
            "to": to_phone,
            "type": "text",
            "text": {"body": text},
        }
        log_fields = {
            "tenant_id": tenant_id,
            "order_id": order_id,
            "to_phone": to_phone,
            "template_name": template_name,
            "payload": payload,
        }

        if not self.access_token or not self.phone_number_id:
            error = "Credenciais do WhatsApp não configuradas"
            logger.error("[WHATSAPP] %s tenant=%s", error, tenant_id)
            record_message_log(db, status="failed", error=error, **log_fields)
            return WhatsAppSendResult(status="failed", error=error)

        headers = {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            error = str(exc) or exc.__class__.__name__
            logger.warning(
                "[WHATSAPP] falha de rede tenant=%s error=%s",
                tenant_id,
                error,
                extra={"integration": self.INTEGRATION_NAME, "order_id": order_id},
            )
            record_message_log(db, status="failed", error=error, **log_fields)
            return WhatsAppSendResult(status="failed", error=error)

        try:
            data = response.json()
        except json.JSONDecodeError:
            data = {"raw": response.text}

        if 200 <= response.status_code < 300:
            provider_id = ((data.get("messages") or [{}])[0].get("id")) if isinstance(data, dict) else None
            record_message_log(
                db,
                status="sent",
                provider_message_id=provider_id,
                response_payload=data if isinstance(data, dict) else None,
                **log_fields,
            )
            return WhatsAppSendResult(
                status="sent",
                provider_message_id=provider_id,
                status_code=response.status_code,
                response_payload=data if isinstance(data, dict) else None,
            )

        error = extract_error_message(response.status_code, data if isinstance(data, dict) else None)
        logger.warning(
            "[WHATSAPP] Meta recusou envio tenant=%s status=%s error=%s",
            tenant_id,
            response.status_code,
            error,
            extra={"integration": self.INTEGRATION_NAME, "status_code": response.status_code, "order_id": order_id},
        )
        record_message_log(db, status="failed", error=error, **log_fields)
        return WhatsAppSendResult(status="failed", error=error, status_code=response.status_code)
