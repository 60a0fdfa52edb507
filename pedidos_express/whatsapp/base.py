from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy.orm import Session

from pedidos_express.models.whatsapp_message_log import WhatsAppMessageLog


@dataclass
class WhatsAppSendResult:
    status: str
    provider_message_id: str | None = None
    error: str | None = None
    status_code: int | None = None
    response_payload: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status == "sent"


class WhatsAppProvider(Protocol):
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
        ...


SENSITIVE_KEYS = {"access_token", "authorization", "token", "api_key", "password"}


def _mask_value(value: Any) -> Any:
    if value is None:
        return None
    text = str(value)
    if len(text) <= 4:
        return "****"
    return f"****{text[-4:]}"


def sanitize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    def _sanitize(value: Any) -> Any:
        if isinstance(value, dict):
            return {key: _sanitize_value(key, inner) for key, inner in value.items()}
        if isinstance(value, list):
            return [_sanitize(item) for item in value]
        return value

    def _sanitize_value(key: str, value: Any) -> Any:
        if key.lower() in SENSITIVE_KEYS:
            return _mask_value(value)
        return _sanitize(value)

    return _sanitize(payload)


def safe_json(payload: dict[str, Any]) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return "{}"


def record_message_log(
    db: Session,
    *,
    tenant_id: str,
    order_id: str | None,
    to_phone: str | None,
    template_name: str | None,
    payload: dict[str, Any],
    status: str,
    error: str | None = None,
    provider_message_id: str | None = None,
    response_payload: dict[str, Any] | None = None,
) -> WhatsAppMessageLog:
    sanitized = sanitize_payload(payload)
    if response_payload:
        sanitized["response"] = sanitize_payload(response_payload)
    log_entry = WhatsAppMessageLog(
        tenant_id=tenant_id,
        order_id=order_id,
        direction="out",
        to_phone=to_phone,
        template_name=template_name,
        message_type="text",
        payload_json=safe_json(sanitized),
        status=status,
        error=error,
        provider_message_id=provider_message_id,
    )
    db.add(log_entry)
    db.commit()
    return log_entry
