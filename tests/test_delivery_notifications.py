import json
from unittest.mock import patch

import httpx

from pedidos_express.core.metrics import request_metrics
from pedidos_express.models.whatsapp_message_log import WhatsAppMessageLog
from pedidos_express.services import message_quota
from pedidos_express.services.delivery_notifications import (
    build_delivery_message,
    build_printed_message,
    normalize_phone,
    notify_delivery_in_background,
    send_delivery_notification,
    send_printed_notification,
)
from pedidos_express.whatsapp.base import WhatsAppSendResult
from pedidos_express.whatsapp.cloud_provider import CloudWhatsAppProvider
from pedidos_express.whatsapp.mock_provider import MockWhatsAppProvider
from tests.fixtures_data import create_order, create_tenant, set_usage


class FailingProvider:
    def __init__(self, status_code=400, error="Número inválido"):
        self.calls = 0
        self.status_code = status_code
        self.error = error

    def send_text(self, db, *, tenant_id, to_phone, text, order_id=None, template_name=None):
        self.calls += 1
        return WhatsAppSendResult(status="failed", error=self.error, status_code=self.status_code)


def _logs(db, order_id):
    return db.query(WhatsAppMessageLog).filter(WhatsAppMessageLog.order_id == order_id).all()


def test_normalize_phone():
    assert normalize_phone("(11) 99999-0000") == "5511999990000"
    assert normalize_phone("+55 11 99999-0000") == "5511999990000"
    assert normalize_phone("55991234567") == "5555991234567"
    assert normalize_phone("5599912345678") == "5599912345678"
    assert normalize_phone("551199990000") == "551199990000"
    assert normalize_phone("99999") == "99999"
    assert normalize_phone(None) == ""


def test_delivery_message_with_address(db):
    tenant = create_tenant(db)
    order = create_order(
        db,
        tenant_id=tenant.id,
        status="out_for_delivery",
        customer_name="João",
        display_id="07",
        delivery_address="Rua Principal, 100",
    )

    assert build_delivery_message(order) == (
        "🚚 *PEDIDO 07 SAIU PARA ENTREGA!*\n\n"
        "Olá João! 👋\n\n"
        "Seu pedido 07 acabou de sair para entrega e está a caminho!\n\n"
        "📍 Endereço: Rua Principal, 100\n"
        "Em breve chegará até você!\n\n"
        "Obrigado por escolher Pedidos Express! ❤️"
    )


def test_delivery_message_pickup_has_no_address_line(db):
    tenant = create_tenant(db)
    order = create_order(
        db,
        tenant_id=tenant.id,
        status="out_for_delivery",
        order_type="pickup",
        daily_sequence=5,
        delivery_address="Rua Principal, 100",
    )

    message = build_delivery_message(order)

    assert "📍" not in message
    assert "PEDIDO #005 SAIU" in message


def test_messages_are_capped_at_whatsapp_limit(db):
    tenant = create_tenant(db)
    order = create_order(db, tenant_id=tenant.id, status="out_for_delivery", customer_name="A" * 5000)

    assert len(build_delivery_message(order)) == 4096
    assert build_printed_message(order).startswith("✅ *Pedido #000 impresso!*")


def test_delivery_requires_out_for_delivery(db):
    tenant = create_tenant(db)
    order = create_order(db, tenant_id=tenant.id, status="printed")
    provider = MockWhatsAppProvider()

    result = send_delivery_notification(db, order, provider=provider)

    assert result.sent is False
    assert result.error == "Pedido não está marcado como saiu para entrega"
    assert provider.sent == []


def test_delivery_sent_counts_usage_and_logs(db):
    tenant = create_tenant(db)
    order = create_order(db, tenant_id=tenant.id, status="out_for_delivery", customer_phone="11 98888-7777")
    provider = MockWhatsAppProvider()

    result = send_delivery_notification(db, order, provider=provider)

    assert result.sent is True
    assert result.provider_message_id.startswith("mock-")
    assert provider.sent[0]["to"] == "5511988887777"
    assert message_quota.get_current_usage(db, tenant.id) == 1
    logs = _logs(db, order.id)
    assert [log.status for log in logs] == ["sent"]
    assert logs[0].template_name == "delivery"
    assert request_metrics.counters()["notifications.sent"] == 1


def test_last_message_of_quota_then_refusal(db):
    tenant = create_tenant(db)
    set_usage(db, tenant_id=tenant.id, messages_sent=499)
    order = create_order(db, tenant_id=tenant.id, status="out_for_delivery")
    provider = MockWhatsAppProvider()

    first = send_delivery_notification(db, order, provider=provider)
    second = send_delivery_notification(db, order, provider=provider)

    assert first.sent is True
    assert second.sent is False
    assert second.quota_exceeded is True
    assert second.status_code == 429
    assert second.quota.current == 500
    assert "Plano: Básico (500/500 mensagens usadas)" in second.error
    assert len(provider.sent) == 1
    assert message_quota.get_current_usage(db, tenant.id) == 500
    assert sorted(log.status for log in _logs(db, order.id)) == ["refused", "sent"]
    assert request_metrics.counters()["notifications.refused"] == 1


def test_refused_without_calling_provider(db):
    tenant = create_tenant(db, plan_message_limit=1)
    set_usage(db, tenant_id=tenant.id, messages_sent=1)
    order = create_order(db, tenant_id=tenant.id, status="out_for_delivery")
    provider = FailingProvider()

    result = send_delivery_notification(db, order, provider=provider)

    assert result.quota_exceeded is True
    assert provider.calls == 0


def test_failed_send_releases_reservation(db):
    tenant = create_tenant(db)
    set_usage(db, tenant_id=tenant.id, messages_sent=10)
    order = create_order(db, tenant_id=tenant.id, status="out_for_delivery")

    result = send_delivery_notification(db, order, provider=FailingProvider())

    assert result.sent is False
    assert result.quota_exceeded is False
    assert result.error == "Número inválido"
    assert result.status_code == 400
    assert message_quota.get_current_usage(db, tenant.id) == 10
    assert request_metrics.counters()["notifications.failed"] == 1


def test_quota_check_error_fails_open(db):
    tenant = create_tenant(db)
    order = create_order(db, tenant_id=tenant.id, status="out_for_delivery")
    provider = MockWhatsAppProvider()

    with patch.object(message_quota, "check_limit", side_effect=RuntimeError("db indisponível")):
        result = send_delivery_notification(db, order, provider=provider)

    assert result.sent is True
    assert len(provider.sent) == 1
    assert message_quota.get_current_usage(db, tenant.id) == 1


def test_invalid_phone_is_not_sent(db):
    tenant = create_tenant(db)
    order = create_order(db, tenant_id=tenant.id, status="out_for_delivery", customer_phone="sem telefone")
    provider = MockWhatsAppProvider()

    result = send_delivery_notification(db, order, provider=provider)

    assert result.sent is False
    assert result.error == "Telefone do cliente inválido"
    assert provider.sent == []


def test_printed_notification_uses_same_gate(db):
    tenant = create_tenant(db, plan_message_limit=1)
    order = create_order(db, tenant_id=tenant.id, status="printed", display_id="03")
    provider = MockWhatsAppProvider()

    first = send_printed_notification(db, order, provider=provider)
    second = send_printed_notification(db, order, provider=provider)

    assert first.sent is True
    assert provider.sent[0]["text"].startswith("✅ *Pedido 03 impresso!*")
    assert second.quota_exceeded is True


def test_background_notification_uses_own_session(db, session_factory):
    tenant = create_tenant(db)
    order = create_order(db, tenant_id=tenant.id, status="out_for_delivery")
    provider = MockWhatsAppProvider()

    with patch("pedidos_express.services.delivery_notifications.SessionLocal", session_factory), patch(
        "pedidos_express.services.delivery_notifications.get_provider", return_value=provider
    ):
        notify_delivery_in_background(order.id)
        notify_delivery_in_background("pedido-inexistente")

    assert len(provider.sent) == 1
    db.expire_all()
    assert message_quota.get_current_usage(db, tenant.id) == 1


def _patched_httpx_client(handler):
    real_client = httpx.Client

    def _factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    return patch("pedidos_express.whatsapp.cloud_provider.httpx.Client", side_effect=_factory)


def test_cloud_provider_posts_text_message(db):
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"messages": [{"id": "wamid.123"}]})

    provider = CloudWhatsAppProvider(access_token="token-abcdef", phone_number_id="1098", api_version="v21.0")
    with _patched_httpx_client(handler):
        result = provider.send_text(db, tenant_id="t1", to_phone="5511999990000", text="oi", order_id="o1")

    assert result.ok is True
    assert result.provider_message_id == "wamid.123"
    assert captured["url"] == "https://graph.facebook.com/v21.0/1098/messages"
    assert captured["auth"] == "Bearer token-abcdef"
    assert captured["body"]["text"] == {"body": "oi"}
    log = db.query(WhatsAppMessageLog).one()
    assert log.status == "sent"
    assert "token-abcdef" not in (log.payload_json or "")


def test_cloud_provider_reports_meta_error(db):
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "Invalid parameter"}})

    provider = CloudWhatsAppProvider(access_token="token-abcdef", phone_number_id="1098")
    with _patched_httpx_client(handler):
        result = provider.send_text(db, tenant_id="t1", to_phone="5511999990000", text="oi")

    assert result.ok is False
    assert result.status_code == 400
    assert result.error == "Invalid parameter"


def test_cloud_provider_network_error(db):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = CloudWhatsAppProvider(access_token="token-abcdef", phone_number_id="1098")
    with _patched_httpx_client(handler):
        result = provider.send_text(db, tenant_id="t1", to_phone="5511999990000", text="oi")

    assert result.ok is False
    assert result.status_code is None
    assert "connection refused" in result.error


def test_cloud_provider_without_credentials(db):
    provider = CloudWhatsAppProvider(access_token="", phone_number_id="")

    with patch("pedidos_express.whatsapp.cloud_provider.httpx.Client") as client:
        result = provider.send_text(db, tenant_id="t1", to_phone="5511999990000", text="oi")

    client.assert_not_called()
    assert result.ok is False
    assert result.error == "Credenciais do WhatsApp não configuradas"
