from __future__ import annotations

from pedidos_express.core.config import WHATSAPP_PROVIDER
from pedidos_express.whatsapp.base import WhatsAppProvider
from pedidos_express.whatsapp.cloud_provider import CloudWhatsAppProvider
from pedidos_express.whatsapp.mock_provider import MockWhatsAppProvider


def get_provider(name: str | None = None) -> WhatsAppProvider:
    selected = (name or WHATSAPP_PROVIDER or "cloud").strip().lower()
    if selected == "mock":
        return MockWhatsAppProvider()
    return CloudWhatsAppProvider()
