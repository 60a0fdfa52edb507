"""Conjunto de dados reutilizável para cenários de teste backend."""

import base64
from datetime import datetime, timezone

from pedidos_express.models.message_usage import MessageUsage
from pedidos_express.models.order import Order
from pedidos_express.models.tenant import Tenant
from pedidos_express.models.user import User
from pedidos_express.services.passwords import hash_password

TENANT_A_API_KEY = "pk_tenant_a_0123456789"
TENANT_B_API_KEY = "pk_tenant_b_9876543210"
DEFAULT_PASSWORD = "senha-forte-123"

HAPPY_PATH_ORDER_PAYLOAD = {
    "customer_name": "João",
    "customer_phone": "(11) 99999-0000",
    "items": [
        {"name": "Burger Classic", "quantity": 2, "price": 18.5},
        {"name": "Refrigerante", "quantity": 1, "price": 6.0},
    ],
    "order_type": "delivery",
    "delivery_address": "Rua Principal, 100",
    "notes": "Sem cebola",
}


def create_tenant(db, *, name="Tamboril Burguer", slug="tamboril-burguer", api_key=TENANT_A_API_KEY, **fields):
    tenant = Tenant(name=name, slug=slug, api_key=api_key, **fields)
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant


def create_user(db, *, tenant_id, username="operador", password=DEFAULT_PASSWORD, **fields):
    user = User(
        tenant_id=tenant_id,
        username=username,
        password_hash=hash_password(password),
        name=fields.pop("name", username.title()),
        **fields,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_order(db, *, tenant_id, status="pending", **fields):
    fields.setdefault("customer_name", "Maria")
    fields.setdefault("customer_phone", "11988887777")
    fields.setdefault("items", [{"name": "X-Burger", "quantity": 1, "price": 25.0}])
    fields.setdefault("total_price", 25)
    fields.setdefault("order_type", "delivery")
    fields.setdefault("created_at", datetime.now(timezone.utc))
    order = Order(tenant_id=tenant_id, status=status, **fields)
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def set_usage(db, *, tenant_id, messages_sent, now=None):
    from pedidos_express.services.message_quota import _usage_period

    month, year = _usage_period(now)
    usage = MessageUsage(tenant_id=tenant_id, month=month, year=year, messages_sent=messages_sent)
    db.add(usage)
    db.commit()
    return usage


def basic_auth_header(username, password=DEFAULT_PASSWORD):
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"
