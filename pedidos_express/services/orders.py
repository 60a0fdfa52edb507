from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session

from pedidos_express.core.config import DISPLAY_ID_TIMEZONE
from pedidos_express.core.errors import OrderNotFound, TenantForbidden
from pedidos_express.models.order import Order

logger = logging.getLogger(__name__)

ORDER_TYPES = {"delivery", "pickup"}


def _as_utc(value: datetime | None) -> datetime:
    current = value or datetime.now(timezone.utc)
    if current.tzinfo is None:
        return current.replace(tzinfo=timezone.utc)
    return current.astimezone(timezone.utc)


def day_bounds(now: datetime | None = None, tz_name: str = DISPLAY_ID_TIMEZONE) -> tuple[datetime, datetime]:
    """Início e fim (exclusivo) do dia local de `now`, em UTC."""
    tz = ZoneInfo(tz_name)
    local_day = _as_utc(now).astimezone(tz).date()
    start = datetime.combine(local_day, time.min, tzinfo=tz)
    end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def format_display_id(sequence: int) -> str:
    if sequence <= 0:
        return "01"
    if sequence <= 99:
        return f"{sequence:02d}"
    return str(sequence)


def next_daily_sequence(db: Session, tenant_id: str, now: datetime | None = None) -> int:
    start, end = day_bounds(now)
    current = (
        db.query(func.max(Order.daily_sequence))
        .filter(
            Order.tenant_id == tenant_id,
            Order.created_at >= start,
            Order.created_at < end,
        )
        .scalar()
    )
    return int(current or 0) + 1


def order_label(order: Order) -> str:
    if order.display_id:
        return order.display_id
    return f"#{(order.daily_sequence or 0):03d}"


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value or 0))
    except InvalidOperation:
        return Decimal("0")


def normalize_items(items: Iterable[Dict[str, Any]]) -> tuple[list[dict], Decimal]:
    normalized: list[dict] = []
    total = Decimal("0")
    for entry in items:
        name = str(entry.get("name", "") or "").strip()
        try:
            quantity = int(entry.get("quantity", 0) or 0)
        except (TypeError, ValueError):
            quantity = 0
        price = _to_decimal(entry.get("price"))
        normalized.append({"name": name, "quantity": quantity, "price": float(price)})
        total += price * quantity
    return normalized, total.quantize(Decimal("0.01"))


def _resolve_order_type(order_type: Optional[str]) -> str:
    normalized = (order_type or "").strip().lower()
    if normalized in ORDER_TYPES:
        return normalized
    return "delivery"


def create_order(db: Session, tenant_id: str, payload: Dict[str, Any], now: datetime | None = None) -> Order:
    created_at = _as_utc(now)
    items, total = normalize_items(payload.get("items") or [])
    sequence = next_daily_sequence(db, tenant_id, created_at)
    scheduled_at = payload.get("scheduled_at")
    if isinstance(scheduled_at, datetime):
        scheduled_at = _as_utc(scheduled_at)

    order = Order(
        tenant_id=tenant_id,
        customer_name=(payload.get("customer_name") or "").strip(),
        customer_phone=(payload.get("customer_phone") or "").strip(),
        items=items,
        total_price=total,
        status="pending",
        order_type=_resolve_order_type(payload.get("order_type")),
        delivery_address=payload.get("delivery_address") or None,
        notes=payload.get("notes") or None,
        scheduled_at=scheduled_at,
        daily_sequence=sequence,
        display_id=format_display_id(sequence),
        created_at=created_at,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("[CREATE-ORDER] tenant=%s order=%s display_id=%s", tenant_id, order.id, order.display_id)
    return order


def replace_order_items(db: Session, order: Order, items: Iterable[Dict[str, Any]]) -> Order:
    normalized, total = normalize_items(items)
    order.items = normalized
    order.total_price = total
    db.commit()
    db.refresh(order)
    return order


def get_order(db: Session, order_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise OrderNotFound(order_id=order_id)
    return order


def get_order_for_tenant(db: Session, order_id: str, tenant_id: str | None) -> Order:
    order = get_order(db, order_id)
    if tenant_id and order.tenant_id != tenant_id:
        raise TenantForbidden("Pedido não pertence ao seu tenant", order_id=order_id)
    return order


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def order_to_dict(o: Order) -> Dict[str, Any]:
    return {
        "id": o.id,
        "tenant_id": o.tenant_id,
        "customer_name": o.customer_name,
        "customer_phone": o.customer_phone,
        "items": o.items or [],
        "total_price": float(o.total_price) if o.total_price is not None else 0.0,
        "status": o.status,
        "order_type": o.order_type,
        "delivery_address": o.delivery_address,
        "notes": o.notes,
        "scheduled_at": _iso(o.scheduled_at),
        "print_requested_at": _iso(o.print_requested_at),
        "daily_sequence": o.daily_sequence,
        "display_id": o.display_id,
        "created_at": _iso(o.created_at),
    }
