from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any, AsyncIterator, Callable
from zoneinfo import ZoneInfo

from fastapi import Request
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from pedidos_express.core.config import FEED_INTERVAL_SECONDS, FEED_MAX_ORDERS, FEED_TIMEZONE
from pedidos_express.core.database import SessionLocal
from pedidos_express.models.order import Order
from pedidos_express.services.orders import order_to_dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedWindow:
    today_start: datetime
    range_end: datetime
    unscheduled_since: datetime


def feed_window(now: datetime | None = None, tz_name: str = FEED_TIMEZONE) -> FeedWindow:
    """Hoje e amanhã para agendados; últimos dois dias para pedidos sem agendamento. Limites em UTC."""
    tz = ZoneInfo(tz_name)
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    today = current.astimezone(tz).date()

    def _start_of(day) -> datetime:
        return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)

    return FeedWindow(
        today_start=_start_of(today),
        range_end=_start_of(today + timedelta(days=2)),
        unscheduled_since=_start_of(today - timedelta(days=2)),
    )


def load_feed_orders(
    db: Session,
    tenant_id: str,
    now: datetime | None = None,
    limit: int = FEED_MAX_ORDERS,
) -> list[Order]:
    window = feed_window(now)
    return (
        db.query(Order)
        .filter(
            Order.tenant_id == tenant_id,
            or_(
                and_(Order.scheduled_at.is_(None), Order.created_at >= window.unscheduled_since),
                and_(Order.scheduled_at >= window.today_start, Order.scheduled_at < window.range_end),
            ),
        )
        .order_by(Order.scheduled_at.asc().nulls_last(), Order.created_at.desc())
        .limit(limit)
        .all()
    )


def feed_snapshot(tenant_id: str, session_factory: Callable[[], Session] = SessionLocal) -> list[dict[str, Any]]:
    db = session_factory()
    try:
        return [order_to_dict(order) for order in load_feed_orders(db, tenant_id)]
    finally:
        db.close()


def format_event(event_type: str, orders: list[dict[str, Any]] | None = None, **extra: Any) -> str:
    payload: dict[str, Any] = {"type": event_type, "orders": orders or []}
    payload.update(extra)
    return f"data: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"


async def order_feed_events(
    request: Request,
    tenant_id: str,
    *,
    interval: float = FEED_INTERVAL_SECONDS,
    session_factory: Callable[[], Session] = SessionLocal,
) -> AsyncIterator[str]:
    event_type = "initial"
    while True:
        if await request.is_disconnected():
            logger.info("[ORDER-STREAM] cliente desconectou tenant=%s", tenant_id)
            break
        try:
            orders = await run_in_threadpool(feed_snapshot, tenant_id, session_factory)
            yield format_event(event_type, orders)
            event_type = "update"
        except Exception as exc:
            logger.exception("[ORDER-STREAM] erro ao buscar pedidos tenant=%s", tenant_id)
            yield format_event("error", message="Erro ao buscar pedidos", error=str(exc))
        await asyncio.sleep(interval)
