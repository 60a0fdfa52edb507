from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pedidos_express.core.config import DISPLAY_ID_TIMEZONE
from pedidos_express.core.errors import TenantNotFound
from pedidos_express.models.message_usage import MessageUsage
from pedidos_express.models.tenant import Tenant

logger = logging.getLogger(__name__)

UNLIMITED = -1

PLAN_LIMITS: dict[str, int] = {
    "basic": 500,
    "complete": 2500,
    "premium": UNLIMITED,
}

PLAN_NAMES: dict[str, str] = {
    "basic": "Básico",
    "complete": "Completo",
    "premium": "Premium",
}


@dataclass
class MessageLimitCheck:
    allowed: bool
    current: int
    limit: int
    plan: str
    plan_name: str
    percentage: int
    remaining: int

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _usage_period(now: datetime | None = None) -> tuple[int, int]:
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    local = current.astimezone(ZoneInfo(DISPLAY_ID_TIMEZONE))
    return local.month, local.year


def resolve_plan_limit(tenant: Tenant) -> int:
    plan = tenant.plan_type or "basic"
    if PLAN_LIMITS.get(plan) == UNLIMITED:
        return UNLIMITED
    # 0 ou vazio = sem override, vale a tabela do plano
    if tenant.plan_message_limit:
        return int(tenant.plan_message_limit)
    return PLAN_LIMITS.get(plan, PLAN_LIMITS["basic"])


def usage_percentage(current: int, limit: int) -> int:
    if limit <= 0:
        return 0
    ratio = Decimal(current) * 100 / Decimal(limit)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _usage_row(db: Session, tenant_id: str, month: int, year: int) -> MessageUsage | None:
    return (
        db.query(MessageUsage)
        .filter(
            MessageUsage.tenant_id == tenant_id,
            MessageUsage.month == month,
            MessageUsage.year == year,
        )
        .first()
    )


def _ensure_usage_row(db: Session, tenant_id: str, month: int, year: int) -> None:
    if _usage_row(db, tenant_id, month, year) is not None:
        return
    db.add(MessageUsage(tenant_id=tenant_id, month=month, year=year, messages_sent=0, conversations_started=0))
    try:
        db.commit()
    except IntegrityError:
        # outra requisição criou a linha do mês ao mesmo tempo
        db.rollback()
        logger.debug("[MESSAGE-QUOTA] usage row already created tenant=%s %s/%s", tenant_id, month, year)


def get_current_usage(db: Session, tenant_id: str, now: datetime | None = None) -> int:
    month, year = _usage_period(now)
    row = _usage_row(db, tenant_id, month, year)
    return int(row.messages_sent or 0) if row else 0


def check_limit(db: Session, tenant_id: str, now: datetime | None = None) -> MessageLimitCheck:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if not tenant:
        raise TenantNotFound(tenant_id=tenant_id)

    plan = tenant.plan_type or "basic"
    limit = resolve_plan_limit(tenant)
    current = get_current_usage(db, tenant_id, now)
    plan_name = PLAN_NAMES.get(plan, plan)

    if limit == UNLIMITED:
        return MessageLimitCheck(
            allowed=True,
            current=current,
            limit=UNLIMITED,
            plan=plan,
            plan_name=plan_name,
            percentage=0,
            remaining=UNLIMITED,
        )

    percentage = usage_percentage(current, limit)
    return MessageLimitCheck(
        allowed=current < limit,
        current=current,
        limit=limit,
        plan=plan,
        plan_name=plan_name,
        percentage=percentage,
        remaining=max(0, limit - current),
    )


def try_reserve(
    db: Session,
    tenant_id: str,
    limit: int,
    count: int = 1,
    now: datetime | None = None,
) -> bool:
    """Incrementa o contador do mês só se couber no limite. Um único UPDATE condicional."""
    month, year = _usage_period(now)
    _ensure_usage_row(db, tenant_id, month, year)

    stmt = (
        update(MessageUsage)
        .where(
            MessageUsage.tenant_id == tenant_id,
            MessageUsage.month == month,
            MessageUsage.year == year,
        )
        .values(messages_sent=MessageUsage.messages_sent + count)
        .execution_options(synchronize_session=False)
    )
    if limit != UNLIMITED:
        stmt = stmt.where(MessageUsage.messages_sent + count <= limit)

    result = db.execute(stmt)
    db.commit()
    reserved = result.rowcount == 1
    if not reserved:
        logger.info("[MESSAGE-QUOTA] reserva recusada tenant=%s limit=%s", tenant_id, limit)
    return reserved


def increment_usage(db: Session, tenant_id: str, count: int = 1, now: datetime | None = None) -> None:
    try_reserve(db, tenant_id, UNLIMITED, count=count, now=now)


def release(db: Session, tenant_id: str, count: int = 1, now: datetime | None = None) -> None:
    month, year = _usage_period(now)
    db.execute(
        update(MessageUsage)
        .where(
            MessageUsage.tenant_id == tenant_id,
            MessageUsage.month == month,
            MessageUsage.year == year,
            MessageUsage.messages_sent >= count,
        )
        .values(messages_sent=MessageUsage.messages_sent - count)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def get_usage_stats(db: Session, tenant_id: str, now: datetime | None = None) -> dict[str, Any]:
    check = check_limit(db, tenant_id, now)
    month, year = _usage_period(now)
    stats = check.as_dict()
    stats["month"] = month
    stats["year"] = year
    return stats


def format_quota_error(check: MessageLimitCheck) -> str:
    return (
        f"Limite de mensagens excedido. Plano: {check.plan_name} "
        f"({check.current}/{check.limit} mensagens usadas). Entre em contato para fazer upgrade."
    )
