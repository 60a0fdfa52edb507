from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from pedidos_express.core.config import ENFORCE_PRINT_OWNERSHIP
from pedidos_express.models.order import Order
from pedidos_express.services.orders import get_order, get_order_for_tenant

logger = logging.getLogger(__name__)

PENDING = "pending"
PRINTED = "printed"
OUT_FOR_DELIVERY = "out_for_delivery"
FINISHED = "finished"

ORDER_STATUSES = (PENDING, PRINTED, OUT_FOR_DELIVERY, FINISHED)

# Arestas para frente; reprint (qualquer -> pending) é tratado à parte.
FORWARD_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {PRINTED, OUT_FOR_DELIVERY},
    PRINTED: {OUT_FOR_DELIVERY},
    OUT_FOR_DELIVERY: {FINISHED},
    FINISHED: set(),
}


def is_forward_transition(current: str | None, new: str) -> bool:
    return new in FORWARD_TRANSITIONS.get(current or PENDING, set())


def can_transition(current: str | None, new: str) -> bool:
    if current == FINISHED:
        return False
    if new == PENDING:
        return True
    return is_forward_transition(current, new)


def _print_owner_check(db: Session, order_id: str, tenant_id: str | None) -> Order:
    if ENFORCE_PRINT_OWNERSHIP:
        return get_order_for_tenant(db, order_id, tenant_id)
    return get_order(db, order_id)


def _log_transition(tag: str, order: Order, previous_status: str | None) -> None:
    if previous_status != order.status and not can_transition(previous_status, order.status):
        logger.warning(
            "[%s] transição fora do fluxo order=%s %s -> %s",
            tag,
            order.id,
            previous_status,
            order.status,
            extra={"order_id": order.id},
        )
    else:
        logger.info("[%s] order=%s %s -> %s", tag, order.id, previous_status, order.status, extra={"order_id": order.id})


def request_print(db: Session, order_id: str) -> Order:
    order = get_order(db, order_id)
    order.print_requested_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(order)
    logger.info("[REQUEST-PRINT] order=%s", order.id, extra={"order_id": order.id})
    return order


def mark_printed(db: Session, order_id: str, tenant_id: str | None) -> Order:
    order = get_order_for_tenant(db, order_id, tenant_id)
    previous_status = order.status
    order.status = PRINTED
    order.print_requested_at = None
    db.commit()
    db.refresh(order)
    _log_transition("MARK-PRINTED", order, previous_status)
    return order


def clear_print_request(db: Session, order_id: str, tenant_id: str | None = None) -> Order:
    order = _print_owner_check(db, order_id, tenant_id)
    order.print_requested_at = None
    db.commit()
    db.refresh(order)
    return order


def update_status(db: Session, order_id: str, new_status: str) -> tuple[Order, str | None]:
    order = get_order(db, order_id)
    previous_status = order.status
    order.status = new_status
    db.commit()
    db.refresh(order)
    _log_transition("UPDATE-STATUS", order, previous_status)
    return order, previous_status


def mark_out_for_delivery(db: Session, order_id: str) -> tuple[Order, str | None]:
    return update_status(db, order_id, OUT_FOR_DELIVERY)


def reprint(db: Session, order_id: str, tenant_id: str | None = None) -> Order:
    order = _print_owner_check(db, order_id, tenant_id)
    previous_status = order.status
    order.status = PENDING
    db.commit()
    db.refresh(order)
    _log_transition("REPRINT", order, previous_status)
    return order


def entered_out_for_delivery(order: Order, previous_status: str | None) -> bool:
    return order.status == OUT_FOR_DELIVERY and previous_status != OUT_FOR_DELIVERY
