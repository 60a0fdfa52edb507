from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from pedidos_express.core.database import get_db
from pedidos_express.deps import get_auth_user
from pedidos_express.models.tenant import Tenant
from pedidos_express.models.user import User
from pedidos_express.services.message_quota import get_usage_stats

router = APIRouter(prefix="/api", tags=["message-usage"])
logger = logging.getLogger(__name__)


@router.get("/message-usage")
def message_usage(
    user: User = Depends(get_auth_user),
    db: Session = Depends(get_db),
):
    try:
        if user.tenant_id:
            stats = get_usage_stats(db, user.tenant_id)
            stats["tenant_id"] = user.tenant_id
            return {"success": True, "usage": [stats]}

        # master: todos os tenants ativos
        tenants = (
            db.query(Tenant)
            .filter(Tenant.is_active.is_(True))
            .order_by(Tenant.created_at.asc())
            .all()
        )
        usage = []
        for tenant in tenants:
            stats = get_usage_stats(db, tenant.id)
            stats["tenant_id"] = tenant.id
            stats["tenant_name"] = tenant.name
            usage.append(stats)
        return {"success": True, "usage": usage}
    except Exception as exc:
        db.rollback()
        logger.exception("[MESSAGE-USAGE] erro ao buscar uso user=%s", user.id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Erro ao buscar uso", "message": str(exc)},
        )
