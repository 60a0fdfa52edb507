from __future__ import annotations

from fastapi import APIRouter

from pedidos_express.core.metrics import request_metrics

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("")
def metrics():
    return {
        "endpoints": request_metrics.snapshot(),
        "counters": request_metrics.counters(),
    }


@router.get("/tenants")
def tenant_metrics():
    return {"tenants": request_metrics.snapshot_per_tenant()}
