from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from pedidos_express.core.metrics import request_metrics
from pedidos_express.deps import require_stream_tenant_id
from pedidos_express.services.order_feed import order_feed_events

router = APIRouter(prefix="/api", tags=["orders"])
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/orders/stream")
def stream_orders(request: Request, tenant_id: str = Depends(require_stream_tenant_id)):
    logger.info("[ORDER-STREAM] conexão aberta tenant=%s", tenant_id)
    request_metrics.increment("order_stream.connections")
    return StreamingResponse(
        order_feed_events(request, tenant_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
