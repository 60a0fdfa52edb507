import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Index, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from pedidos_express.core.database import Base
from pedidos_express.models.base import new_uuid


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_uuid)
    tenant_id = Column(String(36), index=True, nullable=False)

    customer_name = Column(String, default="", nullable=False)
    customer_phone = Column(String, index=True, nullable=False)

    # [{"name": ..., "quantity": ..., "price": ...}]
    items = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    total_price = Column(Numeric(10, 2), nullable=False, default=0)

    # pending / printed / out_for_delivery / finished
    status = Column(String, default="pending", nullable=False)
    order_type = Column(String(20), nullable=True)  # delivery / pickup
    delivery_address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    print_requested_at = Column(DateTime(timezone=True), nullable=True)

    daily_sequence = Column(Integer, nullable=True)
    display_id = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


Index("ix_orders_tenant_created", Order.tenant_id, Order.created_at)
Index("ix_orders_tenant_scheduled", Order.tenant_id, Order.scheduled_at)
