from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint, func

from pedidos_express.core.database import Base


class MessageUsage(Base):
    __tablename__ = "message_usage"
    __table_args__ = (UniqueConstraint("tenant_id", "month", "year", name="uq_message_usage_tenant_month_year"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(String(36), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    messages_sent = Column(Integer, nullable=False, default=0)
    conversations_started = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
