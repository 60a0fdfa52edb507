from sqlalchemy import Boolean, Column, DateTime, Integer, String, func

from pedidos_express.core.database import Base
from pedidos_express.models.base import new_uuid


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    api_key = Column(String, unique=True, index=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Plano: basic / complete / premium
    plan_type = Column(String(20), nullable=False, default="basic")
    # Sobrescreve o limite da tabela de planos quando preenchido
    plan_message_limit = Column(Integer, nullable=True)
    subscription_status = Column(String(30), nullable=True)

    whatsapp_phone_number_id = Column(String, nullable=True)
    whatsapp_access_token = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
