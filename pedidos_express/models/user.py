from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint

from pedidos_express.core.database import Base
from pedidos_express.models.base import new_uuid


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("tenant_id", "username", name="uq_users_tenant_username"),)

    id = Column(String(36), primary_key=True, default=new_uuid)
    # NULL = usuário master (super admin), enxerga todos os tenants
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)

    username = Column(String, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    name = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default="admin")
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def is_master(self) -> bool:
        return self.tenant_id is None
