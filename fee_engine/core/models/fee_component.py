"""Fee component registry (Tuition, Transport, Exam, ...). Tenant-scoped."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text, Uuid, func

from fee_engine.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeeComponent(Base):
    """Named fee line item type. Soft delete via is_active; structures snapshot name and amount."""

    __tablename__ = "fee_components"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    # Stored as string; values from FeeComponentType
    type = Column(String(30), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


# One active component per name (case-insensitive) per tenant
Index(
    "uq_fee_component_active_name",
    FeeComponent.tenant_id,
    func.lower(FeeComponent.name),
    unique=True,
    postgresql_where=FeeComponent.is_active.is_(True),
    sqlite_where=FeeComponent.is_active.is_(True),
)
