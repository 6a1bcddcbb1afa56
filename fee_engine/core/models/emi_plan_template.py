"""EMI plan template: reusable percentage split with day offsets from a start date."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from fee_engine.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EMIPlanTemplate(Base):
    """split_config is an ordered list of {"percent": "40", "due_days_from_start": 0}; validated on write."""

    __tablename__ = "emi_plan_templates"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    installment_count = Column(Integer, nullable=False)
    split_config = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


Index(
    "uq_emi_plan_template_default",
    EMIPlanTemplate.tenant_id,
    unique=True,
    postgresql_where=EMIPlanTemplate.is_default.is_(True),
    sqlite_where=EMIPlanTemplate.is_default.is_(True),
)
