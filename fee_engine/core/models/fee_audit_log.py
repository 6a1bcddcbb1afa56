"""Fee audit log: immutable financial change tracking for audit safety."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from fee_engine.db.session import Base


class FeeAuditLog(Base):
    """Immutable audit trail for fee-related financial changes."""

    __tablename__ = "fee_audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    reference_table = Column(String(50), nullable=False)
    reference_id = Column(Uuid, nullable=False)
    action_type = Column(String(30), nullable=False)  # CREATE, UPDATE, DEACTIVATE, DELETE
    old_value = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    new_value = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    changed_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
