"""Batch fee structure: default component amounts for every student of a batch in a session."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from fee_engine.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchFeeStructure(Base):
    __tablename__ = "batch_fee_structures"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    batch_id = Column(Uuid, nullable=False, index=True)
    session_id = Column(Uuid, nullable=False)
    name = Column(String(255), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    line_items = relationship(
        "BatchFeeLineItem",
        order_by="BatchFeeLineItem.position",
        cascade="all, delete-orphan",
        back_populates="batch_fee_structure",
    )


class BatchFeeLineItem(Base):
    __tablename__ = "batch_fee_line_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    batch_fee_structure_id = Column(
        Uuid,
        ForeignKey("batch_fee_structures.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    fee_component_id = Column(Uuid, ForeignKey("fee_components.id", ondelete="RESTRICT"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False)

    batch_fee_structure = relationship("BatchFeeStructure", back_populates="line_items")
    fee_component = relationship("FeeComponent")


Index(
    "uq_batch_fee_structure_active",
    BatchFeeStructure.tenant_id,
    BatchFeeStructure.batch_id,
    BatchFeeStructure.session_id,
    unique=True,
    postgresql_where=BatchFeeStructure.is_active.is_(True),
    sqlite_where=BatchFeeStructure.is_active.is_(True),
)
