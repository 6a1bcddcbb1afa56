"""Fee installment: one dated slice of a student fee structure. Status is derived, never stored."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, Numeric, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from fee_engine.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeeInstallment(Base):
    __tablename__ = "fee_installments"
    __table_args__ = (
        # A second concurrent generation for the same structure collides here
        UniqueConstraint(
            "fee_structure_id",
            "installment_number",
            name="uq_fee_installment_structure_number",
        ),
        CheckConstraint("amount >= 0", name="chk_fee_installment_amount"),
        CheckConstraint(
            "paid_amount >= 0 AND paid_amount <= amount",
            name="chk_fee_installment_paid_amount",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    fee_structure_id = Column(
        Uuid,
        ForeignKey("student_fee_structures.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    installment_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    fee_structure = relationship("StudentFeeStructure", back_populates="installments")
    payments = relationship(
        "InstallmentPayment",
        order_by="InstallmentPayment.created_at",
        back_populates="installment",
    )
