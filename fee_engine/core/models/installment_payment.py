"""Installment payment: append-only record of money received against one installment."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from fee_engine.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InstallmentPayment(Base):
    __tablename__ = "installment_payments"
    __table_args__ = (CheckConstraint("amount > 0", name="chk_installment_payment_amount"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    installment_id = Column(
        Uuid,
        ForeignKey("fee_installments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_mode = Column(String(20), nullable=False)  # cash, upi, bank, card, cheque
    transaction_id = Column(String(100), nullable=True)
    remarks = Column(Text, nullable=True)
    received_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    installment = relationship("FeeInstallment", back_populates="payments")
