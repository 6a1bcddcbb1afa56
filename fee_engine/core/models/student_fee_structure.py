"""Student fee structure: frozen per-student, per-session snapshot of gross, discounts and net."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from fee_engine.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StudentFeeStructure(Base):
    """
    gross_amount, scholarship_amount and net_amount are fixed at build time.
    Rebuilding replaces the row (old one deactivated) instead of editing it.
    """

    __tablename__ = "student_fee_structures"
    __table_args__ = (
        CheckConstraint(
            "source IN ('batch_default','custom')",
            name="chk_student_fee_structure_source",
        ),
        CheckConstraint("net_amount >= 0", name="chk_student_fee_structure_net"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    student_id = Column(Uuid, nullable=False, index=True)
    session_id = Column(Uuid, nullable=False)
    batch_id = Column(Uuid, nullable=True, index=True)
    source = Column(String(20), nullable=False)
    batch_fee_structure_id = Column(
        Uuid,
        ForeignKey("batch_fee_structures.id", ondelete="SET NULL"),
        nullable=True,
    )
    gross_amount = Column(Numeric(12, 2), nullable=False)
    scholarship_amount = Column(Numeric(12, 2), nullable=False, default=0)
    custom_discount_type = Column(String(20), nullable=True)  # percentage, fixed_amount
    custom_discount_value = Column(Numeric(12, 2), nullable=True)
    custom_discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    custom_discount_remarks = Column(Text, nullable=True)
    net_amount = Column(Numeric(12, 2), nullable=False)
    remarks = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    line_items = relationship(
        "StudentFeeLineItem",
        order_by="StudentFeeLineItem.position",
        cascade="all, delete-orphan",
        back_populates="fee_structure",
    )
    scholarship_discounts = relationship(
        "StudentScholarshipDiscount",
        order_by="StudentScholarshipDiscount.position",
        cascade="all, delete-orphan",
        back_populates="fee_structure",
    )
    installments = relationship(
        "FeeInstallment",
        order_by="FeeInstallment.installment_number",
        cascade="all, delete-orphan",
        back_populates="fee_structure",
    )


class StudentFeeLineItem(Base):
    """Component amount captured at build time; survives component deactivation."""

    __tablename__ = "student_fee_line_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    fee_structure_id = Column(
        Uuid,
        ForeignKey("student_fee_structures.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    fee_component_id = Column(Uuid, ForeignKey("fee_components.id", ondelete="RESTRICT"), nullable=False)
    component_name = Column(String(100), nullable=False)
    component_type = Column(String(30), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    original_amount = Column(Numeric(12, 2), nullable=False)
    adjusted_amount = Column(Numeric(12, 2), nullable=False)
    waived = Column(Boolean, nullable=False, default=False)
    waiver_reason = Column(Text, nullable=True)

    fee_structure = relationship("StudentFeeStructure", back_populates="line_items")


class StudentScholarshipDiscount(Base):
    """Resolved discount of one scholarship assignment at build time."""

    __tablename__ = "student_scholarship_discounts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    fee_structure_id = Column(
        Uuid,
        ForeignKey("student_fee_structures.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_scholarship_id = Column(
        Uuid,
        ForeignKey("student_scholarships.id", ondelete="RESTRICT"),
        nullable=False,
    )
    scholarship_name = Column(String(100), nullable=False)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False)

    fee_structure = relationship("StudentFeeStructure", back_populates="scholarship_discounts")


Index(
    "uq_student_fee_structure_active",
    StudentFeeStructure.tenant_id,
    StudentFeeStructure.student_id,
    StudentFeeStructure.session_id,
    unique=True,
    postgresql_where=StudentFeeStructure.is_active.is_(True),
    sqlite_where=StudentFeeStructure.is_active.is_(True),
)
