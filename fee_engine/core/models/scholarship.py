"""Scholarship definitions and their per-student, per-session assignments."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from fee_engine.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Scholarship(Base):
    """
    Discount rule. component_id narrows the discount basis to one fee component;
    NULL means the whole gross amount. component_waiver always names a component.
    """

    __tablename__ = "scholarships"
    __table_args__ = (
        CheckConstraint(
            "discount_type IN ('percentage','fixed_amount','component_waiver')",
            name="chk_scholarship_discount_type",
        ),
        CheckConstraint(
            "discount_type <> 'component_waiver' OR component_id IS NOT NULL",
            name="chk_scholarship_waiver_component",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    basis = Column(String(30), nullable=False)  # merit, need_based, sports, ...
    component_id = Column(Uuid, ForeignKey("fee_components.id", ondelete="RESTRICT"), nullable=True)
    max_amount = Column(Numeric(12, 2), nullable=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    fee_component = relationship("FeeComponent")


class StudentScholarship(Base):
    """Scholarship granted to a student for one academic session. Applied in created_at order."""

    __tablename__ = "student_scholarships"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, nullable=False, index=True)
    student_id = Column(Uuid, nullable=False, index=True)
    scholarship_id = Column(Uuid, ForeignKey("scholarships.id", ondelete="RESTRICT"), nullable=False)
    session_id = Column(Uuid, nullable=False)
    remarks = Column(Text, nullable=True)
    approved_by = Column(Uuid, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    scholarship = relationship("Scholarship")


Index(
    "uq_student_scholarship_active",
    StudentScholarship.tenant_id,
    StudentScholarship.student_id,
    StudentScholarship.session_id,
    StudentScholarship.scholarship_id,
    unique=True,
    postgresql_where=StudentScholarship.is_active.is_(True),
    sqlite_where=StudentScholarship.is_active.is_(True),
)
