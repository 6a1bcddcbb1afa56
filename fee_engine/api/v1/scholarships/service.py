"""Scholarship service: definitions, per-student assignments and the rules fed to the resolver."""

import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fee_engine.core.enums import DiscountType
from fee_engine.core.exceptions import (
    DuplicateScholarshipAssignment,
    FeeComponentNotFound,
    InactiveReference,
    NotFoundError,
    ScholarshipNotFound,
    ValidationError,
)
from fee_engine.core.models import FeeAuditLog, FeeComponent, Scholarship, StudentScholarship

from .resolver import ScholarshipRule
from .schemas import (
    AssignScholarshipRequest,
    ScholarshipCreate,
    ScholarshipResponse,
    ScholarshipUpdate,
    StudentScholarshipResponse,
)

logger = logging.getLogger(__name__)


def _to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def _to_response(s: Scholarship) -> ScholarshipResponse:
    return ScholarshipResponse(
        id=s.id,
        tenant_id=s.tenant_id,
        name=s.name,
        discount_type=s.discount_type,
        basis=s.basis,
        value=_to_decimal(s.discount_value),
        component_id=s.component_id,
        max_amount=_to_decimal(s.max_amount) if s.max_amount is not None else None,
        description=s.description,
        is_active=s.is_active,
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


def _assignment_to_response(ss: StudentScholarship) -> StudentScholarshipResponse:
    return StudentScholarshipResponse(
        id=ss.id,
        tenant_id=ss.tenant_id,
        student_id=ss.student_id,
        scholarship_id=ss.scholarship_id,
        session_id=ss.session_id,
        remarks=ss.remarks,
        approved_by=ss.approved_by,
        is_active=ss.is_active,
        created_at=ss.created_at,
        scholarship=_to_response(ss.scholarship),
    )


def _validate_value(discount_type: str, value: Decimal, max_amount: Optional[Decimal]) -> None:
    if discount_type == DiscountType.PERCENTAGE.value:
        if value <= 0 or value > 100:
            raise ValidationError("Percentage scholarship value must be between 0 and 100")
    elif discount_type == DiscountType.FIXED_AMOUNT.value:
        if value <= 0:
            raise ValidationError("Fixed amount scholarship value must be greater than 0")
        if max_amount is not None:
            raise ValidationError("max_amount only applies to percentage scholarships")
    elif max_amount is not None:
        raise ValidationError("max_amount only applies to percentage scholarships")


async def _get_scholarship(db: AsyncSession, tenant_id: UUID, scholarship_id: UUID) -> Scholarship:
    s = (
        await db.execute(
            select(Scholarship).where(
                Scholarship.id == scholarship_id,
                Scholarship.tenant_id == tenant_id,
            )
        )
    ).scalar_one_or_none()
    if not s:
        raise ScholarshipNotFound("Scholarship not found")
    return s


async def create_scholarship(
    db: AsyncSession,
    tenant_id: UUID,
    payload: ScholarshipCreate,
    changed_by: Optional[UUID] = None,
) -> ScholarshipResponse:
    discount_type = payload.discount_type.value
    value = _to_decimal(payload.value)
    if discount_type == DiscountType.COMPONENT_WAIVER.value:
        if payload.component_id is None:
            raise ValidationError("A component waiver must name the fee component it waives")
        # waivers clear the whole component; the value is informational only
        value = Decimal("100")
    _validate_value(discount_type, value, payload.max_amount)
    if payload.component_id is not None:
        fc = await db.get(FeeComponent, payload.component_id)
        if not fc or fc.tenant_id != tenant_id:
            raise FeeComponentNotFound("Fee component not found")
        if not fc.is_active:
            raise InactiveReference("Fee component is inactive")

    s = Scholarship(
        tenant_id=tenant_id,
        name=payload.name.strip(),
        discount_type=discount_type,
        discount_value=value,
        basis=payload.basis.value,
        component_id=payload.component_id,
        max_amount=payload.max_amount,
        description=(payload.description or "").strip() or None,
        is_active=True,
    )
    db.add(s)
    await db.flush()
    db.add(
        FeeAuditLog(
            tenant_id=tenant_id,
            reference_table="scholarships",
            reference_id=s.id,
            action_type="CREATE",
            new_value={
                "name": s.name,
                "discount_type": discount_type,
                "value": str(value),
                "component_id": str(payload.component_id) if payload.component_id else None,
            },
            changed_by=changed_by,
        )
    )
    await db.commit()
    await db.refresh(s)
    logger.info("Created scholarship %s (%s %s) for tenant %s", s.id, discount_type, value, tenant_id)
    return _to_response(s)


async def list_scholarships(
    db: AsyncSession,
    tenant_id: UUID,
    active_only: bool = True,
) -> List[ScholarshipResponse]:
    stmt = select(Scholarship).where(Scholarship.tenant_id == tenant_id)
    if active_only:
        stmt = stmt.where(Scholarship.is_active.is_(True))
    stmt = stmt.order_by(Scholarship.name)
    result = await db.execute(stmt)
    return [_to_response(s) for s in result.scalars().all()]


async def get_scholarship(db: AsyncSession, tenant_id: UUID, scholarship_id: UUID) -> ScholarshipResponse:
    return _to_response(await _get_scholarship(db, tenant_id, scholarship_id))


async def update_scholarship(
    db: AsyncSession,
    tenant_id: UUID,
    scholarship_id: UUID,
    payload: ScholarshipUpdate,
    changed_by: Optional[UUID] = None,
) -> ScholarshipResponse:
    """Changes apply to structures built afterwards; existing structures keep their snapshot."""
    s = await _get_scholarship(db, tenant_id, scholarship_id)
    old_value = {"value": str(s.discount_value), "max_amount": str(s.max_amount) if s.max_amount is not None else None, "is_active": s.is_active}
    fields = payload.model_dump(exclude_unset=True)
    value = _to_decimal(payload.value) if payload.value is not None else _to_decimal(s.discount_value)
    max_amount = fields["max_amount"] if "max_amount" in fields else s.max_amount
    if s.discount_type != DiscountType.COMPONENT_WAIVER.value:
        _validate_value(s.discount_type, value, max_amount)
        s.discount_value = value
    elif max_amount is not None:
        raise ValidationError("max_amount only applies to percentage scholarships")
    s.max_amount = max_amount
    if payload.name is not None:
        s.name = payload.name.strip()
    if payload.description is not None:
        s.description = payload.description.strip() or None
    if payload.is_active is not None:
        s.is_active = payload.is_active
    db.add(
        FeeAuditLog(
            tenant_id=tenant_id,
            reference_table="scholarships",
            reference_id=s.id,
            action_type="UPDATE",
            old_value=old_value,
            new_value={"value": str(s.discount_value), "max_amount": str(s.max_amount) if s.max_amount is not None else None, "is_active": s.is_active},
            changed_by=changed_by,
        )
    )
    await db.commit()
    await db.refresh(s)
    return _to_response(s)


async def deactivate_scholarship(
    db: AsyncSession,
    tenant_id: UUID,
    scholarship_id: UUID,
    changed_by: Optional[UUID] = None,
) -> ScholarshipResponse:
    return await update_scholarship(
        db, tenant_id, scholarship_id, ScholarshipUpdate(is_active=False), changed_by=changed_by
    )


# --- Student assignments ---
async def assign_scholarship(
    db: AsyncSession,
    tenant_id: UUID,
    payload: AssignScholarshipRequest,
    approved_by: Optional[UUID] = None,
) -> StudentScholarshipResponse:
    s = await _get_scholarship(db, tenant_id, payload.scholarship_id)
    if not s.is_active:
        raise InactiveReference("Scholarship is inactive")
    existing = (
        await db.execute(
            select(StudentScholarship.id).where(
                StudentScholarship.tenant_id == tenant_id,
                StudentScholarship.student_id == payload.student_id,
                StudentScholarship.session_id == payload.session_id,
                StudentScholarship.scholarship_id == payload.scholarship_id,
                StudentScholarship.is_active.is_(True),
            )
        )
    ).scalar_one_or_none()
    if existing:
        raise DuplicateScholarshipAssignment("Scholarship already assigned to this student for the session")
    try:
        ss = StudentScholarship(
            tenant_id=tenant_id,
            student_id=payload.student_id,
            scholarship_id=payload.scholarship_id,
            session_id=payload.session_id,
            remarks=(payload.remarks or "").strip() or None,
            approved_by=approved_by,
            is_active=True,
        )
        db.add(ss)
        await db.flush()
        db.add(
            FeeAuditLog(
                tenant_id=tenant_id,
                reference_table="student_scholarships",
                reference_id=ss.id,
                action_type="CREATE",
                new_value={
                    "student_id": str(payload.student_id),
                    "scholarship_id": str(payload.scholarship_id),
                    "session_id": str(payload.session_id),
                },
                changed_by=approved_by,
            )
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateScholarshipAssignment("Scholarship already assigned to this student for the session")
    logger.info("Assigned scholarship %s to student %s", payload.scholarship_id, payload.student_id)
    return await _get_assignment_response(db, tenant_id, ss.id)


async def _get_assignment_response(db: AsyncSession, tenant_id: UUID, assignment_id: UUID) -> StudentScholarshipResponse:
    ss = (
        await db.execute(
            select(StudentScholarship)
            .options(selectinload(StudentScholarship.scholarship))
            .where(StudentScholarship.id == assignment_id, StudentScholarship.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not ss:
        raise NotFoundError("Scholarship assignment not found")
    return _assignment_to_response(ss)


async def revoke_student_scholarship(
    db: AsyncSession,
    tenant_id: UUID,
    assignment_id: UUID,
    changed_by: Optional[UUID] = None,
) -> StudentScholarshipResponse:
    """Soft delete. Structures already built keep the discount they resolved."""
    ss = (
        await db.execute(
            select(StudentScholarship).where(
                StudentScholarship.id == assignment_id,
                StudentScholarship.tenant_id == tenant_id,
            )
        )
    ).scalar_one_or_none()
    if not ss:
        raise NotFoundError("Scholarship assignment not found")
    if ss.is_active:
        ss.is_active = False
        db.add(
            FeeAuditLog(
                tenant_id=tenant_id,
                reference_table="student_scholarships",
                reference_id=ss.id,
                action_type="DEACTIVATE",
                old_value={"is_active": True},
                new_value={"is_active": False},
                changed_by=changed_by,
            )
        )
        await db.commit()
    return await _get_assignment_response(db, tenant_id, assignment_id)


async def list_student_scholarships(
    db: AsyncSession,
    tenant_id: UUID,
    student_id: UUID,
    session_id: Optional[UUID] = None,
    active_only: bool = True,
) -> List[StudentScholarshipResponse]:
    stmt = (
        select(StudentScholarship)
        .options(selectinload(StudentScholarship.scholarship))
        .where(
            StudentScholarship.tenant_id == tenant_id,
            StudentScholarship.student_id == student_id,
        )
    )
    if session_id is not None:
        stmt = stmt.where(StudentScholarship.session_id == session_id)
    if active_only:
        stmt = stmt.where(StudentScholarship.is_active.is_(True))
    stmt = stmt.order_by(StudentScholarship.created_at, StudentScholarship.id)
    result = await db.execute(stmt)
    return [_assignment_to_response(ss) for ss in result.scalars().all()]


async def load_scholarship_rules(
    db: AsyncSession,
    tenant_id: UUID,
    student_id: UUID,
    session_id: UUID,
) -> List[ScholarshipRule]:
    """Active assignments of active scholarships, in assignment order."""
    rows = (
        await db.execute(
            select(StudentScholarship, Scholarship)
            .join(Scholarship, StudentScholarship.scholarship_id == Scholarship.id)
            .where(
                StudentScholarship.tenant_id == tenant_id,
                StudentScholarship.student_id == student_id,
                StudentScholarship.session_id == session_id,
                StudentScholarship.is_active.is_(True),
                Scholarship.is_active.is_(True),
            )
            .order_by(StudentScholarship.created_at, StudentScholarship.id)
        )
    ).all()
    return [
        ScholarshipRule(
            discount_type=s.discount_type,
            value=_to_decimal(s.discount_value),
            component_id=s.component_id,
            max_amount=_to_decimal(s.max_amount) if s.max_amount is not None else None,
            name=s.name,
            assignment_id=ss.id,
        )
        for ss, s in rows
    ]
