"""
Fee structure service.

Batch structures hold default component amounts. Student structures are frozen
snapshots: component names and amounts, every resolved scholarship discount and
the resulting net are written once at build time. Changing a component or a
scholarship afterwards does not touch existing structures; they must be rebuilt
with overwrite_existing.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fee_engine.core.enums import FeeStructureSource
from fee_engine.core.exceptions import (
    DuplicateStructure,
    FeeComponentNotFound,
    FeeStructureNotFound,
    InactiveReference,
    ServiceError,
    ValidationError,
)
from fee_engine.core.models import (
    BatchFeeLineItem,
    BatchFeeStructure,
    FeeAuditLog,
    StudentFeeLineItem,
    StudentFeeStructure,
    StudentScholarshipDiscount,
)
from fee_engine.api.v1.fee_components.service import get_components_by_ids
from fee_engine.api.v1.installments.service import drop_unpaid_installments, installment_to_response
from fee_engine.api.v1.scholarships.service import load_scholarship_rules

from .builder import CustomDiscount, LineInput, build_amounts
from .schemas import (
    ApplyBatchStructureRequest,
    ApplyBatchStructureResponse,
    ApplyFailure,
    BatchFeeStructureCreate,
    BatchFeeStructureResponse,
    BatchLineItemResponse,
    ScholarshipDiscountResponse,
    StudentFeeStructureCreate,
    StudentFeeStructureResponse,
    StudentLineItemResponse,
)

logger = logging.getLogger(__name__)


async def _components_for(db: AsyncSession, tenant_id: UUID, component_ids: List[UUID]) -> dict:
    """Active components for a new structure, keyed by id."""
    if len(set(component_ids)) != len(component_ids):
        raise ValidationError("A fee component can appear only once in a structure")
    components = await get_components_by_ids(db, tenant_id, component_ids)
    for cid in component_ids:
        fc = components.get(cid)
        if fc is None:
            raise FeeComponentNotFound(f"Fee component {cid} not found")
        if not fc.is_active:
            raise InactiveReference(f"Fee component '{fc.name}' is inactive")
    return components


# ----- Batch structures -----
def _batch_to_response(s: BatchFeeStructure) -> BatchFeeStructureResponse:
    return BatchFeeStructureResponse(
        id=s.id,
        tenant_id=s.tenant_id,
        batch_id=s.batch_id,
        session_id=s.session_id,
        name=s.name,
        total_amount=s.total_amount,
        is_active=s.is_active,
        line_items=[
            BatchLineItemResponse(
                fee_component_id=li.fee_component_id,
                component_name=li.fee_component.name,
                component_type=li.fee_component.type,
                position=li.position,
                amount=li.amount,
            )
            for li in s.line_items
        ],
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


def _batch_query():
    return select(BatchFeeStructure).options(
        selectinload(BatchFeeStructure.line_items).selectinload(BatchFeeLineItem.fee_component)
    )


async def _get_batch_structure(db: AsyncSession, tenant_id: UUID, structure_id: UUID) -> BatchFeeStructure:
    s = (
        await db.execute(
            _batch_query()
            .where(BatchFeeStructure.id == structure_id, BatchFeeStructure.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not s:
        raise FeeStructureNotFound("Batch fee structure not found")
    return s


async def create_batch_structure(
    db: AsyncSession,
    tenant_id: UUID,
    payload: BatchFeeStructureCreate,
    changed_by: Optional[UUID] = None,
) -> BatchFeeStructureResponse:
    existing = (
        await db.execute(
            select(BatchFeeStructure.id).where(
                BatchFeeStructure.tenant_id == tenant_id,
                BatchFeeStructure.batch_id == payload.batch_id,
                BatchFeeStructure.session_id == payload.session_id,
                BatchFeeStructure.is_active.is_(True),
            )
        )
    ).scalar_one_or_none()
    if existing:
        raise DuplicateStructure("An active fee structure already exists for this batch and session")
    await _components_for(db, tenant_id, [li.fee_component_id for li in payload.line_items])

    total = sum((li.amount for li in payload.line_items), Decimal("0"))
    s = BatchFeeStructure(
        tenant_id=tenant_id,
        batch_id=payload.batch_id,
        session_id=payload.session_id,
        name=payload.name.strip(),
        total_amount=total,
        is_active=True,
        line_items=[
            BatchFeeLineItem(fee_component_id=li.fee_component_id, position=pos, amount=li.amount)
            for pos, li in enumerate(payload.line_items)
        ],
    )
    try:
        db.add(s)
        await db.flush()
        db.add(
            FeeAuditLog(
                tenant_id=tenant_id,
                reference_table="batch_fee_structures",
                reference_id=s.id,
                action_type="CREATE",
                new_value={
                    "batch_id": str(payload.batch_id),
                    "session_id": str(payload.session_id),
                    "total_amount": str(total),
                },
                changed_by=changed_by,
            )
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateStructure("An active fee structure already exists for this batch and session")
    logger.info("Created batch fee structure %s for batch %s (total %s)", s.id, payload.batch_id, total)
    return _batch_to_response(await _get_batch_structure(db, tenant_id, s.id))


async def list_batch_structures(
    db: AsyncSession,
    tenant_id: UUID,
    session_id: Optional[UUID] = None,
    batch_id: Optional[UUID] = None,
    active_only: bool = True,
) -> List[BatchFeeStructureResponse]:
    stmt = _batch_query().where(BatchFeeStructure.tenant_id == tenant_id)
    if session_id is not None:
        stmt = stmt.where(BatchFeeStructure.session_id == session_id)
    if batch_id is not None:
        stmt = stmt.where(BatchFeeStructure.batch_id == batch_id)
    if active_only:
        stmt = stmt.where(BatchFeeStructure.is_active.is_(True))
    stmt = stmt.order_by(BatchFeeStructure.created_at)
    result = await db.execute(stmt)
    return [_batch_to_response(s) for s in result.scalars().all()]


async def get_batch_structure(db: AsyncSession, tenant_id: UUID, structure_id: UUID) -> BatchFeeStructureResponse:
    return _batch_to_response(await _get_batch_structure(db, tenant_id, structure_id))


async def get_batch_structure_for_batch(
    db: AsyncSession,
    tenant_id: UUID,
    batch_id: UUID,
    session_id: UUID,
) -> BatchFeeStructureResponse:
    s = (
        await db.execute(
            _batch_query().where(
                BatchFeeStructure.tenant_id == tenant_id,
                BatchFeeStructure.batch_id == batch_id,
                BatchFeeStructure.session_id == session_id,
                BatchFeeStructure.is_active.is_(True),
            )
        )
    ).scalar_one_or_none()
    if not s:
        raise FeeStructureNotFound("No active fee structure for this batch and session")
    return _batch_to_response(s)


async def deactivate_batch_structure(
    db: AsyncSession,
    tenant_id: UUID,
    structure_id: UUID,
    changed_by: Optional[UUID] = None,
) -> BatchFeeStructureResponse:
    """Student structures already built from it are left as they are."""
    s = await _get_batch_structure(db, tenant_id, structure_id)
    if s.is_active:
        s.is_active = False
        db.add(
            FeeAuditLog(
                tenant_id=tenant_id,
                reference_table="batch_fee_structures",
                reference_id=s.id,
                action_type="DEACTIVATE",
                old_value={"is_active": True},
                new_value={"is_active": False},
                changed_by=changed_by,
            )
        )
        await db.commit()
    return _batch_to_response(await _get_batch_structure(db, tenant_id, structure_id))


# ----- Student structures -----
def student_structure_to_response(s: StudentFeeStructure, today: date) -> StudentFeeStructureResponse:
    return StudentFeeStructureResponse(
        id=s.id,
        tenant_id=s.tenant_id,
        student_id=s.student_id,
        session_id=s.session_id,
        batch_id=s.batch_id,
        source=s.source,
        batch_fee_structure_id=s.batch_fee_structure_id,
        gross_amount=s.gross_amount,
        scholarship_amount=s.scholarship_amount,
        custom_discount_type=s.custom_discount_type,
        custom_discount_value=s.custom_discount_value,
        custom_discount_amount=s.custom_discount_amount,
        custom_discount_remarks=s.custom_discount_remarks,
        net_amount=s.net_amount,
        remarks=s.remarks,
        is_active=s.is_active,
        created_at=s.created_at,
        line_items=[StudentLineItemResponse.model_validate(li) for li in s.line_items],
        scholarship_discounts=[ScholarshipDiscountResponse.model_validate(d) for d in s.scholarship_discounts],
        installments=[installment_to_response(i, today) for i in s.installments],
    )


def _student_query():
    return select(StudentFeeStructure).options(
        selectinload(StudentFeeStructure.line_items),
        selectinload(StudentFeeStructure.scholarship_discounts),
        selectinload(StudentFeeStructure.installments),
    )


async def _invalidate_existing(
    db: AsyncSession,
    existing: StudentFeeStructure,
    changed_by: Optional[UUID],
) -> None:
    """Deactivate a structure being rebuilt and drop its unpaid schedule."""
    await drop_unpaid_installments(
        db, existing.id, "Payments are recorded against the existing fee structure; it cannot be replaced"
    )
    existing.is_active = False
    db.add(
        FeeAuditLog(
            tenant_id=existing.tenant_id,
            reference_table="student_fee_structures",
            reference_id=existing.id,
            action_type="DEACTIVATE",
            old_value={"is_active": True, "net_amount": str(existing.net_amount)},
            new_value={"is_active": False, "reason": "overwritten"},
            changed_by=changed_by,
        )
    )
    # the partial unique index must see the old row inactive before the new insert
    await db.flush()


async def _build_and_persist(
    db: AsyncSession,
    tenant_id: UUID,
    *,
    student_id: UUID,
    session_id: UUID,
    batch_id: Optional[UUID],
    source: FeeStructureSource,
    lines: Sequence[LineInput],
    custom_discount: Optional[CustomDiscount] = None,
    batch_fee_structure_id: Optional[UUID] = None,
    remarks: Optional[str] = None,
    overwrite_existing: bool = False,
    created_by: Optional[UUID] = None,
) -> StudentFeeStructure:
    """Resolve and write one student structure. Does not commit."""
    existing = (
        await db.execute(
            select(StudentFeeStructure).where(
                StudentFeeStructure.tenant_id == tenant_id,
                StudentFeeStructure.student_id == student_id,
                StudentFeeStructure.session_id == session_id,
                StudentFeeStructure.is_active.is_(True),
            )
        )
    ).scalar_one_or_none()
    if existing is not None:
        if not overwrite_existing:
            raise DuplicateStructure("Student already has an active fee structure for this session")
        await _invalidate_existing(db, existing, created_by)

    rules = await load_scholarship_rules(db, tenant_id, student_id, session_id)
    amounts = build_amounts(lines, rules, custom_discount)

    s = StudentFeeStructure(
        tenant_id=tenant_id,
        student_id=student_id,
        session_id=session_id,
        batch_id=batch_id,
        source=source.value,
        batch_fee_structure_id=batch_fee_structure_id,
        gross_amount=amounts.gross_amount,
        scholarship_amount=amounts.scholarship_amount,
        custom_discount_type=custom_discount.discount_type if custom_discount else None,
        custom_discount_value=custom_discount.value if custom_discount else None,
        custom_discount_amount=amounts.custom_discount_amount,
        custom_discount_remarks=custom_discount.remarks if custom_discount else None,
        net_amount=amounts.net_amount,
        remarks=remarks,
        is_active=True,
        created_by=created_by,
        line_items=[
            StudentFeeLineItem(
                fee_component_id=line.component_id,
                component_name=line.component_name,
                component_type=line.component_type,
                position=pos,
                original_amount=line.original_amount,
                adjusted_amount=line.effective_amount,
                waived=line.waived,
                waiver_reason=line.waiver_reason,
            )
            for pos, line in enumerate(lines)
        ],
        scholarship_discounts=[
            StudentScholarshipDiscount(
                student_scholarship_id=d.rule.assignment_id,
                scholarship_name=d.rule.name,
                discount_type=d.rule.discount_type,
                discount_value=d.rule.value,
                position=pos,
                discount_amount=d.amount,
            )
            for pos, d in enumerate(amounts.discounts)
        ],
    )
    db.add(s)
    await db.flush()
    db.add(
        FeeAuditLog(
            tenant_id=tenant_id,
            reference_table="student_fee_structures",
            reference_id=s.id,
            action_type="CREATE",
            new_value={
                "student_id": str(student_id),
                "session_id": str(session_id),
                "source": source.value,
                "gross_amount": str(amounts.gross_amount),
                "scholarship_amount": str(amounts.scholarship_amount),
                "custom_discount_amount": str(amounts.custom_discount_amount),
                "net_amount": str(amounts.net_amount),
            },
            changed_by=created_by,
        )
    )
    return s


async def create_student_structure(
    db: AsyncSession,
    tenant_id: UUID,
    payload: StudentFeeStructureCreate,
    today: date,
    created_by: Optional[UUID] = None,
) -> StudentFeeStructureResponse:
    components = await _components_for(db, tenant_id, [li.fee_component_id for li in payload.line_items])
    lines = [
        LineInput(
            component_id=li.fee_component_id,
            original_amount=li.amount,
            adjusted_amount=li.adjusted_amount,
            waived=li.waived,
            component_name=components[li.fee_component_id].name,
            component_type=components[li.fee_component_id].type,
            waiver_reason=(li.waiver_reason or "").strip() or None,
        )
        for li in payload.line_items
    ]
    custom = None
    if payload.custom_discount is not None:
        custom = CustomDiscount(
            discount_type=payload.custom_discount.discount_type.value,
            value=payload.custom_discount.value,
            remarks=(payload.custom_discount.remarks or "").strip() or None,
        )
    try:
        s = await _build_and_persist(
            db,
            tenant_id,
            student_id=payload.student_id,
            session_id=payload.session_id,
            batch_id=payload.batch_id,
            source=FeeStructureSource.CUSTOM,
            lines=lines,
            custom_discount=custom,
            remarks=(payload.remarks or "").strip() or None,
            overwrite_existing=payload.overwrite_existing,
            created_by=created_by,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateStructure("Student already has an active fee structure for this session")
    except ServiceError:
        await db.rollback()
        raise
    logger.info(
        "Built fee structure %s for student %s: gross %s, net %s",
        s.id, payload.student_id, s.gross_amount, s.net_amount,
    )
    return await get_student_structure(db, tenant_id, s.id, today)


async def apply_batch_structure(
    db: AsyncSession,
    tenant_id: UUID,
    payload: ApplyBatchStructureRequest,
    created_by: Optional[UUID] = None,
) -> ApplyBatchStructureResponse:
    """
    Build a student structure from the batch defaults for each student.

    Every student is committed or rolled back on its own; one failure never
    undoes the students already applied.
    """
    batch = await _get_batch_structure(db, tenant_id, payload.batch_structure_id)
    if not batch.is_active:
        raise InactiveReference("Batch fee structure is inactive")
    for li in batch.line_items:
        if not li.fee_component.is_active:
            raise InactiveReference(f"Fee component '{li.fee_component.name}' is inactive")

    # plain values only: a rollback expires every ORM instance in the session
    batch_id = batch.batch_id
    batch_structure_id = batch.id
    session_id = batch.session_id
    lines = [
        LineInput(
            component_id=li.fee_component_id,
            original_amount=li.amount,
            component_name=li.fee_component.name,
            component_type=li.fee_component.type,
        )
        for li in batch.line_items
    ]

    applied = 0
    failures: List[ApplyFailure] = []
    for student_id in dict.fromkeys(payload.student_ids):
        try:
            await _build_and_persist(
                db,
                tenant_id,
                student_id=student_id,
                session_id=session_id,
                batch_id=batch_id,
                source=FeeStructureSource.BATCH_DEFAULT,
                lines=lines,
                batch_fee_structure_id=batch_structure_id,
                overwrite_existing=payload.overwrite_existing,
                created_by=created_by,
            )
            await db.commit()
            applied += 1
        except ServiceError as e:
            await db.rollback()
            logger.warning("Skipped student %s for batch structure %s: %s", student_id, batch_structure_id, e.message)
            failures.append(ApplyFailure(student_id=student_id, reason=e.message))
        except IntegrityError:
            await db.rollback()
            logger.warning("Skipped student %s for batch structure %s: concurrent build", student_id, batch_structure_id)
            failures.append(
                ApplyFailure(student_id=student_id, reason="Student already has an active fee structure for this session")
            )

    skipped = len(failures)
    logger.info(
        "Applied batch structure %s: %d applied, %d skipped", batch_structure_id, applied, skipped
    )
    return ApplyBatchStructureResponse(
        applied=applied,
        skipped=skipped,
        message=f"Fee structure applied to {applied} student(s), {skipped} skipped",
        failures=failures,
    )


async def get_student_structure_model(
    db: AsyncSession,
    tenant_id: UUID,
    structure_id: UUID,
) -> StudentFeeStructure:
    s = (
        await db.execute(
            _student_query()
            .where(StudentFeeStructure.id == structure_id, StudentFeeStructure.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not s:
        raise FeeStructureNotFound("Student fee structure not found")
    return s


async def get_student_structure(
    db: AsyncSession,
    tenant_id: UUID,
    structure_id: UUID,
    today: date,
) -> StudentFeeStructureResponse:
    return student_structure_to_response(await get_student_structure_model(db, tenant_id, structure_id), today)


async def get_student_structures(
    db: AsyncSession,
    tenant_id: UUID,
    student_id: UUID,
    today: date,
    session_id: Optional[UUID] = None,
) -> List[StudentFeeStructureResponse]:
    stmt = _student_query().where(
        StudentFeeStructure.tenant_id == tenant_id,
        StudentFeeStructure.student_id == student_id,
        StudentFeeStructure.is_active.is_(True),
    )
    if session_id is not None:
        stmt = stmt.where(StudentFeeStructure.session_id == session_id)
    stmt = stmt.order_by(StudentFeeStructure.created_at).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return [student_structure_to_response(s, today) for s in result.scalars().all()]
