"""Installment generation and the outstanding-installment views."""

import io
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from openpyxl import Workbook
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.core.enums import OUTSTANDING_STATUSES, InstallmentStatus
from fee_engine.core.exceptions import (
    FeeStructureNotFound,
    InactiveReference,
    InstallmentsAlreadyExist,
    PaymentsExist,
    TemplateNotFound,
    ValidationError,
)
from fee_engine.core.models import (
    EMIPlanTemplate,
    FeeAuditLog,
    FeeInstallment,
    InstallmentPayment,
    StudentFeeStructure,
)
from fee_engine.api.v1.emi_templates.service import get_template_model, load_split_config
from fee_engine.api.v1.emi_templates.splitter import expand

from .schemas import (
    DeleteInstallmentsResponse,
    GenerateInstallmentsRequest,
    GenerateInstallmentsResponse,
    InstallmentResponse,
    StudentInstallmentResponse,
)
from .status import derive_status, pending_amount

logger = logging.getLogger(__name__)

PENDING_EXPORT_HEADERS = [
    "student_id",
    "session_id",
    "batch_id",
    "installment_number",
    "due_date",
    "amount",
    "paid_amount",
    "pending_amount",
    "status",
]


def installment_to_response(i: FeeInstallment, today: date) -> InstallmentResponse:
    return InstallmentResponse(
        id=i.id,
        fee_structure_id=i.fee_structure_id,
        installment_number=i.installment_number,
        due_date=i.due_date,
        amount=i.amount,
        paid_amount=i.paid_amount,
        pending_amount=pending_amount(i.amount, i.paid_amount),
        status=derive_status(i.amount, i.paid_amount, i.due_date, today),
    )


def _student_installment_response(
    i: FeeInstallment, s: StudentFeeStructure, today: date
) -> StudentInstallmentResponse:
    base = installment_to_response(i, today)
    return StudentInstallmentResponse(
        **base.model_dump(),
        student_id=s.student_id,
        session_id=s.session_id,
        batch_id=s.batch_id,
    )


async def _get_structure(db: AsyncSession, tenant_id: UUID, fee_structure_id: UUID) -> StudentFeeStructure:
    s = (
        await db.execute(
            select(StudentFeeStructure).where(
                StudentFeeStructure.id == fee_structure_id,
                StudentFeeStructure.tenant_id == tenant_id,
            )
        )
    ).scalar_one_or_none()
    if not s:
        raise FeeStructureNotFound("Student fee structure not found")
    return s


async def _resolve_template(db: AsyncSession, tenant_id: UUID, template_id: Optional[UUID]) -> EMIPlanTemplate:
    if template_id is not None:
        t = await get_template_model(db, tenant_id, template_id)
    else:
        t = (
            await db.execute(
                select(EMIPlanTemplate).where(
                    EMIPlanTemplate.tenant_id == tenant_id,
                    EMIPlanTemplate.is_default.is_(True),
                    EMIPlanTemplate.is_active.is_(True),
                )
            )
        ).scalar_one_or_none()
        if not t:
            raise TemplateNotFound("No template given and no default EMI template is set")
    if not t.is_active:
        raise InactiveReference("EMI template is inactive")
    return t


async def _installment_count(db: AsyncSession, fee_structure_id: UUID) -> int:
    return (
        await db.execute(
            select(func.count(FeeInstallment.id)).where(FeeInstallment.fee_structure_id == fee_structure_id)
        )
    ).scalar_one()


async def generate_installments(
    db: AsyncSession,
    tenant_id: UUID,
    payload: GenerateInstallmentsRequest,
    today: date,
    quantum: Decimal,
    changed_by: Optional[UUID] = None,
) -> GenerateInstallmentsResponse:
    """Expand an EMI template over the structure's net amount and persist the whole schedule at once."""
    s = await _get_structure(db, tenant_id, payload.fee_structure_id)
    if not s.is_active:
        raise InactiveReference("Student fee structure is inactive")
    t = await _resolve_template(db, tenant_id, payload.template_id)
    if await _installment_count(db, s.id):
        raise InstallmentsAlreadyExist("Installments already generated for this fee structure")

    planned = expand(load_split_config(t), s.net_amount, payload.start_date, quantum)
    rows = [
        FeeInstallment(
            tenant_id=tenant_id,
            fee_structure_id=s.id,
            installment_number=p.installment_number,
            due_date=p.due_date,
            amount=p.amount,
            paid_amount=Decimal("0"),
        )
        for p in planned
    ]
    structure_id = s.id
    template_id = t.id
    net_amount = s.net_amount
    try:
        db.add_all(rows)
        await db.flush()
        db.add(
            FeeAuditLog(
                tenant_id=tenant_id,
                reference_table="fee_installments",
                reference_id=structure_id,
                action_type="CREATE",
                new_value={
                    "template_id": str(template_id),
                    "start_date": payload.start_date.isoformat(),
                    "amounts": [str(p.amount) for p in planned],
                },
                changed_by=changed_by,
            )
        )
        await db.commit()
    except IntegrityError:
        # another generation for the same structure won the race
        await db.rollback()
        raise InstallmentsAlreadyExist("Installments already generated for this fee structure")
    logger.info(
        "Generated %d installments for fee structure %s from template %s",
        len(rows), structure_id, template_id,
    )
    return GenerateInstallmentsResponse(
        fee_structure_id=structure_id,
        template_id=template_id,
        net_amount=net_amount,
        installments=[installment_to_response(i, today) for i in rows],
    )


async def _payment_count(db: AsyncSession, fee_structure_id: UUID) -> int:
    return (
        await db.execute(
            select(func.count(InstallmentPayment.id))
            .join(FeeInstallment, InstallmentPayment.installment_id == FeeInstallment.id)
            .where(FeeInstallment.fee_structure_id == fee_structure_id)
        )
    ).scalar_one()


async def drop_unpaid_installments(db: AsyncSession, fee_structure_id: UUID, refusal: str) -> int:
    """Delete a structure's schedule unless a payment is recorded against it. Does not commit.

    The installment rows are locked before payments are counted, so a payment cannot land between
    the check and the delete. The RESTRICT foreign key on payments is the backstop.
    """
    await db.execute(
        select(FeeInstallment.id).where(FeeInstallment.fee_structure_id == fee_structure_id).with_for_update()
    )
    if await _payment_count(db, fee_structure_id):
        raise PaymentsExist(refusal)
    try:
        result = await db.execute(
            delete(FeeInstallment)
            .where(FeeInstallment.fee_structure_id == fee_structure_id)
            .execution_options(synchronize_session=False)
        )
    except IntegrityError:
        raise PaymentsExist(refusal)
    return result.rowcount or 0


async def delete_installments(
    db: AsyncSession,
    tenant_id: UUID,
    fee_structure_id: UUID,
    changed_by: Optional[UUID] = None,
) -> DeleteInstallmentsResponse:
    s = await _get_structure(db, tenant_id, fee_structure_id)
    try:
        deleted = await drop_unpaid_installments(
            db, s.id, "Payments are recorded against these installments; they cannot be deleted"
        )
    except PaymentsExist:
        await db.rollback()
        raise
    if deleted:
        db.add(
            FeeAuditLog(
                tenant_id=tenant_id,
                reference_table="fee_installments",
                reference_id=s.id,
                action_type="DELETE",
                old_value={"count": deleted},
                changed_by=changed_by,
            )
        )
    await db.commit()
    logger.info("Deleted %d installments of fee structure %s", deleted, fee_structure_id)
    return DeleteInstallmentsResponse(fee_structure_id=fee_structure_id, deleted=deleted)


async def list_student_installments(
    db: AsyncSession,
    tenant_id: UUID,
    student_id: UUID,
    today: date,
    session_id: Optional[UUID] = None,
) -> List[StudentInstallmentResponse]:
    stmt = (
        select(FeeInstallment, StudentFeeStructure)
        .join(StudentFeeStructure, FeeInstallment.fee_structure_id == StudentFeeStructure.id)
        .where(
            StudentFeeStructure.tenant_id == tenant_id,
            StudentFeeStructure.student_id == student_id,
            StudentFeeStructure.is_active.is_(True),
        )
    )
    if session_id is not None:
        stmt = stmt.where(StudentFeeStructure.session_id == session_id)
    stmt = stmt.order_by(FeeInstallment.due_date, FeeInstallment.installment_number).execution_options(
        populate_existing=True
    )
    rows = (await db.execute(stmt)).all()
    return [_student_installment_response(i, s, today) for i, s in rows]


async def get_pending_installments(
    db: AsyncSession,
    tenant_id: UUID,
    today: date,
    batch_id: Optional[UUID] = None,
    session_id: Optional[UUID] = None,
    status: Optional[InstallmentStatus] = None,
) -> List[StudentInstallmentResponse]:
    """Installments still owing money, narrowed by batch, session or one derived status."""
    if status is not None and status not in OUTSTANDING_STATUSES:
        raise ValidationError("status must be one of pending, partial or overdue")
    stmt = (
        select(FeeInstallment, StudentFeeStructure)
        .join(StudentFeeStructure, FeeInstallment.fee_structure_id == StudentFeeStructure.id)
        .where(
            StudentFeeStructure.tenant_id == tenant_id,
            StudentFeeStructure.is_active.is_(True),
            FeeInstallment.paid_amount < FeeInstallment.amount,
        )
    )
    if batch_id is not None:
        stmt = stmt.where(StudentFeeStructure.batch_id == batch_id)
    if session_id is not None:
        stmt = stmt.where(StudentFeeStructure.session_id == session_id)
    stmt = stmt.order_by(
        FeeInstallment.due_date,
        StudentFeeStructure.student_id,
        FeeInstallment.installment_number,
    ).execution_options(populate_existing=True)
    rows = (await db.execute(stmt)).all()
    items = [_student_installment_response(i, s, today) for i, s in rows]
    if status is not None:
        items = [item for item in items if item.status == status]
    return items


def build_pending_excel(items: List[StudentInstallmentResponse]) -> bytes:
    """Pending installments as an xlsx workbook, one row per installment."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Pending installments"
    ws.append(PENDING_EXPORT_HEADERS)
    for item in items:
        ws.append(
            [
                str(item.student_id),
                str(item.session_id),
                str(item.batch_id) if item.batch_id else "",
                item.installment_number,
                item.due_date,
                item.amount,
                item.paid_amount,
                item.pending_amount,
                item.status.value,
            ]
        )
    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()


async def export_pending_installments(
    db: AsyncSession,
    tenant_id: UUID,
    today: date,
    batch_id: Optional[UUID] = None,
    session_id: Optional[UUID] = None,
    status: Optional[InstallmentStatus] = None,
) -> bytes:
    items = await get_pending_installments(
        db, tenant_id, today, batch_id=batch_id, session_id=session_id, status=status
    )
    return build_pending_excel(items)
