"""
Payment recording and the read models built on top of it.

The paid amount only ever moves through one conditional UPDATE, so two
concurrent payments against the same installment cannot together exceed its
amount: whichever one would overshoot updates zero rows and is rejected.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.core.enums import InstallmentStatus
from fee_engine.core.exceptions import (
    InactiveReference,
    InstallmentNotFound,
    OverpaymentNotAllowed,
    PaymentNotFound,
    ValidationError,
)
from fee_engine.core.models import FeeAuditLog, FeeInstallment, InstallmentPayment, StudentFeeStructure
from fee_engine.api.v1.installments.service import installment_to_response
from fee_engine.api.v1.installments.status import derive_status, pending_amount

from .schemas import (
    PaymentHistoryItem,
    PaymentReceiptResponse,
    PaymentResponse,
    RecordPaymentRequest,
    RecordPaymentResponse,
    StructureSummary,
    StudentFeeSummaryResponse,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


async def _get_installment(db: AsyncSession, tenant_id: UUID, installment_id: UUID) -> FeeInstallment:
    i = (
        await db.execute(
            select(FeeInstallment)
            .where(FeeInstallment.id == installment_id, FeeInstallment.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not i:
        raise InstallmentNotFound("Installment not found")
    return i


async def record_payment(
    db: AsyncSession,
    tenant_id: UUID,
    installment_id: UUID,
    payload: RecordPaymentRequest,
    today: date,
    received_by: Optional[UUID] = None,
) -> RecordPaymentResponse:
    amount = payload.amount
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    i = await _get_installment(db, tenant_id, installment_id)
    structure_active = (
        await db.execute(
            select(StudentFeeStructure.is_active).where(StudentFeeStructure.id == i.fee_structure_id)
        )
    ).scalar_one()
    if not structure_active:
        raise InactiveReference("Installment belongs to an inactive fee structure")

    result = await db.execute(
        update(FeeInstallment)
        .where(
            FeeInstallment.id == installment_id,
            FeeInstallment.tenant_id == tenant_id,
            FeeInstallment.paid_amount + amount <= FeeInstallment.amount,
        )
        .values(paid_amount=FeeInstallment.paid_amount + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        i = await _get_installment(db, tenant_id, installment_id)
        logger.warning(
            "Rejected payment of %s against installment %s: paid %s of %s", amount, installment_id, i.paid_amount, i.amount
        )
        raise OverpaymentNotAllowed(
            f"Payment of {amount} exceeds the pending amount {pending_amount(i.amount, i.paid_amount)}"
        )

    payment = InstallmentPayment(
        tenant_id=tenant_id,
        installment_id=installment_id,
        amount=amount,
        payment_date=payload.payment_date or today,
        payment_mode=payload.payment_mode.value,
        transaction_id=(payload.transaction_id or "").strip() or None,
        remarks=(payload.remarks or "").strip() or None,
        received_by=received_by,
    )
    db.add(payment)
    await db.flush()
    db.add(
        FeeAuditLog(
            tenant_id=tenant_id,
            reference_table="installment_payments",
            reference_id=payment.id,
            action_type="CREATE",
            new_value={
                "installment_id": str(installment_id),
                "amount": str(amount),
                "payment_mode": payload.payment_mode.value,
                "payment_date": payment.payment_date.isoformat(),
            },
            changed_by=received_by,
        )
    )
    await db.commit()
    i = await _get_installment(db, tenant_id, installment_id)
    logger.info(
        "Recorded payment %s of %s against installment %s (paid %s of %s)",
        payment.id, amount, installment_id, i.paid_amount, i.amount,
    )
    return RecordPaymentResponse(
        payment=PaymentResponse.model_validate(payment),
        installment=installment_to_response(i, today),
    )


async def get_payment(
    db: AsyncSession,
    tenant_id: UUID,
    payment_id: UUID,
    today: date,
) -> PaymentReceiptResponse:
    row = (
        await db.execute(
            select(InstallmentPayment, FeeInstallment, StudentFeeStructure)
            .join(FeeInstallment, InstallmentPayment.installment_id == FeeInstallment.id)
            .join(StudentFeeStructure, FeeInstallment.fee_structure_id == StudentFeeStructure.id)
            .where(InstallmentPayment.id == payment_id, InstallmentPayment.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
    ).first()
    if not row:
        raise PaymentNotFound("Payment not found")
    payment, installment, structure = row
    total_paid = (
        await db.execute(
            select(func.coalesce(func.sum(FeeInstallment.paid_amount), 0)).where(
                FeeInstallment.fee_structure_id == structure.id
            )
        )
    ).scalar_one()
    total_paid = Decimal(str(total_paid))
    return PaymentReceiptResponse(
        payment=PaymentResponse.model_validate(payment),
        installment=installment_to_response(installment, today),
        fee_structure_id=structure.id,
        student_id=structure.student_id,
        session_id=structure.session_id,
        batch_id=structure.batch_id,
        net_amount=structure.net_amount,
        total_paid=total_paid,
        total_pending=max(ZERO, structure.net_amount - total_paid),
    )


async def get_payment_history(
    db: AsyncSession,
    tenant_id: UUID,
    student_id: UUID,
    session_id: Optional[UUID] = None,
) -> List[PaymentHistoryItem]:
    """All payments of a student, including those against structures since replaced."""
    stmt = (
        select(InstallmentPayment, FeeInstallment, StudentFeeStructure)
        .join(FeeInstallment, InstallmentPayment.installment_id == FeeInstallment.id)
        .join(StudentFeeStructure, FeeInstallment.fee_structure_id == StudentFeeStructure.id)
        .where(
            InstallmentPayment.tenant_id == tenant_id,
            StudentFeeStructure.student_id == student_id,
        )
    )
    if session_id is not None:
        stmt = stmt.where(StudentFeeStructure.session_id == session_id)
    stmt = stmt.order_by(InstallmentPayment.payment_date, InstallmentPayment.created_at)
    rows = (await db.execute(stmt)).all()
    return [
        PaymentHistoryItem(
            **PaymentResponse.model_validate(p).model_dump(),
            fee_structure_id=s.id,
            session_id=s.session_id,
            installment_number=i.installment_number,
        )
        for p, i, s in rows
    ]


def _summarize(s: StudentFeeStructure, installments: List[FeeInstallment], today: date) -> StructureSummary:
    total_paid = sum((i.paid_amount for i in installments), ZERO)
    statuses = [derive_status(i.amount, i.paid_amount, i.due_date, today) for i in installments]
    open_installments = [i for i, st in zip(installments, statuses) if st != InstallmentStatus.paid]
    next_due = min(open_installments, key=lambda i: (i.due_date, i.installment_number), default=None)
    return StructureSummary(
        fee_structure_id=s.id,
        session_id=s.session_id,
        batch_id=s.batch_id,
        gross_amount=s.gross_amount,
        scholarship_amount=s.scholarship_amount,
        custom_discount_amount=s.custom_discount_amount,
        net_amount=s.net_amount,
        total_paid=total_paid,
        total_pending=max(ZERO, s.net_amount - total_paid),
        installment_count=len(installments),
        paid_installment_count=statuses.count(InstallmentStatus.paid),
        overdue_installment_count=statuses.count(InstallmentStatus.overdue),
        next_due_date=next_due.due_date if next_due else None,
        next_due_amount=pending_amount(next_due.amount, next_due.paid_amount) if next_due else None,
    )


async def get_student_summary(
    db: AsyncSession,
    tenant_id: UUID,
    student_id: UUID,
    today: date,
    session_id: Optional[UUID] = None,
) -> StudentFeeSummaryResponse:
    stmt = select(StudentFeeStructure).where(
        StudentFeeStructure.tenant_id == tenant_id,
        StudentFeeStructure.student_id == student_id,
        StudentFeeStructure.is_active.is_(True),
    )
    if session_id is not None:
        stmt = stmt.where(StudentFeeStructure.session_id == session_id)
    structures = (await db.execute(stmt.order_by(StudentFeeStructure.created_at))).scalars().all()

    installments_by_structure = {s.id: [] for s in structures}
    if structures:
        result = await db.execute(
            select(FeeInstallment)
            .where(FeeInstallment.fee_structure_id.in_(list(installments_by_structure)))
            .order_by(FeeInstallment.installment_number)
            .execution_options(populate_existing=True)
        )
        for i in result.scalars().all():
            installments_by_structure[i.fee_structure_id].append(i)

    summaries = [_summarize(s, installments_by_structure[s.id], today) for s in structures]
    return StudentFeeSummaryResponse(
        student_id=student_id,
        structures=summaries,
        total_net_amount=sum((x.net_amount for x in summaries), ZERO),
        total_paid=sum((x.total_paid for x in summaries), ZERO),
        total_pending=sum((x.total_pending for x in summaries), ZERO),
    )
