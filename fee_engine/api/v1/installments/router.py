"""Installments router: generation, deletion, per-student and pending views, payment recording."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.auth.dependencies import get_current_user
from fee_engine.auth.rbac import check_permission
from fee_engine.auth.schemas import CurrentUser
from fee_engine.core.clock import Clock, get_clock
from fee_engine.core.config import settings
from fee_engine.core.enums import InstallmentStatus
from fee_engine.core.exceptions import ServiceError
from fee_engine.db.session import get_db
from fee_engine.api.v1.payments import service as payment_service
from fee_engine.api.v1.payments.schemas import RecordPaymentRequest, RecordPaymentResponse

from .schemas import (
    DeleteInstallmentsResponse,
    GenerateInstallmentsRequest,
    GenerateInstallmentsResponse,
    StudentInstallmentResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/fees/installments", tags=["fee-installments"])


@router.post(
    "/generate",
    response_model=GenerateInstallmentsResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def generate_installments(
    payload: GenerateInstallmentsRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
) -> GenerateInstallmentsResponse:
    """Split a student structure's net amount into dated installments using an EMI template."""
    try:
        return await service.generate_installments(
            db,
            current_user.tenant_id,
            payload,
            today=clock.today(),
            quantum=settings.amount_quantum,
            changed_by=current_user.id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "",
    response_model=DeleteInstallmentsResponse,
    dependencies=[Depends(check_permission("fees", "delete"))],
)
async def delete_installments(
    fee_structure_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> DeleteInstallmentsResponse:
    """Remove a schedule so it can be regenerated. Refused once any payment is recorded."""
    try:
        return await service.delete_installments(
            db, current_user.tenant_id, fee_structure_id, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/student/{student_id}",
    response_model=List[StudentInstallmentResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_student_installments(
    student_id: UUID,
    session_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[StudentInstallmentResponse]:
    return await service.list_student_installments(
        db, current_user.tenant_id, student_id, today=clock.today(), session_id=session_id
    )


@router.get(
    "/pending",
    response_model=List[StudentInstallmentResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_pending_installments(
    batch_id: Optional[UUID] = Query(None),
    session_id: Optional[UUID] = Query(None),
    status_filter: Optional[InstallmentStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[StudentInstallmentResponse]:
    try:
        return await service.get_pending_installments(
            db,
            current_user.tenant_id,
            today=clock.today(),
            batch_id=batch_id,
            session_id=session_id,
            status=status_filter,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/pending/export",
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def export_pending_installments(
    batch_id: Optional[UUID] = Query(None),
    session_id: Optional[UUID] = Query(None),
    status_filter: Optional[InstallmentStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    """Same rows as /pending, as an Excel download."""
    try:
        content = await service.export_pending_installments(
            db,
            current_user.tenant_id,
            today=clock.today(),
            batch_id=batch_id,
            session_id=session_id,
            status=status_filter,
        )
        return Response(
            content=content,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": "attachment; filename=pending_installments.xlsx"},
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{installment_id}/payment",
    response_model=RecordPaymentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def record_payment(
    installment_id: UUID,
    payload: RecordPaymentRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
) -> RecordPaymentResponse:
    try:
        return await payment_service.record_payment(
            db,
            current_user.tenant_id,
            installment_id,
            payload,
            today=clock.today(),
            received_by=current_user.id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
