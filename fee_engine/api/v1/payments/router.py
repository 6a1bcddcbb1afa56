"""Payments router: receipts and payment history."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.auth.dependencies import get_current_user
from fee_engine.auth.rbac import check_permission
from fee_engine.auth.schemas import CurrentUser
from fee_engine.core.clock import Clock, get_clock
from fee_engine.core.exceptions import ServiceError
from fee_engine.db.session import get_db

from .schemas import PaymentHistoryItem, PaymentReceiptResponse
from . import service

router = APIRouter(prefix="/api/v1/fees/payments", tags=["fee-payments"])


@router.get(
    "/history/{student_id}",
    response_model=List[PaymentHistoryItem],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_payment_history(
    student_id: UUID,
    session_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[PaymentHistoryItem]:
    return await service.get_payment_history(
        db, current_user.tenant_id, student_id, session_id=session_id
    )


@router.get(
    "/{payment_id}",
    response_model=PaymentReceiptResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
) -> PaymentReceiptResponse:
    """Receipt view of a single payment."""
    try:
        return await service.get_payment(db, current_user.tenant_id, payment_id, today=clock.today())
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
