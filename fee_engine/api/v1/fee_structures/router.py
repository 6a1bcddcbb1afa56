"""Fee structures router: batch defaults, student structures and bulk apply."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.auth.dependencies import get_current_user
from fee_engine.auth.rbac import check_permission
from fee_engine.auth.schemas import CurrentUser
from fee_engine.core.clock import Clock, get_clock
from fee_engine.core.exceptions import ServiceError
from fee_engine.db.session import get_db
from fee_engine.api.v1.payments import service as payment_service
from fee_engine.api.v1.payments.schemas import StudentFeeSummaryResponse

from .schemas import (
    ApplyBatchStructureRequest,
    ApplyBatchStructureResponse,
    BatchFeeStructureCreate,
    BatchFeeStructureResponse,
    StudentFeeStructureCreate,
    StudentFeeStructureResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/fees", tags=["fee-structures"])


# ----- Batch structures -----
@router.post(
    "/batch-structure",
    response_model=BatchFeeStructureResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def create_batch_structure(
    payload: BatchFeeStructureCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BatchFeeStructureResponse:
    try:
        return await service.create_batch_structure(
            db, current_user.tenant_id, payload, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/batch-structure",
    response_model=List[BatchFeeStructureResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_batch_structures(
    session_id: Optional[UUID] = Query(None),
    batch_id: Optional[UUID] = Query(None),
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[BatchFeeStructureResponse]:
    return await service.list_batch_structures(
        db, current_user.tenant_id, session_id=session_id, batch_id=batch_id, active_only=active_only
    )


@router.get(
    "/batch-structure/batch/{batch_id}",
    response_model=BatchFeeStructureResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_batch_structure_for_batch(
    batch_id: UUID,
    session_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BatchFeeStructureResponse:
    try:
        return await service.get_batch_structure_for_batch(db, current_user.tenant_id, batch_id, session_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/batch-structure/apply",
    response_model=ApplyBatchStructureResponse,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def apply_batch_structure(
    payload: ApplyBatchStructureRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ApplyBatchStructureResponse:
    """Build student structures from the batch defaults. Per-student failures are reported, not raised."""
    try:
        return await service.apply_batch_structure(
            db, current_user.tenant_id, payload, created_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/batch-structure/{structure_id}",
    response_model=BatchFeeStructureResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_batch_structure(
    structure_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BatchFeeStructureResponse:
    try:
        return await service.get_batch_structure(db, current_user.tenant_id, structure_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/batch-structure/{structure_id}",
    response_model=BatchFeeStructureResponse,
    dependencies=[Depends(check_permission("fees", "delete"))],
)
async def deactivate_batch_structure(
    structure_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BatchFeeStructureResponse:
    try:
        return await service.deactivate_batch_structure(
            db, current_user.tenant_id, structure_id, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- Student structures -----
@router.post(
    "/student-structure",
    response_model=StudentFeeStructureResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def create_student_structure(
    payload: StudentFeeStructureCreate,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentFeeStructureResponse:
    try:
        return await service.create_student_structure(
            db, current_user.tenant_id, payload, today=clock.today(), created_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/student-structure/summary/{student_id}",
    response_model=StudentFeeSummaryResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_student_summary(
    student_id: UUID,
    session_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentFeeSummaryResponse:
    """Totals per active structure: net, paid, pending and the next installment due."""
    return await payment_service.get_student_summary(
        db, current_user.tenant_id, student_id, today=clock.today(), session_id=session_id
    )


@router.get(
    "/student-structure/student/{student_id}",
    response_model=List[StudentFeeStructureResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_student_structures(
    student_id: UUID,
    session_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[StudentFeeStructureResponse]:
    return await service.get_student_structures(
        db, current_user.tenant_id, student_id, today=clock.today(), session_id=session_id
    )


@router.get(
    "/student-structure/{structure_id}",
    response_model=StudentFeeStructureResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_student_structure(
    structure_id: UUID,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentFeeStructureResponse:
    try:
        return await service.get_student_structure(
            db, current_user.tenant_id, structure_id, today=clock.today()
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
