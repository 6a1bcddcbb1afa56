"""Scholarships router: definitions and student assignments."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.auth.dependencies import get_current_user
from fee_engine.auth.rbac import check_permission
from fee_engine.auth.schemas import CurrentUser
from fee_engine.core.exceptions import ServiceError
from fee_engine.db.session import get_db

from .schemas import (
    AssignScholarshipRequest,
    ScholarshipCreate,
    ScholarshipResponse,
    ScholarshipUpdate,
    StudentScholarshipResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/scholarships", tags=["scholarships"])


@router.post(
    "",
    response_model=ScholarshipResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def create_scholarship(
    payload: ScholarshipCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ScholarshipResponse:
    try:
        return await service.create_scholarship(
            db, current_user.tenant_id, payload, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[ScholarshipResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_scholarships(
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[ScholarshipResponse]:
    return await service.list_scholarships(db, current_user.tenant_id, active_only=active_only)


@router.post(
    "/assign",
    response_model=StudentScholarshipResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def assign_scholarship(
    payload: AssignScholarshipRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentScholarshipResponse:
    try:
        return await service.assign_scholarship(
            db, current_user.tenant_id, payload, approved_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/student/{student_id}",
    response_model=List[StudentScholarshipResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_student_scholarships(
    student_id: UUID,
    session_id: Optional[UUID] = Query(None),
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[StudentScholarshipResponse]:
    return await service.list_student_scholarships(
        db, current_user.tenant_id, student_id, session_id=session_id, active_only=active_only
    )


@router.delete(
    "/student/{assignment_id}",
    response_model=StudentScholarshipResponse,
    dependencies=[Depends(check_permission("fees", "delete"))],
)
async def revoke_student_scholarship(
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentScholarshipResponse:
    try:
        return await service.revoke_student_scholarship(
            db, current_user.tenant_id, assignment_id, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{scholarship_id}",
    response_model=ScholarshipResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_scholarship(
    scholarship_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ScholarshipResponse:
    try:
        return await service.get_scholarship(db, current_user.tenant_id, scholarship_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/{scholarship_id}",
    response_model=ScholarshipResponse,
    dependencies=[Depends(check_permission("fees", "update"))],
)
async def update_scholarship(
    scholarship_id: UUID,
    payload: ScholarshipUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ScholarshipResponse:
    try:
        return await service.update_scholarship(
            db, current_user.tenant_id, scholarship_id, payload, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{scholarship_id}",
    response_model=ScholarshipResponse,
    dependencies=[Depends(check_permission("fees", "delete"))],
)
async def deactivate_scholarship(
    scholarship_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ScholarshipResponse:
    try:
        return await service.deactivate_scholarship(
            db, current_user.tenant_id, scholarship_id, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
