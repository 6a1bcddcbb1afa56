"""EMI plan templates router."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.auth.dependencies import get_current_user
from fee_engine.auth.rbac import check_permission
from fee_engine.auth.schemas import CurrentUser
from fee_engine.core.config import settings
from fee_engine.core.exceptions import ServiceError
from fee_engine.db.session import get_db

from .schemas import (
    EMIPlanTemplateCreate,
    EMIPlanTemplateResponse,
    EMIPlanTemplateUpdate,
    EMIPreviewRequest,
    PlannedInstallmentResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/emi-templates", tags=["emi-templates"])


@router.post(
    "",
    response_model=EMIPlanTemplateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("fees", "create"))],
)
async def create_template(
    payload: EMIPlanTemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EMIPlanTemplateResponse:
    try:
        return await service.create_template(
            db, current_user.tenant_id, payload, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[EMIPlanTemplateResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def list_templates(
    active_only: bool = Query(True, description="Return only active templates by default"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[EMIPlanTemplateResponse]:
    return await service.list_templates(db, current_user.tenant_id, active_only=active_only)


@router.get(
    "/{template_id}",
    response_model=EMIPlanTemplateResponse,
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def get_template(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EMIPlanTemplateResponse:
    try:
        return await service.get_template(db, current_user.tenant_id, template_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/{template_id}",
    response_model=EMIPlanTemplateResponse,
    dependencies=[Depends(check_permission("fees", "update"))],
)
async def update_template(
    template_id: UUID,
    payload: EMIPlanTemplateUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> EMIPlanTemplateResponse:
    try:
        return await service.update_template(
            db, current_user.tenant_id, template_id, payload, changed_by=current_user.id
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/{template_id}/preview",
    response_model=List[PlannedInstallmentResponse],
    dependencies=[Depends(check_permission("fees", "read"))],
)
async def preview_template(
    template_id: UUID,
    payload: EMIPreviewRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[PlannedInstallmentResponse]:
    """Expand the template for a net amount and start date without saving anything."""
    try:
        return await service.preview_template(
            db, current_user.tenant_id, template_id, payload, quantum=settings.amount_quantum
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
