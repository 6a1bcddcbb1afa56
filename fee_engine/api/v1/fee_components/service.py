"""Fee component service layer."""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.core.exceptions import DuplicateName, FeeComponentNotFound
from fee_engine.core.models import FeeAuditLog, FeeComponent
from fee_engine.core.enums import FeeComponentType

from .schemas import FeeComponentCreate, FeeComponentResponse, FeeComponentUpdate

logger = logging.getLogger(__name__)


def _to_uuid(val):
    if val is None:
        return None
    return val if isinstance(val, UUID) else UUID(str(val))


def _to_response(fc: FeeComponent) -> FeeComponentResponse:
    return FeeComponentResponse(
        id=_to_uuid(fc.id),
        tenant_id=_to_uuid(fc.tenant_id),
        name=fc.name,
        type=fc.type,
        description=fc.description,
        is_active=fc.is_active,
        created_at=fc.created_at,
        updated_at=fc.updated_at,
    )


async def _active_name_taken(
    db: AsyncSession,
    tenant_id: UUID,
    name: str,
    exclude_id: Optional[UUID] = None,
) -> bool:
    stmt = select(FeeComponent.id).where(
        FeeComponent.tenant_id == tenant_id,
        func.lower(FeeComponent.name) == name.lower(),
        FeeComponent.is_active.is_(True),
    )
    if exclude_id is not None:
        stmt = stmt.where(FeeComponent.id != exclude_id)
    return (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None


async def _get_component(db: AsyncSession, tenant_id: UUID, fee_component_id: UUID) -> FeeComponent:
    fc = (
        await db.execute(
            select(FeeComponent).where(
                FeeComponent.id == fee_component_id,
                FeeComponent.tenant_id == tenant_id,
            )
        )
    ).scalar_one_or_none()
    if not fc:
        raise FeeComponentNotFound("Fee component not found")
    return fc


async def create_fee_component(
    db: AsyncSession,
    tenant_id: UUID,
    payload: FeeComponentCreate,
    changed_by: Optional[UUID] = None,
) -> FeeComponentResponse:
    name = payload.name.strip()
    if await _active_name_taken(db, tenant_id, name):
        raise DuplicateName(f"An active fee component named '{name}' already exists")
    component_type = payload.type.value if isinstance(payload.type, FeeComponentType) else str(payload.type)
    try:
        fc = FeeComponent(
            tenant_id=tenant_id,
            name=name,
            type=component_type.strip().lower(),
            description=(payload.description or "").strip() or None,
            is_active=True,
        )
        db.add(fc)
        await db.flush()
        db.add(
            FeeAuditLog(
                tenant_id=tenant_id,
                reference_table="fee_components",
                reference_id=fc.id,
                action_type="CREATE",
                new_value={"name": fc.name, "type": fc.type},
                changed_by=changed_by,
            )
        )
        await db.commit()
        await db.refresh(fc)
    except IntegrityError:
        # Lost a race against another create with the same name
        await db.rollback()
        raise DuplicateName(f"An active fee component named '{name}' already exists")
    logger.info("Created fee component %s (%s) for tenant %s", fc.id, fc.name, tenant_id)
    return _to_response(fc)


async def list_fee_components(
    db: AsyncSession,
    tenant_id: UUID,
    active_only: bool = True,
    component_type: Optional[FeeComponentType] = None,
) -> List[FeeComponentResponse]:
    stmt = select(FeeComponent).where(FeeComponent.tenant_id == tenant_id)
    if active_only:
        stmt = stmt.where(FeeComponent.is_active.is_(True))
    if component_type is not None:
        stmt = stmt.where(FeeComponent.type == FeeComponentType(component_type).value)
    stmt = stmt.order_by(FeeComponent.name)
    result = await db.execute(stmt)
    return [_to_response(fc) for fc in result.scalars().all()]


async def get_fee_component(
    db: AsyncSession,
    tenant_id: UUID,
    fee_component_id: UUID,
) -> FeeComponentResponse:
    return _to_response(await _get_component(db, tenant_id, fee_component_id))


async def update_fee_component(
    db: AsyncSession,
    tenant_id: UUID,
    fee_component_id: UUID,
    payload: FeeComponentUpdate,
) -> FeeComponentResponse:
    fc = await _get_component(db, tenant_id, fee_component_id)
    if payload.name is not None:
        name = payload.name.strip()
        if fc.is_active and await _active_name_taken(db, tenant_id, name, exclude_id=fc.id):
            raise DuplicateName(f"An active fee component named '{name}' already exists")
        fc.name = name
    if payload.description is not None:
        fc.description = payload.description.strip() or None
    try:
        await db.commit()
        await db.refresh(fc)
        return _to_response(fc)
    except IntegrityError:
        await db.rollback()
        raise DuplicateName("Fee component update conflict")


async def deactivate_fee_component(
    db: AsyncSession,
    tenant_id: UUID,
    fee_component_id: UUID,
    changed_by: Optional[UUID] = None,
) -> FeeComponentResponse:
    """Soft delete. Structures already built keep the name and amount they captured."""
    fc = await _get_component(db, tenant_id, fee_component_id)
    if fc.is_active:
        fc.is_active = False
        db.add(
            FeeAuditLog(
                tenant_id=tenant_id,
                reference_table="fee_components",
                reference_id=fc.id,
                action_type="DEACTIVATE",
                old_value={"is_active": True},
                new_value={"is_active": False},
                changed_by=changed_by,
            )
        )
        await db.commit()
        await db.refresh(fc)
        logger.info("Deactivated fee component %s for tenant %s", fc.id, tenant_id)
    return _to_response(fc)


async def get_components_by_ids(
    db: AsyncSession,
    tenant_id: UUID,
    component_ids: List[UUID],
) -> dict:
    """Map id -> FeeComponent (active and inactive) for structure composition."""
    if not component_ids:
        return {}
    result = await db.execute(
        select(FeeComponent).where(
            FeeComponent.tenant_id == tenant_id,
            FeeComponent.id.in_(set(component_ids)),
        )
    )
    return {fc.id: fc for fc in result.scalars().all()}
