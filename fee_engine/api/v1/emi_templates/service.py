"""EMI plan template service: validated split configs and their expansion."""

import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.core.exceptions import ConflictError, TemplateNotFound, ValidationError
from fee_engine.core.models import EMIPlanTemplate, FeeAuditLog

from .schemas import (
    EMIPlanTemplateCreate,
    EMIPlanTemplateResponse,
    EMIPlanTemplateUpdate,
    EMIPreviewRequest,
    PlannedInstallmentResponse,
    SplitEntrySchema,
)
from .splitter import SplitEntry, expand, parse_split_config

logger = logging.getLogger(__name__)


def load_split_config(template: EMIPlanTemplate) -> List[SplitEntry]:
    """Stored JSON back into validated entries."""
    return parse_split_config(template.split_config, template.installment_count)


def _to_response(t: EMIPlanTemplate) -> EMIPlanTemplateResponse:
    return EMIPlanTemplateResponse(
        id=t.id,
        tenant_id=t.tenant_id,
        name=t.name,
        installment_count=t.installment_count,
        split_config=[
            SplitEntrySchema(percent=e.percent, due_days_from_start=e.due_days_from_start)
            for e in load_split_config(t)
        ],
        is_default=t.is_default,
        is_active=t.is_active,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


async def _clear_default(db: AsyncSession, tenant_id: UUID, keep_id: Optional[UUID] = None) -> None:
    stmt = (
        update(EMIPlanTemplate)
        .where(EMIPlanTemplate.tenant_id == tenant_id, EMIPlanTemplate.is_default.is_(True))
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )
    if keep_id is not None:
        stmt = stmt.where(EMIPlanTemplate.id != keep_id)
    await db.execute(stmt)


async def get_template_model(db: AsyncSession, tenant_id: UUID, template_id: UUID) -> EMIPlanTemplate:
    t = (
        await db.execute(
            select(EMIPlanTemplate).where(
                EMIPlanTemplate.id == template_id,
                EMIPlanTemplate.tenant_id == tenant_id,
            )
        )
    ).scalar_one_or_none()
    if not t:
        raise TemplateNotFound("EMI template not found")
    return t


async def create_template(
    db: AsyncSession,
    tenant_id: UUID,
    payload: EMIPlanTemplateCreate,
    changed_by: Optional[UUID] = None,
) -> EMIPlanTemplateResponse:
    entries = parse_split_config(payload.split_config, payload.installment_count)
    try:
        if payload.is_default:
            await _clear_default(db, tenant_id)
        t = EMIPlanTemplate(
            tenant_id=tenant_id,
            name=payload.name.strip(),
            installment_count=len(entries),
            split_config=[e.to_json() for e in entries],
            is_default=payload.is_default,
            is_active=True,
        )
        db.add(t)
        await db.flush()
        db.add(
            FeeAuditLog(
                tenant_id=tenant_id,
                reference_table="emi_plan_templates",
                reference_id=t.id,
                action_type="CREATE",
                new_value={"name": t.name, "split_config": t.split_config},
                changed_by=changed_by,
            )
        )
        await db.commit()
        await db.refresh(t)
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Another template was made default at the same time")
    logger.info("Created EMI template %s (%d installments) for tenant %s", t.id, t.installment_count, tenant_id)
    return _to_response(t)


async def list_templates(
    db: AsyncSession,
    tenant_id: UUID,
    active_only: bool = True,
) -> List[EMIPlanTemplateResponse]:
    stmt = select(EMIPlanTemplate).where(EMIPlanTemplate.tenant_id == tenant_id)
    if active_only:
        stmt = stmt.where(EMIPlanTemplate.is_active.is_(True))
    stmt = stmt.order_by(EMIPlanTemplate.is_default.desc(), EMIPlanTemplate.name)
    result = await db.execute(stmt)
    return [_to_response(t) for t in result.scalars().all()]


async def get_template(db: AsyncSession, tenant_id: UUID, template_id: UUID) -> EMIPlanTemplateResponse:
    return _to_response(await get_template_model(db, tenant_id, template_id))


async def update_template(
    db: AsyncSession,
    tenant_id: UUID,
    template_id: UUID,
    payload: EMIPlanTemplateUpdate,
    changed_by: Optional[UUID] = None,
) -> EMIPlanTemplateResponse:
    """Edits affect future generations only; installments already generated keep their amounts."""
    t = await get_template_model(db, tenant_id, template_id)
    will_be_active = t.is_active if payload.is_active is None else payload.is_active
    if payload.is_default and not will_be_active:
        raise ValidationError("An inactive template cannot be the default")
    old_value = {"name": t.name, "split_config": t.split_config, "is_default": t.is_default, "is_active": t.is_active}
    if payload.split_config is not None:
        entries = parse_split_config(payload.split_config)
        t.split_config = [e.to_json() for e in entries]
        t.installment_count = len(entries)
    if payload.name is not None:
        t.name = payload.name.strip()
    if payload.is_active is not None:
        t.is_active = payload.is_active
        if not payload.is_active:
            t.is_default = False
    try:
        if payload.is_default is not None:
            if payload.is_default:
                await _clear_default(db, tenant_id, keep_id=t.id)
            t.is_default = payload.is_default
        db.add(
            FeeAuditLog(
                tenant_id=tenant_id,
                reference_table="emi_plan_templates",
                reference_id=t.id,
                action_type="UPDATE",
                old_value=old_value,
                new_value={"name": t.name, "split_config": t.split_config, "is_default": t.is_default, "is_active": t.is_active},
                changed_by=changed_by,
            )
        )
        await db.commit()
        await db.refresh(t)
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Another template was made default at the same time")
    return _to_response(t)


async def preview_template(
    db: AsyncSession,
    tenant_id: UUID,
    template_id: UUID,
    payload: EMIPreviewRequest,
    quantum: Decimal,
) -> List[PlannedInstallmentResponse]:
    t = await get_template_model(db, tenant_id, template_id)
    planned = expand(load_split_config(t), payload.net_amount, payload.start_date, quantum)
    return [
        PlannedInstallmentResponse(
            installment_number=p.installment_number,
            percent=p.percent,
            due_date=p.due_date,
            amount=p.amount,
        )
        for p in planned
    ]
