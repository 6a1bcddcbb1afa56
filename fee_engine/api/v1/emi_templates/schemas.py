"""EMI plan template schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SplitEntrySchema(BaseModel):
    percent: Decimal = Field(..., gt=0, le=100, decimal_places=2)
    due_days_from_start: int = Field(..., ge=0, description="Calendar days after the start date")


class EMIPlanTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    installment_count: Optional[int] = Field(None, ge=1, description="Defaults to the number of split entries")
    split_config: List[SplitEntrySchema] = Field(..., min_length=1)
    is_default: bool = False


class EMIPlanTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    split_config: Optional[List[SplitEntrySchema]] = Field(None, min_length=1)
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class EMIPlanTemplateResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    name: str
    installment_count: int
    split_config: List[SplitEntrySchema]
    is_default: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime


class EMIPreviewRequest(BaseModel):
    net_amount: Decimal = Field(..., ge=0)
    start_date: date


class PlannedInstallmentResponse(BaseModel):
    installment_number: int
    percent: Decimal
    due_date: date
    amount: Decimal
