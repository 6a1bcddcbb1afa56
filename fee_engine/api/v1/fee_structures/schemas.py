"""Batch and student fee structure schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fee_engine.core.enums import CustomDiscountType, FeeStructureSource
from fee_engine.api.v1.installments.schemas import InstallmentResponse


# ----- Batch structures -----
class BatchLineItemInput(BaseModel):
    fee_component_id: UUID
    amount: Decimal = Field(..., ge=0, decimal_places=2)


class BatchFeeStructureCreate(BaseModel):
    batch_id: UUID
    session_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    line_items: List[BatchLineItemInput] = Field(..., min_length=1)


class BatchLineItemResponse(BaseModel):
    fee_component_id: UUID
    component_name: str
    component_type: str
    position: int
    amount: Decimal


class BatchFeeStructureResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    batch_id: UUID
    session_id: UUID
    name: str
    total_amount: Decimal
    is_active: bool
    line_items: List[BatchLineItemResponse] = []
    created_at: datetime
    updated_at: datetime


# ----- Student structures -----
class StudentLineItemInput(BaseModel):
    fee_component_id: UUID
    amount: Decimal = Field(..., ge=0, decimal_places=2, description="Original component amount")
    adjusted_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    waived: bool = False
    waiver_reason: Optional[str] = None


class CustomDiscountInput(BaseModel):
    discount_type: CustomDiscountType
    value: Decimal = Field(..., ge=0, decimal_places=2)
    remarks: Optional[str] = None


class StudentFeeStructureCreate(BaseModel):
    student_id: UUID
    session_id: UUID
    batch_id: Optional[UUID] = None
    line_items: List[StudentLineItemInput] = Field(..., min_length=1)
    custom_discount: Optional[CustomDiscountInput] = None
    remarks: Optional[str] = None
    overwrite_existing: bool = False


class ApplyBatchStructureRequest(BaseModel):
    batch_structure_id: UUID
    student_ids: List[UUID] = Field(..., min_length=1)
    overwrite_existing: bool = False


class ApplyFailure(BaseModel):
    student_id: UUID
    reason: str


class ApplyBatchStructureResponse(BaseModel):
    applied: int
    skipped: int
    message: str
    failures: List[ApplyFailure] = []


class StudentLineItemResponse(BaseModel):
    fee_component_id: UUID
    component_name: str
    component_type: str
    position: int
    original_amount: Decimal
    adjusted_amount: Decimal
    waived: bool
    waiver_reason: Optional[str] = None

    class Config:
        from_attributes = True


class ScholarshipDiscountResponse(BaseModel):
    student_scholarship_id: UUID
    scholarship_name: str
    discount_type: str
    discount_value: Decimal
    position: int
    discount_amount: Decimal

    class Config:
        from_attributes = True


class StudentFeeStructureResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    student_id: UUID
    session_id: UUID
    batch_id: Optional[UUID] = None
    source: FeeStructureSource
    batch_fee_structure_id: Optional[UUID] = None
    gross_amount: Decimal
    scholarship_amount: Decimal
    custom_discount_type: Optional[CustomDiscountType] = None
    custom_discount_value: Optional[Decimal] = None
    custom_discount_amount: Decimal
    custom_discount_remarks: Optional[str] = None
    net_amount: Decimal
    remarks: Optional[str] = None
    is_active: bool
    created_at: datetime
    line_items: List[StudentLineItemResponse] = []
    scholarship_discounts: List[ScholarshipDiscountResponse] = []
    installments: List[InstallmentResponse] = []
