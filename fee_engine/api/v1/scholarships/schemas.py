"""Scholarship schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fee_engine.core.enums import DiscountType, ScholarshipBasis


class ScholarshipCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    discount_type: DiscountType
    basis: ScholarshipBasis
    value: Decimal = Field(Decimal("0"), ge=0, decimal_places=2, description="Percent (0-100) or fixed amount")
    component_id: Optional[UUID] = Field(None, description="Limit the discount to one fee component")
    max_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Cap for percentage discounts")
    description: Optional[str] = None


class ScholarshipUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    value: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    max_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ScholarshipResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    name: str
    discount_type: DiscountType
    basis: ScholarshipBasis
    value: Decimal
    component_id: Optional[UUID] = None
    max_amount: Optional[Decimal] = None
    description: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AssignScholarshipRequest(BaseModel):
    student_id: UUID
    scholarship_id: UUID
    session_id: UUID
    remarks: Optional[str] = None


class StudentScholarshipResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    student_id: UUID
    scholarship_id: UUID
    session_id: UUID
    remarks: Optional[str] = None
    approved_by: Optional[UUID] = None
    is_active: bool
    created_at: datetime
    scholarship: ScholarshipResponse
