"""Installment schemas."""

from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fee_engine.core.enums import InstallmentStatus


class GenerateInstallmentsRequest(BaseModel):
    fee_structure_id: UUID
    template_id: Optional[UUID] = Field(None, description="Defaults to the tenant's default EMI template")
    start_date: date


class InstallmentResponse(BaseModel):
    id: UUID
    fee_structure_id: UUID
    installment_number: int
    due_date: date
    amount: Decimal
    paid_amount: Decimal
    pending_amount: Decimal
    status: InstallmentStatus


class StudentInstallmentResponse(InstallmentResponse):
    student_id: UUID
    session_id: UUID
    batch_id: Optional[UUID] = None


class GenerateInstallmentsResponse(BaseModel):
    fee_structure_id: UUID
    template_id: UUID
    net_amount: Decimal
    installments: List[InstallmentResponse]


class DeleteInstallmentsResponse(BaseModel):
    fee_structure_id: UUID
    deleted: int
