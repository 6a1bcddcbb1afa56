"""Payment, receipt and fee summary schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fee_engine.core.enums import PaymentMode
from fee_engine.api.v1.installments.schemas import InstallmentResponse


class RecordPaymentRequest(BaseModel):
    amount: Decimal = Field(..., decimal_places=2)
    payment_date: Optional[date] = Field(None, description="Defaults to today")
    payment_mode: PaymentMode
    transaction_id: Optional[str] = Field(None, max_length=100)
    remarks: Optional[str] = None


class PaymentResponse(BaseModel):
    id: UUID
    installment_id: UUID
    amount: Decimal
    payment_date: date
    payment_mode: PaymentMode
    transaction_id: Optional[str] = None
    remarks: Optional[str] = None
    received_by: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RecordPaymentResponse(BaseModel):
    payment: PaymentResponse
    installment: InstallmentResponse


class PaymentReceiptResponse(BaseModel):
    """Everything a receipt needs: the payment, its installment and the structure it belongs to."""

    payment: PaymentResponse
    installment: InstallmentResponse
    fee_structure_id: UUID
    student_id: UUID
    session_id: UUID
    batch_id: Optional[UUID] = None
    net_amount: Decimal
    total_paid: Decimal
    total_pending: Decimal


class PaymentHistoryItem(PaymentResponse):
    fee_structure_id: UUID
    session_id: UUID
    installment_number: int


class StructureSummary(BaseModel):
    fee_structure_id: UUID
    session_id: UUID
    batch_id: Optional[UUID] = None
    gross_amount: Decimal
    scholarship_amount: Decimal
    custom_discount_amount: Decimal
    net_amount: Decimal
    total_paid: Decimal
    total_pending: Decimal
    installment_count: int
    paid_installment_count: int
    overdue_installment_count: int
    next_due_date: Optional[date] = None
    next_due_amount: Optional[Decimal] = None


class StudentFeeSummaryResponse(BaseModel):
    student_id: UUID
    structures: List[StructureSummary] = []
    total_net_amount: Decimal
    total_paid: Decimal
    total_pending: Decimal
