"""Installment status is a pure function of amount, paid amount, due date and today."""

from datetime import date
from decimal import Decimal

from fee_engine.core.enums import InstallmentStatus


def derive_status(amount: Decimal, paid_amount: Decimal, due_date: date, today: date) -> InstallmentStatus:
    if paid_amount >= amount:
        return InstallmentStatus.paid
    if due_date < today:
        return InstallmentStatus.overdue
    if paid_amount > 0:
        return InstallmentStatus.partial
    return InstallmentStatus.pending


def pending_amount(amount: Decimal, paid_amount: Decimal) -> Decimal:
    return max(Decimal("0"), amount - paid_amount)
