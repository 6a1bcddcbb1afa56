"""Unit tests for derived installment status."""

from datetime import date
from decimal import Decimal

from fee_engine.api.v1.installments.status import derive_status, pending_amount
from fee_engine.core.enums import InstallmentStatus

DUE = date(2024, 2, 1)


def test_pending_before_due_date() -> None:
    assert derive_status(Decimal("3000"), Decimal("0"), DUE, date(2024, 1, 15)) == InstallmentStatus.pending


def test_due_today_is_not_overdue() -> None:
    assert derive_status(Decimal("3000"), Decimal("0"), DUE, DUE) == InstallmentStatus.pending


def test_partial_before_due_date() -> None:
    assert derive_status(Decimal("3000"), Decimal("1000"), DUE, date(2024, 1, 15)) == InstallmentStatus.partial


def test_overdue_wins_over_partial() -> None:
    assert derive_status(Decimal("3000"), Decimal("1000"), DUE, date(2024, 2, 2)) == InstallmentStatus.overdue


def test_paid_is_never_overdue() -> None:
    assert derive_status(Decimal("3000"), Decimal("3000"), DUE, date(2025, 1, 1)) == InstallmentStatus.paid


def test_zero_amount_installment_is_paid() -> None:
    assert derive_status(Decimal("0"), Decimal("0"), DUE, date(2024, 1, 1)) == InstallmentStatus.paid


def test_only_today_changes_the_status() -> None:
    args = (Decimal("3000"), Decimal("0"), DUE)
    assert derive_status(*args, date(2024, 2, 1)) == InstallmentStatus.pending
    assert derive_status(*args, date(2024, 2, 2)) == InstallmentStatus.overdue
    assert derive_status(*args, date(2024, 2, 1)) == InstallmentStatus.pending


def test_pending_amount_never_negative() -> None:
    assert pending_amount(Decimal("3000"), Decimal("1000")) == Decimal("2000")
    assert pending_amount(Decimal("3000"), Decimal("3000")) == 0
