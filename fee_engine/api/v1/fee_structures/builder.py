"""Gross / discount / net arithmetic for a fee structure. No I/O."""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Sequence
from uuid import UUID

from fee_engine.core.enums import CustomDiscountType
from fee_engine.core.exceptions import DiscountExceedsGross, ValidationError
from fee_engine.api.v1.scholarships.resolver import (
    CENT,
    FeeLine,
    ResolvedDiscount,
    ScholarshipRule,
    resolve_discounts,
)

HUNDRED = Decimal("100")
ZERO = Decimal("0")


@dataclass(frozen=True)
class LineInput:
    component_id: UUID
    original_amount: Decimal
    adjusted_amount: Optional[Decimal] = None
    waived: bool = False
    component_name: str = ""
    component_type: str = ""
    waiver_reason: Optional[str] = None

    @property
    def effective_amount(self) -> Decimal:
        return self.original_amount if self.adjusted_amount is None else self.adjusted_amount

    @property
    def applicable_amount(self) -> Decimal:
        return ZERO if self.waived else self.effective_amount


@dataclass(frozen=True)
class CustomDiscount:
    discount_type: str
    value: Decimal
    remarks: Optional[str] = None


@dataclass(frozen=True)
class StructureAmounts:
    gross_amount: Decimal
    scholarship_amount: Decimal
    custom_discount_amount: Decimal
    net_amount: Decimal
    discounts: List[ResolvedDiscount] = field(default_factory=list)


def _custom_discount_amount(custom: CustomDiscount, remainder: Decimal) -> Decimal:
    value = Decimal(custom.value)
    if value < 0:
        raise ValidationError("Custom discount cannot be negative")
    if CustomDiscountType(custom.discount_type) == CustomDiscountType.PERCENTAGE:
        if value > HUNDRED:
            raise ValidationError("Custom discount percentage cannot exceed 100")
        return (remainder * value / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    if value > remainder:
        raise DiscountExceedsGross(
            f"Custom discount {value} exceeds the amount left after scholarships ({remainder})"
        )
    return value


def build_amounts(
    lines: Sequence[LineInput],
    rules: Sequence[ScholarshipRule] = (),
    custom_discount: Optional[CustomDiscount] = None,
) -> StructureAmounts:
    if not lines:
        raise ValidationError("A fee structure needs at least one fee component")
    for line in lines:
        if line.original_amount < 0 or line.effective_amount < 0:
            raise ValidationError("Fee amounts cannot be negative")

    gross = sum((line.applicable_amount for line in lines), ZERO)
    resolution = resolve_discounts(
        [FeeLine(component_id=line.component_id, amount=line.applicable_amount) for line in lines],
        rules,
    )
    scholarship_amount = resolution.total
    custom_amount = ZERO
    if custom_discount is not None:
        custom_amount = _custom_discount_amount(custom_discount, gross - scholarship_amount)

    net = max(ZERO, gross - scholarship_amount - custom_amount)
    return StructureAmounts(
        gross_amount=gross,
        scholarship_amount=scholarship_amount,
        custom_discount_amount=custom_amount,
        net_amount=net,
        discounts=resolution.discounts,
    )
