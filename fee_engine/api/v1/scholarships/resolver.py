"""
Resolve scholarship discounts against a structure's component amounts.

Scholarships are applied in assignment order. Every component keeps its own
remaining amount: a scholarship scoped to one component reduces only that
component, a whole-gross scholarship is spread over all components in
proportion to what they still owe. A later waiver therefore takes only what
earlier discounts left on its component, and the total can never exceed gross.
"""

from collections import OrderedDict
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from fee_engine.core.enums import DiscountType
from fee_engine.core.exceptions import InvalidScholarship

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


@dataclass(frozen=True)
class FeeLine:
    component_id: UUID
    amount: Decimal


@dataclass(frozen=True)
class ScholarshipRule:
    discount_type: str
    value: Decimal
    component_id: Optional[UUID] = None
    max_amount: Optional[Decimal] = None
    name: str = ""
    assignment_id: Optional[UUID] = None


@dataclass(frozen=True)
class ResolvedDiscount:
    rule: ScholarshipRule
    amount: Decimal


@dataclass(frozen=True)
class DiscountResolution:
    discounts: List[ResolvedDiscount]
    total: Decimal
    remaining: Dict[UUID, Decimal]


def _allocate(remaining: "OrderedDict[UUID, Decimal]", amount: Decimal) -> None:
    """Take amount out of remaining proportionally; cent residue goes to the last components with room."""
    pool = sum(remaining.values(), ZERO)
    if amount <= 0 or pool <= 0:
        return
    shares = {
        cid: (amount * rem / pool).quantize(CENT, rounding=ROUND_DOWN)
        for cid, rem in remaining.items()
    }
    leftover = amount - sum(shares.values(), ZERO)
    for cid in reversed(list(remaining)):
        if leftover <= 0:
            break
        extra = min(leftover, remaining[cid] - shares[cid])
        shares[cid] += extra
        leftover -= extra
    for cid, share in shares.items():
        remaining[cid] -= share


def _discount_for(rule: ScholarshipRule, basis: Decimal) -> Decimal:
    discount_type = DiscountType(rule.discount_type)
    if discount_type == DiscountType.PERCENTAGE:
        amount = (basis * rule.value / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
        if rule.max_amount is not None:
            amount = min(amount, rule.max_amount)
    elif discount_type == DiscountType.FIXED_AMOUNT:
        amount = min(rule.value, basis)
    else:
        amount = basis
    return max(ZERO, min(amount, basis))


def resolve_discounts(lines: Iterable[FeeLine], rules: Iterable[ScholarshipRule]) -> DiscountResolution:
    remaining: "OrderedDict[UUID, Decimal]" = OrderedDict()
    for line in lines:
        remaining[line.component_id] = remaining.get(line.component_id, ZERO) + Decimal(line.amount)

    discounts: List[ResolvedDiscount] = []
    for rule in rules:
        if rule.discount_type == DiscountType.COMPONENT_WAIVER.value and rule.component_id is None:
            raise InvalidScholarship(f"Scholarship '{rule.name}' is a waiver without a fee component")
        if rule.component_id is not None:
            if rule.component_id not in remaining:
                raise InvalidScholarship(
                    f"Scholarship '{rule.name}' applies to a fee component that is not part of this structure"
                )
            amount = _discount_for(rule, remaining[rule.component_id])
            remaining[rule.component_id] -= amount
        else:
            amount = _discount_for(rule, sum(remaining.values(), ZERO))
            _allocate(remaining, amount)
        discounts.append(ResolvedDiscount(rule=rule, amount=amount))

    total = sum((d.amount for d in discounts), ZERO)
    return DiscountResolution(discounts=discounts, total=total, remaining=dict(remaining))
