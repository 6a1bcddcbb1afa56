"""
Expand an EMI split config into dated installment amounts.

Each installment is net * percent / 100 rounded half-up to the amount quantum.
Whatever the rounding leaves over (positive or negative) is added to the last
installment only, so the amounts always add back up to the net amount and the
earlier installments are reproducible from their own percent alone.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Optional

from fee_engine.core.exceptions import ValidationError

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class SplitEntry:
    percent: Decimal
    due_days_from_start: int

    def to_json(self) -> dict:
        return {"percent": str(self.percent), "due_days_from_start": self.due_days_from_start}


@dataclass(frozen=True)
class PlannedInstallment:
    installment_number: int
    percent: Decimal
    due_date: date
    amount: Decimal


def _read_entry(item, position: int) -> SplitEntry:
    if isinstance(item, SplitEntry):
        return item
    if isinstance(item, dict):
        percent = item.get("percent")
        days = item.get("due_days_from_start", item.get("dueDaysFromStart"))
    else:
        percent = getattr(item, "percent", None)
        days = getattr(item, "due_days_from_start", None)
    if percent is None or days is None:
        raise ValidationError(f"Split entry {position} needs percent and due_days_from_start")
    if isinstance(percent, bool) or isinstance(days, bool):
        raise ValidationError(f"Split entry {position} has a non-numeric value")
    try:
        percent = Decimal(str(percent))
    except InvalidOperation:
        raise ValidationError(f"Split entry {position} percent is not a number")
    if isinstance(days, float) and not days.is_integer():
        raise ValidationError(f"Split entry {position} due_days_from_start must be a whole number")
    try:
        days = int(days)
    except (TypeError, ValueError):
        raise ValidationError(f"Split entry {position} due_days_from_start must be a whole number")
    return SplitEntry(percent=percent, due_days_from_start=days)


def validate_split_entries(entries: List[SplitEntry], installment_count: Optional[int] = None) -> None:
    if not entries:
        raise ValidationError("split_config must have at least one installment")
    if installment_count is not None and installment_count != len(entries):
        raise ValidationError(
            f"installment_count ({installment_count}) does not match split_config length ({len(entries)})"
        )
    previous_days = 0
    for position, entry in enumerate(entries, start=1):
        if not entry.percent.is_finite() or entry.percent <= 0:
            raise ValidationError(f"Split entry {position} percent must be greater than 0")
        if entry.due_days_from_start < 0:
            raise ValidationError(f"Split entry {position} due_days_from_start cannot be negative")
        if entry.due_days_from_start < previous_days:
            raise ValidationError("due_days_from_start must not decrease across the split config")
        previous_days = entry.due_days_from_start
    total = sum((e.percent for e in entries), Decimal("0"))
    if total != HUNDRED:
        raise ValidationError(f"Split percentages must add up to 100 (got {total.normalize()})")


def parse_split_config(raw: Iterable, installment_count: Optional[int] = None) -> List[SplitEntry]:
    """Turn loosely typed input (dicts, schema objects, stored JSON) into validated entries."""
    if raw is None or isinstance(raw, (str, bytes, dict)):
        raise ValidationError("split_config must be a list of installments")
    entries = [_read_entry(item, position) for position, item in enumerate(raw, start=1)]
    validate_split_entries(entries, installment_count)
    return entries


def expand(
    entries: List[SplitEntry],
    net_amount,
    start_date: date,
    quantum: Decimal = Decimal("1"),
) -> List[PlannedInstallment]:
    net = Decimal(str(net_amount))
    if net < 0:
        raise ValidationError("Net amount cannot be negative")
    validate_split_entries(entries)

    amounts: List[Decimal] = []
    allocated = Decimal("0")
    for entry in entries[:-1]:
        amount = (net * entry.percent / HUNDRED).quantize(quantum, rounding=ROUND_HALF_UP)
        # Only bites when net is a handful of quanta: never hand out more than net
        amount = min(amount, net - allocated)
        amounts.append(amount)
        allocated += amount
    last = (net * entries[-1].percent / HUNDRED).quantize(quantum, rounding=ROUND_HALF_UP)
    drift = net - (allocated + last)
    amounts.append(last + drift)

    return [
        PlannedInstallment(
            installment_number=number,
            percent=entry.percent,
            due_date=start_date + timedelta(days=entry.due_days_from_start),
            amount=amount,
        )
        for number, (entry, amount) in enumerate(zip(entries, amounts), start=1)
    ]
