"""Unit tests for EMI split validation and expansion."""

from datetime import date
from decimal import Decimal

import pytest

from fee_engine.api.v1.emi_templates.splitter import (
    SplitEntry,
    expand,
    parse_split_config,
    validate_split_entries,
)
from fee_engine.core.exceptions import ValidationError


def _entries(*pairs):
    return [SplitEntry(percent=Decimal(p), due_days_from_start=d) for p, d in pairs]


def test_forty_thirty_thirty_schedule() -> None:
    planned = expand(_entries(("40", 0), ("30", 30), ("30", 60)), Decimal("10000"), date(2024, 1, 1))
    assert [p.amount for p in planned] == [Decimal("4000"), Decimal("3000"), Decimal("3000")]
    assert [p.due_date for p in planned] == [date(2024, 1, 1), date(2024, 1, 31), date(2024, 3, 1)]
    assert [p.installment_number for p in planned] == [1, 2, 3]


def test_rounding_residue_goes_to_last_installment() -> None:
    planned = expand(_entries(("33.33", 0), ("33.33", 30), ("33.34", 60)), Decimal("1000"), date(2024, 1, 1))
    assert [p.amount for p in planned] == [Decimal("333"), Decimal("333"), Decimal("334")]


def test_paise_quantum() -> None:
    planned = expand(
        _entries(("33.33", 0), ("33.33", 30), ("33.34", 60)),
        Decimal("1000"),
        date(2024, 1, 1),
        quantum=Decimal("0.01"),
    )
    assert [p.amount for p in planned] == [Decimal("333.30"), Decimal("333.30"), Decimal("333.40")]


@pytest.mark.parametrize("net", ["0", "1", "7", "999", "1001", "12345.67", "250000"])
@pytest.mark.parametrize("quantum", ["1", "0.01"])
def test_amounts_always_add_up_to_net(net: str, quantum: str) -> None:
    splits = [
        _entries(("33.33", 0), ("33.33", 30), ("33.34", 60)),
        _entries(*[("10", 30 * i) for i in range(10)]),
        _entries(("100", 0)),
    ]
    for entries in splits:
        planned = expand(entries, Decimal(net), date(2024, 6, 1), quantum=Decimal(quantum))
        assert len(planned) == len(entries)
        assert sum(p.amount for p in planned) == Decimal(net)
        assert all(p.amount >= 0 for p in planned)


def test_earlier_installments_depend_only_on_their_percent() -> None:
    first = expand(_entries(("25", 0), ("75", 30)), Decimal("999"), date(2024, 1, 1))
    second = expand(_entries(("25", 0), ("25", 30), ("50", 60)), Decimal("999"), date(2024, 1, 1))
    assert first[0].amount == second[0].amount == Decimal("250")


def test_negative_net_rejected() -> None:
    with pytest.raises(ValidationError):
        expand(_entries(("100", 0)), Decimal("-1"), date(2024, 1, 1))


@pytest.mark.parametrize(
    "pairs",
    [
        [],
        [("50", 0), ("49", 30)],
        [("50", 0), ("50.01", 30)],
        [("0", 0), ("100", 30)],
        [("-10", 0), ("110", 30)],
        [("50", -1), ("50", 30)],
        [("50", 30), ("50", 0)],
    ],
)
def test_invalid_split_rejected(pairs) -> None:
    with pytest.raises(ValidationError):
        validate_split_entries(_entries(*pairs))


def test_installment_count_must_match() -> None:
    with pytest.raises(ValidationError):
        validate_split_entries(_entries(("50", 0), ("50", 30)), installment_count=3)


def test_parse_accepts_stored_json_and_camel_case() -> None:
    entries = parse_split_config(
        [{"percent": "60", "due_days_from_start": 0}, {"percent": 40, "dueDaysFromStart": 45}],
        installment_count=2,
    )
    assert entries == [
        SplitEntry(percent=Decimal("60"), due_days_from_start=0),
        SplitEntry(percent=Decimal("40"), due_days_from_start=45),
    ]


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "40,60",
        {"percent": "100", "due_days_from_start": 0},
        [{"percent": "100"}],
        [{"percent": "abc", "due_days_from_start": 0}],
        [{"percent": "100", "due_days_from_start": 1.5}],
        [{"percent": True, "due_days_from_start": 0}],
    ],
)
def test_parse_rejects_malformed_input(raw) -> None:
    with pytest.raises(ValidationError):
        parse_split_config(raw)
