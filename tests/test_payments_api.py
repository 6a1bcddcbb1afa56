from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fee_engine.core.models import InstallmentPayment


async def _installments(api, student_id=None, session_id=None):
    student_id = student_id or uuid4()
    tuition = await api.component("Tuition")
    structure = (
        await api.student_structure(student_id, session_id or uuid4(), [{"fee_component_id": tuition, "amount": "10000"}])
    ).json()
    template = await api.template([("40", 0), ("30", 30), ("30", 60)])
    rows = (await api.generate(structure["id"], template)).json()["installments"]
    return structure, rows, student_id


@pytest.mark.asyncio
async def test_payments_move_installment_to_paid(client: AsyncClient, api, db_session: AsyncSession) -> None:
    _, rows, _ = await _installments(api)
    second = rows[1]
    assert Decimal(second["amount"]) == Decimal("3000")

    first = await api.pay(second["id"], "1000")
    assert first.status_code == 201
    assert first.json()["installment"]["status"] == "partial"
    assert Decimal(first.json()["installment"]["paid_amount"]) == Decimal("1000")

    more = (await api.pay(second["id"], "1000", mode="upi")).json()
    assert more["installment"]["status"] == "partial"
    assert Decimal(more["installment"]["paid_amount"]) == Decimal("2000")
    assert Decimal(more["installment"]["pending_amount"]) == Decimal("1000")

    last = (await api.pay(second["id"], "1000")).json()
    assert last["installment"]["status"] == "paid"
    assert last["payment"]["payment_date"] == "2024-01-15"

    over = await api.pay(second["id"], "1")
    assert over.status_code == 400

    count = (
        await db_session.execute(
            select(func.count(InstallmentPayment.id)).where(InstallmentPayment.installment_id == UUID(second["id"]))
        )
    ).scalar_one()
    assert count == 3


@pytest.mark.asyncio
async def test_overpayment_leaves_state_unchanged(client: AsyncClient, api) -> None:
    _, rows, student_id = await _installments(api)
    target = rows[2]

    response = await api.pay(target["id"], "3000.01")
    assert response.status_code == 400

    listed = (await client.get(f"/api/v1/fees/installments/student/{student_id}", headers=api.headers)).json()
    row = next(r for r in listed if r["id"] == target["id"])
    assert Decimal(row["paid_amount"]) == 0
    assert row["status"] == "pending"
    assert (await client.get(f"/api/v1/fees/payments/history/{student_id}", headers=api.headers)).json() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-50"])
async def test_non_positive_amount_rejected(api, amount) -> None:
    _, rows, _ = await _installments(api)
    response = await api.pay(rows[0]["id"], amount)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_installment(api) -> None:
    response = await api.pay(str(uuid4()), "100")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_receipt_and_history(client: AsyncClient, api) -> None:
    session_id = uuid4()
    structure, rows, student_id = await _installments(api, session_id=session_id)
    paid = (await api.pay(rows[0]["id"], "4000", mode="bank")).json()
    await client.post(
        f"/api/v1/fees/installments/{rows[1]['id']}/payment",
        json={"amount": "500", "payment_mode": "cheque", "payment_date": "2024-01-20", "transaction_id": "CHQ-118"},
        headers=api.headers,
    )

    receipt = await client.get(f"/api/v1/fees/payments/{paid['payment']['id']}", headers=api.headers)
    assert receipt.status_code == 200
    data = receipt.json()
    assert data["student_id"] == str(student_id)
    assert data["fee_structure_id"] == structure["id"]
    assert data["installment"]["status"] == "paid"
    assert Decimal(data["total_paid"]) == Decimal("4500")
    assert Decimal(data["total_pending"]) == Decimal("5500")

    history = (
        await client.get(f"/api/v1/fees/payments/history/{student_id}?session_id={session_id}", headers=api.headers)
    ).json()
    assert [(h["installment_number"], h["payment_mode"]) for h in history] == [(1, "bank"), (2, "cheque")]
    assert history[1]["transaction_id"] == "CHQ-118"

    assert (await client.get(f"/api/v1/fees/payments/{uuid4()}", headers=api.headers)).status_code == 404


@pytest.mark.asyncio
async def test_student_summary(client: AsyncClient, api) -> None:
    _, rows, student_id = await _installments(api)
    await api.pay(rows[1]["id"], "1000")

    response = await client.get(f"/api/v1/fees/student-structure/summary/{student_id}", headers=api.headers)
    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["total_net_amount"]) == Decimal("10000")
    assert Decimal(data["total_paid"]) == Decimal("1000")
    assert Decimal(data["total_pending"]) == Decimal("9000")
    summary = data["structures"][0]
    assert summary["installment_count"] == 3
    assert summary["paid_installment_count"] == 0
    assert summary["overdue_installment_count"] == 1
    assert summary["next_due_date"] == "2024-01-01"
    assert Decimal(summary["next_due_amount"]) == Decimal("4000")


@pytest.mark.asyncio
async def test_summary_for_unknown_student_is_empty(client: AsyncClient, auth_headers) -> None:
    response = await client.get(f"/api/v1/fees/student-structure/summary/{uuid4()}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["structures"] == []
    assert Decimal(response.json()["total_pending"]) == 0
