import io
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient
from openpyxl import load_workbook

from fee_engine.api.v1.installments import service as installment_service


async def _structure_with_template(api, amount: str = "10000", batch_id=None):
    student_id, session_id = uuid4(), uuid4()
    tuition = await api.component("Tuition")
    extra = {"batch_id": str(batch_id)} if batch_id else {}
    structure = (
        await api.student_structure(student_id, session_id, [{"fee_component_id": tuition, "amount": amount}], **extra)
    ).json()
    template = await api.template([("40", 0), ("30", 30), ("30", 60)])
    return structure, template, student_id


@pytest.mark.asyncio
async def test_generate_installments(api) -> None:
    structure, template, _ = await _structure_with_template(api)
    response = await api.generate(structure["id"], template)
    assert response.status_code == 201, response.text
    data = response.json()
    assert Decimal(data["net_amount"]) == Decimal("10000")
    rows = data["installments"]
    assert [Decimal(r["amount"]) for r in rows] == [Decimal("4000"), Decimal("3000"), Decimal("3000")]
    assert [r["due_date"] for r in rows] == ["2024-01-01", "2024-01-31", "2024-03-01"]
    # today is 2024-01-15
    assert [r["status"] for r in rows] == ["overdue", "pending", "pending"]


@pytest.mark.asyncio
async def test_generate_uses_default_template(client: AsyncClient, api) -> None:
    structure, _, _ = await _structure_with_template(api)
    missing = await client.post(
        "/api/v1/fees/installments/generate",
        json={"fee_structure_id": structure["id"], "start_date": "2024-04-01"},
        headers=api.headers,
    )
    assert missing.status_code == 404

    await api.template([("50", 0), ("50", 90)], name="Halves", is_default=True)
    response = await client.post(
        "/api/v1/fees/installments/generate",
        json={"fee_structure_id": structure["id"], "start_date": "2024-04-01"},
        headers=api.headers,
    )
    assert response.status_code == 201
    assert [Decimal(r["amount"]) for r in response.json()["installments"]] == [Decimal("5000"), Decimal("5000")]


@pytest.mark.asyncio
async def test_generate_twice_conflicts(client: AsyncClient, api) -> None:
    structure, template, student_id = await _structure_with_template(api)
    assert (await api.generate(structure["id"], template)).status_code == 201
    again = await api.generate(structure["id"], template)
    assert again.status_code == 409

    rows = (await client.get(f"/api/v1/fees/installments/student/{student_id}", headers=api.headers)).json()
    assert len(rows) == 3


@pytest.mark.asyncio
async def test_concurrent_generation_maps_to_conflict(client: AsyncClient, api, monkeypatch) -> None:
    structure, template, student_id = await _structure_with_template(api)
    assert (await api.generate(structure["id"], template)).status_code == 201

    async def no_installments_yet(db, fee_structure_id):
        return 0

    # simulate a second request that passed the existence check before the first committed
    monkeypatch.setattr(installment_service, "_installment_count", no_installments_yet)
    response = await api.generate(structure["id"], template)
    assert response.status_code == 409

    rows = (await client.get(f"/api/v1/fees/installments/student/{student_id}", headers=api.headers)).json()
    assert [r["installment_number"] for r in rows] == [1, 2, 3]


@pytest.mark.asyncio
async def test_generate_rejects_inactive_template(client: AsyncClient, api) -> None:
    structure, template, _ = await _structure_with_template(api)
    await client.patch(f"/api/v1/emi-templates/{template}", json={"is_active": False}, headers=api.headers)
    response = await api.generate(structure["id"], template)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_generate_unknown_structure(api) -> None:
    template = await api.template([("100", 0)])
    response = await api.generate(str(uuid4()), template)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_and_regenerate(client: AsyncClient, api) -> None:
    structure, template, student_id = await _structure_with_template(api)
    await api.generate(structure["id"], template)

    deleted = await client.delete(
        f"/api/v1/fees/installments?fee_structure_id={structure['id']}", headers=api.headers
    )
    assert deleted.status_code == 200
    assert deleted.json()["deleted"] == 3
    assert (await client.get(f"/api/v1/fees/installments/student/{student_id}", headers=api.headers)).json() == []

    assert (await api.generate(structure["id"], template, start_date="2024-02-01")).status_code == 201


@pytest.mark.asyncio
async def test_delete_refused_after_payment(client: AsyncClient, api) -> None:
    structure, template, _ = await _structure_with_template(api)
    rows = (await api.generate(structure["id"], template)).json()["installments"]
    assert (await api.pay(rows[0]["id"], "500")).status_code == 201

    response = await client.delete(
        f"/api/v1/fees/installments?fee_structure_id={structure['id']}", headers=api.headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_pending_view_follows_the_clock(client: AsyncClient, api, clock) -> None:
    batch_id = uuid4()
    structure, template, student_id = await _structure_with_template(api, batch_id=batch_id)
    rows = (await api.generate(structure["id"], template)).json()["installments"]

    overdue = (await client.get("/api/v1/fees/installments/pending?status=overdue", headers=api.headers)).json()
    assert [r["installment_number"] for r in overdue] == [1]
    assert overdue[0]["student_id"] == str(student_id)
    assert Decimal(overdue[0]["pending_amount"]) == Decimal("4000")

    await api.pay(rows[0]["id"], "4000")
    await api.pay(rows[1]["id"], "1000")
    pending = (await client.get(f"/api/v1/fees/installments/pending?batch_id={batch_id}", headers=api.headers)).json()
    assert [(r["installment_number"], r["status"]) for r in pending] == [(2, "partial"), (3, "pending")]

    clock.fixed = date(2024, 2, 5)
    overdue = (await client.get("/api/v1/fees/installments/pending?status=overdue", headers=api.headers)).json()
    assert [r["installment_number"] for r in overdue] == [2]

    other_batch = (await client.get(f"/api/v1/fees/installments/pending?batch_id={uuid4()}", headers=api.headers)).json()
    assert other_batch == []


@pytest.mark.asyncio
async def test_pending_rejects_paid_status(client: AsyncClient, auth_headers) -> None:
    response = await client.get("/api/v1/fees/installments/pending?status=paid", headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_pending_export(client: AsyncClient, api) -> None:
    structure, template, student_id = await _structure_with_template(api)
    await api.generate(structure["id"], template)

    response = await client.get("/api/v1/fees/installments/pending/export", headers=api.headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "pending_installments.xlsx" in response.headers["content-disposition"]

    ws = load_workbook(io.BytesIO(response.content)).active
    rows = list(ws.iter_rows(values_only=True))
    assert rows[0][:4] == ("student_id", "session_id", "batch_id", "installment_number")
    assert len(rows) == 4
    assert rows[1][0] == str(student_id)
    assert rows[1][-1] == "overdue"


@pytest.mark.asyncio
async def test_delete_racing_a_payment_conflicts(foreign_keys, client: AsyncClient, api, monkeypatch) -> None:
    structure, template, student_id = await _structure_with_template(api)
    rows = (await api.generate(structure["id"], template)).json()["installments"]
    assert (await api.pay(rows[0]["id"], "500")).status_code == 201

    async def no_payments_yet(db, fee_structure_id):
        return 0

    # the payment commits after the count but before the delete
    monkeypatch.setattr(installment_service, "_payment_count", no_payments_yet)
    response = await client.delete(
        f"/api/v1/fees/installments?fee_structure_id={structure['id']}", headers=api.headers
    )
    assert response.status_code == 409
    assert response.json()["detail"].startswith("Payments are recorded")

    left = (await client.get(f"/api/v1/fees/installments/student/{student_id}", headers=api.headers)).json()
    assert [r["installment_number"] for r in left] == [1, 2, 3]
