from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_create_percentage_scholarship(client: AsyncClient, auth_headers) -> None:
    response = await client.post(
        "/api/v1/scholarships",
        json={"name": "Merit 10", "discount_type": "percentage", "basis": "merit", "value": "10", "max_amount": "5000"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["discount_type"] == "percentage"
    assert data["basis"] == "merit"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"name": "Too much", "discount_type": "percentage", "basis": "merit", "value": "150"},
        {"name": "Nothing", "discount_type": "percentage", "basis": "merit", "value": "0"},
        {"name": "Zero fixed", "discount_type": "fixed_amount", "basis": "need_based", "value": "0"},
        {"name": "No target", "discount_type": "component_waiver", "basis": "staff_ward"},
    ],
)
async def test_invalid_scholarships_rejected(client: AsyncClient, auth_headers, body) -> None:
    response = await client.post("/api/v1/scholarships", json=body, headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_waiver_needs_existing_component(client: AsyncClient, api) -> None:
    response = await client.post(
        "/api/v1/scholarships",
        json={"name": "Bus waiver", "discount_type": "component_waiver", "basis": "sibling", "component_id": str(uuid4())},
        headers=api.headers,
    )
    assert response.status_code == 404

    bus = await api.component("Bus", "transport")
    waiver_id = await api.scholarship("Bus waiver", "component_waiver", component_id=bus)
    waiver = (await client.get(f"/api/v1/scholarships/{waiver_id}", headers=api.headers)).json()
    assert waiver["component_id"] == bus


@pytest.mark.asyncio
async def test_assign_and_revoke(client: AsyncClient, api) -> None:
    student_id, session_id = uuid4(), uuid4()
    scholarship_id = await api.scholarship("Sibling", "fixed_amount", "1500")

    assignment = await api.assign(student_id, scholarship_id, session_id)
    assert assignment["scholarship"]["name"] == "Sibling"

    duplicate = await client.post(
        "/api/v1/scholarships/assign",
        json={"student_id": str(student_id), "scholarship_id": scholarship_id, "session_id": str(session_id)},
        headers=api.headers,
    )
    assert duplicate.status_code == 409

    listed = (await client.get(f"/api/v1/scholarships/student/{student_id}", headers=api.headers)).json()
    assert [a["id"] for a in listed] == [assignment["id"]]

    revoked = await client.delete(f"/api/v1/scholarships/student/{assignment['id']}", headers=api.headers)
    assert revoked.status_code == 200
    assert revoked.json()["is_active"] is False
    assert (await client.get(f"/api/v1/scholarships/student/{student_id}", headers=api.headers)).json() == []

    again = await api.assign(student_id, scholarship_id, session_id)
    assert again["id"] != assignment["id"]


@pytest.mark.asyncio
async def test_inactive_scholarship_cannot_be_assigned(client: AsyncClient, api) -> None:
    scholarship_id = await api.scholarship("Old scheme", "percentage", "5")
    assert (await client.delete(f"/api/v1/scholarships/{scholarship_id}", headers=api.headers)).status_code == 200

    response = await client.post(
        "/api/v1/scholarships/assign",
        json={"student_id": str(uuid4()), "scholarship_id": scholarship_id, "session_id": str(uuid4())},
        headers=api.headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_validates_value(client: AsyncClient, api) -> None:
    scholarship_id = await api.scholarship("Merit", "percentage", "10")
    bad = await client.patch(f"/api/v1/scholarships/{scholarship_id}", json={"value": "101"}, headers=api.headers)
    assert bad.status_code == 422
    good = await client.patch(f"/api/v1/scholarships/{scholarship_id}", json={"value": "20"}, headers=api.headers)
    assert good.status_code == 200


@pytest.mark.asyncio
async def test_scholarship_value_round_trips(client: AsyncClient, api) -> None:
    scholarship_id = await api.scholarship("Merit 15", "percentage", "15")

    fetched = await client.get(f"/api/v1/scholarships/{scholarship_id}", headers=api.headers)
    assert fetched.status_code == 200
    assert Decimal(fetched.json()["value"]) == Decimal("15")

    listed = (await client.get("/api/v1/scholarships", headers=api.headers)).json()
    assert [Decimal(s["value"]) for s in listed if s["id"] == scholarship_id] == [Decimal("15")]


@pytest.mark.asyncio
async def test_waiver_update_rejects_max_amount(client: AsyncClient, api) -> None:
    bus = await api.component("Bus", "transport")
    waiver_id = await api.scholarship("Bus waiver", "component_waiver", component_id=bus)

    response = await client.patch(
        f"/api/v1/scholarships/{waiver_id}", json={"max_amount": "10"}, headers=api.headers
    )
    assert response.status_code == 422
    waiver = (await client.get(f"/api/v1/scholarships/{waiver_id}", headers=api.headers)).json()
    assert waiver["max_amount"] is None
