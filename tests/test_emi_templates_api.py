from decimal import Decimal

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_create_and_preview(client: AsyncClient, api) -> None:
    template_id = await api.template([("40", 0), ("30", 30), ("30", 60)])

    template = (await client.get(f"/api/v1/emi-templates/{template_id}", headers=api.headers)).json()
    assert template["installment_count"] == 3
    assert [Decimal(e["percent"]) for e in template["split_config"]] == [Decimal("40"), Decimal("30"), Decimal("30")]

    preview = await client.post(
        f"/api/v1/emi-templates/{template_id}/preview",
        json={"net_amount": "10000", "start_date": "2024-01-01"},
        headers=api.headers,
    )
    assert preview.status_code == 200
    rows = preview.json()
    assert [Decimal(r["amount"]) for r in rows] == [Decimal("4000"), Decimal("3000"), Decimal("3000")]
    assert [r["due_date"] for r in rows] == ["2024-01-01", "2024-01-31", "2024-03-01"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"name": "Short", "split_config": [{"percent": "50", "due_days_from_start": 0}, {"percent": "49", "due_days_from_start": 30}]},
        {"name": "Backwards", "split_config": [{"percent": "50", "due_days_from_start": 30}, {"percent": "50", "due_days_from_start": 0}]},
        {"name": "Miscounted", "installment_count": 3, "split_config": [{"percent": "100", "due_days_from_start": 0}]},
        {"name": "Empty", "split_config": []},
    ],
)
async def test_invalid_templates_rejected(client: AsyncClient, auth_headers, body) -> None:
    response = await client.post("/api/v1/emi-templates", json=body, headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_only_one_default(client: AsyncClient, api) -> None:
    first = await api.template([("100", 0)], name="One shot", is_default=True)
    second = await api.template([("50", 0), ("50", 90)], name="Two part", is_default=True)

    templates = {t["id"]: t for t in (await client.get("/api/v1/emi-templates", headers=api.headers)).json()}
    assert templates[first]["is_default"] is False
    assert templates[second]["is_default"] is True

    await client.patch(f"/api/v1/emi-templates/{first}", json={"is_default": True}, headers=api.headers)
    templates = {t["id"]: t for t in (await client.get("/api/v1/emi-templates", headers=api.headers)).json()}
    assert templates[first]["is_default"] is True
    assert templates[second]["is_default"] is False


@pytest.mark.asyncio
async def test_update_split_config(client: AsyncClient, api) -> None:
    template_id = await api.template([("100", 0)])
    response = await client.patch(
        f"/api/v1/emi-templates/{template_id}",
        json={"split_config": [{"percent": "25", "due_days_from_start": 0}, {"percent": "75", "due_days_from_start": 45}]},
        headers=api.headers,
    )
    assert response.status_code == 200
    assert response.json()["installment_count"] == 2


@pytest.mark.asyncio
async def test_deactivated_template_hidden(client: AsyncClient, api) -> None:
    template_id = await api.template([("100", 0)])
    await client.patch(f"/api/v1/emi-templates/{template_id}", json={"is_active": False}, headers=api.headers)
    assert (await client.get("/api/v1/emi-templates", headers=api.headers)).json() == []
    everything = (await client.get("/api/v1/emi-templates?active_only=false", headers=api.headers)).json()
    assert [t["id"] for t in everything] == [template_id]


@pytest.mark.asyncio
@pytest.mark.parametrize("already_inactive", [False, True])
async def test_inactive_template_cannot_take_default(client: AsyncClient, api, already_inactive) -> None:
    default = await api.template([("100", 0)], name="One shot", is_default=True)
    other = await api.template([("50", 0), ("50", 90)], name="Two part")
    if already_inactive:
        await client.patch(f"/api/v1/emi-templates/{other}", json={"is_active": False}, headers=api.headers)
        body = {"is_default": True}
    else:
        body = {"is_active": False, "is_default": True}

    response = await client.patch(f"/api/v1/emi-templates/{other}", json=body, headers=api.headers)
    assert response.status_code == 422

    current = (await client.get(f"/api/v1/emi-templates/{default}", headers=api.headers)).json()
    assert current["is_default"] is True
    assert current["is_active"] is True
