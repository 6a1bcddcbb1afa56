import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import date
from typing import AsyncGenerator, Dict, List, Optional
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fee_engine.auth.security import create_access_token
from fee_engine.core.clock import FixedClock, get_clock
from fee_engine.db.session import Base, get_db
from fee_engine.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TODAY = date(2024, 1, 15)


def make_headers(tenant_id: UUID, role: str = "SUPER_ADMIN", permissions: Optional[Dict] = None) -> Dict[str, str]:
    token = create_access_token(
        subject={
            "user_id": str(uuid4()),
            "tenant_id": str(tenant_id),
            "role": role,
            "permissions": permissions or {},
        }
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test; the app shares this session."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest.fixture()
async def foreign_keys(db_session: AsyncSession) -> None:
    """Enforce foreign keys on the test connection, as Postgres always does."""
    await db_session.execute(text("PRAGMA foreign_keys=ON"))
    await db_session.commit()


@pytest.fixture()
def clock() -> FixedClock:
    """Pinned "today"; tests move it by assigning clock.fixed."""
    fixed = FixedClock(TODAY)
    app.dependency_overrides[get_clock] = lambda: fixed
    yield fixed
    app.dependency_overrides.pop(get_clock, None)


@pytest.fixture()
def tenant_id() -> UUID:
    return uuid4()


@pytest.fixture()
def auth_headers(tenant_id: UUID) -> Dict[str, str]:
    return make_headers(tenant_id)


@pytest.fixture()
async def client(db_session: AsyncSession, clock: FixedClock) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class FeeApi:
    """Shortcuts for setting up fee data through the HTTP API."""

    def __init__(self, client: AsyncClient, headers: Dict[str, str]) -> None:
        self.client = client
        self.headers = headers

    async def component(self, name: str, type_: str = "tuition") -> str:
        r = await self.client.post(
            "/api/v1/fee-components", json={"name": name, "type": type_}, headers=self.headers
        )
        assert r.status_code == 201, r.text
        return r.json()["id"]

    async def scholarship(self, name: str, discount_type: str, value: str = "0", **extra) -> str:
        body = {"name": name, "discount_type": discount_type, "basis": "merit", "value": value}
        body.update(extra)
        r = await self.client.post("/api/v1/scholarships", json=body, headers=self.headers)
        assert r.status_code == 201, r.text
        return r.json()["id"]

    async def assign(self, student_id: UUID, scholarship_id: str, session_id: UUID) -> dict:
        r = await self.client.post(
            "/api/v1/scholarships/assign",
            json={
                "student_id": str(student_id),
                "scholarship_id": scholarship_id,
                "session_id": str(session_id),
            },
            headers=self.headers,
        )
        assert r.status_code == 201, r.text
        return r.json()

    async def template(self, split: List[tuple], name: str = "Three part", is_default: bool = False) -> str:
        r = await self.client.post(
            "/api/v1/emi-templates",
            json={
                "name": name,
                "split_config": [{"percent": p, "due_days_from_start": d} for p, d in split],
                "is_default": is_default,
            },
            headers=self.headers,
        )
        assert r.status_code == 201, r.text
        return r.json()["id"]

    async def student_structure(
        self,
        student_id: UUID,
        session_id: UUID,
        line_items: List[dict],
        **extra,
    ):
        body = {
            "student_id": str(student_id),
            "session_id": str(session_id),
            "line_items": line_items,
        }
        body.update(extra)
        return await self.client.post("/api/v1/fees/student-structure", json=body, headers=self.headers)

    async def generate(self, fee_structure_id: str, template_id: str, start_date: str = "2024-01-01"):
        return await self.client.post(
            "/api/v1/fees/installments/generate",
            json={"fee_structure_id": fee_structure_id, "template_id": template_id, "start_date": start_date},
            headers=self.headers,
        )

    async def pay(self, installment_id: str, amount: str, mode: str = "cash"):
        return await self.client.post(
            f"/api/v1/fees/installments/{installment_id}/payment",
            json={"amount": amount, "payment_mode": mode},
            headers=self.headers,
        )


@pytest.fixture()
def api(client: AsyncClient, auth_headers: Dict[str, str]) -> FeeApi:
    return FeeApi(client, auth_headers)
