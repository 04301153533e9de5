"""API tests through the ASGI transport."""

from collections.abc import AsyncGenerator
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from equity_engine.api.app import create_app
from equity_engine.api.dependencies import get_db_session
from equity_engine.database import make_session_factory
from equity_engine.stores import ManualSofrRateSource

CFO = {"X-Actor-Id": "cfo"}
CHAIR = {"X-Actor-Id": "chair", "X-Capabilities": "equity.approve, equity.apply"}

PERIOD_2024 = {
    "fiscal_year": 2024,
    "net_income": "1000000",
    "sofr_rate": "3.0",
    "total_equity_balance_sheet": "1150000",
}


@pytest.fixture
async def client(engine) -> AsyncGenerator[AsyncClient, None]:
    factory = make_session_factory(engine)

    async def override_session():
        async with factory() as session:
            yield session

    app = create_app(sofr_source=ManualSofrRateSource({2025: Decimal("4.0")}))
    app.dependency_overrides[get_db_session] = override_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
async def members(session, two_members):
    await session.commit()
    return two_members


class TestHealth:
    async def test_empty_calendar(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "healthy"
        assert body["open_fiscal_years"] == []
        assert body["last_allocated_year"] is None

    async def test_reports_open_and_allocated_years(self, client, members):
        await client.post("/api/v1/periods", json=PERIOD_2024, headers=CFO)
        await client.post(
            "/api/v1/periods", json={**PERIOD_2024, "fiscal_year": 2025}, headers=CFO
        )
        response = await client.post("/api/v1/periods/2024/allocation", json={}, headers=CFO)
        assert response.status_code == 200

        body = (await client.get("/health")).json()
        assert body["open_fiscal_years"] == [2025]
        assert body["last_allocated_year"] == 2024


class TestPeriods:
    async def test_create_and_get(self, client):
        response = await client.post("/api/v1/periods", json=PERIOD_2024, headers=CFO)
        assert response.status_code == 201
        body = response.json()
        assert Decimal(body["final_allocable_amount"]) == Decimal("1000000")
        assert body["sofr_source"] == "Manual Entry"

        response = await client.get("/api/v1/periods/2024")
        assert response.status_code == 200
        assert response.json()["version"] == 1

    async def test_rate_from_source(self, client):
        response = await client.post(
            "/api/v1/periods", json={"fiscal_year": 2025, "net_income": "10"}, headers=CFO
        )
        assert response.status_code == 201
        assert Decimal(response.json()["sofr_rate"]) == Decimal("4.0")

    async def test_actor_header_required(self, client):
        response = await client.post("/api/v1/periods", json=PERIOD_2024)
        assert response.status_code == 400

    async def test_duplicate_is_422(self, client):
        await client.post("/api/v1/periods", json=PERIOD_2024, headers=CFO)
        response = await client.post("/api/v1/periods", json=PERIOD_2024, headers=CFO)
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["field"] == "fiscal_year"

    async def test_missing_is_404(self, client):
        response = await client.get("/api/v1/periods/2030")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_patch(self, client):
        await client.post("/api/v1/periods", json=PERIOD_2024, headers=CFO)
        response = await client.patch(
            "/api/v1/periods/2024", json={"adjustments": "-1000"}, headers=CFO
        )
        assert response.status_code == 200
        assert Decimal(response.json()["final_allocable_amount"]) == Decimal("999000")
        assert response.json()["version"] == 2

    async def test_patch_rejects_unknown_fields(self, client):
        await client.post("/api/v1/periods", json=PERIOD_2024, headers=CFO)
        response = await client.patch(
            "/api/v1/periods/2024", json={"is_allocated": True}, headers=CFO
        )
        assert response.status_code == 422


class TestAllocationFlow:
    async def test_preview_commit_reverse(self, client, members):
        alice, _ = members
        await client.post("/api/v1/periods", json=PERIOD_2024, headers=CFO)

        preview = (await client.get("/api/v1/periods/2024/allocation/preview")).json()
        line = next(l for l in preview["lines"] if l["member_id"] == str(alice.member_id))
        assert Decimal(line["allocation_amount"]) == Decimal("600800")

        recon = (await client.get("/api/v1/periods/2024/reconciliation")).json()
        assert recon["is_reconciled"] is True

        response = await client.post("/api/v1/periods/2024/allocation", json={}, headers=CFO)
        assert response.status_code == 200
        body = response.json()
        assert body["member_count"] == 2
        assert body["overridden"] is False
        assert Decimal(body["total_allocated"]) == Decimal("1000000")

        stored = (await client.get("/api/v1/periods/2024/allocations")).json()
        assert len(stored) == 2

        # Allocated periods are frozen
        response = await client.patch(
            "/api/v1/periods/2024", json={"net_income": "1"}, headers=CFO
        )
        assert response.status_code == 409
        assert response.json()["code"] == "IMMUTABLE_STATE"

        response = await client.post("/api/v1/periods/2024/allocation", json={}, headers=CFO)
        assert response.status_code == 409
        assert response.json()["code"] == "PERIOD_LOCKED"

        response = await client.post(
            "/api/v1/periods/2024/allocation/reverse",
            json={"reason": "Audit adjustment"},
            headers=CFO,
        )
        assert response.status_code == 200
        assert response.json()["is_allocated"] is False
        assert (await client.get("/api/v1/periods/2024/allocations")).json() == []

    async def test_variance_needs_override(self, client, members):
        period = dict(PERIOD_2024, total_equity_balance_sheet="1000000")
        await client.post("/api/v1/periods", json=period, headers=CFO)

        response = await client.post("/api/v1/periods/2024/allocation", json={}, headers=CFO)
        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "RECONCILIATION_VARIANCE"
        assert body["report"]["is_reconciled"] is False

        # Nothing was written by the refused commit
        assert (await client.get("/api/v1/periods/2024")).json()["is_allocated"] is False

        response = await client.post(
            "/api/v1/periods/2024/allocation",
            json={"override_reason": "Balance sheet restated"},
            headers=CFO,
        )
        assert response.status_code == 200
        assert response.json()["overridden"] is True

        period = (await client.get("/api/v1/periods/2024")).json()
        assert period["reconciliation_override_reason"] == "Balance sheet restated"

    async def test_reverse_requires_reason(self, client, members):
        await client.post("/api/v1/periods", json=PERIOD_2024, headers=CFO)
        response = await client.post(
            "/api/v1/periods/2024/allocation/reverse", json={"reason": ""}, headers=CFO
        )
        assert response.status_code == 422


class TestBoardApprovals:
    async def test_lifecycle(self, client, members):
        alice, bob = members
        payload = {
            "fiscal_year": 2024,
            "approval_type": "ANNUAL_EQUITY_UPDATE",
            "title": "FY2024 final equity",
            "effective_date": "2024-12-31",
            "updates": [
                {"member_id": str(alice.member_id), "new_percentage": "55", "change_reason": "Review"},
                {"member_id": str(bob.member_id), "new_percentage": "45", "change_reason": "Review"},
            ],
        }
        response = await client.post("/api/v1/board-approvals", json=payload, headers=CFO)
        assert response.status_code == 201
        approval_id = response.json()["approval_id"]
        assert response.json()["status"] == "DRAFT"

        base = f"/api/v1/board-approvals/{approval_id}"
        response = await client.post(f"{base}/submit", headers=CFO)
        assert response.json()["status"] == "PENDING_APPROVAL"

        response = await client.post(f"{base}/approve", headers=CFO)
        assert response.status_code == 403
        assert response.json()["code"] == "NOT_AUTHORIZED"

        response = await client.post(f"{base}/approve", headers=CHAIR)
        assert response.json()["status"] == "APPROVED"

        response = await client.post(f"{base}/apply", headers=CHAIR)
        assert response.status_code == 200
        assert response.json()["status"] == "APPLIED"

        response = await client.post(f"{base}/apply", headers=CHAIR)
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_TRANSITION"

        fetched = (await client.get(base)).json()
        assert [Decimal(u["new_percentage"]) for u in fetched["updates"]] == [
            Decimal("55"),
            Decimal("45"),
        ]

    async def test_reject_and_revise(self, client, members):
        alice, bob = members
        payload = {
            "fiscal_year": 2024,
            "approval_type": "MID_YEAR_ADJUSTMENT",
            "title": "Rebalance",
            "effective_date": "2024-06-30",
            "updates": [
                {"member_id": str(alice.member_id), "new_percentage": "50"},
                {"member_id": str(bob.member_id), "new_percentage": "50"},
            ],
        }
        approval_id = (
            await client.post("/api/v1/board-approvals", json=payload, headers=CFO)
        ).json()["approval_id"]
        base = f"/api/v1/board-approvals/{approval_id}"
        await client.post(f"{base}/submit", headers=CFO)

        response = await client.post(f"{base}/reject", json={"reason": "Too large"}, headers=CHAIR)
        assert response.json()["status"] == "REJECTED"
        assert response.json()["rejection_reason"] == "Too large"

        response = await client.post(f"{base}/revise", headers=CFO)
        assert response.status_code == 201
        assert response.json()["supersedes_id"] == approval_id
        assert response.json()["status"] == "DRAFT"

    async def test_invalid_updates(self, client, members):
        alice, _ = members
        payload = {
            "fiscal_year": 2024,
            "approval_type": "MID_YEAR_ADJUSTMENT",
            "title": "Bad",
            "effective_date": "2024-06-30",
            "updates": [{"member_id": str(alice.member_id), "new_percentage": "120"}],
        }
        response = await client.post("/api/v1/board-approvals", json=payload, headers=CFO)
        assert response.status_code == 422
        assert response.json()["details"]
