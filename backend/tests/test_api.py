"""HTTP-level tests for the rental router and the error-to-status mapping."""

from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.api.rentals import get_justification_store
from app.database import get_db
from app.main import app
from app.services.rentals.storage import LocalJustificationStore

HEADERS = {"X-Tenant-Id": "1", "X-User-Id": "42"}
BASE = "/api/rentals"

LEASE = {
    "property_id": 10,
    "primary_renter_id": 20,
    "start_date": "2025-01-01",
    "end_date": "2025-03-31",
    "rent_amount": "150000",
    "due_day_of_month": 5,
    "security_deposit_amount": "300000",
}


@pytest_asyncio.fixture
async def client(session_factory, tmp_path):
    async def _get_test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_justification_store] = lambda: LocalJustificationStore(root=str(tmp_path))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _lease_with_installments(client):
    lease = (await client.post(f"{BASE}/leases", json=LEASE, headers=HEADERS)).json()
    resp = await client.post(f"{BASE}/leases/{lease['id']}/installments/generate", headers=HEADERS)
    assert resp.status_code == 201
    return lease, resp.json()


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_cash_payment_flow(client):
    lease, installments = await _lease_with_installments(client)
    assert lease["lease_number"].startswith("BAIL-")
    assert [i["status"] for i in installments] == ["draft", "draft", "draft"]
    assert Decimal(installments[0]["total_due"]) == Decimal("150000")

    payment_body = {"lease_id": lease["id"], "method": "cash", "amount": "150000", "idempotency_key": "K1"}
    resp = await client.post(f"{BASE}/payments", json=payment_body, headers=HEADERS)
    assert resp.status_code == 201
    payment = resp.json()
    assert payment["status"] == "success"

    resp = await client.post(
        f"{BASE}/payments/{payment['id']}/allocate",
        json={"installment_ids": [installments[0]["id"]]},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    allocation = resp.json()
    assert Decimal(allocation["total_allocated"]) == Decimal("150000")
    assert Decimal(allocation["remaining_amount"]) == Decimal("0")

    resp = await client.get(f"{BASE}/installments/{installments[0]['id']}", headers=HEADERS)
    assert resp.json()["status"] == "paid"
    assert resp.json()["paid_at"] is not None

    replay = await client.post(f"{BASE}/payments", json=payment_body, headers=HEADERS)
    assert replay.json()["id"] == payment["id"]
    listed = (await client.get(f"{BASE}/payments", params={"lease_id": lease["id"]}, headers=HEADERS)).json()
    assert listed["total"] == 1

    detail = (await client.get(f"{BASE}/payments/{payment['id']}", headers=HEADERS)).json()
    assert len(detail["allocations"]) == 1
    assert Decimal(detail["allocated_total"]) == Decimal("150000")

    balance = (await client.get(f"{BASE}/leases/{lease['id']}/balance", headers=HEADERS)).json()
    assert Decimal(balance["total_paid"]) == Decimal("150000")
    assert Decimal(balance["outstanding"]) == Decimal("300000")


@pytest.mark.asyncio
async def test_penalty_override_and_justification(client):
    _, installments = await _lease_with_installments(client)
    inst_id = installments[0]["id"]

    resp = await client.post(f"{BASE}/installments/{inst_id}/penalty", headers=HEADERS)
    assert resp.status_code == 200
    penalty = resp.json()
    assert Decimal(penalty["amount"]) == Decimal("3000")
    assert penalty["mode"] == "percent_of_balance"

    resp = await client.put(
        f"{BASE}/penalties/{penalty['id']}", json={"amount": "1000", "reason": "First delay"}, headers=HEADERS
    )
    assert resp.status_code == 200
    assert resp.json()["is_manual_override"] is True

    resp = await client.put(
        f"{BASE}/penalties/{penalty['id']}", json={"amount": "1000", "reason": ""}, headers=HEADERS
    )
    assert resp.status_code == 422

    resp = await client.post(
        f"{BASE}/penalties/{penalty['id']}/justification",
        files={"file": ("agreement.pdf", b"%PDF-1.4 test", "application/pdf")},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["has_justification"] is True
    assert body["justification_file_name"] == "agreement.pdf"
    assert body["justification_file_url"].startswith("/uploads/rental/penalties/")
    assert Decimal(body["amount"]) == Decimal("1000")

    resp = await client.post(
        f"{BASE}/penalties/{penalty['id']}/justification",
        files={"file": ("run.sh", b"#!/bin/sh", "text/x-shellscript")},
        headers=HEADERS,
    )
    assert resp.status_code == 422

    inst = (await client.delete(f"{BASE}/penalties/{penalty['id']}", headers=HEADERS)).json()
    assert Decimal(inst["penalty_amount"]) == Decimal("0")


@pytest.mark.asyncio
async def test_manual_penalty_run(client):
    await _lease_with_installments(client)
    resp = await client.post(f"{BASE}/penalties/run", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["processed"] == 3

    resp = await client.post(f"{BASE}/penalties/run", headers={"X-Tenant-Id": "2"})
    assert resp.json()["processed"] == 0


@pytest.mark.asyncio
async def test_deposit_flow(client):
    lease, _ = await _lease_with_installments(client)
    resp = await client.post(f"{BASE}/leases/{lease['id']}/deposit", headers=HEADERS)
    assert resp.status_code == 201
    deposit = resp.json()
    assert Decimal(deposit["target_amount"]) == Decimal("300000")

    payment = (
        await client.post(
            f"{BASE}/payments",
            json={"lease_id": lease["id"], "method": "bank_transfer", "amount": "300000", "idempotency_key": "DEP"},
            headers=HEADERS,
        )
    ).json()
    resp = await client.post(
        f"{BASE}/deposits/{deposit['id']}/movements",
        json={"type": "collect", "amount": "300000", "payment_id": payment["id"]},
        headers=HEADERS,
    )
    assert resp.status_code == 201

    resp = await client.post(
        f"{BASE}/deposits/{deposit['id']}/movements",
        json={"type": "refund", "amount": "400000"},
        headers=HEADERS,
    )
    assert resp.status_code == 409

    current = (await client.get(f"{BASE}/leases/{lease['id']}/deposit", headers=HEADERS)).json()
    assert Decimal(current["available_amount"]) == Decimal("300000")
    movements = (await client.get(f"{BASE}/deposits/{deposit['id']}/movements", headers=HEADERS)).json()
    assert [m["type"] for m in movements] == ["collect"]


@pytest.mark.asyncio
async def test_error_status_codes(client):
    lease, _ = await _lease_with_installments(client)

    resp = await client.post(f"{BASE}/leases/{lease['id']}/installments/generate", headers=HEADERS)
    assert resp.status_code == 409
    assert "already exist" in resp.json()["detail"]

    resp = await client.post(f"{BASE}/leases", json={**LEASE, "due_day_of_month": 32}, headers=HEADERS)
    assert resp.status_code == 422

    assert (await client.get(f"{BASE}/leases/9999", headers=HEADERS)).status_code == 404
    assert (await client.get(f"{BASE}/leases/{lease['id']}", headers={"X-Tenant-Id": "2"})).status_code == 404
    assert (await client.get(f"{BASE}/leases")).status_code == 422

    resp = await client.post(f"{BASE}/leases/{lease['id']}/status", json={"status": "canceled"}, headers=HEADERS)
    assert resp.status_code == 200
    resp = await client.post(f"{BASE}/leases/{lease['id']}/status", json={"status": "active"}, headers=HEADERS)
    assert resp.status_code == 409

    payment = (
        await client.post(
            f"{BASE}/payments",
            json={"lease_id": lease["id"], "method": "cash", "amount": "10", "idempotency_key": "E1"},
            headers=HEADERS,
        )
    ).json()
    resp = await client.post(f"{BASE}/payments/{payment['id']}/allocate", json={"installment_ids": []}, headers=HEADERS)
    assert resp.status_code == 422
    resp = await client.post(f"{BASE}/payments/{payment['id']}/status", json={"status": "failed"}, headers=HEADERS)
    assert resp.json()["failed_at"] is not None
    resp = await client.post(
        f"{BASE}/payments/{payment['id']}/allocate", json={"installment_ids": [1]}, headers=HEADERS
    )
    assert resp.status_code == 409
