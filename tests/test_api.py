from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient

from feeledger.core.enums import Role

from tests.helpers import ACADEMIC_YEAR, auth_headers, future_due_date


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(client: AsyncClient, school) -> None:
    response = await client.get("/api/v1/invoices")
    assert response.status_code == 401

    response = await client.get("/api/v1/invoices", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unknown_tenant_is_not_found(client: AsyncClient) -> None:
    response = await client.get("/api/v1/fee-heads", headers=auth_headers(uuid4()))
    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "not_found"


@pytest.mark.asyncio
async def test_fee_catalog_endpoints(client: AsyncClient, school) -> None:
    headers = auth_headers(school.tenant_id)

    response = await client.post("/api/v1/fee-heads", json={"name": "Tuition"}, headers=headers)
    assert response.status_code == 201
    head = response.json()

    duplicate = await client.post("/api/v1/fee-heads", json={"name": "TUITION"}, headers=headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == {
        "kind": "conflict",
        "message": "An active fee head named 'TUITION' already exists",
        "retryable": False,
    }

    response = await client.put(
        "/api/v1/fee-structures",
        json={
            "class_id": str(school.grade5.id),
            "fee_head_id": head["id"],
            "amount": "4000.00",
            "academic_year": ACADEMIC_YEAR,
        },
        headers=headers,
    )
    assert response.status_code == 200
    assert Decimal(response.json()["amount"]) == Decimal("4000")

    negative = await client.put(
        "/api/v1/fee-structures",
        json={
            "class_id": str(school.grade5.id),
            "fee_head_id": head["id"],
            "amount": "-5",
            "academic_year": ACADEMIC_YEAR,
        },
        headers=headers,
    )
    assert negative.status_code == 400
    assert negative.json()["detail"]["kind"] == "validation_error"

    listed = await client.get(
        "/api/v1/fee-structures", params={"academic_year": ACADEMIC_YEAR}, headers=headers
    )
    assert listed.status_code == 200
    assert [fs["fee_head_name"] for fs in listed.json()] == ["Tuition"]

    # Teachers can read the catalog but not change it
    teacher = auth_headers(school.tenant_id, Role.TEACHER)
    assert (await client.get("/api/v1/fee-heads", headers=teacher)).status_code == 200
    forbidden = await client.delete(f"/api/v1/fee-heads/{head['id']}", headers=teacher)
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"]["kind"] == "permission_denied"


@pytest.mark.asyncio
async def test_invoice_and_payment_flow(client: AsyncClient, school, catalog) -> None:
    admin = auth_headers(school.tenant_id)
    accountant = auth_headers(school.tenant_id, Role.ACCOUNTANT)
    parent = auth_headers(school.tenant_id, Role.PARENT)

    response = await client.post(
        "/api/v1/invoices/generate",
        json={
            "student_ids": [str(school.students[0].id), str(school.unbilled.id)],
            "due_date": future_due_date().isoformat(),
            "academic_year": ACADEMIC_YEAR,
        },
        headers=admin,
    )
    assert response.status_code == 201
    body = response.json()
    assert len(body["invoices"]) == 1
    assert body["skipped"] == [{"student_id": str(school.unbilled.id), "reason": "no_fee_structures"}]
    invoice_id = body["invoices"][0]["id"]

    response = await client.post(
        f"/api/v1/invoices/{invoice_id}/discount", json={"discount_amount": "1000"}, headers=admin
    )
    assert response.status_code == 200
    assert Decimal(response.json()["net_amount"]) == Decimal("4000")

    intent = await client.get(f"/api/v1/invoices/{invoice_id}/payment-intent", headers=parent)
    assert intent.status_code == 200
    assert Decimal(intent.json()["amount"]) == Decimal("4000")

    submitted = await client.post(
        "/api/v1/payments",
        json={
            "invoice_id": invoice_id,
            "amount": "4000",
            "method": "manual-reference",
            "external_reference": "UTR998877",
        },
        headers=parent,
    )
    assert submitted.status_code == 201
    tx_id = submitted.json()["id"]
    assert submitted.json()["status"] == "submitted"
    assert submitted.json()["method"] == "manual-reference"

    # Parents cannot verify their own claims
    assert (await client.post(f"/api/v1/payments/{tx_id}/verify", headers=parent)).status_code == 403

    verified = await client.post(f"/api/v1/payments/{tx_id}/verify", headers=accountant)
    assert verified.status_code == 200
    assert verified.json()["status"] == "verified"

    again = await client.post(f"/api/v1/payments/{tx_id}/verify", headers=accountant)
    assert again.status_code == 409
    assert again.json()["detail"]["kind"] == "already_processed"

    invoice = await client.get(f"/api/v1/invoices/{invoice_id}", headers=admin)
    assert invoice.json()["status"] == "paid"

    paid_list = await client.get("/api/v1/invoices", params={"status": "paid"}, headers=admin)
    assert [inv["id"] for inv in paid_list.json()] == [invoice_id]

    transactions = await client.get("/api/v1/payments", params={"invoice_id": invoice_id}, headers=accountant)
    assert [tx["id"] for tx in transactions.json()] == [tx_id]

    summary = await client.get(
        "/api/v1/reports/summary", params={"tenant": str(school.tenant_id)}, headers=admin
    )
    assert summary.status_code == 200
    assert Decimal(summary.json()["collected_total"]) == Decimal("4000")
    assert summary.json()["invoice_counts"]["paid"] == 1


@pytest.mark.asyncio
async def test_past_due_date_is_a_validation_error(client: AsyncClient, school, catalog) -> None:
    response = await client.post(
        "/api/v1/invoices/generate",
        json={
            "student_ids": [str(school.students[0].id)],
            "due_date": "2000-01-01",
            "academic_year": ACADEMIC_YEAR,
        },
        headers=auth_headers(school.tenant_id),
    )
    assert response.status_code == 400
    assert response.json()["detail"]["kind"] == "validation_error"


@pytest.mark.asyncio
async def test_empty_batch_is_a_validation_error(client: AsyncClient, school, catalog) -> None:
    response = await client.post(
        "/api/v1/invoices/generate",
        json={"student_ids": [], "due_date": future_due_date().isoformat(), "academic_year": ACADEMIC_YEAR},
        headers=auth_headers(school.tenant_id),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == {
        "kind": "validation_error",
        "message": "Select at least one student",
        "retryable": False,
    }


@pytest.mark.asyncio
async def test_malformed_body_uses_error_shape(client: AsyncClient, school) -> None:
    response = await client.post(
        "/api/v1/invoices/generate",
        json={"student_ids": ["not-a-uuid"], "academic_year": ACADEMIC_YEAR},
        headers=auth_headers(school.tenant_id),
    )
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["kind"] == "validation_error"
    assert detail["retryable"] is False
    assert "due_date" in detail["message"]
    assert "student_ids" in detail["message"]


@pytest.mark.asyncio
async def test_mark_overdue_endpoint(client: AsyncClient, school, catalog) -> None:
    response = await client.post("/api/v1/invoices/mark-overdue", headers=auth_headers(school.tenant_id))
    assert response.status_code == 200
    assert response.json()["marked_overdue"] == 0


@pytest.mark.asyncio
async def test_cross_tenant_access(client: AsyncClient, school, other_school, catalog) -> None:
    admin = auth_headers(school.tenant_id)
    outsider = auth_headers(other_school.tenant_id)

    response = await client.post(
        "/api/v1/invoices/generate",
        json={
            "student_ids": [str(school.students[0].id)],
            "due_date": future_due_date().isoformat(),
            "academic_year": ACADEMIC_YEAR,
        },
        headers=admin,
    )
    invoice_id = response.json()["invoices"][0]["id"]

    hidden = await client.get(f"/api/v1/invoices/{invoice_id}", headers=outsider)
    assert hidden.status_code == 404

    summary = await client.get(
        "/api/v1/reports/summary", params={"tenant": str(school.tenant_id)}, headers=outsider
    )
    assert summary.status_code == 403
    assert summary.json()["detail"]["kind"] == "permission_denied"
