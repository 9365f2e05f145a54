"""HTTP tests for the ledger endpoints."""
from bson import ObjectId


def setup_tenant(client, tenant_id="plain", **config):
    response = client.put(f"/api/v1/tenants/{tenant_id}/config", json=config)
    assert response.status_code == 200
    for period_key in ("2026-01", "2026-02"):
        response = client.post(
            f"/api/v1/tenants/{tenant_id}/bills/periods",
            json={"period_key": period_key, "charges": {"101": 10000}}
        )
        assert response.status_code == 201


def test_record_and_delete_payment(client):
    setup_tenant(client)

    response = client.post(
        "/api/v1/tenants/plain/payments",
        json={"account_id": "101", "amount": 25000, "payment_date": "2026-01-05", "note": "Jan+Feb"}
    )

    assert response.status_code == 201
    body = response.json()
    assert body["credit_balance_after"] == 5000
    assert [a["amount"] for a in body["allocations"]] == [10000, 10000, 5000]
    assert body["bill_updates"][0]["bill"]["status"] == "paid"
    transaction_id = body["transaction_id"]

    response = client.get(f"/api/v1/tenants/plain/transactions/{transaction_id}")
    assert response.status_code == 200
    assert response.json()["allocation_summary"]["total_allocated"] == 25000

    response = client.get("/api/v1/tenants/plain/credit/101")
    assert response.json()["balance"] == 5000
    assert response.json()["history"][0]["transaction_id"] == transaction_id

    response = client.delete(f"/api/v1/tenants/plain/transactions/{transaction_id}")
    assert response.status_code == 200
    assert response.json()["reversed"] is True
    assert response.json()["credit_restored"] is True

    response = client.delete(f"/api/v1/tenants/plain/transactions/{transaction_id}")
    assert response.json()["reversed"] is False

    response = client.get("/api/v1/tenants/plain/bills", params={"account_id": "101"})
    assert [b["status"] for b in response.json()] == ["unpaid", "unpaid"]
    assert [b["remaining_due"] for b in response.json()] == [10000, 10000]


def test_fractional_amount_rejected(client):
    setup_tenant(client)

    response = client.post(
        "/api/v1/tenants/plain/payments",
        json={"account_id": "101", "amount": 100.5, "payment_date": "2026-01-05"}
    )

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "CurrencyPrecisionError"


def test_duplicate_period_conflict(client):
    setup_tenant(client)

    response = client.post(
        "/api/v1/tenants/plain/bills/periods",
        json={"period_key": "2026-01", "charges": {"101": 10000}}
    )

    assert response.status_code == 409


def test_missing_resources(client):
    setup_tenant(client)

    assert client.get(f"/api/v1/tenants/plain/transactions/{ObjectId()}").status_code == 404
    assert client.get("/api/v1/tenants/plain/transactions/pending").json() == []
    assert client.get("/api/v1/tenants/plain/bills/999/2026-01").status_code == 404
    assert client.delete("/api/v1/tenants/plain/credit/101/history/credit_missing").status_code == 404


def test_penalty_endpoints(client):
    setup_tenant(client, "mtc", penalty_policy={"rate": 0.05, "compounding": True, "grace_days": 10})
    setup_tenant(client, "plain")

    response = client.post("/api/v1/tenants/plain/penalties/recalculate", json={"as_of": "2026-01-20"})
    assert response.status_code == 422

    response = client.post(
        "/api/v1/tenants/mtc/penalties/recalculate",
        json={"as_of": "2026-01-20", "unit_ids": ["101"]}
    )
    assert response.status_code == 200
    assert response.json()["surgical"] is True
    assert response.json()["bills_updated"] == 1

    response = client.get("/api/v1/tenants/mtc/penalties/summary")
    assert response.json() == {"tenant_id": "mtc", "total_penalties": 500, "unpaid_bills": 2}

    response = client.post("/api/v1/penalties/recalculate-all", json={"as_of": "2026-01-20"})
    assert response.status_code == 200
    assert "plain" in response.json()["errors"]
    assert response.json()["results"]["mtc"]["bills_updated"] == 0


def test_credit_admin_endpoints(client):
    setup_tenant(client)

    response = client.post(
        "/api/v1/tenants/plain/credit/101/history",
        json={"amount": 3000, "timestamp": "2026-01-01T00:00:00Z", "note": "opening balance"}
    )
    assert response.status_code == 201
    entry_id = response.json()["id"]

    response = client.patch(f"/api/v1/tenants/plain/credit/101/history/{entry_id}", json={"amount": 2000})
    assert response.json()["balance_after"] == 2000

    assert client.get("/api/v1/tenants/plain/credit").json()["balances"] == {"101": 2000}

    response = client.delete(f"/api/v1/tenants/plain/credit/101/history/{entry_id}")
    assert response.json() == {"account_id": "101", "balance": 0}
