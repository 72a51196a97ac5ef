import os
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[2]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from fastapi.testclient import TestClient

from conftest import SPACE_ID


def test_health(api_client):
    resp = api_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_partition_header_is_required(api_client):
    resp = api_client.get("/api/transactions", headers={"X-Space-Id": ""})
    assert resp.status_code == 401


def test_user_id_header_is_a_fallback_partition(api_client):
    api_client.post(
        "/api/transactions",
        json={"type": "income", "amount": 10, "description": "Venta", "category": "Ventas", "date": "2024-06-01"},
        headers={"X-Space-Id": "", "X-User-Id": "user-7"},
    )
    resp = api_client.get("/api/transactions", headers={"X-Space-Id": "", "X-User-Id": "user-7"})
    assert [t["space_id"] for t in resp.json()] == ["user-7"]
    assert api_client.get("/api/transactions").json() == []


def test_transaction_crud(api_client):
    resp = api_client.post(
        "/api/transactions",
        json={"type": "expense", "amount": 12.5, "description": " Cafe ", "category": "Comida", "date": "2024-06-01"},
    )
    assert resp.status_code == 201, resp.text
    created = resp.json()
    assert created["description"] == "Cafe"
    assert created["space_id"] == SPACE_ID

    listed = api_client.get("/api/transactions").json()
    assert [t["id"] for t in listed] == [created["id"]]

    resp = api_client.delete(f"/api/transactions/{created['id']}")
    assert resp.status_code == 200
    assert api_client.get("/api/transactions").json() == []

    resp = api_client.delete(f"/api/transactions/{created['id']}")
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "not_found"


def test_transaction_validation(api_client):
    bad = [
        {"type": "expense", "amount": 0, "description": "x", "category": "y", "date": "2024-06-01"},
        {"type": "gift", "amount": 1, "description": "x", "category": "y", "date": "2024-06-01"},
        {"type": "expense", "amount": 1, "description": "   ", "category": "y", "date": "2024-06-01"},
    ]
    for payload in bad:
        assert api_client.post("/api/transactions", json=payload).status_code == 422


def test_obligation_payment_flow(api_client):
    resp = api_client.post(
        "/api/obligations",
        json={"title": "Expensas", "amount": 500, "due_date": "2024-06-20", "category": "Hogar"},
    )
    assert resp.status_code == 201, resp.text
    obligation = resp.json()
    assert obligation["status"] == "pending"

    resp = api_client.post(
        f"/api/obligations/{obligation['id']}/confirm-payment",
        json={"paymentAmount": 200, "paymentDate": "2024-06-10"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["remaining"] == 300.0
    assert body["obligation"]["amount"] == 300.0
    assert body["transaction"]["category"] == "Hogar"

    resp = api_client.post(f"/api/obligations/{obligation['id']}/confirm-payment")
    assert resp.status_code == 200, resp.text
    assert resp.json()["obligation"]["status"] == "paid"


def test_sub_cent_payment_writes_no_ledger_entry(api_client):
    obligation = api_client.post(
        "/api/obligations",
        json={"title": "Luz", "amount": 500, "due_date": "2024-06-20"},
    ).json()

    resp = api_client.post(
        f"/api/obligations/{obligation['id']}/confirm-payment",
        json={"paymentAmount": 0.004},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "invalid_payment_amount"
    assert api_client.get("/api/transactions").json() == []


def test_confirm_unknown_obligation(api_client):
    resp = api_client.post("/api/obligations/nope/confirm-payment", json={"paymentAmount": 1})
    assert resp.status_code == 404


def test_debt_flow(api_client):
    payload = {
        "name": "Prestamo",
        "total_amount": 2000,
        "monthly_payment": 500,
        "remaining_installments": 4,
        "total_installments": 4,
        "next_payment_date": "2024-06-30",
    }
    resp = api_client.post("/api/debts", json=payload)
    assert resp.status_code == 201, resp.text
    debt = resp.json()
    assert debt["category"] == "Deudas"

    resp = api_client.post(f"/api/debts/{debt['id']}/confirm-payment", json={})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["debt"]["remaining_installments"] == 3
    assert body["debt"]["next_payment_date"] == "2024-07-30"
    assert body["remaining"] == 1500.0

    bad = {**payload, "remaining_installments": 5}
    resp = api_client.post("/api/debts", json=bad)
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "invalid_installments"


def test_budget_upsert_and_summary(api_client):
    first = api_client.post("/api/budgets", json={"category": "Comida", "month": "2024-06", "limit_amount": 500})
    assert first.status_code == 200, first.text
    second = api_client.post(
        "/api/budgets",
        json={"category": "Comida", "month": "2024-06", "limit_amount": 1000, "alert_threshold": 90},
    )
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["limit_amount"] == 1000.0

    budgets = api_client.get("/api/budgets", params={"month": "2024-06"}).json()
    assert len(budgets) == 1
    assert budgets[0]["alert_threshold"] == 90

    assert api_client.post("/api/budgets", json={"category": "X", "month": "2024-13", "limit_amount": 1}).status_code == 422

    resp = api_client.get("/api/summary")
    assert resp.status_code == 200
    body = resp.json()
    assert set(body) == {"month", "summary", "budgets", "reminders"}
    assert body["summary"]["balance"] == 0


def test_recurring_next_run_defaults_to_start(api_client):
    resp = api_client.post(
        "/api/recurring",
        json={
            "type": "expense",
            "amount": 100,
            "description": "Gimnasio",
            "category": "Salud",
            "frequency": "monthly",
            "start_date": "2024-07-01",
        },
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["next_run"] == "2024-07-01"
    assert resp.json()["is_active"] is True
    assert len(api_client.get("/api/recurring").json()) == 1


def test_unhandled_errors_are_opaque(api_client):
    from backend.app.api.deps import get_store
    from backend.app.main import app

    class _Broken:
        def select(self, *args, **kwargs):
            raise RuntimeError("secret connection string")

    app.dependency_overrides[get_store] = lambda: _Broken()
    try:
        client = TestClient(app, raise_server_exceptions=False, headers={"X-Space-Id": SPACE_ID})
        resp = client.get("/api/transactions")
    finally:
        app.dependency_overrides.pop(get_store, None)

    assert resp.status_code == 500
    assert resp.json() == {"detail": {"code": "internal_error", "message": "Unexpected server error"}}
    assert "secret" not in resp.text
