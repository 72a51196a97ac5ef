import os
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[2]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from conftest import SPACE_ID


def _audit(api_client, entity_type, action):
    resp = api_client.get("/api/audit", params={"entity_type": entity_type, "action": action})
    assert resp.status_code == 200, resp.text
    return resp.json()["items"]


def _create_transaction(api_client):
    resp = api_client.post(
        "/api/transactions",
        json={"type": "expense", "amount": 40, "description": "Super", "category": "Comida", "date": "2024-06-01"},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_transaction_patch_changes_only_sent_fields(api_client):
    txn = _create_transaction(api_client)

    resp = api_client.patch(f"/api/transactions/{txn['id']}", json={"amount": 55.5, "category": " Hogar "})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["amount"] == 55.5
    assert body["category"] == "Hogar"
    assert body["description"] == "Super"

    events = _audit(api_client, "transaction", "update")
    assert len(events) == 1
    assert events[0]["entity_id"] == txn["id"]
    assert events[0]["before_data"]["amount"] == 40.0
    assert events[0]["after_data"]["amount"] == 55.5


def test_transaction_patch_rejects_bad_values(api_client):
    txn = _create_transaction(api_client)

    assert api_client.patch(f"/api/transactions/{txn['id']}", json={"amount": 0}).status_code == 422
    assert api_client.patch(f"/api/transactions/{txn['id']}", json={"description": "  "}).status_code == 422

    resp = api_client.patch(f"/api/transactions/{txn['id']}", json={})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "empty_update"


def test_updates_are_scoped_to_the_callers_space(api_client):
    txn = _create_transaction(api_client)
    other = {"X-Space-Id": "other-space"}

    resp = api_client.patch(f"/api/transactions/{txn['id']}", json={"amount": 1}, headers=other)
    assert resp.status_code == 404
    resp = api_client.delete(f"/api/transactions/{txn['id']}", headers=other)
    assert resp.status_code == 404

    listed = api_client.get("/api/transactions").json()
    assert [t["amount"] for t in listed] == [40.0]


def test_obligation_patch_and_delete(api_client):
    obligation = api_client.post(
        "/api/obligations",
        json={"title": "Internet", "amount": 90, "due_date": "2024-06-10"},
    ).json()

    resp = api_client.patch(
        f"/api/obligations/{obligation['id']}",
        json={"due_date": "2024-06-12", "status": "paid"},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["due_date"] == "2024-06-12"
    assert resp.json()["status"] == "paid"
    assert resp.json()["amount"] == 90.0

    assert api_client.patch(f"/api/obligations/{obligation['id']}", json={"status": "gone"}).status_code == 422

    resp = api_client.delete(f"/api/obligations/{obligation['id']}")
    assert resp.status_code == 200
    assert resp.json()["id"] == obligation["id"]
    assert api_client.get("/api/obligations").json() == []

    deleted = _audit(api_client, "obligation", "delete")
    assert [e["entity_id"] for e in deleted] == [obligation["id"]]
    assert deleted[0]["before_data"]["title"] == "Internet"

    assert api_client.delete(f"/api/obligations/{obligation['id']}").status_code == 404


def test_debt_patch_keeps_installments_consistent(api_client):
    debt = api_client.post(
        "/api/debts",
        json={
            "name": "Tarjeta",
            "total_amount": 1200,
            "monthly_payment": 400,
            "remaining_installments": 3,
            "total_installments": 3,
            "next_payment_date": "2024-07-05",
        },
    ).json()

    resp = api_client.patch(f"/api/debts/{debt['id']}", json={"remaining_installments": 4})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "invalid_installments"

    resp = api_client.patch(
        f"/api/debts/{debt['id']}",
        json={"remaining_installments": 4, "total_installments": 6, "monthly_payment": 300},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["remaining_installments"] == 4
    assert resp.json()["monthly_payment"] == 300.0

    assert api_client.delete(f"/api/debts/{debt['id']}").status_code == 200
    assert api_client.get("/api/debts").json() == []
    assert len(_audit(api_client, "debt", "delete")) == 1


def test_budget_patch_refuses_to_collide(api_client):
    food = api_client.post("/api/budgets", json={"category": "Comida", "month": "2024-06", "limit_amount": 500}).json()
    api_client.post("/api/budgets", json={"category": "Ocio", "month": "2024-06", "limit_amount": 200})

    resp = api_client.patch(f"/api/budgets/{food['id']}", json={"category": "Ocio"})
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "budget_exists"

    resp = api_client.patch(f"/api/budgets/{food['id']}", json={"limit_amount": 650, "alert_threshold": 75})
    assert resp.status_code == 200, resp.text
    assert resp.json()["limit_amount"] == 650.0
    assert resp.json()["alert_threshold"] == 75

    assert api_client.delete(f"/api/budgets/{food['id']}").status_code == 200
    remaining = api_client.get("/api/budgets", params={"month": "2024-06"}).json()
    assert [b["category"] for b in remaining] == ["Ocio"]


def test_recurring_rule_can_be_paused_and_removed(api_client):
    rule = api_client.post(
        "/api/recurring",
        json={
            "type": "income",
            "amount": 1000,
            "description": "Sueldo",
            "category": "Salario",
            "frequency": "monthly",
            "start_date": "2024-07-01",
        },
    ).json()

    resp = api_client.patch(f"/api/recurring/{rule['id']}", json={"is_active": False, "next_run": "2024-08-01"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["is_active"] is False
    assert resp.json()["next_run"] == "2024-08-01"

    updates = _audit(api_client, "recurring_transaction", "update")
    assert updates[0]["before_data"]["is_active"] is True
    assert updates[0]["space_id"] == SPACE_ID

    assert api_client.delete(f"/api/recurring/{rule['id']}").status_code == 200
    assert api_client.get("/api/recurring").json() == []
