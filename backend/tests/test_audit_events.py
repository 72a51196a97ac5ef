import logging
import os
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[2]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from backend.app.errors import PersistenceError, ValidationError
from backend.app.services import audit_service
from backend.app.services.audit_service import AuditEventIn, StoreAuditRecorder
from conftest import SPACE_ID


class _ExplodingStore:
    def insert(self, table, values):
        raise PersistenceError(f"could not insert {table}")


def _event(entity_id="e1", action="create", **extra):
    return AuditEventIn(space_id=SPACE_ID, entity_type="transaction", entity_id=entity_id, action=action, **extra)


def test_recorder_never_raises(caplog):
    recorder = StoreAuditRecorder(_ExplodingStore())
    with caplog.at_level(logging.WARNING, logger="backend.app.services.audit_service"):
        recorder.record(_event())
    assert any("audit_event_insert_failed" in r.getMessage() for r in caplog.records)


def test_unknown_action_is_dropped_not_raised(store):
    StoreAuditRecorder(store).record(_event(action="explode"))
    assert store.select("audit_events", {"space_id": SPACE_ID}) == []


def test_list_audit_events_paginates_newest_first(sqlite_session, store):
    recorder = StoreAuditRecorder(store)
    for i in range(5):
        recorder.record(_event(entity_id=f"e{i}", metadata={"n": i}))
    recorder.record(AuditEventIn(space_id="other", entity_type="transaction", entity_id="x", action="create"))

    page = audit_service.list_audit_events(sqlite_session, SPACE_ID, limit=3)
    assert len(page["items"]) == 3
    assert page["next_cursor"]

    rest = audit_service.list_audit_events(sqlite_session, SPACE_ID, limit=3, cursor=page["next_cursor"])
    assert len(rest["items"]) == 2
    assert rest["next_cursor"] is None

    ids = {item["entity_id"] for item in page["items"] + rest["items"]}
    assert ids == {f"e{i}" for i in range(5)}
    assert all(item["space_id"] == SPACE_ID for item in page["items"] + rest["items"])


def test_list_filters_by_entity_type(sqlite_session, store):
    recorder = StoreAuditRecorder(store)
    recorder.record(_event())
    recorder.record(AuditEventIn(space_id=SPACE_ID, entity_type="budget", entity_id="b1", action="update"))

    page = audit_service.list_audit_events(sqlite_session, SPACE_ID, entity_type="budget")
    assert [item["entity_id"] for item in page["items"]] == ["b1"]


def test_bad_cursor_is_a_validation_error(sqlite_session):
    with pytest.raises(ValidationError) as exc:
        audit_service.list_audit_events(sqlite_session, SPACE_ID, cursor="garbage")
    assert exc.value.code == "invalid_cursor"


def test_audit_endpoint(api_client):
    api_client.post(
        "/api/transactions",
        json={"type": "expense", "amount": 10, "description": "Cafe", "category": "Comida", "date": "2024-06-01"},
    )
    resp = api_client.get("/api/audit", params={"entity_type": "transaction"})
    assert resp.status_code == 200
    items = resp.json()["items"]
    assert len(items) == 1
    assert items[0]["action"] == "create"
    assert items[0]["after_data"]["description"] == "Cafe"
