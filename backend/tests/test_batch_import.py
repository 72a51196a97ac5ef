import os
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[2]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from backend.app.errors import PersistenceError, ValidationError
from backend.app.services.import_service import import_rows, parse_row
from conftest import SPACE_ID, NullAuditRecorder


def test_row_with_bad_amount_and_date_is_skipped():
    assert parse_row({"tipo": "ingreso", "monto": "-50", "fecha": "2024/13/40"}) is None


def test_row_aliases_and_defaults():
    row = parse_row({"tipo": "Gasto", "valor": "1.500,50", "fecha": "05/03/2024", "detalle": "  Kiosco  "})
    assert row.type == "expense"
    assert row.amount == 1500.5
    assert row.date == "2024-03-05"
    assert row.description == "Kiosco"
    assert row.category == "General"

    row = parse_row({"type": "credit", "amount": 10, "date": 45292})
    assert row.type == "income"
    assert row.date == "2024-01-01"
    assert row.description == "Movimiento importado"


def test_first_non_empty_text_field_wins():
    row = parse_row({"type": "expense", "amount": 1, "date": "2024-01-01", "category": "  ", "rubro": "Hogar"})
    assert row.category == "Hogar"


@pytest.mark.parametrize(
    "raw",
    [
        {"tipo": "transferencia", "monto": 10, "fecha": "2024-01-01"},
        {"tipo": "gasto", "monto": 0, "fecha": "2024-01-01"},
        {"tipo": "gasto", "monto": 10},
        "not a row",
    ],
)
def test_incomplete_rows_are_rejected(raw):
    assert parse_row(raw) is None


def test_import_counts_and_audit(store, audit):
    result = import_rows(
        store,
        audit,
        space_id=SPACE_ID,
        source="  Banco Nación export  ",
        rows=[
            {"tipo": "ingreso", "monto": "1000", "fecha": "2024-03-01", "descripcion": "Sueldo"},
            {"tipo": "ingreso", "monto": "-50", "fecha": "2024/13/40"},
            {"tipo": "gasto", "monto": "250,75", "fecha": "2024-03-02", "categoria": "Comida"},
        ],
    )
    assert (result.imported, result.skipped) == (2, 1)

    saved = store.select("transactions", {"space_id": SPACE_ID}, order_by="date")
    assert [(t["type"], t["amount"]) for t in saved] == [("income", 1000.0), ("expense", 250.75)]

    events = store.select("audit_events", {"space_id": SPACE_ID, "entity_type": "transaction_import"})
    assert len(events) == 1
    assert events[0]["action"] == "system"
    assert events[0]["metadata"] == {"source": "Banco Nación export", "imported": 2, "skipped": 1}


def test_empty_input_is_rejected(store):
    with pytest.raises(ValidationError) as exc:
        import_rows(store, NullAuditRecorder(), space_id=SPACE_ID, rows=[])
    assert exc.value.code == "no_rows"

    with pytest.raises(ValidationError) as exc:
        import_rows(store, NullAuditRecorder(), space_id=SPACE_ID, rows="nope")
    assert exc.value.code == "no_rows"


def test_all_rows_invalid(store):
    with pytest.raises(ValidationError) as exc:
        import_rows(store, NullAuditRecorder(), space_id=SPACE_ID, rows=[{"tipo": "x"}, {}])
    assert exc.value.code == "no_valid_rows"
    assert exc.value.detail["skipped"] == 2
    assert store.select("transactions", {"space_id": SPACE_ID}) == []


def test_rows_beyond_cap_are_ignored(store):
    rows = [{"tipo": "gasto", "monto": 1, "fecha": "2024-01-01"}] * 2005
    result = import_rows(store, NullAuditRecorder(), space_id=SPACE_ID, rows=rows)
    assert result.imported == 2000
    assert result.skipped == 0


class _BrokenBatchStore:
    def insert_many(self, table, rows):
        raise PersistenceError(f"could not insert {table}")


def test_batch_failure_imports_nothing():
    with pytest.raises(PersistenceError):
        import_rows(
            _BrokenBatchStore(),
            NullAuditRecorder(),
            space_id=SPACE_ID,
            rows=[{"tipo": "gasto", "monto": 1, "fecha": "2024-01-01"}],
        )


def test_import_endpoint(api_client):
    resp = api_client.post(
        "/api/transactions/import",
        json={"rows": [{"tipo": "gasto", "monto": "99", "fecha": "2024-02-02"}, {"tipo": "?"}]},
    )
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"imported": 1, "skipped": 1}

    resp = api_client.post("/api/transactions/import", json={"rows": []})
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "no_rows"
