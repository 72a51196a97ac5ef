from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

from backend.app.config import IMPORT_MAX_ROWS, IMPORT_SOURCE_MAX_CHARS
from backend.app.errors import ValidationError
from backend.app.normalize.amounts import parse_amount
from backend.app.normalize.categorize import TxnType
from backend.app.normalize.dates import parse_import_date
from backend.app.services.audit_service import AuditEventIn, AuditRecorder
from backend.app.store import LedgerStore

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "excel"
DEFAULT_CATEGORY = "General"
DEFAULT_DESCRIPTION = "Movimiento importado"

INCOME_WORDS = {"income", "ingreso", "entrada", "credit", "credito"}
EXPENSE_WORDS = {"expense", "gasto", "egreso", "debit", "debito"}

# Alternate column names, first non-empty wins.
TYPE_FIELDS = ("type", "tipo")
AMOUNT_FIELDS = ("amount", "monto", "valor")
DATE_FIELDS = ("date", "fecha")
CATEGORY_FIELDS = ("category", "categoria", "rubro")
DESCRIPTION_FIELDS = ("description", "descripcion", "detalle", "concepto")


@dataclass(frozen=True)
class ImportRow:
    date: str
    type: TxnType
    amount: float
    category: str
    description: str


@dataclass(frozen=True)
class ImportResult:
    imported: int
    skipped: int


def normalize_type(value: Any) -> Optional[TxnType]:
    if not isinstance(value, str):
        return None
    word = value.strip().lower()
    if word in INCOME_WORDS:
        return "income"
    if word in EXPENSE_WORDS:
        return "expense"
    return None


def _first_present(row: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return None


def _first_text(row: Mapping[str, Any], keys: Sequence[str]) -> str:
    for key in keys:
        value = row.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def parse_row(row: Any) -> Optional[ImportRow]:
    """A row is all-or-nothing: type, date and a positive amount must resolve."""
    if not isinstance(row, Mapping):
        return None

    txn_type = normalize_type(_first_present(row, TYPE_FIELDS))
    amount = parse_amount(_first_present(row, AMOUNT_FIELDS))
    date_value = parse_import_date(_first_present(row, DATE_FIELDS))

    if not txn_type or not date_value or amount is None or amount <= 0:
        return None

    return ImportRow(
        date=date_value,
        type=txn_type,
        amount=amount,
        category=_first_text(row, CATEGORY_FIELDS) or DEFAULT_CATEGORY,
        description=_first_text(row, DESCRIPTION_FIELDS) or DEFAULT_DESCRIPTION,
    )


def _source_label(source: Any) -> str:
    if isinstance(source, str) and source.strip():
        return source.strip()[:IMPORT_SOURCE_MAX_CHARS]
    return DEFAULT_SOURCE


def import_rows(
    store: LedgerStore,
    audit: AuditRecorder,
    *,
    space_id: str,
    rows: Any,
    source: Any = None,
) -> ImportResult:
    raw_rows: List[Any] = list(rows[:IMPORT_MAX_ROWS]) if isinstance(rows, list) else []
    if not raw_rows:
        raise ValidationError("No se recibieron filas para importar.", code="no_rows")

    parsed: List[ImportRow] = []
    skipped = 0
    for raw in raw_rows:
        row = parse_row(raw)
        if row is None:
            skipped += 1
            continue
        parsed.append(row)

    if not parsed:
        raise ValidationError(
            "No se pudieron interpretar filas válidas del archivo.",
            code="no_valid_rows",
            extra={"skipped": skipped},
        )

    # Single batch: one failure fails everything, nothing is retried row by row.
    inserted = store.insert_many(
        "transactions",
        [
            {
                "space_id": space_id,
                "type": row.type,
                "amount": row.amount,
                "category": row.category,
                "description": row.description,
                "date": row.date,
            }
            for row in parsed
        ],
    )

    label = _source_label(source)
    audit.record(
        AuditEventIn(
            space_id=space_id,
            entity_type="transaction_import",
            entity_id=str(int(time.time() * 1000)),
            action="system",
            metadata={"source": label, "imported": len(inserted), "skipped": skipped},
        )
    )

    logger.info(
        "transactions_imported space_id=%s source=%s imported=%s skipped=%s",
        space_id,
        label,
        len(inserted),
        skipped,
    )
    return ImportResult(imported=len(inserted), skipped=skipped)
