from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from backend.app.config import SUMMARY_TRANSACTION_WINDOW
from backend.app.errors import ConflictError, NotFoundError, ValidationError
from backend.app.services.audit_service import AuditEventIn, AuditRecorder
from backend.app.store import LedgerStore, Row

logger = logging.getLogger(__name__)


def _audit_create(audit: AuditRecorder, space_id: str, entity_type: str, row: Row) -> None:
    audit.record(
        AuditEventIn(
            space_id=space_id,
            entity_type=entity_type,
            entity_id=row["id"],
            action="create",
            after_data=row,
        )
    )


# table -> audit entity_type
ENTITY_TYPES: Dict[str, str] = {
    "transactions": "transaction",
    "obligations": "obligation",
    "debts": "debt",
    "budgets": "budget",
    "recurring_transactions": "recurring_transaction",
}


def _get_owned(store: LedgerStore, space_id: str, table: str, entity_id: str) -> Row:
    existing = store.get(table, {"id": entity_id, "space_id": space_id})
    if existing is None:
        raise NotFoundError(f"{ENTITY_TYPES[table].replace('_', ' ').capitalize()} not found")
    return existing


def update_entity(
    store: LedgerStore,
    audit: AuditRecorder,
    space_id: str,
    table: str,
    entity_id: str,
    changes: Dict[str, Any],
    *,
    existing: Optional[Row] = None,
) -> Row:
    """
    Partial update of one row in the caller's space.

    `changes` holds only the fields the caller sent; an empty dict is rejected.
    """
    if not changes:
        raise ValidationError("At least one field is required", code="empty_update")
    entity_type = ENTITY_TYPES[table]
    before = existing if existing is not None else _get_owned(store, space_id, table, entity_id)

    row = store.update(table, changes, {"id": entity_id, "space_id": space_id})
    if row is None:
        # deleted between the read and the write
        raise NotFoundError(f"{entity_type.replace('_', ' ').capitalize()} not found")

    audit.record(
        AuditEventIn(
            space_id=space_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action="update",
            before_data=before,
            after_data=row,
        )
    )
    logger.info(
        "%s_updated space_id=%s id=%s fields=%s",
        entity_type,
        space_id,
        entity_id,
        sorted(changes),
    )
    return row


def delete_entity(store: LedgerStore, audit: AuditRecorder, space_id: str, table: str, entity_id: str) -> Row:
    entity_type = ENTITY_TYPES[table]
    existing = _get_owned(store, space_id, table, entity_id)

    store.delete(table, {"id": entity_id, "space_id": space_id})
    audit.record(
        AuditEventIn(
            space_id=space_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action="delete",
            before_data=existing,
        )
    )
    logger.info("%s_deleted space_id=%s id=%s", entity_type, space_id, entity_id)
    return existing


# -------------------------
# transactions
# -------------------------

def list_transactions(store: LedgerStore, space_id: str, limit: int = SUMMARY_TRANSACTION_WINDOW) -> List[Row]:
    return store.select(
        "transactions",
        {"space_id": space_id},
        order_by="date",
        descending=True,
        limit=limit,
    )


def create_transaction(store: LedgerStore, audit: AuditRecorder, space_id: str, values: Dict[str, Any]) -> Row:
    row = store.insert("transactions", {**values, "space_id": space_id})
    _audit_create(audit, space_id, "transaction", row)
    logger.info(
        "transaction_created space_id=%s transaction_id=%s type=%s amount=%s",
        space_id,
        row["id"],
        row["type"],
        row["amount"],
    )
    return row


def update_transaction(
    store: LedgerStore, audit: AuditRecorder, space_id: str, transaction_id: str, changes: Dict[str, Any]
) -> Row:
    return update_entity(store, audit, space_id, "transactions", transaction_id, changes)


def delete_transaction(store: LedgerStore, audit: AuditRecorder, space_id: str, transaction_id: str) -> Row:
    return delete_entity(store, audit, space_id, "transactions", transaction_id)


# -------------------------
# obligations / debts
# -------------------------

def list_obligations(store: LedgerStore, space_id: str) -> List[Row]:
    return store.select("obligations", {"space_id": space_id}, order_by="due_date")


def create_obligation(store: LedgerStore, audit: AuditRecorder, space_id: str, values: Dict[str, Any]) -> Row:
    row = store.insert("obligations", {**values, "space_id": space_id, "status": "pending"})
    _audit_create(audit, space_id, "obligation", row)
    logger.info("obligation_created space_id=%s obligation_id=%s amount=%s", space_id, row["id"], row["amount"])
    return row


def update_obligation(
    store: LedgerStore, audit: AuditRecorder, space_id: str, obligation_id: str, changes: Dict[str, Any]
) -> Row:
    return update_entity(store, audit, space_id, "obligations", obligation_id, changes)


def delete_obligation(store: LedgerStore, audit: AuditRecorder, space_id: str, obligation_id: str) -> Row:
    return delete_entity(store, audit, space_id, "obligations", obligation_id)


def list_debts(store: LedgerStore, space_id: str) -> List[Row]:
    return store.select("debts", {"space_id": space_id}, order_by="next_payment_date")


def create_debt(store: LedgerStore, audit: AuditRecorder, space_id: str, values: Dict[str, Any]) -> Row:
    if values["remaining_installments"] > values["total_installments"]:
        raise ValidationError(
            "remaining_installments cannot exceed total_installments",
            code="invalid_installments",
        )
    row = store.insert("debts", {**values, "space_id": space_id})
    _audit_create(audit, space_id, "debt", row)
    logger.info("debt_created space_id=%s debt_id=%s total=%s", space_id, row["id"], row["total_amount"])
    return row


def update_debt(
    store: LedgerStore, audit: AuditRecorder, space_id: str, debt_id: str, changes: Dict[str, Any]
) -> Row:
    existing = _get_owned(store, space_id, "debts", debt_id)
    merged = {**existing, **changes}
    if merged["remaining_installments"] > merged["total_installments"]:
        raise ValidationError(
            "remaining_installments cannot exceed total_installments",
            code="invalid_installments",
        )
    return update_entity(store, audit, space_id, "debts", debt_id, changes, existing=existing)


def delete_debt(store: LedgerStore, audit: AuditRecorder, space_id: str, debt_id: str) -> Row:
    return delete_entity(store, audit, space_id, "debts", debt_id)


# -------------------------
# budgets / recurring
# -------------------------

def list_budgets(store: LedgerStore, space_id: str, month: Optional[str] = None) -> List[Row]:
    filters: Dict[str, Any] = {"space_id": space_id}
    if month:
        filters["month"] = month
    return store.select("budgets", filters, order_by="category")


def upsert_budget(store: LedgerStore, audit: AuditRecorder, space_id: str, values: Dict[str, Any]) -> Row:
    """One budget per (space, category, month): a second create overwrites the limits."""
    key = {"space_id": space_id, "category": values["category"], "month": values["month"]}
    existing = store.get("budgets", key)
    if existing is None:
        row = store.insert("budgets", {**values, **key})
        _audit_create(audit, space_id, "budget", row)
        return row

    changes = {
        "limit_amount": values["limit_amount"],
        "alert_threshold": values["alert_threshold"],
    }
    return update_entity(store, audit, space_id, "budgets", existing["id"], changes, existing=existing)


def update_budget(
    store: LedgerStore, audit: AuditRecorder, space_id: str, budget_id: str, changes: Dict[str, Any]
) -> Row:
    existing = _get_owned(store, space_id, "budgets", budget_id)
    if "category" in changes or "month" in changes:
        key = {
            "space_id": space_id,
            "category": changes.get("category", existing["category"]),
            "month": changes.get("month", existing["month"]),
        }
        clash = store.get("budgets", key)
        if clash is not None and clash["id"] != budget_id:
            raise ConflictError(
                "A budget for that category and month already exists",
                code="budget_exists",
            )
    return update_entity(store, audit, space_id, "budgets", budget_id, changes, existing=existing)


def delete_budget(store: LedgerStore, audit: AuditRecorder, space_id: str, budget_id: str) -> Row:
    return delete_entity(store, audit, space_id, "budgets", budget_id)


def list_recurring(store: LedgerStore, space_id: str) -> List[Row]:
    return store.select("recurring_transactions", {"space_id": space_id}, order_by="next_run")


def create_recurring(store: LedgerStore, audit: AuditRecorder, space_id: str, values: Dict[str, Any]) -> Row:
    start: date = values["start_date"]
    row = store.insert(
        "recurring_transactions",
        {
            **values,
            "space_id": space_id,
            "next_run": values.get("next_run") or start,
            "is_active": values.get("is_active", True),
        },
    )
    _audit_create(audit, space_id, "recurring_transaction", row)
    return row


def update_recurring(
    store: LedgerStore, audit: AuditRecorder, space_id: str, recurring_id: str, changes: Dict[str, Any]
) -> Row:
    return update_entity(store, audit, space_id, "recurring_transactions", recurring_id, changes)


def delete_recurring(store: LedgerStore, audit: AuditRecorder, space_id: str, recurring_id: str) -> Row:
    return delete_entity(store, audit, space_id, "recurring_transactions", recurring_id)
