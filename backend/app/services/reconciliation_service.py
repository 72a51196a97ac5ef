from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any, Dict, Optional

from backend.app.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from backend.app.normalize.dates import add_month, to_date, utc_today
from backend.app.services.audit_service import AuditEventIn, AuditRecorder
from backend.app.services.saga import Saga, SagaStep
from backend.app.store import LedgerStore, Row

logger = logging.getLogger(__name__)

DEFAULT_PAYABLE_CATEGORY = "Deudas"


# -------------------------
# helpers
# -------------------------

def _finite(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _payment_date(value: Any, today: Optional[date]) -> date:
    if value is None or value == "":
        return today or utc_today()
    if isinstance(value, date):
        return value
    found = to_date(value)
    if found is None:
        raise ValidationError("paymentDate must be YYYY-MM-DD", code="invalid_payment_date")
    return found


def _requested_amount(value: Any) -> Optional[float]:
    if value is None:
        return None
    number = _finite(value)
    if number is None:
        raise ValidationError("paymentAmount must be a number", code="invalid_payment_amount")
    return number


def _description(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _create_transaction_step(store: LedgerStore, space_id: str, values: Dict[str, Any]) -> SagaStep:
    def action(_results: Dict[str, Any]) -> Row:
        return store.insert("transactions", {"space_id": space_id, "type": "expense", **values})

    def compensate(txn: Row) -> None:
        store.delete("transactions", {"id": txn["id"], "space_id": space_id})

    return SagaStep("create_transaction", action, compensate)


def _update_step(store: LedgerStore, name: str, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> SagaStep:
    def action(_results: Dict[str, Any]) -> Row:
        updated = store.update(table, values, filters)
        if updated is None:
            raise PersistenceError(f"{table} row {filters.get('id')} not updated")
        return updated

    return SagaStep(name, action)


# -------------------------
# obligations
# -------------------------

def confirm_obligation_payment(
    store: LedgerStore,
    audit: AuditRecorder,
    *,
    space_id: str,
    obligation_id: str,
    payment_amount: Any = None,
    payment_date: Any = None,
    description: Any = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Record a payment against an obligation: write the expense transaction,
    then reduce (or settle) the obligation. If the second write fails the
    transaction is deleted again and ReconciliationConflict is raised.

    Partial payments leave the obligation pending with the remaining amount;
    a full payment marks it paid and leaves the stored amount as it was.
    """
    obligation = store.get("obligations", {"id": obligation_id, "space_id": space_id})
    if obligation is None:
        raise NotFoundError("Obligation not found")

    outstanding = _finite(obligation.get("amount"))
    if outstanding is None or outstanding <= 0:
        raise ConflictError(
            "Obligation has no outstanding amount",
            code="invalid_outstanding_amount",
        )

    requested = _requested_amount(payment_amount)
    payment = round(min(outstanding if requested is None else requested, outstanding), 2)
    if payment <= 0:
        raise ValidationError("paymentAmount must be greater than 0", code="invalid_payment_amount")

    paid_on = _payment_date(payment_date, today)
    remaining = round(max(outstanding - payment, 0), 2)
    status = "paid" if remaining == 0 else "pending"
    changes: Dict[str, Any] = {"status": status}
    if status == "pending":
        changes["amount"] = remaining

    saga = Saga(
        "obligation_payment",
        context={"space_id": space_id, "obligation_id": obligation_id, "payment": payment},
    )
    results = saga.run(
        [
            _create_transaction_step(
                store,
                space_id,
                {
                    "amount": payment,
                    "category": obligation.get("category") or DEFAULT_PAYABLE_CATEGORY,
                    "description": _description(description, f"Pago de obligación: {obligation['title']}"),
                    "date": paid_on,
                },
            ),
            _update_step(
                store,
                "update_obligation",
                "obligations",
                changes,
                {"id": obligation_id, "space_id": space_id},
            ),
        ]
    )
    txn = results["create_transaction"]
    updated = results["update_obligation"]

    audit.record(
        AuditEventIn(
            space_id=space_id,
            entity_type="transaction",
            entity_id=txn["id"],
            action="create",
            after_data=txn,
            metadata={"source": "obligation_confirm_payment", "obligation_id": obligation_id},
        )
    )
    audit.record(
        AuditEventIn(
            space_id=space_id,
            entity_type="obligation",
            entity_id=obligation_id,
            action="update",
            before_data=obligation,
            after_data=updated,
            metadata={
                "payment_amount": payment,
                "payment_date": paid_on.isoformat(),
                "transaction_id": txn["id"],
            },
        )
    )

    logger.info(
        "obligation_payment_confirmed space_id=%s obligation_id=%s transaction_id=%s payment=%s remaining=%s status=%s",
        space_id,
        obligation_id,
        txn["id"],
        payment,
        remaining,
        status,
    )
    return {"obligation": updated, "transaction": txn, "remaining": remaining}


# -------------------------
# debts
# -------------------------

def _settle_matching_obligation(
    store: LedgerStore,
    audit: AuditRecorder,
    *,
    space_id: str,
    debt: Row,
    transaction_id: str,
) -> Optional[str]:
    """Best-effort: the earliest-due pending obligation titled like the debt is marked paid."""
    try:
        candidates = store.select(
            "obligations",
            {"space_id": space_id, "status": "pending", "title": debt["name"]},
            order_by="due_date",
            limit=1,
        )
        if not candidates:
            return None
        match = candidates[0]
        updated = store.update(
            "obligations",
            {"status": "paid"},
            {"id": match["id"], "space_id": space_id},
        )
    except PersistenceError as exc:
        logger.warning(
            "debt_obligation_match_failed space_id=%s debt_id=%s reason=%s",
            space_id,
            debt["id"],
            exc.message,
        )
        return None
    if updated is None:
        return None

    audit.record(
        AuditEventIn(
            space_id=space_id,
            entity_type="obligation",
            entity_id=match["id"],
            action="update",
            before_data=match,
            after_data=updated,
            metadata={"source": "debt_confirm_payment", "debt_id": debt["id"], "transaction_id": transaction_id},
        )
    )
    return match["id"]


def confirm_debt_payment(
    store: LedgerStore,
    audit: AuditRecorder,
    *,
    space_id: str,
    debt_id: str,
    payment_amount: Any = None,
    payment_date: Any = None,
    description: Any = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    debt = store.get("debts", {"id": debt_id, "space_id": space_id})
    if debt is None:
        raise NotFoundError("Debt not found")

    total = _finite(debt.get("total_amount")) or 0.0
    installments = int(debt.get("remaining_installments") or 0)
    if total <= 0 or installments <= 0:
        raise ConflictError("Debt is already settled", code="already_settled")

    requested = _requested_amount(payment_amount)
    if requested is None:
        monthly = _finite(debt.get("monthly_payment")) or 0.0
        requested = monthly if monthly > 0 else total
    payment = round(min(requested, total), 2)
    if payment <= 0:
        raise ValidationError("paymentAmount must be greater than 0", code="invalid_payment_amount")

    paid_on = _payment_date(payment_date, today)
    remaining = round(max(total - payment, 0), 2)
    remaining_installments = max(installments - 1, 0)
    if remaining > 0 and remaining_installments > 0:
        next_payment = add_month(to_date(debt["next_payment_date"]) or paid_on)
    else:
        next_payment = paid_on

    saga = Saga(
        "debt_payment",
        context={"space_id": space_id, "debt_id": debt_id, "payment": payment},
    )
    results = saga.run(
        [
            _create_transaction_step(
                store,
                space_id,
                {
                    "amount": payment,
                    "category": debt.get("category") or DEFAULT_PAYABLE_CATEGORY,
                    "description": _description(description, f"Pago de deuda: {debt['name']}"),
                    "date": paid_on,
                },
            ),
            _update_step(
                store,
                "update_debt",
                "debts",
                {
                    "total_amount": remaining,
                    "remaining_installments": remaining_installments,
                    "next_payment_date": next_payment,
                },
                {"id": debt_id, "space_id": space_id},
            ),
        ]
    )
    txn = results["create_transaction"]
    updated = results["update_debt"]

    audit.record(
        AuditEventIn(
            space_id=space_id,
            entity_type="transaction",
            entity_id=txn["id"],
            action="create",
            after_data=txn,
            metadata={"source": "debt_confirm_payment", "debt_id": debt_id},
        )
    )
    audit.record(
        AuditEventIn(
            space_id=space_id,
            entity_type="debt",
            entity_id=debt_id,
            action="update",
            before_data=debt,
            after_data=updated,
            metadata={
                "payment_amount": payment,
                "payment_date": paid_on.isoformat(),
                "transaction_id": txn["id"],
            },
        )
    )

    obligation_id = _settle_matching_obligation(
        store,
        audit,
        space_id=space_id,
        debt=debt,
        transaction_id=txn["id"],
    )

    logger.info(
        "debt_payment_confirmed space_id=%s debt_id=%s transaction_id=%s payment=%s remaining=%s installments_left=%s",
        space_id,
        debt_id,
        txn["id"],
        payment,
        remaining,
        remaining_installments,
    )
    return {
        "debt": updated,
        "transaction": txn,
        "remaining": remaining,
        "obligation_updated": obligation_id is not None,
        "obligation_id": obligation_id,
    }
