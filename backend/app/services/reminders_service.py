"""
Budget usage, balances and upcoming-payment reminders for one space.

`build_reminder_context` is pure: give it snapshots and a date, it gives
back the same answer every time. `load_reminder_context` is the thin store
reader in front of it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from backend.app.config import SUMMARY_TRANSACTION_WINDOW
from backend.app.normalize.dates import days_until, month_key, utc_today
from backend.app.store import LedgerStore, Row

logger = logging.getLogger(__name__)

DEFAULT_ALERT_THRESHOLD = 80
UPCOMING_DAYS = 7
MAX_REMINDERS = 12

MAX_OBLIGATION_REMINDERS = 8
MAX_DEBT_REMINDERS = 8
MAX_BUDGET_REMINDERS = 5
MAX_RECURRING_REMINDERS = 5


@dataclass(frozen=True)
class Reminder:
    kind: str  # obligation_overdue / obligation_due / debt_due / budget_alert / recurring_due
    title: str
    message: str
    days: Optional[int] = None
    amount: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "title": self.title,
            "days": self.days,
            "amount": self.amount,
            "message": self.message,
        }


def _number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def format_money(value: float) -> str:
    # es-AR: "." thousands, "," decimals
    text = f"{value:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"$ {text}"


def _category_key(value: Any) -> str:
    text = str(value or "").strip()
    return (text or "otros").lower()


def _date_text(value: Any) -> str:
    return value.isoformat() if isinstance(value, date) else str(value or "")


def spent_by_category(transactions: Sequence[Row], month: str) -> Dict[str, float]:
    spent: Dict[str, float] = {}
    for txn in transactions:
        if txn.get("type") != "expense" or not _date_text(txn.get("date")).startswith(month):
            continue
        key = _category_key(txn.get("category"))
        spent[key] = spent.get(key, 0.0) + _number(txn.get("amount"))
    return spent


def budget_usage(budgets: Sequence[Row], spent: Dict[str, float]) -> List[Dict[str, Any]]:
    usage_rows = []
    for budget in budgets:
        used = spent.get(_category_key(budget.get("category")), 0.0)
        limit_amount = _number(budget.get("limit_amount"))
        usage = (used / limit_amount) * 100 if limit_amount > 0 else 0.0
        threshold = _number(budget.get("alert_threshold")) or DEFAULT_ALERT_THRESHOLD
        usage_rows.append(
            {
                "category": budget.get("category"),
                "spent": round(used, 2),
                "limit_amount": limit_amount,
                "usage": round(usage, 1),
                "alert_threshold": threshold,
                "is_alert": usage >= threshold,
            }
        )
    return usage_rows


def _is_active_debt(debt: Row) -> bool:
    return _number(debt.get("total_amount")) > 0 and _number(debt.get("remaining_installments")) > 0


def _reminders(
    pending: Sequence[Row],
    active_debts: Sequence[Row],
    usage_rows: Sequence[Dict[str, Any]],
    recurring: Sequence[Row],
    today: date,
) -> List[Reminder]:
    out: List[Reminder] = []

    for obligation in pending[:MAX_OBLIGATION_REMINDERS]:
        days = days_until(obligation.get("due_date"), today=today)
        if days is None:
            continue
        amount = _number(obligation.get("amount"))
        title = obligation.get("title") or ""
        if days < 0:
            out.append(Reminder(
                kind="obligation_overdue",
                title=title,
                days=days,
                amount=amount,
                message=f"{title} está vencida por {abs(days)} día(s) ({format_money(amount)}).",
            ))
        elif days <= UPCOMING_DAYS:
            out.append(Reminder(
                kind="obligation_due",
                title=title,
                days=days,
                amount=amount,
                message=f"{title} vence en {days} día(s) ({format_money(amount)}).",
            ))

    for debt in active_debts[:MAX_DEBT_REMINDERS]:
        days = days_until(debt.get("next_payment_date"), today=today)
        if days is None or days > UPCOMING_DAYS:
            continue
        amount = _number(debt.get("monthly_payment"))
        name = debt.get("name") or ""
        out.append(Reminder(
            kind="debt_due",
            title=name,
            days=days,
            amount=amount,
            message=f"Pago de {name} en {days} día(s), cuota {format_money(amount)}.",
        ))

    alerts = [row for row in usage_rows if row["is_alert"]]
    for row in alerts[:MAX_BUDGET_REMINDERS]:
        out.append(Reminder(
            kind="budget_alert",
            title=str(row["category"]),
            amount=row["spent"],
            message=(
                f"Presupuesto {row['category']} al {row['usage']}% "
                f"({format_money(row['spent'])} de {format_money(row['limit_amount'])})."
            ),
        ))

    for rule in recurring[:MAX_RECURRING_REMINDERS]:
        days = days_until(rule.get("next_run"), today=today)
        if days is None or days > UPCOMING_DAYS:
            continue
        amount = _number(rule.get("amount"))
        description = rule.get("description") or ""
        out.append(Reminder(
            kind="recurring_due",
            title=description,
            days=days,
            amount=amount,
            message=f"{description} se ejecuta en {days} día(s) por {format_money(amount)}.",
        ))

    return out[:MAX_REMINDERS]


def build_reminder_context(
    transactions: Sequence[Row],
    obligations: Sequence[Row],
    debts: Sequence[Row],
    recurring: Sequence[Row],
    budgets: Sequence[Row],
    *,
    today: date,
) -> Dict[str, Any]:
    month = month_key(today)

    total_income = sum(_number(t.get("amount")) for t in transactions if t.get("type") == "income")
    total_expenses = sum(_number(t.get("amount")) for t in transactions if t.get("type") == "expense")

    active_debts = [d for d in debts if _is_active_debt(d)]
    pending = [o for o in obligations if o.get("status") == "pending"]
    overdue = [
        o for o in pending
        if (days_until(o.get("due_date"), today=today) or 0) < 0
    ]
    active_recurring = [r for r in recurring if r.get("is_active", True)]

    usage_rows = budget_usage(budgets, spent_by_category(transactions, month))
    reminders = _reminders(pending, active_debts, usage_rows, active_recurring, today)

    return {
        "month": month,
        "summary": {
            "balance": round(total_income - total_expenses, 2),
            "total_income": round(total_income, 2),
            "total_expenses": round(total_expenses, 2),
            "total_active_debt": round(sum(_number(d.get("total_amount")) for d in active_debts), 2),
            "total_pending_obligations": round(sum(_number(o.get("amount")) for o in pending), 2),
            "overdue_obligations": len(overdue),
            "pending_obligations_count": len(pending),
            "active_debts_count": len(active_debts),
        },
        "budgets": usage_rows,
        "reminders": [r.as_dict() for r in reminders],
    }


def load_reminder_context(store: LedgerStore, space_id: str, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or utc_today()
    scope = {"space_id": space_id}

    transactions = store.select(
        "transactions", scope, order_by="date", descending=True, limit=SUMMARY_TRANSACTION_WINDOW
    )
    debts = store.select("debts", scope, order_by="next_payment_date")
    obligations = store.select("obligations", scope, order_by="due_date")
    budgets = store.select("budgets", {**scope, "month": month_key(today)})
    recurring = store.select("recurring_transactions", {**scope, "is_active": True}, order_by="next_run")

    context = build_reminder_context(
        transactions, obligations, debts, recurring, budgets, today=today
    )
    logger.info(
        "reminder_context_built space_id=%s month=%s reminders=%s budgets=%s",
        space_id,
        context["month"],
        len(context["reminders"]),
        len(context["budgets"]),
    )
    return context
