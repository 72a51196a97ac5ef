from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.app.api.deps import get_partition_key, get_store
from backend.app.services import reminders_service
from backend.app.store import LedgerStore

router = APIRouter(prefix="/api/summary", tags=["summary"])


class SummaryTotalsOut(BaseModel):
    balance: float
    total_income: float
    total_expenses: float
    total_active_debt: float
    total_pending_obligations: float
    overdue_obligations: int
    pending_obligations_count: int
    active_debts_count: int


class BudgetUsageOut(BaseModel):
    category: Optional[str] = None
    spent: float
    limit_amount: float
    usage: float
    alert_threshold: float
    is_alert: bool


class ReminderOut(BaseModel):
    kind: str
    title: str
    days: Optional[int] = None
    amount: Optional[float] = None
    message: str


class SummaryOut(BaseModel):
    month: str
    summary: SummaryTotalsOut
    budgets: List[BudgetUsageOut]
    reminders: List[ReminderOut]


@router.get("", response_model=SummaryOut)
def get_summary(
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
) -> Dict[str, Any]:
    return reminders_service.load_reminder_context(store, space_id)
