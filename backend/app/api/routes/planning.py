from __future__ import annotations

import datetime as dt
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backend.app.api.deps import get_audit_recorder, get_partition_key, get_store
from backend.app.services import ledger_service
from backend.app.services.audit_service import AuditRecorder
from backend.app.store import LedgerStore

router = APIRouter(prefix="/api", tags=["planning"])

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class BudgetIn(BaseModel):
    category: str = Field(min_length=1, max_length=80)
    month: str = Field(pattern=MONTH_PATTERN)
    limit_amount: float = Field(gt=0)
    alert_threshold: int = Field(80, ge=1, le=100)


class BudgetUpdate(BaseModel):
    category: Optional[str] = Field(None, min_length=1, max_length=80)
    month: Optional[str] = Field(None, pattern=MONTH_PATTERN)
    limit_amount: Optional[float] = Field(None, gt=0)
    alert_threshold: Optional[int] = Field(None, ge=1, le=100)


class BudgetOut(BaseModel):
    id: str
    space_id: str
    category: str
    month: str
    limit_amount: float
    alert_threshold: int
    created_at: datetime
    updated_at: datetime


class RecurringIn(BaseModel):
    type: Literal["income", "expense"]
    amount: float = Field(gt=0)
    description: str = Field(min_length=1, max_length=500)
    category: str = Field(min_length=1, max_length=80)
    frequency: Literal["weekly", "biweekly", "monthly"]
    start_date: dt.date
    next_run: Optional[dt.date] = None
    is_active: bool = True


class RecurringUpdate(BaseModel):
    type: Optional[Literal["income", "expense"]] = None
    amount: Optional[float] = Field(None, gt=0)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    category: Optional[str] = Field(None, min_length=1, max_length=80)
    frequency: Optional[Literal["weekly", "biweekly", "monthly"]] = None
    start_date: Optional[dt.date] = None
    next_run: Optional[dt.date] = None
    is_active: Optional[bool] = None


class RecurringOut(BaseModel):
    id: str
    space_id: str
    type: str
    amount: float
    description: str
    category: str
    frequency: str
    start_date: dt.date
    next_run: dt.date
    is_active: bool


@router.get("/budgets", response_model=List[BudgetOut])
def list_budgets(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN),
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
):
    return ledger_service.list_budgets(store, space_id, month)


@router.post("/budgets", response_model=BudgetOut)
def upsert_budget(
    req: BudgetIn,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    values = req.model_dump()
    values["category"] = values["category"].strip()
    return ledger_service.upsert_budget(store, audit, space_id, values)


@router.patch("/budgets/{budget_id}", response_model=BudgetOut)
def update_budget(
    budget_id: str,
    req: BudgetUpdate,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    if "category" in changes:
        changes["category"] = changes["category"].strip()
    return ledger_service.update_budget(store, audit, space_id, budget_id, changes)


@router.delete("/budgets/{budget_id}", response_model=BudgetOut)
def delete_budget(
    budget_id: str,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return ledger_service.delete_budget(store, audit, space_id, budget_id)


@router.get("/recurring", response_model=List[RecurringOut])
def list_recurring(
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
):
    return ledger_service.list_recurring(store, space_id)


@router.post("/recurring", response_model=RecurringOut, status_code=201)
def create_recurring(
    req: RecurringIn,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return ledger_service.create_recurring(store, audit, space_id, req.model_dump())


@router.patch("/recurring/{recurring_id}", response_model=RecurringOut)
def update_recurring(
    recurring_id: str,
    req: RecurringUpdate,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    return ledger_service.update_recurring(store, audit, space_id, recurring_id, changes)


@router.delete("/recurring/{recurring_id}", response_model=RecurringOut)
def delete_recurring(
    recurring_id: str,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return ledger_service.delete_recurring(store, audit, space_id, recurring_id)
