from __future__ import annotations

import datetime as dt
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.app.api.deps import get_audit_recorder, get_partition_key, get_store
from backend.app.api.routes.obligations import ConfirmPaymentIn
from backend.app.services import ledger_service, reconciliation_service
from backend.app.services.audit_service import AuditRecorder
from backend.app.store import LedgerStore

router = APIRouter(prefix="/api/debts", tags=["debts"])


class DebtIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    total_amount: float = Field(gt=0)
    monthly_payment: float = Field(ge=0)
    remaining_installments: int = Field(ge=0)
    total_installments: int = Field(ge=1)
    next_payment_date: dt.date
    category: str = Field("Deudas", min_length=1, max_length=80)


class DebtUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    total_amount: Optional[float] = Field(None, ge=0)
    monthly_payment: Optional[float] = Field(None, ge=0)
    remaining_installments: Optional[int] = Field(None, ge=0)
    total_installments: Optional[int] = Field(None, ge=1)
    next_payment_date: Optional[dt.date] = None
    category: Optional[str] = Field(None, min_length=1, max_length=80)


class DebtOut(BaseModel):
    id: str
    space_id: str
    name: str
    total_amount: float
    monthly_payment: float
    remaining_installments: int
    total_installments: int
    next_payment_date: dt.date
    category: str
    created_at: datetime
    updated_at: datetime


class DebtPaymentOut(BaseModel):
    debt: DebtOut
    transaction: Dict[str, Any]
    remaining: float
    obligation_updated: bool
    obligation_id: Optional[str] = None


@router.get("", response_model=List[DebtOut])
def list_debts(
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
):
    return ledger_service.list_debts(store, space_id)


@router.post("", response_model=DebtOut, status_code=201)
def create_debt(
    req: DebtIn,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return ledger_service.create_debt(store, audit, space_id, req.model_dump())


@router.patch("/{debt_id}", response_model=DebtOut)
def update_debt(
    debt_id: str,
    req: DebtUpdate,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    return ledger_service.update_debt(store, audit, space_id, debt_id, changes)


@router.delete("/{debt_id}", response_model=DebtOut)
def delete_debt(
    debt_id: str,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return ledger_service.delete_debt(store, audit, space_id, debt_id)


@router.post("/{debt_id}/confirm-payment", response_model=DebtPaymentOut)
def confirm_payment(
    debt_id: str,
    req: Optional[ConfirmPaymentIn] = None,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    req = req or ConfirmPaymentIn()
    return reconciliation_service.confirm_debt_payment(
        store,
        audit,
        space_id=space_id,
        debt_id=debt_id,
        payment_amount=req.payment_amount,
        payment_date=req.payment_date,
        description=req.description,
    )
