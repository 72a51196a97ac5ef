from __future__ import annotations

import datetime as dt
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from backend.app.api.deps import get_audit_recorder, get_partition_key, get_store
from backend.app.services import ledger_service, reconciliation_service
from backend.app.services.audit_service import AuditRecorder
from backend.app.store import LedgerStore

router = APIRouter(prefix="/api/obligations", tags=["obligations"])


class ObligationIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    amount: float = Field(gt=0)
    due_date: dt.date
    category: Optional[str] = Field(None, max_length=80)
    minimum_payment: Optional[float] = Field(None, ge=0)


class ObligationUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[float] = Field(None, gt=0)
    due_date: Optional[dt.date] = None
    status: Optional[Literal["pending", "paid", "overdue"]] = None
    category: Optional[str] = Field(None, max_length=80)
    minimum_payment: Optional[float] = Field(None, ge=0)


class ObligationOut(BaseModel):
    id: str
    space_id: str
    title: str
    amount: float
    due_date: dt.date
    status: str
    category: Optional[str] = None
    minimum_payment: Optional[float] = None
    created_at: datetime
    updated_at: datetime


class ConfirmPaymentIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_amount: Optional[float] = Field(None, alias="paymentAmount")
    payment_date: Optional[str] = Field(None, alias="paymentDate")
    description: Optional[str] = None


class ObligationPaymentOut(BaseModel):
    obligation: ObligationOut
    transaction: Dict[str, Any]
    remaining: float


@router.get("", response_model=List[ObligationOut])
def list_obligations(
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
):
    return ledger_service.list_obligations(store, space_id)


@router.post("", response_model=ObligationOut, status_code=201)
def create_obligation(
    req: ObligationIn,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    values = req.model_dump()
    values["title"] = values["title"].strip()
    return ledger_service.create_obligation(store, audit, space_id, values)


@router.patch("/{obligation_id}", response_model=ObligationOut)
def update_obligation(
    obligation_id: str,
    req: ObligationUpdate,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    if "title" in changes:
        changes["title"] = changes["title"].strip()
    return ledger_service.update_obligation(store, audit, space_id, obligation_id, changes)


@router.delete("/{obligation_id}", response_model=ObligationOut)
def delete_obligation(
    obligation_id: str,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return ledger_service.delete_obligation(store, audit, space_id, obligation_id)


@router.post("/{obligation_id}/confirm-payment", response_model=ObligationPaymentOut)
def confirm_payment(
    obligation_id: str,
    req: Optional[ConfirmPaymentIn] = None,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    req = req or ConfirmPaymentIn()
    return reconciliation_service.confirm_obligation_payment(
        store,
        audit,
        space_id=space_id,
        obligation_id=obligation_id,
        payment_amount=req.payment_amount,
        payment_date=req.payment_date,
        description=req.description,
    )
