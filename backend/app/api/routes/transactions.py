from __future__ import annotations

import datetime as dt
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.api.deps import get_audit_recorder, get_converter, get_partition_key, get_store
from backend.app.errors import ValidationError
from backend.app.normalize.extraction import RawExtraction
from backend.app.services import import_service, ledger_service, preview_service
from backend.app.services.audit_service import AuditRecorder
from backend.app.services.fx_service import CurrencyConverter
from backend.app.store import LedgerStore

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


class TransactionIn(BaseModel):
    type: Literal["income", "expense"]
    amount: float = Field(gt=0)
    description: str = Field(min_length=1, max_length=500)
    category: str = Field(min_length=1, max_length=80)
    date: dt.date

    @field_validator("description", "category")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class TransactionUpdate(BaseModel):
    type: Optional[Literal["income", "expense"]] = None
    amount: Optional[float] = Field(None, gt=0)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    category: Optional[str] = Field(None, min_length=1, max_length=80)
    date: Optional[dt.date] = None

    @field_validator("description", "category")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class TransactionOut(BaseModel):
    id: str
    space_id: str
    type: str
    amount: float
    description: str
    category: str
    date: dt.date
    created_at: datetime


class PreviewIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    extraction: Optional[Dict[str, Any]] = None
    document_context: Optional[Dict[str, Any]] = Field(None, alias="documentContext")
    max_rows: Any = Field(None, alias="maxRows")

    def raw_extraction(self) -> Optional[Dict[str, Any]]:
        if isinstance(self.extraction, dict):
            return self.extraction
        nested = (self.document_context or {}).get("extraction")
        return nested if isinstance(nested, dict) else None


class PreviewRowOut(BaseModel):
    date: str
    type: str
    category: str
    description: str
    amount: float


class PreviewMetaOut(BaseModel):
    count: int
    usd_rate_used: float
    usd_source: Optional[str] = None
    taxes_applied_percent: Optional[float] = None


class PreviewOut(BaseModel):
    rows: List[PreviewRowOut]
    meta: Optional[PreviewMetaOut] = None
    warnings: List[str] = []


class ImportIn(BaseModel):
    source: Any = None
    rows: Any = None


class ImportOut(BaseModel):
    imported: int
    skipped: int


@router.get("", response_model=List[TransactionOut])
def list_transactions(
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
):
    return ledger_service.list_transactions(store, space_id)


@router.post("", response_model=TransactionOut, status_code=201)
def create_transaction(
    req: TransactionIn,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return ledger_service.create_transaction(store, audit, space_id, req.model_dump())


@router.post("/preview", response_model=PreviewOut)
def preview_transactions(
    req: PreviewIn,
    space_id: str = Depends(get_partition_key),
    converter: CurrencyConverter = Depends(get_converter),
):
    raw = req.raw_extraction()
    if raw is None:
        raise ValidationError("extraction is required", code="missing_extraction")
    return preview_service.build_preview(
        RawExtraction.model_validate(raw),
        converter,
        max_rows=req.max_rows,
    )


@router.post("/import", response_model=ImportOut)
def import_transactions(
    req: ImportIn,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    result = import_service.import_rows(
        store,
        audit,
        space_id=space_id,
        rows=req.rows,
        source=req.source,
    )
    return ImportOut(imported=result.imported, skipped=result.skipped)


@router.delete("/{transaction_id}", response_model=TransactionOut)
def delete_transaction(
    transaction_id: str,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return ledger_service.delete_transaction(store, audit, space_id, transaction_id)


@router.patch("/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: str,
    req: TransactionUpdate,
    space_id: str = Depends(get_partition_key),
    store: LedgerStore = Depends(get_store),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    return ledger_service.update_transaction(store, audit, space_id, transaction_id, changes)
