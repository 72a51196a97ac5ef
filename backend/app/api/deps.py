# backend/app/api/deps.py
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from backend.app.config import fx_settings_from_env
from backend.app.db import get_db
from backend.app.services.audit_service import AuditRecorder, StoreAuditRecorder
from backend.app.services.fx_service import CurrencyConverter
from backend.app.store import LedgerStore, SqlStore


def get_partition_key(request: Request) -> str:
    """
    Space the request operates on.

    Reads X-Space-Id, falling back to X-User-Id (a personal space is keyed by
    its owner). Authentication itself happens upstream of this service.
    """
    raw = request.headers.get("X-Space-Id") or request.headers.get("X-User-Id")
    space_id = (raw or "").strip()
    if not space_id:
        raise HTTPException(status_code=401, detail="Missing X-Space-Id or X-User-Id header")
    return space_id


def get_store(db: Session = Depends(get_db)) -> LedgerStore:
    return SqlStore(db)


def get_audit_recorder(store: LedgerStore = Depends(get_store)) -> AuditRecorder:
    return StoreAuditRecorder(store)


@lru_cache(maxsize=1)
def get_converter() -> CurrencyConverter:
    # Settings are read once per process; tests override this dependency.
    return CurrencyConverter(fx_settings_from_env())
