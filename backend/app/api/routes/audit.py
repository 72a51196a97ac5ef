from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from backend.app.api.deps import get_partition_key
from backend.app.db import get_db
from backend.app.services import audit_service

router = APIRouter(prefix="/api/audit", tags=["audit"])


class AuditEventOut(BaseModel):
    id: str
    space_id: str
    entity_type: str
    entity_id: str
    action: str
    before_data: Optional[Dict[str, Any]] = None
    after_data: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime


class AuditEventPageOut(BaseModel):
    items: List[AuditEventOut]
    next_cursor: Optional[str] = None


@router.get("", response_model=AuditEventPageOut)
def list_audit_events(
    limit: int = Query(100, ge=1, le=500),
    cursor: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    space_id: str = Depends(get_partition_key),
    db: Session = Depends(get_db),
):
    result = audit_service.list_audit_events(
        db,
        space_id,
        limit=limit,
        cursor=cursor,
        entity_type=entity_type,
        action=action,
    )
    return AuditEventPageOut(
        items=[AuditEventOut(**item) for item in result["items"]],
        next_cursor=result["next_cursor"],
    )
