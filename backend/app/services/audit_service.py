from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol, Tuple

from fastapi.encoders import jsonable_encoder
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from backend.app.errors import ValidationError
from backend.app.models import AUDIT_ACTIONS, AuditEvent
from backend.app.store import LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEventIn:
    space_id: str
    entity_type: str
    entity_id: str
    action: str
    before_data: Optional[Dict[str, Any]] = None
    after_data: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None


class AuditRecorder(Protocol):
    def record(self, event: AuditEventIn) -> None:
        """Fire-and-forget. Must never raise."""
        ...


class StoreAuditRecorder:
    def __init__(self, store: LedgerStore):
        self.store = store

    def record(self, event: AuditEventIn) -> None:
        try:
            if event.action not in AUDIT_ACTIONS:
                raise ValueError(f"unknown audit action {event.action!r}")
            self.store.insert(
                "audit_events",
                {
                    "space_id": event.space_id,
                    "entity_type": event.entity_type,
                    "entity_id": str(event.entity_id),
                    "action": event.action,
                    "before_data": jsonable_encoder(event.before_data),
                    "after_data": jsonable_encoder(event.after_data),
                    "metadata": jsonable_encoder(event.metadata or {}),
                },
            )
        except Exception as exc:  # audit must never break the caller
            logger.warning(
                "audit_event_insert_failed space_id=%s entity_type=%s entity_id=%s action=%s reason=%s",
                event.space_id,
                event.entity_type,
                event.entity_id,
                event.action,
                exc,
            )


def _encode_cursor(created_at: datetime, audit_id: str) -> str:
    return f"{created_at.isoformat()}|{audit_id}"


def _decode_cursor(cursor: str) -> Tuple[datetime, str]:
    try:
        created_at_raw, audit_id = cursor.split("|", 1)
        return datetime.fromisoformat(created_at_raw), audit_id
    except ValueError as exc:
        raise ValidationError("invalid cursor", code="invalid_cursor") from exc


def list_audit_events(
    db: Session,
    space_id: str,
    limit: int = 100,
    cursor: Optional[str] = None,
    entity_type: Optional[str] = None,
    action: Optional[str] = None,
) -> Dict[str, Any]:
    query = select(AuditEvent).where(AuditEvent.space_id == space_id)
    if entity_type:
        query = query.where(AuditEvent.entity_type == entity_type)
    if action:
        query = query.where(AuditEvent.action == action)
    if cursor:
        cursor_created_at, cursor_id = _decode_cursor(cursor)
        query = query.where(
            or_(
                AuditEvent.created_at < cursor_created_at,
                and_(AuditEvent.created_at == cursor_created_at, AuditEvent.id < cursor_id),
            )
        )

    rows = (
        db.execute(
            query.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit + 1)
        )
        .scalars()
        .all()
    )

    next_cursor = None
    if len(rows) > limit:
        last = rows[limit - 1]
        next_cursor = _encode_cursor(last.created_at, last.id)
        rows = rows[:limit]

    items = [
        {
            "id": row.id,
            "space_id": row.space_id,
            "entity_type": row.entity_type,
            "entity_id": row.entity_id,
            "action": row.action,
            "before_data": row.before_data,
            "after_data": row.after_data,
            "metadata": row.metadata_json,
            "created_at": row.created_at,
        }
        for row in rows
    ]

    return {"items": items, "next_cursor": next_cursor}
