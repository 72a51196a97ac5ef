"""
Row-level store surface used by the services.

The services only ever need five verbs (select/get/insert/update/delete) with
per-column equality filters. Each write commits on its own; there is no
transaction spanning two calls, which is exactly why reconciliation needs an
explicit compensation step.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Type

from sqlalchemy import Date, delete, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.db import Base
from backend.app.errors import PersistenceError
from backend.app.models import (
    AuditEvent,
    Budget,
    Debt,
    Obligation,
    RecurringTransaction,
    Transaction,
)

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
Filters = Mapping[str, Any]

TABLES: Dict[str, Type[Base]] = {
    "transactions": Transaction,
    "obligations": Obligation,
    "debts": Debt,
    "recurring_transactions": RecurringTransaction,
    "budgets": Budget,
    "audit_events": AuditEvent,
}


class LedgerStore(Protocol):
    def select(
        self,
        table: str,
        filters: Filters,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        ...

    def get(self, table: str, filters: Filters) -> Optional[Row]:
        ...

    def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        ...

    def insert_many(self, table: str, rows: Iterable[Mapping[str, Any]]) -> List[Row]:
        ...

    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> Optional[Row]:
        ...

    def delete(self, table: str, filters: Filters) -> int:
        ...


def _column_attrs(model: Type[Base]) -> Dict[str, Any]:
    # column name -> mapped attribute (they differ for audit_events.metadata)
    return {attr.columns[0].name: attr for attr in inspect(model).mapper.column_attrs}


def row_to_dict(obj: Base) -> Row:
    return {
        name: getattr(obj, attr.key)
        for name, attr in _column_attrs(type(obj)).items()
    }


def _coerce(attr, value: Any) -> Any:
    if isinstance(value, str) and isinstance(attr.columns[0].type, Date):
        return dt.date.fromisoformat(value)
    return value


class SqlStore:
    def __init__(self, db: Session):
        self.db = db

    # -------------------------
    # helpers
    # -------------------------

    def _model(self, table: str) -> Type[Base]:
        model = TABLES.get(table)
        if model is None:
            raise KeyError(f"unknown table: {table}")
        return model

    def _attrs(self, model: Type[Base], values: Mapping[str, Any]) -> Dict[str, Any]:
        columns = _column_attrs(model)
        out: Dict[str, Any] = {}
        for name, value in values.items():
            attr = columns.get(name)
            if attr is None:
                raise KeyError(f"unknown column {model.__tablename__}.{name}")
            out[attr.key] = _coerce(attr, value)
        return out

    def _where(self, model: Type[Base], filters: Filters) -> list:
        return [
            getattr(model, key) == value
            for key, value in self._attrs(model, filters).items()
        ]

    def _fail(self, op: str, table: str, filters: Optional[Filters], exc: Exception) -> PersistenceError:
        self.db.rollback()
        logger.exception(
            "store_%s_failed table=%s filters=%s error=%s",
            op,
            table,
            dict(filters or {}),
            type(exc).__name__,
        )
        return PersistenceError(f"could not {op} {table}")

    # -------------------------
    # reads
    # -------------------------

    def select(
        self,
        table: str,
        filters: Filters,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        model = self._model(table)
        stmt = select(model).where(*self._where(model, filters))
        if order_by:
            column = getattr(model, _column_attrs(model)[order_by].key)
            stmt = stmt.order_by(column.desc() if descending else column.asc(), model.id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            rows = self.db.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            raise self._fail("select", table, filters, exc) from exc
        return [row_to_dict(row) for row in rows]

    def get(self, table: str, filters: Filters) -> Optional[Row]:
        rows = self.select(table, filters, limit=1)
        return rows[0] if rows else None

    # -------------------------
    # writes (one commit each)
    # -------------------------

    def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        return self.insert_many(table, [values])[0]

    def insert_many(self, table: str, rows: Iterable[Mapping[str, Any]]) -> List[Row]:
        model = self._model(table)
        try:
            objs = [model(**self._attrs(model, values)) for values in rows]
            self.db.add_all(objs)
            self.db.commit()
            for obj in objs:
                self.db.refresh(obj)
        except SQLAlchemyError as exc:
            raise self._fail("insert", table, None, exc) from exc
        return [row_to_dict(obj) for obj in objs]

    def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> Optional[Row]:
        model = self._model(table)
        try:
            objs = self.db.execute(select(model).where(*self._where(model, filters))).scalars().all()
            if not objs:
                return None
            changes = self._attrs(model, values)
            for obj in objs:
                for key, value in changes.items():
                    setattr(obj, key, value)
            self.db.commit()
            for obj in objs:
                self.db.refresh(obj)
        except SQLAlchemyError as exc:
            raise self._fail("update", table, filters, exc) from exc
        return row_to_dict(objs[0])

    def delete(self, table: str, filters: Filters) -> int:
        model = self._model(table)
        try:
            result = self.db.execute(delete(model).where(*self._where(model, filters)))
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("delete", table, filters, exc) from exc
        return int(result.rowcount or 0)
