# Overview: Document-style create/read/update access to the SQLAlchemy models.

from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy import and_, or_, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..models import Bill, Customer, Inventory, Product
from ..validation import ConflictError
"""
Record store contract

- Every write is a single-record operation committed on its own. There are no
  multi-record transactions; callers that touch several records compose
  independent writes.
- increment() is the only way quantities move: one UPDATE statement with the
  arithmetic done by the database, optionally guarded so the result never
  drops below a minimum. Concurrent increments cannot lose updates.
- Unique-constraint violations surface as ConflictError; every other database
  failure rolls the session back and surfaces as StoreError.

Query documents:
    {"field": value}                    equality (None matches NULL)
    {"field": {"gte": v, "lt": v}}      operators: eq ne gt gte lt lte in ilike
    {"or": [query, query, ...]}         any sub-query matches
"""

logger = logging.getLogger(__name__)

KINDS = {
    "product": Product,
    "inventory": Inventory,
    "bill": Bill,
    "customer": Customer,
}

_OPERATORS = {
    "eq": lambda col, v: col.is_(None) if v is None else col == v,
    "ne": lambda col, v: col.isnot(None) if v is None else col != v,
    "gt": lambda col, v: col > v,
    "gte": lambda col, v: col >= v,
    "lt": lambda col, v: col < v,
    "lte": lambda col, v: col <= v,
    "in": lambda col, v: col.in_(list(v)),
    "ilike": lambda col, v: col.ilike(v),
}


class StoreError(Exception):
    """Raised when the backing database fails."""


class RecordStore:
    def __init__(self, session):
        self._session = session

    @property
    def session(self):
        return self._session

    def model_for(self, kind: str):
        try:
            return KINDS[kind]
        except KeyError:
            raise StoreError(f"unknown record kind: {kind}")

    def _clauses(self, model, query: dict | None) -> list:
        clauses = []
        for field, cond in (query or {}).items():
            if field == "or":
                branches = [and_(*self._clauses(model, sub)) for sub in cond]
                clauses.append(or_(*branches))
                continue
            col = getattr(model, field, None)
            if col is None:
                raise StoreError(f"unknown field {field!r} for {model.__tablename__}")
            if isinstance(cond, dict):
                for op, value in cond.items():
                    if op not in _OPERATORS:
                        raise StoreError(f"unsupported operator {op!r}")
                    clauses.append(_OPERATORS[op](col, value))
            else:
                clauses.append(_OPERATORS["eq"](col, cond))
        return clauses

    def _ordering(self, model, order_by: Iterable[str] | None) -> list:
        ordering = []
        for name in order_by or ():
            desc = name.startswith("-")
            col = getattr(model, name.lstrip("-"), None)
            if col is None:
                raise StoreError(f"unknown sort field {name!r}")
            ordering.append(col.desc() if desc else col.asc())
        newest_first = bool(order_by) and list(order_by)[0].startswith("-")
        ordering.append(model.id.desc() if newest_first else model.id.asc())
        return ordering

    def _query(self, kind: str, query: dict | None):
        model = self.model_for(kind)
        return model, self._session.query(model).filter(*self._clauses(model, query))

    def find(
        self,
        kind: str,
        query: dict | None = None,
        *,
        order_by: list[str] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list:
        try:
            model, q = self._query(kind, query)
            q = q.order_by(*self._ordering(model, order_by))
            if offset:
                q = q.offset(offset)
            if limit is not None:
                q = q.limit(limit)
            return q.all()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"find {kind} failed") from exc

    def find_one(self, kind: str, query: dict):
        try:
            _, q = self._query(kind, query)
            return q.first()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"find_one {kind} failed") from exc

    def get(self, kind: str, record_id: int):
        try:
            return self._session.get(self.model_for(kind), record_id)
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"get {kind} failed") from exc

    def count(self, kind: str, query: dict | None = None) -> int:
        try:
            _, q = self._query(kind, query)
            return q.count()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"count {kind} failed") from exc

    def _commit(self, kind: str, action: str) -> None:
        try:
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            raise ConflictError(f"{kind} violates a uniqueness constraint") from exc
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"{action} {kind} failed") from exc

    def insert(self, kind: str, values: dict[str, Any]):
        record = self.model_for(kind)(**values)
        self._session.add(record)
        self._commit(kind, "insert")
        return record

    def update(self, kind: str, record_id: int, patch: dict[str, Any]):
        record = self.get(kind, record_id)
        if record is None:
            return None
        for key, value in patch.items():
            setattr(record, key, value)
        self._commit(kind, "update")
        return record

    def delete(self, kind: str, record_id: int) -> bool:
        record = self.get(kind, record_id)
        if record is None:
            return False
        self._session.delete(record)
        self._commit(kind, "delete")
        return True

    def increment(
        self,
        kind: str,
        record_id: int,
        field: str,
        delta: int,
        *,
        minimum: int | None = None,
        extra: dict[str, Any] | None = None,
    ) -> bool:
        """
        Atomically add delta to a numeric column.

        With minimum set, the row is only touched when field + delta >= minimum;
        the return value tells whether a row was updated. extra columns are
        written in the same statement.
        """
        model = self.model_for(kind)
        col = getattr(model, field)
        stmt = update(model).where(model.id == record_id)
        if minimum is not None:
            stmt = stmt.where(col + delta >= minimum)
        stmt = stmt.values({field: col + delta, **(extra or {})}).execution_options(
            synchronize_session=False
        )
        try:
            result = self._session.execute(stmt)
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"increment {kind}.{field} failed") from exc
        # commit expires the identity map, so the next read sees the new value
        self._commit(kind, "increment")
        return result.rowcount == 1

    def ping(self) -> None:
        """Cheap round trip used by the health check."""
        try:
            self._session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError("store unreachable") from exc
