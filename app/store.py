"""Append-only versioned storage.

Alerts, portfolios and assets are never updated in place. Every change inserts
a new row and the newest row per key (by ``updated_at``, then row id) is the
current state of that entity. A delete is just another row with
``is_deleted`` set, so history stays queryable.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

from sqlalchemy import ColumnElement, Select, func, inspect, select
from sqlalchemy.orm import Session

from .models import Versioned

V = TypeVar("V", bound=Versioned)

# Columns that belong to the physical row, not to the logical entity.
_ROW_COLUMNS = frozenset({"id", "updated_at"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _key_columns(model: type[Versioned]) -> list[Any]:
    if not model.__version_key__:
        raise TypeError(f"{model.__name__} does not declare __version_key__")
    return [getattr(model, name) for name in model.__version_key__]


def _newest_first(model: type[Versioned]) -> tuple[Any, Any]:
    return (model.updated_at.desc(), model.id.desc())


def current_version(db: Session, model: type[V], **key: Any) -> Optional[V]:
    """Return the newest row for ``key``, deleted or not.

    Callers must check ``is_deleted`` themselves.
    """
    missing = set(model.__version_key__) - set(key)
    if missing:
        raise TypeError(f"missing key columns for {model.__name__}: {sorted(missing)}")
    stmt = (
        select(model)
        .where(*(getattr(model, name) == value for name, value in key.items()))
        .order_by(*_newest_first(model))
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def current_live(db: Session, model: type[V], **key: Any) -> Optional[V]:
    """Like :func:`current_version` but treats a deleted entity as absent."""
    row = current_version(db, model, **key)
    if row is None or row.is_deleted:
        return None
    return row


def current_rows(model: type[V], *key_criteria: ColumnElement[bool]) -> Select[tuple[V]]:
    """Select the current, non-deleted row of every entity matching ``key_criteria``.

    ``key_criteria`` may only constrain columns that never change across
    versions of an entity (its key, or fixed columns such as an owner id):
    they are applied before picking the newest row, so a filter on a mutable
    column here would surface a stale version. Filter mutable columns on the
    returned select instead.
    """
    rank = (
        func.row_number()
        .over(partition_by=_key_columns(model), order_by=_newest_first(model))
        .label("version_rank")
    )
    ranked = select(model.id, rank).where(*key_criteria).subquery()
    return (
        select(model)
        .join(ranked, model.id == ranked.c.id)
        .where(ranked.c.version_rank == 1, model.is_deleted.is_(False))
    )


def new_version(row: V, **changes: Any) -> V:
    """Copy ``row`` into a fresh unsaved instance with ``changes`` applied."""
    mapper = inspect(type(row))
    values = {
        attr.key: getattr(row, attr.key)
        for attr in mapper.column_attrs
        if attr.key not in _ROW_COLUMNS
    }
    values.update(changes)
    return type(row)(**values)


def append(db: Session, row: V, updated_at: Optional[datetime] = None) -> V:
    """Insert ``row`` as the newest version of its entity.

    Flushes so the row id is assigned; committing is left to the caller so
    several appends can share one transaction.
    """
    row.updated_at = updated_at or _utcnow()
    if row.is_deleted is None:
        row.is_deleted = False
    db.add(row)
    db.flush()
    return row


def delete(db: Session, row: V, updated_at: Optional[datetime] = None) -> V:
    """Append a deleted copy of ``row``."""
    return append(db, new_version(row, is_deleted=True), updated_at=updated_at)
