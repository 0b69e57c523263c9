from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .types import UTCDateTime


class Base(DeclarativeBase):
    pass


class Versioned:
    """Columns shared by append-only entities.

    A logical entity is identified by the columns named in ``__version_key__``.
    Each write inserts a new row; the row with the greatest
    ``(updated_at, id)`` for a key is the current state of that entity.
    """

    __version_key__ = ()

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
