from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from .types import Money, UTCDateTime


class Price(Base):
    """One observation: 1 unit of ``from_ticker`` is ``value`` units of ``to_ticker``.

    Rows are never updated or deleted.
    """

    __tablename__ = "prices"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    from_ticker: Mapped[str] = mapped_column(String(20))
    to_ticker: Mapped[str] = mapped_column(String(20))
    time: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)
    value: Mapped[Decimal] = mapped_column(Money())

    __table_args__ = (
        Index("ix_prices_pair_time", "from_ticker", "to_ticker", "time"),
    )
